from typing import Callable, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker


class Base(DeclarativeBase):
    pass


def make_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # sessions are used from the threadpool
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


def make_session_factory(url: str) -> sessionmaker:
    return sessionmaker(bind=make_engine(url), autoflush=False, expire_on_commit=False)


def init_db(SessionLocal: sessionmaker) -> None:
    Base.metadata.create_all(bind=SessionLocal.kw["bind"])


def db_dependency(SessionLocal: sessionmaker) -> Callable[[], Iterator[Session]]:
    def get_db() -> Iterator[Session]:
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    return get_db
