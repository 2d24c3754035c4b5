import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker
from shared.database import init_db, make_session_factory

from .backend import QuizBackend, SqlQuizBackend
from .certificates import CertificateTrigger, HttpCertificateIssuer
from .config import Settings, get_settings
from .registry import SessionRegistry
from .routes import build_router

logger = logging.getLogger("quiz-service")


def create_app(
    settings: Settings | None = None,
    SessionLocal: sessionmaker | None = None,
    backend: QuizBackend | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)

    if SessionLocal is None:
        SessionLocal = make_session_factory(settings.database_url)
    init_db(SessionLocal)

    backend = backend or SqlQuizBackend(SessionLocal)
    if settings.certificate_service_url:
        issue = HttpCertificateIssuer(settings.certificate_service_url, timeout=settings.certificate_timeout)
    else:
        issue = backend.issue_certificate

    certificates = CertificateTrigger(issue)
    registry = SessionRegistry(
        backend,
        certificates,
        tick_seconds=settings.clock_tick_seconds,
        ttl_seconds=settings.session_ttl_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await registry.drain()
        registry.close_all()
        await certificates.drain()
        logger.info("Quiz service stopped")

    app = FastAPI(title="Quiz Service", version="1.0.0", lifespan=lifespan)
    app.state.registry = registry
    app.state.certificate_trigger = certificates

    allow_credentials = True
    if settings.cors_origins == ["*"]:
        # Browsers reject "*" with credentials
        allow_credentials = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(build_router(registry, SessionLocal), prefix="/quiz", tags=["Quiz"])

    @app.get("/health", operation_id="health_check", tags=["Health"])
    async def health_check():
        return {"status": "healthy", "service": "quiz-service", "active_sessions": len(registry)}

    @app.get("/", operation_id="root", tags=["Root"])
    async def root():
        return {"service": "Quiz Service", "version": "1.0.0", "docs": "/docs"}

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
