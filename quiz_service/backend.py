import logging
from typing import Protocol

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import crud
from .exceptions import CertificateIssueError, ProgressWriteError, QuizLoadError, QuizNotFound
from .models import Quiz
from .schemas import CertificateOut, CertificateRequest, OptionDef, ProgressWrite, QuestionDef, QuizDef

logger = logging.getLogger("quiz-service.backend")


class QuizBackend(Protocol):
    """The three operations a quiz session needs from the platform."""

    async def fetch_quiz(self, quiz_id: str) -> QuizDef: ...

    async def write_progress(self, progress: ProgressWrite) -> None: ...

    async def issue_certificate(self, request: CertificateRequest) -> CertificateOut: ...


def quiz_to_definition(quiz: Quiz) -> QuizDef:
    questions = []
    for q in quiz.questions:
        questions.append(QuestionDef(
            id=q.id,
            text=q.text,
            question_type=q.question_type,
            options=tuple(OptionDef(id=o.id, text=o.text or "", is_correct=bool(o.is_correct)) for o in q.options),
            correct_answer=q.correct_answer,
            points=q.points if q.points is not None else 1,
        ))

    return QuizDef(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description or "",
        questions=tuple(questions),
        passing_score_percentage=quiz.passing_score_percentage,
        time_limit_minutes=quiz.time_limit_minutes,
        randomize_questions=bool(quiz.randomize_questions),
        show_feedback_during=bool(quiz.show_feedback_during),
    )


class SqlQuizBackend:
    """
    QuizBackend over the service database. Blocking SQLAlchemy work runs in
    the threadpool so the event loop keeps serving session events.
    """

    def __init__(self, SessionLocal: sessionmaker):
        self.SessionLocal = SessionLocal

    async def fetch_quiz(self, quiz_id: str) -> QuizDef:
        return await run_in_threadpool(self._fetch_quiz, quiz_id)

    async def write_progress(self, progress: ProgressWrite) -> None:
        await run_in_threadpool(self._write_progress, progress)

    async def issue_certificate(self, request: CertificateRequest) -> CertificateOut:
        return await run_in_threadpool(self._issue_certificate, request)

    def _fetch_quiz(self, quiz_id: str) -> QuizDef:
        try:
            with self.SessionLocal() as db:
                quiz = crud.get_quiz(db, quiz_id)
                if not quiz:
                    raise QuizNotFound(quiz_id)
                return quiz_to_definition(quiz)
        except (SQLAlchemyError, ValidationError) as e:
            logger.error("Failed to load quiz %s: %s", quiz_id, e)
            raise QuizLoadError(f"Failed to load quiz {quiz_id}") from e

    def _write_progress(self, progress: ProgressWrite) -> None:
        try:
            with self.SessionLocal() as db:
                row = crud.upsert_progress(db, progress.model_dump())
        except SQLAlchemyError as e:
            logger.error("Progress write failed for user=%s content=%s: %s", progress.user_id, progress.content_id, e)
            raise ProgressWriteError("Failed to save quiz progress") from e
        logger.info("Progress saved: id=%s user=%s status=%s", row.id, row.user_id, row.status)

    def _issue_certificate(self, request: CertificateRequest) -> CertificateOut:
        try:
            with self.SessionLocal() as db:
                cert = crud.create_certificate(db, request.model_dump())
                return CertificateOut.model_validate(cert)
        except SQLAlchemyError as e:
            raise CertificateIssueError("Failed to create certificate") from e
