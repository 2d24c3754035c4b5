import asyncio
from datetime import datetime, timezone

import pytest
from shared.database import init_db, make_session_factory

from quiz_service.certificates import CertificateTrigger
from quiz_service.exceptions import CertificateIssueError, ProgressWriteError, QuizNotFound
from quiz_service.models import AnswerOption, Question, Quiz
from quiz_service.schemas import (
    CertificateOut,
    CertificateRequest,
    Learner,
    OptionDef,
    ProgressWrite,
    QuestionDef,
    QuizDef,
)


class FakeBackend:
    """In-memory QuizBackend that records every write."""

    def __init__(self, *quizzes: QuizDef):
        self.quizzes = {q.id: q for q in quizzes}
        self.progress_writes: list[ProgressWrite] = []
        self.certificates: list[CertificateRequest] = []
        self.fail_writes = 0
        self.fail_certificates = False
        self.write_gate: asyncio.Event | None = None

    async def fetch_quiz(self, quiz_id: str) -> QuizDef:
        if quiz_id not in self.quizzes:
            raise QuizNotFound(quiz_id)
        return self.quizzes[quiz_id]

    async def write_progress(self, progress: ProgressWrite) -> None:
        if self.write_gate is not None:
            await self.write_gate.wait()
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise ProgressWriteError("database unavailable")
        self.progress_writes.append(progress)

    async def issue_certificate(self, request: CertificateRequest) -> CertificateOut:
        if self.fail_certificates:
            raise CertificateIssueError("certificate store unavailable")
        self.certificates.append(request)
        n = len(self.certificates)
        return CertificateOut(
            id=f"cert-{n}",
            certificate_number=f"CERT-20260101-{n:06d}",
            verification_code=f"CODE{n:04d}",
            user_id=request.user_id,
            quiz_id=request.quiz_id,
            recipient_name=request.recipient_name,
            certificate_type=request.certificate_type,
            title=request.title,
            completion_date=request.completion_date,
            score=request.score,
            passing_score=request.passing_score,
        )


def choice(qid: str, correct: str | list[str], options=("a", "b", "c", "d"), multi=False, points=1) -> QuestionDef:
    correct_ids = {correct} if isinstance(correct, str) else set(correct)
    return QuestionDef(
        id=qid,
        text=f"Question {qid}",
        question_type="mcq_multi" if multi else "mcq",
        options=tuple(OptionDef(id=o, text=f"Option {o}", is_correct=o in correct_ids) for o in options),
        points=points,
    )


def text_question(qid: str, answer: str, question_type: str = "fill_blank") -> QuestionDef:
    return QuestionDef(id=qid, text=f"Question {qid}", question_type=question_type, correct_answer=answer)


def make_quiz(quiz_id: str = "quiz-1", n: int = 4, **kwargs) -> QuizDef:
    """n single-choice questions q1..qn, each with correct option "a"."""
    questions = tuple(choice(f"q{i}", "a") for i in range(1, n + 1))
    return QuizDef(id=quiz_id, title=f"Quiz {quiz_id}", questions=questions, **kwargs)


@pytest.fixture
def learner():
    return Learner(user_id="user-1", email="ana@example.com", full_name="Ana Reyes")


@pytest.fixture
def mixed_quiz():
    return QuizDef(
        id="mixed",
        title="Network Basics",
        questions=(
            choice("q1", "b"),
            choice("q2", ["a", "c"], multi=True, points=2),
            text_question("q3", "true", question_type="true_false"),
            text_question("q4", "Router"),
        ),
        passing_score_percentage=70,
    )


@pytest.fixture
def trigger_for():
    def _make(backend: FakeBackend) -> CertificateTrigger:
        return CertificateTrigger(backend.issue_certificate)

    return _make


@pytest.fixture
def SessionLocal(tmp_path):
    factory = make_session_factory(f"sqlite:///{tmp_path / 'quiz.db'}")
    init_db(factory)
    yield factory
    factory.kw["bind"].dispose()


def seed_quiz(SessionLocal, quiz_id: str = "db-quiz", **kwargs) -> str:
    """Two single-choice questions with correct option text "right"."""
    with SessionLocal() as db:
        quiz = Quiz(id=quiz_id, title="Safety Induction", description="", **kwargs)
        for i in range(2):
            q = Question(id=f"{quiz_id}-q{i}", text=f"Question {i}", question_type="mcq", display_order=i)
            q.options = [
                AnswerOption(id=f"{quiz_id}-q{i}-right", text="right", is_correct=True, display_order=0),
                AnswerOption(id=f"{quiz_id}-q{i}-wrong", text="wrong", is_correct=False, display_order=1),
            ]
            quiz.questions.append(q)
        db.add(quiz)
        db.commit()
    return quiz_id


def now():
    return datetime.now(timezone.utc)
