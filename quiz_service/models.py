import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from shared.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Quiz(Base):
    __tablename__ = "learning_quiz"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str] = mapped_column(Text, default="")
    time_limit_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)  # NULL for unlimited
    passing_score_percentage: Mapped[int] = mapped_column(Integer, default=70)
    randomize_questions: Mapped[bool] = mapped_column(Boolean, default=False)
    show_feedback_during: Mapped[bool] = mapped_column(Boolean, default=True)

    questions: Mapped[list["Question"]] = relationship(
        back_populates="quiz",
        order_by="Question.display_order",
        cascade="all, delete-orphan",
    )


class Question(Base):
    __tablename__ = "quiz_question"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    quiz_id: Mapped[str] = mapped_column(String(36), ForeignKey("learning_quiz.id"), index=True)
    text: Mapped[str] = mapped_column(Text)
    question_type: Mapped[str] = mapped_column(String(20))  # mcq/mcq_multi/true_false/fill_blank/scenario
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)  # non-choice types only
    points: Mapped[int | None] = mapped_column(Integer, nullable=True, default=1)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    quiz: Mapped[Quiz] = relationship(back_populates="questions")
    options: Mapped[list["AnswerOption"]] = relationship(
        back_populates="question",
        order_by="AnswerOption.display_order",
        cascade="all, delete-orphan",
    )


class AnswerOption(Base):
    __tablename__ = "answer_option"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    question_id: Mapped[str] = mapped_column(String(36), ForeignKey("quiz_question.id"), index=True)
    text: Mapped[str] = mapped_column(Text, default="")
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    question: Mapped[Question] = relationship(back_populates="options")


class LearningProgress(Base):
    __tablename__ = "learning_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "content_type", "content_id", name="uq_learning_progress_user_content"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    assignment_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    content_type: Mapped[str] = mapped_column(String(20), default="quiz")
    content_id: Mapped[str] = mapped_column(String(36))

    status: Mapped[str] = mapped_column(String(20), default="not_started")  # not_started/in_progress/completed
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0)
    score_percentage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)


class Certificate(Base):
    __tablename__ = "certificate"
    __table_args__ = (
        # one active certificate per learner and quiz
        Index(
            "uq_certificate_active_user_quiz",
            "user_id",
            "quiz_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    certificate_number: Mapped[str] = mapped_column(String(20), unique=True)
    verification_code: Mapped[str] = mapped_column(String(32), unique=True, index=True)

    user_id: Mapped[str] = mapped_column(String(64), index=True)
    quiz_id: Mapped[str] = mapped_column(String(36), index=True)
    recipient_name: Mapped[str] = mapped_column(String(255))
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    certificate_type: Mapped[str] = mapped_column(String(50), default="quiz")
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[str] = mapped_column(Text, default="")
    completion_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    score: Mapped[int] = mapped_column(Integer, default=100)
    passing_score: Mapped[int] = mapped_column(Integer, default=70)

    status: Mapped[str] = mapped_column(String(20), default="active")  # active/revoked/expired/superseded
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
