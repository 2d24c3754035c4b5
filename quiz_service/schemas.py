from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class QuestionType(str, Enum):
    SINGLE_CHOICE = "mcq"
    MULTI_CHOICE = "mcq_multi"
    TRUE_FALSE = "true_false"
    FREE_TEXT = "fill_blank"
    SCENARIO = "scenario"


CHOICE_TYPES = frozenset({QuestionType.SINGLE_CHOICE, QuestionType.MULTI_CHOICE})

AnswerValue = str | list[str]


# -------------------------
# Quiz definition (read-only for a session)
# -------------------------

class OptionDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str = ""
    is_correct: bool = False


class QuestionDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    question_type: QuestionType
    options: tuple[OptionDef, ...] = ()
    correct_answer: str | None = None  # true_false / fill_blank / scenario
    points: int = Field(default=1, ge=0)

    @property
    def is_choice(self) -> bool:
        return self.question_type in CHOICE_TYPES


class QuizDef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    description: str = ""
    questions: tuple[QuestionDef, ...] = ()
    passing_score_percentage: int = Field(default=70, ge=0, le=100)
    time_limit_minutes: int | None = Field(default=None, ge=0)  # None/0 = untimed
    randomize_questions: bool = False
    show_feedback_during: bool = True


# -------------------------
# Results
# -------------------------

class QuestionOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: str
    answer: AnswerValue | None = None
    correct: bool
    points: int


class AttemptResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    quiz_id: str
    score_percentage: int = Field(ge=0, le=100)
    passed: bool
    correct_count: int
    total_questions: int
    earned_points: int
    total_points: int
    outcomes: tuple[QuestionOutcome, ...] = ()

    @property
    def perfect(self) -> bool:
        return self.score_percentage == 100


# -------------------------
# Collaborator payloads
# -------------------------

class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ProgressWrite(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    assignment_id: str | None = None
    content_id: str
    content_type: str = "quiz"
    user_id: str
    status: ProgressStatus
    progress_percentage: int = Field(ge=0, le=100)
    score_percentage: int | None = Field(default=None, ge=0, le=100)
    passed: bool | None = None
    completed_at: datetime | None = None


class Learner(BaseModel):
    user_id: str
    email: EmailStr | None = None
    full_name: str | None = None

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Quiz Participant"


class CertificateRequest(BaseModel):
    user_id: str
    quiz_id: str
    recipient_name: str
    recipient_email: str | None = None
    certificate_type: str = "quiz"
    title: str
    description: str = ""
    completion_date: datetime
    score: int = 100
    passing_score: int


class CertificateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    certificate_number: str
    verification_code: str
    user_id: str
    quiz_id: str
    recipient_name: str
    certificate_type: str
    title: str
    completion_date: datetime
    score: int
    passing_score: int
    status: str = "active"


class CertificateVerifyOut(BaseModel):
    valid: bool
    certificate: CertificateOut | None = None


# -------------------------
# Session API
# -------------------------

class SessionStartIn(BaseModel):
    quiz_id: str
    assignment_id: str | None = None


class AnswerIn(BaseModel):
    value: AnswerValue


class NavigateIn(BaseModel):
    direction: Literal["next", "previous"] | None = None
    index: int | None = None

    @model_validator(mode="after")
    def one_target(self) -> "NavigateIn":
        if (self.direction is None) == (self.index is None):
            raise ValueError("Provide exactly one of 'direction' or 'index'.")
        return self


class OptionView(BaseModel):
    id: str
    text: str


class QuestionView(BaseModel):
    id: str
    text: str
    question_type: QuestionType
    points: int
    options: list[OptionView] = Field(default_factory=list)


class SessionOut(BaseModel):
    session_id: str
    quiz_id: str
    title: str
    state: str
    passing_score_percentage: int
    current_index: int
    total_questions: int
    answered_count: int
    remaining_seconds: int | None = None
    question: QuestionView | None = None
    answer: AnswerValue | None = None
    feedback: bool | None = None
    result: AttemptResult | None = None
    certificate: CertificateOut | None = None
    last_error: str | None = None
