import asyncio
import logging
import random
import uuid
from datetime import datetime, timezone
from enum import Enum

from .backend import QuizBackend
from .certificates import CertificateTrigger, build_certificate_request
from .clock import SessionClock
from .exceptions import ProgressWriteError, SessionStateError
from .grading import find_malformed, grade_quiz, is_correct
from .ledger import AnswerLedger
from .schemas import (
    AnswerValue,
    AttemptResult,
    CertificateOut,
    Learner,
    ProgressStatus,
    ProgressWrite,
    QuestionDef,
    QuizDef,
)

logger = logging.getLogger("quiz-service.session")

SUBMIT_FAILED_MESSAGE = "Failed to submit quiz results, try again"


class SessionState(str, Enum):
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    CLOSED = "closed"


class SubmitTrigger(str, Enum):
    LEARNER = "learner"
    EXPIRY = "expiry"


class QuizSession:
    """
    One learner taking one quiz.

    State machine:
        ACTIVE -> SUBMITTING -> SUBMITTED
        ACTIVE -> SUBMITTING -> ACTIVE      (progress write failed, retry allowed)
        any    -> CLOSED                    (teardown)

    The submit latch is checked and set without awaiting, so an explicit
    submit and a clock expiry on the same event loop can never both get
    through.
    """

    def __init__(
        self,
        quiz: QuizDef,
        learner: Learner,
        backend: QuizBackend,
        certificates: CertificateTrigger,
        *,
        assignment_id: str | None = None,
        tick_seconds: float = 1.0,
        rng: random.Random | None = None,
    ):
        if quiz.randomize_questions:
            order = list(quiz.questions)
            (rng or random.Random()).shuffle(order)
            quiz = quiz.model_copy(update={"questions": tuple(order)})

        self.id = str(uuid.uuid4())
        self.quiz = quiz
        self.learner = learner
        self.assignment_id = assignment_id
        self.backend = backend
        self.certificates = certificates

        self.ledger = AnswerLedger([q.id for q in quiz.questions])
        self.clock = SessionClock(quiz.time_limit_minutes, self._on_clock_expired, tick_seconds)
        self.state = SessionState.ACTIVE
        self.result: AttemptResult | None = None
        self.certificate: CertificateOut | None = None
        self.last_error: str | None = None
        self.auto_submit_task: asyncio.Task | None = None

        self._questions = {q.id: q for q in quiz.questions}
        self._submitting = False

    def start(self) -> None:
        self.clock.start()

    # -------------------------
    # Learner interaction
    # -------------------------

    @property
    def current_question(self) -> QuestionDef | None:
        qid = self.ledger.current_question_id
        return self._questions[qid] if qid else None

    @property
    def accepting_answers(self) -> bool:
        return self.state is SessionState.ACTIVE and not self.clock.expired

    def _require_active(self, action: str) -> None:
        if not self.accepting_answers:
            raise SessionStateError(f"Cannot {action}: session is {self.state.value}", self.state.value)

    def answer(self, question_id: str, value: AnswerValue) -> None:
        self._require_active("answer")
        self.ledger.set_answer(question_id, value)

    def next(self) -> bool:
        self._require_active("navigate")
        return self.ledger.next()

    def previous(self) -> bool:
        self._require_active("navigate")
        return self.ledger.previous()

    def go_to(self, index: int) -> int:
        self._require_active("navigate")
        return self.ledger.go_to(index)

    def feedback(self, question_id: str) -> bool | None:
        """Live correctness for an answered question, when the quiz shows feedback."""
        if not self.quiz.show_feedback_during or question_id not in self._questions:
            return None
        answer = self.ledger.get_answer(question_id)
        if answer is None:
            return None
        return is_correct(self._questions[question_id], answer)

    # -------------------------
    # Submission
    # -------------------------

    def _acquire_latch(self) -> bool:
        if self.state is not SessionState.ACTIVE or self._submitting:
            return False
        self._submitting = True
        self.state = SessionState.SUBMITTING
        return True

    def _release_latch(self) -> None:
        self._submitting = False
        if self.state is SessionState.SUBMITTING:
            self.state = SessionState.ACTIVE

    def _submit_failed(self, trigger: SubmitTrigger) -> None:
        self._release_latch()
        self.last_error = SUBMIT_FAILED_MESSAGE
        logger.warning("Quiz submission failed, latch released: session=%s trigger=%s", self.id, trigger.value)

    async def submit(self, trigger: SubmitTrigger = SubmitTrigger.LEARNER) -> AttemptResult:
        # navigation is frozen after expiry, so a retry can come from any index
        if trigger is SubmitTrigger.LEARNER and not self.ledger.is_last and not self.clock.expired:
            raise SessionStateError("Cannot submit: move to the final question first", self.state.value)
        if not self._acquire_latch():
            raise SessionStateError(f"Cannot submit: session is {self.state.value}", self.state.value)

        result = grade_quiz(self.quiz, self.ledger.snapshot())
        completed_at = datetime.now(timezone.utc)
        progress = ProgressWrite(
            assignment_id=self.assignment_id,
            content_id=self.quiz.id,
            content_type="quiz",
            user_id=self.learner.user_id,
            status=ProgressStatus.COMPLETED,
            progress_percentage=100,
            score_percentage=result.score_percentage,
            passed=result.passed,
            completed_at=completed_at,
        )

        try:
            await self.backend.write_progress(progress)
        except ProgressWriteError:
            self._submit_failed(trigger)
            raise
        except Exception as e:
            self._submit_failed(trigger)
            raise ProgressWriteError(f"Failed to save quiz progress: {e}") from e

        self.clock.stop()
        self.last_error = None
        logger.info(
            "Quiz submitted: session=%s user=%s quiz=%s score=%s%% passed=%s trigger=%s",
            self.id, self.learner.user_id, self.quiz.id, result.score_percentage, result.passed, trigger.value,
        )

        if self.state is SessionState.CLOSED:
            logger.info("Session %s was closed during submission; result not published", self.id)
        else:
            self.state = SessionState.SUBMITTED
            self.result = result

        if result.perfect:
            self.certificates.dispatch(
                build_certificate_request(self.quiz, self.learner, completed_at),
                on_issued=self._on_certificate_issued,
            )
        return result

    def _on_clock_expired(self) -> None:
        if self.state is not SessionState.ACTIVE or self._submitting:
            logger.debug("Clock expired after submission started: session=%s", self.id)
            return
        logger.info("Time limit reached, auto-submitting: session=%s", self.id)
        self.auto_submit_task = asyncio.get_running_loop().create_task(self._submit_on_expiry())

    async def _submit_on_expiry(self) -> None:
        try:
            await self.submit(SubmitTrigger.EXPIRY)
        except SessionStateError:
            logger.debug("Auto-submit skipped, session already %s: session=%s", self.state.value, self.id)
        except ProgressWriteError:
            # last_error is already set for the learner to retry from
            pass

    def _on_certificate_issued(self, cert: CertificateOut) -> None:
        self.certificate = cert

    # -------------------------
    # Teardown
    # -------------------------

    def close(self) -> None:
        if self.state is SessionState.CLOSED:
            return
        self.clock.stop()
        self.state = SessionState.CLOSED
        logger.info("Quiz session closed: session=%s", self.id)


async def open_session(
    backend: QuizBackend,
    certificates: CertificateTrigger,
    quiz_id: str,
    learner: Learner,
    *,
    assignment_id: str | None = None,
    tick_seconds: float = 1.0,
) -> QuizSession:
    """Load the quiz and start a new session. Load errors propagate."""
    quiz = await backend.fetch_quiz(quiz_id)

    malformed = find_malformed(quiz)
    if malformed:
        logger.warning("Quiz %s has %d malformed question(s): %s", quiz.id, len(malformed), ", ".join(malformed))

    session = QuizSession(
        quiz,
        learner,
        backend,
        certificates,
        assignment_id=assignment_id,
        tick_seconds=tick_seconds,
    )
    session.start()
    logger.info("Quiz session started: session=%s user=%s quiz=%s", session.id, learner.user_id, quiz.id)
    return session
