import asyncio
import logging
import time
from typing import Callable

from .backend import QuizBackend
from .certificates import CertificateTrigger
from .exceptions import SessionStateError
from .schemas import Learner
from .session import QuizSession, SessionState, open_session

logger = logging.getLogger("quiz-service.registry")


class SessionRegistry:
    """
    Live quiz sessions of this process, keyed by session id.

    Sessions untouched for `ttl_seconds` are evicted on the next open/get,
    unless a submission or a running clock still needs them. A ttl of
    None or 0 keeps sessions until they are closed.
    """

    def __init__(
        self,
        backend: QuizBackend,
        certificates: CertificateTrigger,
        tick_seconds: float = 1.0,
        ttl_seconds: float | None = 1800.0,
        now: Callable[[], float] = time.monotonic,
    ):
        self.backend = backend
        self.certificates = certificates
        self.tick_seconds = tick_seconds
        self.ttl_seconds = ttl_seconds
        self._now = now
        self._sessions: dict[str, QuizSession] = {}
        self._touched: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    async def open(self, quiz_id: str, learner: Learner, assignment_id: str | None = None) -> QuizSession:
        self.sweep()
        session = await open_session(
            self.backend,
            self.certificates,
            quiz_id,
            learner,
            assignment_id=assignment_id,
            tick_seconds=self.tick_seconds,
        )
        self._sessions[session.id] = session
        self._touched[session.id] = self._now()
        return session

    def get(self, session_id: str, user_id: str) -> QuizSession:
        self.sweep()
        session = self._sessions.get(session_id)
        # other learners' sessions are reported as missing
        if session is None or session.learner.user_id != user_id:
            raise KeyError(session_id)
        self._touched[session_id] = self._now()
        return session

    async def retake(self, session_id: str, user_id: str) -> QuizSession:
        old = self.get(session_id, user_id)
        if old.state is not SessionState.SUBMITTED or old.result is None or old.result.passed:
            raise SessionStateError("Retake is only available after a failed attempt", old.state.value)

        session = await self.open(old.quiz.id, old.learner, old.assignment_id)
        self.close(session_id, user_id)
        logger.info("Retake started: previous=%s new=%s", session_id, session.id)
        return session

    def close(self, session_id: str, user_id: str) -> None:
        session = self.get(session_id, user_id)
        session.close()
        del self._sessions[session_id]
        del self._touched[session_id]

    def close_all(self) -> None:
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()
        self._touched.clear()

    def _evictable(self, session: QuizSession, idle: float) -> bool:
        if idle < self.ttl_seconds:
            return False
        if session.state is SessionState.SUBMITTING or session.clock.running:
            return False
        task = session.auto_submit_task
        return task is None or task.done()

    def sweep(self) -> int:
        if not self.ttl_seconds:
            return 0
        now = self._now()
        stale = [sid for sid, s in self._sessions.items() if self._evictable(s, now - self._touched[sid])]
        for sid in stale:
            self._sessions.pop(sid).close()
            del self._touched[sid]
        if stale:
            logger.info("Evicted %d idle quiz session(s)", len(stale))
        return len(stale)

    async def drain(self) -> None:
        """Wait for in-flight auto-submits so their progress writes complete."""
        tasks = [
            s.auto_submit_task
            for s in self._sessions.values()
            if s.auto_submit_task is not None and not s.auto_submit_task.done()
        ]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
