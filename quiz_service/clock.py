import asyncio
import logging
from typing import Callable

logger = logging.getLogger("quiz-service.clock")


class SessionClock:
    """
    Countdown for a timed quiz session.

    - Untimed when time_limit_minutes is None or 0; start() is then a no-op.
    - Each tick removes one second, every `tick_seconds` of wall time.
    - Reaching zero calls on_expired exactly once and stops the clock.
    """

    def __init__(
        self,
        time_limit_minutes: int | None,
        on_expired: Callable[[], None],
        tick_seconds: float = 1.0,
    ):
        self._remaining = time_limit_minutes * 60 if time_limit_minutes else None
        self._on_expired = on_expired
        self._tick_seconds = tick_seconds
        self._task: asyncio.Task | None = None
        self._stopped = False
        self._expired = False

    @property
    def enabled(self) -> bool:
        return self._remaining is not None

    @property
    def remaining_seconds(self) -> int | None:
        return self._remaining

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.enabled or self._stopped or self._task is not None:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self._tick_seconds)
            self.tick()

    def tick(self) -> None:
        if self._stopped or self._remaining is None:
            return
        self._remaining = max(0, self._remaining - 1)
        if self._remaining == 0:
            self._expired = True
            self._stopped = True
            logger.info("Session clock expired")
            self._on_expired()

    def stop(self) -> None:
        self._stopped = True
        task = self._task
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        # expiry stops the clock from inside its own task
        if task is not current:
            task.cancel()
