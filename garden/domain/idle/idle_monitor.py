from typing import Awaitable, Callable, Optional
import asyncio
import time

import structlog

logger = structlog.get_logger(__name__)


class IdleMonitor:
    """
    Single countdown that fires after a period without garden mutations.

    Every call to ``touch`` restarts the countdown. When it runs out the
    ``on_idle`` callback is awaited once; the monitor then stays disarmed
    until the next ``touch``. The deadline is measured on an injectable
    monotonic clock, and waiting goes through an injectable sleep function.
    """

    def __init__(
        self,
        timeout_seconds: float,
        on_idle: Callable[[], Awaitable[None]],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.timeout_seconds = timeout_seconds
        self.on_idle = on_idle
        self.fire_count = 0
        self._clock = clock
        self._sleep = sleep
        self._deadline: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def remaining(self) -> Optional[float]:
        """Seconds until the idle action, or None when disarmed"""

        if self._deadline is None or not self.armed:
            return None
        return max(0.0, self._deadline - self._clock())

    def touch(self):
        """Restart the countdown after a mutation"""

        self._cancel_pending()
        self._deadline = self._clock() + self.timeout_seconds
        self._task = asyncio.get_running_loop().create_task(self._countdown())

    def cancel(self):
        """Disarm without firing"""

        self._cancel_pending()
        self._deadline = None

    async def _countdown(self):
        while True:
            remaining = self._deadline - self._clock()
            if remaining <= 0:
                break
            await self._sleep(remaining)

        # Detach before firing so a mutation made by the callback can re-arm
        self._task = None
        self._deadline = None
        self.fire_count += 1
        logger.info("Idle timeout reached", timeout_seconds=self.timeout_seconds)

        try:
            await self.on_idle()
        except Exception as e:
            logger.error("Idle action failed", error=str(e), exc_info=True)

    def _cancel_pending(self):
        task = self._task
        self._task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
