from typing import Callable, Optional, Tuple
import asyncio
import time

import structlog

from garden.infrastructure.observability.logging import metrics
from .notification import DeliveryReport, GardenNotification, LoggingEmitter, NotificationEmitter

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """
    Hands notifications to an emitter from one background task.

    Submissions are queued without waiting, so a slow or failing consumer
    never holds up the mutation that produced the notification. The single
    worker delivers in submission order. Failures are logged, counted and
    passed to ``on_failure``; they are never raised back to the submitter.
    """

    def __init__(
        self,
        emitter: Optional[NotificationEmitter] = None,
        on_failure: Optional[Callable[[DeliveryReport], None]] = None,
        timeout_seconds: Optional[float] = 5.0
    ):
        self.emitter = emitter or LoggingEmitter()
        self.on_failure = on_failure
        self.timeout_seconds = timeout_seconds
        self.delivered = 0
        self.failed = 0
        self._queue: "asyncio.Queue[Tuple[GardenNotification, asyncio.Future]]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self):
        """Start the delivery worker on the running loop"""

        if self.running:
            return
        self._worker = asyncio.get_running_loop().create_task(self._run())
        logger.info("Notification dispatcher started", emitter=type(self.emitter).__name__)

    def submit(self, notification: GardenNotification) -> "asyncio.Future[DeliveryReport]":
        """Queue a notification; the returned future resolves once it was attempted"""

        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((notification, future))
        return future

    async def join(self):
        """Wait until every queued notification has been attempted"""

        await self._queue.join()

    async def stop(self, drain: bool = False):
        """Stop the worker, optionally after delivering what is queued"""

        if drain and self.running:
            await self.join()

        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        # Anything still queued will never be delivered
        while not self._queue.empty():
            _, future = self._queue.get_nowait()
            self._queue.task_done()
            if not future.done():
                future.cancel()

        logger.info("Notification dispatcher stopped", delivered=self.delivered, failed=self.failed)

    async def _run(self):
        while True:
            notification, future = await self._queue.get()
            try:
                report = await self._deliver(notification)
                if not future.done():
                    future.set_result(report)
            except asyncio.CancelledError:
                # Stopped mid-delivery
                if not future.done():
                    future.cancel()
                raise
            finally:
                self._queue.task_done()

    async def _deliver(self, notification: GardenNotification) -> DeliveryReport:
        start = time.perf_counter()

        try:
            if self.timeout_seconds is None:
                await self.emitter.emit(notification)
            else:
                await asyncio.wait_for(self.emitter.emit(notification), self.timeout_seconds)

        except Exception as e:
            self.failed += 1
            metrics.increment_counter("notifications.failed")
            logger.error(
                "Failed to emit notification",
                address=notification.address,
                version=notification.version,
                error=str(e) or type(e).__name__,
                exc_info=True
            )

            report = DeliveryReport(notification=notification, success=False, error=str(e) or type(e).__name__)
            if self.on_failure is not None:
                try:
                    self.on_failure(report)
                except Exception as callback_error:
                    logger.error("Error in delivery failure callback", error=str(callback_error))
            return report

        self.delivered += 1
        metrics.increment_counter("notifications.delivered")
        metrics.record_latency("notification.emit", (time.perf_counter() - start) * 1000)
        return DeliveryReport(notification=notification, success=True)
