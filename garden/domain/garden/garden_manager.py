from typing import Awaitable, Callable, Dict, List, Optional
import asyncio
import time

import structlog
from pydantic import BaseModel, Field

from garden.domain.idle.idle_monitor import IdleMonitor
from garden.domain.models.errors import ErrorCode, GardenError
from garden.domain.models.garden_state import (
    BatchItemResult,
    BatchSummary,
    ObjectDescriptor,
    PlacementEvent,
    RemovalReason,
    StateSnapshot,
)
from garden.domain.placement.placement_engine import PlacementEngine, PlacementOutcome
from garden.domain.streaming.dispatcher import NotificationDispatcher
from garden.domain.streaming.notification import Destination, GardenNotification
from garden.infrastructure.config.settings import GardenSettings, get_settings
from garden.infrastructure.observability.logging import garden_logger, metrics

logger = structlog.get_logger(__name__)


class OperationResult(BaseModel):
    """Result of one command, returned to every caller"""
    success: bool
    operation: str
    message: str
    error_code: Optional[ErrorCode] = None
    skipped: bool = False
    added_objects: List[ObjectDescriptor] = Field(default_factory=list)
    removed_objects: List[ObjectDescriptor] = Field(default_factory=list)
    events: List[PlacementEvent] = Field(default_factory=list)
    results: List[BatchItemResult] = Field(default_factory=list)
    summary: Optional[BatchSummary] = None
    state: Optional[StateSnapshot] = None

    @property
    def added_object(self) -> Optional[ObjectDescriptor]:
        return self.added_objects[0] if self.added_objects else None

    @property
    def removed_object(self) -> Optional[ObjectDescriptor]:
        return self.removed_objects[0] if self.removed_objects else None


def _label(descriptor: ObjectDescriptor) -> str:
    return f"object {descriptor.id} ({descriptor.name})"


def describe_add(outcome: PlacementOutcome) -> str:
    added = outcome.added[0]
    placed = f"{_label(added)} at {added.slot_id}"
    if not outcome.removed:
        return f"Added {placed}"

    parts = []
    for removed in outcome.removed:
        if removed.reason == RemovalReason.DUPLICATE:
            parts.append(f"Removed duplicate {_label(removed)} from {removed.slot_id}")
        elif removed.reason == RemovalReason.OLDEST:
            parts.append(f"Garden full! Removed oldest {_label(removed)} from {removed.slot_id}")
        else:
            parts.append(f"No available locations! Forcibly displaced {_label(removed)} from {removed.slot_id}")

    return f"{', '.join(parts)}, then added {placed}"


def describe_remove(outcome: PlacementOutcome) -> str:
    removed = outcome.removed[0]
    return f"Object {removed.id} removed from garden at location {removed.slot_id}"


def describe_batch(outcome: PlacementOutcome) -> str:
    summary = outcome.summary
    return f"Garden setup complete: {summary.successful} objects added successfully, {summary.failed} failed"


def describe_clear(outcome: PlacementOutcome) -> str:
    return f"Garden cleared successfully ({len(outcome.removed)} objects removed)"


def describe_oldest_half(outcome: PlacementOutcome) -> str:
    if not outcome.mutated:
        return f"Nothing to remove: garden holds {outcome.state.occupant_count} objects"
    return f"Removed {len(outcome.removed)} oldest objects"


def describe_reinitialize(outcome: PlacementOutcome) -> str:
    return f"Garden initialized with {outcome.summary.successful} objects"


class GardenManager:
    """
    Command surface of the garden.

    Every operation runs to completion under one asyncio lock: the engine
    call, the notification hand-off and the idle timer restart. Engine
    errors come back as failed results, never as exceptions.
    """

    def __init__(
        self,
        settings: Optional[GardenSettings] = None,
        engine: Optional[PlacementEngine] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        idle_clock: Callable[[], float] = time.monotonic,
        idle_sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.settings = settings or get_settings()
        self.engine = engine or PlacementEngine(
            max_capacity=self.settings.max_capacity,
            default_objects=self.settings.default_objects
        )
        self.dispatcher = dispatcher or NotificationDispatcher(
            timeout_seconds=self.settings.notification_timeout_seconds
        )
        self.idle_monitor = IdleMonitor(
            self.settings.idle_timeout_seconds,
            self._on_idle,
            clock=idle_clock,
            sleep=idle_sleep
        )
        self._idle_policies: Dict[str, Callable[[], PlacementOutcome]] = {
            "reinitialize": self.engine.reinitialize,
            "remove_oldest_half": self.engine.remove_oldest_half,
        }
        self._lock = asyncio.Lock()
        self._stopped = False

    async def start(self, seed: Optional[bool] = None):
        """Start notification delivery and optionally seed the default objects"""

        self._stopped = False
        self.dispatcher.start()

        if self.settings.seed_on_startup if seed is None else seed:
            result = await self.reinitialize()
            logger.info("Garden seeded", message=result.message)

    async def shutdown(self):
        """Stop the idle timer and flush pending notifications"""

        self._stopped = True
        self.idle_monitor.cancel()
        await self.dispatcher.stop(drain=True)
        logger.info("Garden manager stopped", version=self.engine.version)

    async def get_state(self) -> StateSnapshot:
        """Get a snapshot taken between mutations"""

        async with self._lock:
            return self.engine.snapshot()

    async def add(self, object_id: str) -> OperationResult:
        object_id = str(object_id)
        return await self._execute(
            "add", Destination.SINGLE, lambda: self.engine.add(object_id), describe_add
        )

    async def remove(self, object_id: str) -> OperationResult:
        object_id = str(object_id)
        return await self._execute(
            "remove", Destination.SINGLE, lambda: self.engine.remove(object_id), describe_remove
        )

    async def add_batch(self, object_ids: List[str], clear_first: bool = False) -> OperationResult:
        object_ids = [str(object_id) for object_id in object_ids]
        return await self._execute(
            "add_batch",
            Destination.BATCH,
            lambda: self.engine.add_batch(object_ids, clear_first=clear_first),
            describe_batch
        )

    async def clear(self) -> OperationResult:
        return await self._execute("clear", Destination.BATCH, self.engine.clear, describe_clear)

    async def remove_oldest_half(self) -> OperationResult:
        return await self._execute(
            "remove_oldest_half", Destination.BATCH, self.engine.remove_oldest_half, describe_oldest_half
        )

    async def reinitialize(self) -> OperationResult:
        return await self._execute(
            "reinitialize", Destination.BATCH, self.engine.reinitialize, describe_reinitialize
        )

    def is_protected(self, occupant_count: int) -> bool:
        """Check whether the idle action must leave a garden of this size alone"""

        return self.settings.idle_protect_min <= occupant_count <= self.settings.idle_protect_max

    async def run_idle_action(self) -> OperationResult:
        """Apply the idle policy unless the garden size is in the protection band"""

        action = self.settings.idle_action

        async with self._lock:
            count = self.engine.occupant_count

            if self.is_protected(count):
                metrics.increment_counter("idle.skipped")
                garden_logger.log_idle_action(action, count, skipped=True)
                return OperationResult(
                    success=True,
                    operation="idle_action",
                    skipped=True,
                    message=(
                        f"Idle action skipped: {count} objects within protection band "
                        f"[{self.settings.idle_protect_min}, {self.settings.idle_protect_max}]"
                    ),
                    state=self.engine.snapshot()
                )

            outcome = self._apply(Destination.BATCH, self._idle_policies[action])

        metrics.increment_counter("idle.fired")
        garden_logger.log_idle_action(
            action,
            count,
            skipped=False,
            details={"removed": len(outcome.removed), "added": len(outcome.added)}
        )

        describe = describe_reinitialize if action == "reinitialize" else describe_oldest_half
        return self._result("idle_action", outcome, describe(outcome))

    async def _on_idle(self):
        await self.run_idle_action()

    async def _execute(
        self,
        operation: str,
        destination: Destination,
        action: Callable[[], PlacementOutcome],
        describe: Callable[[PlacementOutcome], str]
    ) -> OperationResult:
        start = time.perf_counter()

        async with self._lock:
            try:
                outcome = self._apply(destination, action)
            except GardenError as e:
                logger.warning(
                    "Operation rejected",
                    operation=operation,
                    error_code=e.code.value,
                    object_id=e.object_id
                )
                metrics.increment_counter(f"operations.{operation}.failed")
                return OperationResult(
                    success=False,
                    operation=operation,
                    message=e.message,
                    error_code=e.code,
                    state=self.engine.snapshot()
                )

        metrics.record_latency(operation, (time.perf_counter() - start) * 1000)
        return self._result(operation, outcome, describe(outcome))

    def _apply(self, destination: Destination, action: Callable[[], PlacementOutcome]) -> PlacementOutcome:
        """Run an engine call and publish its effects; the lock must be held"""

        outcome = action()
        if outcome.mutated:
            self.dispatcher.submit(GardenNotification(
                destination=destination,
                version=outcome.state.version,
                events=outcome.events
            ))
            # The idle timer stays disarmed after shutdown
            if not self._stopped:
                self.idle_monitor.touch()
        return outcome

    def _result(self, operation: str, outcome: PlacementOutcome, message: str) -> OperationResult:
        return OperationResult(
            success=True,
            operation=operation,
            message=message,
            added_objects=outcome.added,
            removed_objects=outcome.removed,
            events=outcome.events,
            results=outcome.results,
            summary=outcome.summary if outcome.results else None,
            state=outcome.state
        )
