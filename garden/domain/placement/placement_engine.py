from typing import Callable, Iterable, List, Optional, Sequence
import random
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from garden.domain.catalog.slot_catalog import ObjectDefinition, SlotCatalog
from garden.domain.models.errors import ObjectNotFoundError, UnknownObjectError
from garden.domain.models.garden_state import (
    BatchItemResult,
    BatchSummary,
    EventAction,
    GardenState,
    ObjectDescriptor,
    PlacementEvent,
    RemovalReason,
    StateSnapshot,
    utcnow,
)
from garden.infrastructure.config.settings import DEFAULT_OBJECTS
from garden.infrastructure.observability.logging import garden_logger, metrics

logger = structlog.get_logger(__name__)

MAX_CAPACITY = 22

Chooser = Callable[[Sequence[str]], str]
Clock = Callable[[], datetime]


class PlacementOutcome(BaseModel):
    """Everything a single engine operation changed, in decision order"""
    operation: str
    mutated: bool = True
    events: List[PlacementEvent] = Field(default_factory=list)
    added: List[ObjectDescriptor] = Field(default_factory=list)
    removed: List[ObjectDescriptor] = Field(default_factory=list)
    results: List[BatchItemResult] = Field(default_factory=list)
    state: StateSnapshot

    @property
    def summary(self) -> BatchSummary:
        successful = sum(1 for result in self.results if result.success)
        return BatchSummary(
            total=len(self.results),
            successful=successful,
            failed=len(self.results) - successful
        )


class PlacementEngine:
    """
    Owns the garden state and decides slots and evictions for every mutation.

    Placement for a single object escalates through three policies: a
    duplicate of the incoming object is replaced, a full garden gives up its
    oldest occupant, and an object with no free permitted slot displaces an
    occupant of one of its slots. Every operation bumps the state version
    exactly once, however many objects it touches.

    The engine does no locking. Callers must run one operation at a time.

    Args:
        catalog: Slot and object definitions
        max_capacity: Maximum number of simultaneous occupants
        default_objects: Objects placed by reinitialize
        choose: Uniform random choice over a non-empty sequence
        clock: Source of timestamps for placements and state changes
    """

    def __init__(
        self,
        catalog: Optional[SlotCatalog] = None,
        max_capacity: int = MAX_CAPACITY,
        default_objects: Optional[Iterable[str]] = None,
        choose: Chooser = random.choice,
        clock: Clock = utcnow
    ):
        self.catalog = catalog or SlotCatalog()
        self.max_capacity = max_capacity
        self.default_objects = [str(object_id) for object_id in (
            default_objects if default_objects is not None else DEFAULT_OBJECTS
        )]
        self._choose = choose
        self._clock = clock
        self._state = GardenState(last_modified=clock())

    @property
    def occupant_count(self) -> int:
        return self._state.occupant_count

    @property
    def version(self) -> int:
        return self._state.version

    def snapshot(self) -> StateSnapshot:
        """Get a detached copy of the current state"""
        return self._state.snapshot(self.max_capacity)

    def add(self, object_id: str) -> PlacementOutcome:
        """Place one object, evicting whatever the placement policies require"""

        definition = self._resolve(str(object_id))

        events: List[PlacementEvent] = []
        removed: List[ObjectDescriptor] = []
        added = self._place(definition, events, removed)

        self._commit("add")
        return self._outcome("add", events, added=[added], removed=removed)

    def remove(self, object_id: str) -> PlacementOutcome:
        """Remove one placed object"""

        object_id = str(object_id)
        if not self._state.contains(object_id):
            raise ObjectNotFoundError(object_id)

        events: List[PlacementEvent] = []
        removed: List[ObjectDescriptor] = []
        self._evict(object_id, RemovalReason.MANUAL, events, removed)

        self._commit("remove")
        return self._outcome("remove", events, removed=removed)

    def add_batch(self, object_ids: Iterable[str], clear_first: bool = False) -> PlacementOutcome:
        """
        Place a list of objects in order under a single version bump.

        Unknown ids are reported as failed items and skipped; the rest of the
        batch still applies.
        """

        events: List[PlacementEvent] = []
        added: List[ObjectDescriptor] = []
        removed: List[ObjectDescriptor] = []
        results: List[BatchItemResult] = []

        if clear_first:
            self._evict_all(RemovalReason.CLEARED, events, removed)

        self._apply_batch(object_ids, events, added, removed, results)

        self._commit("add_batch")
        return self._outcome("add_batch", events, added=added, removed=removed, results=results)

    def clear(self) -> PlacementOutcome:
        """Remove every occupant"""

        events: List[PlacementEvent] = []
        removed: List[ObjectDescriptor] = []
        self._evict_all(RemovalReason.CLEARED, events, removed)

        self._commit("clear")
        return self._outcome("clear", events, removed=removed)

    def remove_oldest_half(self) -> PlacementOutcome:
        """Remove the older half of the occupants, rounded down"""

        count = self._state.occupant_count // 2
        if count == 0:
            logger.debug("Nothing to remove", occupants=self._state.occupant_count)
            return self._outcome("remove_oldest_half", [], mutated=False)

        events: List[PlacementEvent] = []
        removed: List[ObjectDescriptor] = []
        for object_id in self._state.addition_order[:count]:
            self._evict(object_id, RemovalReason.IDLE_CLEANUP, events, removed)

        self._commit("remove_oldest_half")
        return self._outcome("remove_oldest_half", events, removed=removed)

    def reinitialize(self, object_ids: Optional[Iterable[str]] = None) -> PlacementOutcome:
        """Clear the garden and place the default objects, as one mutation"""

        events: List[PlacementEvent] = []
        added: List[ObjectDescriptor] = []
        removed: List[ObjectDescriptor] = []
        results: List[BatchItemResult] = []

        self._evict_all(RemovalReason.CLEARED, events, removed)
        self._apply_batch(
            self.default_objects if object_ids is None else object_ids,
            events, added, removed, results
        )

        self._commit("reinitialize")
        return self._outcome("reinitialize", events, added=added, removed=removed, results=results)

    def invariant_violations(self) -> List[str]:
        """List every broken state invariant; empty when the state is consistent"""

        state = self._state
        violations = []
        objects = [occupant.object_id for occupant in state.occupants]
        slots = [occupant.slot_id for occupant in state.occupants]

        if len(objects) > self.max_capacity:
            violations.append(f"{len(objects)} occupants exceed capacity {self.max_capacity}")
        if len(set(objects)) != len(objects):
            violations.append("object ids are not unique")
        if len(set(slots)) != len(slots):
            violations.append("slot ids are not unique")
        if set(state.timestamps) != set(objects):
            violations.append("timestamps do not match occupants")
        if sorted(state.addition_order) != sorted(objects):
            violations.append("addition order does not match occupants")

        for occupant in state.occupants:
            definition = self.catalog.definition_of(occupant.object_id)
            if definition is None:
                violations.append(f"object {occupant.object_id} has no definition")
                continue
            preferred, fallback = self.catalog.candidate_slots(definition)
            if occupant.slot_id not in preferred and occupant.slot_id not in fallback:
                violations.append(f"object {occupant.object_id} is not permitted in {occupant.slot_id}")

        return violations

    def _resolve(self, object_id: str) -> ObjectDefinition:
        definition = self.catalog.definition_of(object_id)
        if definition is None:
            raise UnknownObjectError(object_id)
        return definition

    def _apply_batch(
        self,
        object_ids: Iterable[str],
        events: List[PlacementEvent],
        added: List[ObjectDescriptor],
        removed: List[ObjectDescriptor],
        results: List[BatchItemResult]
    ):
        for raw_id in object_ids:
            object_id = str(raw_id)
            definition = self.catalog.definition_of(object_id)

            if definition is None:
                error = UnknownObjectError(object_id)
                logger.warning("Skipping unknown object in batch", object_id=object_id)
                results.append(BatchItemResult(object_id=object_id, success=False, message=error.message))
                continue

            item_removed: List[ObjectDescriptor] = []
            descriptor = self._place(definition, events, item_removed)
            removed.extend(item_removed)
            added.append(descriptor)

            results.append(BatchItemResult(
                object_id=object_id,
                success=True,
                message=f"Added object {object_id} ({definition.name}) at {descriptor.slot_id}",
                slot_id=descriptor.slot_id
            ))

    def _place(
        self,
        definition: ObjectDefinition,
        events: List[PlacementEvent],
        removed: List[ObjectDescriptor]
    ) -> ObjectDescriptor:
        """Run the placement policies for one object; removed must start empty"""

        object_id = definition.id

        # Duplicate: take the old copy out before looking for a slot
        duplicate_id = None
        if self._state.contains(object_id):
            self._evict(object_id, RemovalReason.DUPLICATE, events, removed)
            duplicate_id = object_id

        preferred, fallback = self.catalog.candidate_slots(definition)
        occupied = self._state.occupied_slots()
        free_preferred = [slot_id for slot_id in preferred if slot_id not in occupied]
        free_fallback = [slot_id for slot_id in fallback if slot_id not in occupied]

        if free_preferred:
            slot_id = self._choose(free_preferred)
        elif free_fallback:
            slot_id = self._choose(free_fallback)
        else:
            slot_id = self._displace(preferred, fallback, occupied, duplicate_id, events, removed)

        # Capacity: only when nothing has left the garden during this placement
        if self._state.occupant_count >= self.max_capacity and not removed:
            self._evict(self._state.addition_order[0], RemovalReason.OLDEST, events, removed)

        self._state.place(object_id, slot_id, self._clock())

        slot_category = self.catalog.category_of(slot_id)
        events.append(PlacementEvent(
            object_id=object_id,
            slot_id=slot_id,
            slot_category=slot_category,
            action=EventAction.ADD
        ))
        metrics.increment_counter("placements")
        garden_logger.log_placement(object_id, slot_id, slot_category, self._state.version + 1)

        return ObjectDescriptor(
            id=object_id,
            name=definition.name,
            slot_id=slot_id,
            slot_category=slot_category
        )

    def _displace(
        self,
        preferred: List[str],
        fallback: List[str],
        occupied: set,
        duplicate_id: Optional[str],
        events: List[PlacementEvent],
        removed: List[ObjectDescriptor]
    ) -> str:
        """Free one of the object's own slots when none is available"""

        occupied_preferred = [slot_id for slot_id in preferred if slot_id in occupied]
        if occupied_preferred:
            slot_id = self._choose(occupied_preferred)
        else:
            slot_id = self._choose(preferred + fallback)

        victim = self._state.occupant_at(slot_id)
        if victim is not None and victim != duplicate_id:
            self._evict(victim, RemovalReason.FORCED_DISPLACEMENT, events, removed)

        return slot_id

    def _evict(
        self,
        object_id: str,
        reason: RemovalReason,
        events: List[PlacementEvent],
        removed: List[ObjectDescriptor]
    ) -> ObjectDescriptor:
        occupant = self._state.evict(object_id)
        slot_category = self.catalog.category_of(occupant.slot_id)

        events.append(PlacementEvent(
            object_id=object_id,
            slot_id=occupant.slot_id,
            slot_category=slot_category,
            action=EventAction.REMOVE,
            reason=reason
        ))
        descriptor = ObjectDescriptor(
            id=object_id,
            name=self.catalog.name_of(object_id),
            slot_id=occupant.slot_id,
            slot_category=slot_category,
            reason=reason
        )
        removed.append(descriptor)

        metrics.increment_counter(f"evictions.{reason.value}")
        garden_logger.log_eviction(object_id, occupant.slot_id, reason.value)
        return descriptor

    def _evict_all(
        self,
        reason: RemovalReason,
        events: List[PlacementEvent],
        removed: List[ObjectDescriptor]
    ):
        for occupant in list(self._state.occupants):
            self._evict(occupant.object_id, reason, events, removed)

    def _commit(self, operation: str):
        self._state.bump_version(self._clock())
        metrics.set_gauge("garden.occupancy", self._state.occupant_count)
        logger.debug("State committed", operation=operation, **self._state.get_state_summary())

    def _outcome(
        self,
        operation: str,
        events: List[PlacementEvent],
        added: Optional[List[ObjectDescriptor]] = None,
        removed: Optional[List[ObjectDescriptor]] = None,
        results: Optional[List[BatchItemResult]] = None,
        mutated: bool = True
    ) -> PlacementOutcome:
        return PlacementOutcome(
            operation=operation,
            mutated=mutated,
            events=events,
            added=added or [],
            removed=removed or [],
            results=results or [],
            state=self.snapshot()
        )
