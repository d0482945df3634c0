import asyncio

import pytest

from garden.domain.garden.garden_manager import GardenManager
from garden.domain.models.errors import ErrorCode
from garden.domain.streaming.dispatcher import NotificationDispatcher
from garden.domain.streaming.notification import Destination
from garden.infrastructure.config.settings import DEFAULT_OBJECTS, GardenSettings
from garden.infrastructure.observability.logging import metrics

from conftest import RecordingEmitter

SEVEN_OBJECTS = ["6", "10", "17", "24", "1", "2", "7"]


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def make_manager(make_engine, settings, emitter):
    def factory(settings=settings, **engine_kwargs) -> GardenManager:
        engine_kwargs.setdefault("max_capacity", settings.max_capacity)
        engine_kwargs.setdefault("default_objects", settings.default_objects)
        return GardenManager(
            settings=settings,
            engine=make_engine(**engine_kwargs),
            dispatcher=NotificationDispatcher(emitter)
        )

    return factory


@pytest.mark.asyncio
async def test_add_returns_result_and_notifies(make_manager, emitter):
    manager = make_manager()
    await manager.start()

    result = await manager.add("1")
    await manager.dispatcher.join()

    assert result.success
    assert result.message == "Added object 1 (HandButterfly) at M1"
    assert result.added_object.slot_id == "M1"
    assert result.removed_object is None
    assert result.state.version == 1

    assert len(emitter.received) == 1
    assert emitter.received[0].destination == Destination.SINGLE
    assert emitter.received[0].data_strings() == ["1:M1:M:1"]

    await manager.shutdown()


@pytest.mark.asyncio
async def test_duplicate_message(make_manager):
    manager = make_manager()
    await manager.start()

    await manager.add("1")
    result = await manager.add("1")

    assert result.message == (
        "Removed duplicate object 1 (HandButterfly) from M1, "
        "then added object 1 (HandButterfly) at M1"
    )
    await manager.shutdown()


@pytest.mark.asyncio
async def test_capacity_message(make_manager):
    manager = make_manager(max_capacity=1)
    await manager.start()

    await manager.add("3")
    result = await manager.add("9")

    assert result.message == (
        "Garden full! Removed oldest object 3 (BreadHead) from M1, "
        "then added object 9 (EggHand) at M2"
    )
    await manager.shutdown()


@pytest.mark.asyncio
async def test_unknown_object_is_a_failed_result(make_manager, emitter):
    manager = make_manager()
    await manager.start()

    result = await manager.add("99")
    await manager.dispatcher.join()

    assert not result.success
    assert result.error_code == ErrorCode.UNKNOWN_OBJECT
    assert result.message == "Object 99 not found in catalog"
    assert result.state.version == 0
    assert emitter.received == []
    assert metrics.get_counter("operations.add.failed") == 1

    await manager.shutdown()


@pytest.mark.asyncio
async def test_remove_missing_is_a_failed_result(make_manager):
    manager = make_manager()
    await manager.start()

    result = await manager.remove("5")

    assert not result.success
    assert result.error_code == ErrorCode.NOT_FOUND
    await manager.shutdown()


@pytest.mark.asyncio
async def test_batch_uses_batch_destination(make_manager, emitter):
    manager = make_manager()
    await manager.start()

    result = await manager.add_batch(["1", "404", "2"], clear_first=True)
    await manager.dispatcher.join()

    assert result.success
    assert result.message == "Garden setup complete: 2 objects added successfully, 1 failed"
    assert result.summary.total == 3
    assert emitter.received[0].destination == Destination.BATCH
    assert emitter.received[0].version == 1

    await manager.shutdown()


@pytest.mark.asyncio
async def test_clear_empty_garden_still_notifies(make_manager, emitter):
    manager = make_manager()
    await manager.start()

    result = await manager.clear()
    await manager.dispatcher.join()

    assert result.message == "Garden cleared successfully (0 objects removed)"
    assert len(emitter.received) == 1
    assert emitter.received[0].events == []

    await manager.shutdown()


@pytest.mark.asyncio
async def test_remove_oldest_half_noop_does_not_notify(make_manager, emitter):
    manager = make_manager()
    await manager.start()

    await manager.add("1")
    result = await manager.remove_oldest_half()
    await manager.dispatcher.join()

    assert result.success
    assert result.message == "Nothing to remove: garden holds 1 objects"
    assert len(emitter.received) == 1

    await manager.shutdown()


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [1, 2, 3, 4, 5, 6])
async def test_idle_action_protects_small_gardens(make_manager, count):
    manager = make_manager()
    manager.engine.add_batch(SEVEN_OBJECTS[:count])
    before = manager.engine.snapshot()

    result = await manager.run_idle_action()

    assert result.success
    assert result.skipped
    assert manager.engine.snapshot().occupants == before.occupants
    assert manager.engine.version == before.version
    assert metrics.get_counter("idle.skipped") == 1
    assert not manager.idle_monitor.armed


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [0, 7])
async def test_idle_action_reinitializes_outside_band(make_manager, count):
    manager = make_manager()
    await manager.start()
    if count:
        manager.engine.add_batch(SEVEN_OBJECTS[:count])

    result = await manager.run_idle_action()

    assert result.success
    assert not result.skipped
    assert sorted(result.state.objects) == sorted(DEFAULT_OBJECTS)
    assert metrics.get_counter("idle.fired") == 1
    assert manager.idle_monitor.armed

    await manager.shutdown()


@pytest.mark.asyncio
async def test_idle_action_can_remove_oldest_half(make_manager):
    settings = GardenSettings(_env_file=None, idle_action="remove_oldest_half")
    manager = make_manager(settings=settings)
    await manager.start()
    manager.engine.add_batch(SEVEN_OBJECTS + ["8"])

    result = await manager.run_idle_action()

    assert result.message == "Removed 4 oldest objects"
    assert result.state.addition_order == ["1", "2", "7", "8"]

    await manager.shutdown()


@pytest.mark.asyncio
async def test_idle_timer_resets_garden(make_manager):
    settings = GardenSettings(_env_file=None, idle_timeout_seconds=0.05)
    manager = make_manager(settings=settings)
    await manager.start()

    await manager.add_batch(SEVEN_OBJECTS)
    await asyncio.sleep(0.3)

    state = await manager.get_state()
    assert sorted(state.objects) == sorted(DEFAULT_OBJECTS)
    assert state.version == 2
    assert manager.idle_monitor.fire_count >= 1

    await manager.shutdown()


@pytest.mark.asyncio
async def test_concurrent_commands_are_serialized(make_manager, emitter):
    manager = make_manager()
    await manager.start()

    object_ids = [str(i) for i in range(1, 31)]
    results = await asyncio.gather(*(manager.add(object_id) for object_id in object_ids))
    await manager.dispatcher.join()

    assert all(result.success for result in results)
    assert sorted(result.state.version for result in results) == list(range(1, 31))
    assert manager.engine.invariant_violations() == []
    assert [notification.version for notification in emitter.received] == list(range(1, 31))

    await manager.shutdown()


@pytest.mark.asyncio
async def test_emitter_failure_keeps_state(make_engine, settings):
    manager = GardenManager(
        settings=settings,
        engine=make_engine(),
        dispatcher=NotificationDispatcher(RecordingEmitter(fail_versions={1}))
    )
    await manager.start()

    result = await manager.add("1")
    await manager.dispatcher.join()

    assert result.success
    assert manager.dispatcher.failed == 1
    assert (await manager.get_state()).objects == ["1"]

    await manager.shutdown()


@pytest.mark.asyncio
async def test_start_can_seed_defaults(make_manager, emitter):
    manager = make_manager()

    await manager.start(seed=True)
    await manager.dispatcher.join()

    state = await manager.get_state()
    assert state.addition_order == DEFAULT_OBJECTS
    assert emitter.received[0].destination == Destination.BATCH

    await manager.shutdown()


@pytest.mark.asyncio
async def test_commands_after_shutdown_leave_idle_timer_disarmed(make_manager):
    manager = make_manager()
    await manager.start()
    await manager.add("1")
    assert manager.idle_monitor.armed

    await manager.shutdown()
    assert not manager.idle_monitor.armed

    result = await manager.add("2")

    assert result.success
    assert result.state.objects == ["1", "2"]
    assert not manager.idle_monitor.armed


@pytest.mark.asyncio
async def test_restart_rearms_idle_timer(make_manager):
    manager = make_manager()
    await manager.start()
    await manager.shutdown()

    await manager.start()
    await manager.add("1")

    assert manager.idle_monitor.armed
    await manager.shutdown()
