import pytest

from garden.application.websocket.connection_manager import ConnectionManager, RELAY, VISUALIZER
from garden.application.websocket.schema.events import GardenObjectsEvent


class FakeWebSocket:
    def __init__(self):
        self.sent = []
        self.closed = False

    async def accept(self):
        pass

    async def send_json(self, data):
        self.sent.append(data)

    async def close(self, code: int = 1000):
        self.closed = True


def batch_event(version: int) -> GardenObjectsEvent:
    return GardenObjectsEvent(version=version, payload=[])


@pytest.mark.asyncio
async def test_broadcast_reaches_role_only():
    manager = ConnectionManager()
    visualizer, relay = FakeWebSocket(), FakeWebSocket()
    await manager.connect(visualizer, "viz-1", VISUALIZER)
    await manager.connect(relay, "relay-1", RELAY)

    received = await manager.broadcast(batch_event(1))

    assert received == 1
    assert [message["type"] for message in visualizer.sent] == ["connection", "garden_objects"]
    assert [message["type"] for message in relay.sent] == ["connection"]
    assert manager.get_active_sessions(VISUALIZER) == {"viz-1"}
    assert manager.get_active_sessions() == {"viz-1", "relay-1"}


@pytest.mark.asyncio
async def test_held_broadcasts_follow_the_reply_sent_first():
    manager = ConnectionManager()
    websocket = FakeWebSocket()
    await manager.connect(websocket, "viz-1", VISUALIZER, hold_broadcasts=True)

    assert await manager.broadcast(batch_event(1)) == 0
    assert await manager.broadcast(batch_event(2)) == 0
    assert [message["type"] for message in websocket.sent] == ["connection"]

    # A state reply at version 1 already covers the first broadcast
    released = await manager.release("viz-1", after_version=1)

    assert released == 1
    assert [message.get("version") for message in websocket.sent[1:]] == [2]

    assert await manager.broadcast(batch_event(3)) == 1
    assert [message.get("version") for message in websocket.sent[1:]] == [2, 3]
    assert manager.held_events == {}


@pytest.mark.asyncio
async def test_disconnect_drops_held_broadcasts():
    manager = ConnectionManager()
    websocket = FakeWebSocket()
    await manager.connect(websocket, "viz-1", VISUALIZER, hold_broadcasts=True)
    await manager.broadcast(batch_event(1))

    await manager.disconnect("viz-1")

    assert websocket.closed
    assert manager.held_events == {}
    assert manager.get_active_sessions() == set()
    assert await manager.release("viz-1", after_version=0) == 0
