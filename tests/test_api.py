"""
Tests for the HTTP and WebSocket command surface
"""
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from garden.application.api.api_server import create_app
from garden.application.websocket.connection_manager import ConnectionManager
from garden.application.websocket.websocket_emitter import WebSocketEmitter
from garden.domain.garden.garden_manager import GardenManager
from garden.domain.streaming.dispatcher import NotificationDispatcher
from garden.infrastructure.config.settings import DEFAULT_OBJECTS


@pytest.fixture
def client(settings, engine):
    """Test client around an app with deterministic placement"""
    connection_manager = ConnectionManager()
    garden_manager = GardenManager(
        settings=settings,
        engine=engine,
        dispatcher=NotificationDispatcher(WebSocketEmitter(connection_manager))
    )
    app = create_app(settings, garden_manager=garden_manager, connection_manager=connection_manager)

    with TestClient(app) as client:
        yield client


def test_garden_state_starts_empty(client):
    response = client.get("/garden-state")

    assert response.status_code == 200
    state = response.json()["state"]
    assert state["version"] == 0
    assert state["occupants"] == []
    assert state["max_capacity"] == 22


def test_add_object(client):
    response = client.post("/add/1")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["added_objects"][0]["slot_id"] == "M1"
    assert body["events"][0]["data_string"] == "1:M1:M:1"
    assert body["state"]["version"] == 1


def test_add_unknown_object(client):
    response = client.post("/add/99")

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "unknown_object"
    assert body["message"] == "Object 99 not found in catalog"


def test_remove_and_check_garden(client):
    client.post("/add/1")
    client.post("/add/2")

    assert client.post("/remove/1").status_code == 200
    assert client.post("/check-garden/2").status_code == 200

    response = client.post("/remove/1")
    assert response.status_code == 404
    assert response.json()["error_code"] == "not_found"


def test_set_garden(client):
    client.post("/add/6")

    response = client.post("/set-garden", json={"objectIds": [1, "2", 2, "3"], "clearFirst": True})

    assert response.status_code == 200
    body = response.json()
    assert body["summary"] == {"total": 3, "successful": 3, "failed": 0}
    assert body["state"]["objects"] == ["1", "2", "3"]
    assert body["state"]["version"] == 2
    assert body["events"][0]["reason"] == "cleared"


@pytest.mark.parametrize("payload", [
    {"objectIds": []},
    {"objectIds": [str(i) for i in range(1, 24)]},
    {"objectIds": "1,2,3"},
    {"clearFirst": True},
])
def test_set_garden_rejects_invalid_input(client, payload):
    response = client.post("/set-garden", json=payload)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "invalid_input"

    assert client.get("/garden-state").json()["state"]["version"] == 0


def test_clear_and_maintenance_routes(client):
    client.post("/set-garden", json={"objectIds": ["6", "10", "17", "24", "1"]})

    response = client.post("/remove-oldest-half")
    assert response.status_code == 200
    assert [item["id"] for item in response.json()["removed_objects"]] == ["6", "10"]

    response = client.post("/clear-garden")
    assert response.json()["message"] == "Garden cleared successfully (3 objects removed)"

    response = client.post("/reinitialize")
    assert sorted(response.json()["state"]["objects"]) == sorted(DEFAULT_OBJECTS)


def test_idle_action_route(client):
    client.post("/add/1")

    response = client.post("/idle-action")

    assert response.status_code == 200
    assert response.json()["skipped"] is True


def test_catalog_and_health(client):
    catalog = client.get("/catalog").json()
    assert catalog["total_slots"] == 22
    assert len(catalog["objects"]) == 30

    client.post("/add/3")
    health = client.get("/health").json()
    assert health["status"] == "healthy"
    assert health["occupancy"] == 1
    assert health["version"] == 1
    assert health["metrics"]["placements"] == 1


def test_visualizer_receives_notifications(client):
    with client.websocket_connect("/ws/visualizer/viz-1") as websocket:
        assert websocket.receive_json()["type"] == "connection"

        state_event = websocket.receive_json()
        assert state_event["type"] == "garden_state"
        assert state_event["payload"]["version"] == 0

        client.post("/add/1")
        event = websocket.receive_json()
        assert event["type"] == "garden_object"
        assert event["address"] == "/garden/object"
        assert event["payload"]["data_string"] == "1:M1:M:1"
        assert event["version"] == 1

        client.post("/set-garden", json={"objectIds": ["6", "10"], "clearFirst": True})
        event = websocket.receive_json()
        assert event["type"] == "garden_objects"
        assert event["address"] == "/garden/objects"
        assert event["count"] == 3
        assert [item["data_string"] for item in event["payload"]] == ["1:M1:M:0", "6:B1:B:1", "10:B2:B:1"]


def test_relay_commands(client):
    with client.websocket_connect("/ws/relay/relay-1") as websocket:
        assert websocket.receive_json()["type"] == "connection"

        websocket.send_text("add/15/session/abc123")
        reply = websocket.receive_json()
        assert reply["type"] == "relay_response"
        assert reply["text"] == "Response: Added object 15 (ThumbClock) at M1"
        assert reply["success"] is True

        last = client.get("/last-data").json()
        assert last["lastObjectId"] == "15"
        assert last["lastSessionId"] == "abc123"

        websocket.send_json({"text": "/check-garden/15"})
        reply = websocket.receive_json()
        assert reply["text"] == "ACK: check-garden/15"
        assert reply["success"] is True

        websocket.send_json({"message": "check-garden/15"})
        reply = websocket.receive_json()
        assert reply["text"] == "ACK: check-garden/15"
        assert reply["success"] is False

        websocket.send_text("hello garden")
        reply = websocket.receive_json()
        assert reply["type"] == "error"
        assert reply["error_code"] == "invalid_input"


def test_rejects_invalid_session_id(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/ws/visualizer/not.valid"):
            pass

    assert exc_info.value.code == 1008
