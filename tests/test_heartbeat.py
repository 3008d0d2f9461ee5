import pytest
from fastapi.testclient import TestClient

from models.validation import HeartbeatMessage
from web.heartbeat import configure_heartbeat, heartbeat_app


@pytest.fixture
def client():
    configure_heartbeat(30)
    return TestClient(heartbeat_app)


def test_heartbeat_is_pushed_on_connect(client):
    with client.websocket_connect("/ws") as ws:
        message = ws.receive_json()
    assert message["type"] == "heartbeat"
    assert message["status"] == "running"
    assert message["timestamp"].endswith("Z")


def test_heartbeats_repeat_on_interval(client):
    configure_heartbeat(0.01)
    with client.websocket_connect("/ws") as ws:
        first = ws.receive_json()
        second = ws.receive_json()
    assert first["type"] == second["type"] == "heartbeat"


def test_disconnect_releases_connection(client):
    manager = heartbeat_app.state.manager
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text("bye")
    assert manager.connections == {}


def test_heartbeat_message_defaults():
    message = HeartbeatMessage()
    assert message.model_dump()["type"] == "heartbeat"
