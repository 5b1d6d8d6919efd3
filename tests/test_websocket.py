"""WebSocket session tests.

Covers:
  - Greeting on connect and registration
  - Webhook broadcasts reach connected sessions
  - WebSocketConnection readiness mapping
  - Shutdown refuses new sessions and closes existing ones
"""

from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect, WebSocketState

from fanrelay.api.websocket import WebSocketConnection
from fanrelay.core.connection import ReadyState

GREETING = {"type": "connected", "message": "WebSocket connection established"}


def _wait_for_size(registry, expected: int, timeout: float = 2.0) -> int:
    deadline = time.monotonic() + timeout
    while registry.size() != expected and time.monotonic() < deadline:
        time.sleep(0.01)
    return registry.size()


@pytest.fixture
def ws_client(relay_app):
    with TestClient(relay_app) as tc:
        yield tc


class TestSessions:
    def test_connect_receives_greeting_and_registers(self, ws_client, relay_app):
        with ws_client.websocket_connect("/") as ws:
            assert ws.receive_json() == GREETING
            assert relay_app.state.registry.size() == 1
            assert ws_client.get("/health").json()["clients"] == 1

    def test_ws_alias_path(self, ws_client):
        with ws_client.websocket_connect("/ws") as ws:
            assert ws.receive_json() == GREETING

    def test_inbound_frames_are_ignored(self, ws_client, relay_app):
        with ws_client.websocket_connect("/") as ws:
            ws.receive_json()
            ws.send_text("hello server")
            ws.send_bytes(b"\x00\x01")
            resp = ws_client.post("/webhook", json={"event": "after-chatter"})
            assert resp.json()["clients"] == 1
            assert ws.receive_json()["type"] == "after-chatter"

    def test_disconnect_unregisters(self, ws_client, relay_app):
        with ws_client.websocket_connect("/") as ws:
            ws.receive_json()
        assert _wait_for_size(relay_app.state.registry, 0) == 0

    def test_greeting_can_be_disabled(self, relay_settings):
        from fanrelay.api.app import create_app

        app = create_app(relay_settings.model_copy(update={"greeting_enabled": False}))
        with TestClient(app) as tc, tc.websocket_connect("/") as ws:
            assert _wait_for_size(app.state.registry, 1) == 1
            resp = tc.post("/webhook", json={"event": "first"})
            assert resp.json()["clients"] == 1
            assert ws.receive_json()["type"] == "first"


class TestBroadcastOverWebSocket:
    def test_webhook_reaches_every_session(self, ws_client):
        with ws_client.websocket_connect("/") as a, ws_client.websocket_connect("/") as b:
            a.receive_json()
            b.receive_json()
            resp = ws_client.post(
                "/webhook",
                json={"event": "onMessageSent", "appId": "app-1", "data": {"text": "hi"}},
            )
            assert resp.status_code == 200
            assert resp.json() == {"status": "ok", "clients": 2, "totalClients": 2}
            for ws in (a, b):
                msg = ws.receive_json()
                assert msg["type"] == "onMessageSent"
                assert msg["sourceId"] == "app-1"
                assert msg["payload"] == {"text": "hi"}

    def test_messages_arrive_in_order(self, ws_client):
        with ws_client.websocket_connect("/") as ws:
            ws.receive_json()
            for i in range(5):
                ws_client.post("/webhook", json={"event": f"e{i}"})
            assert [ws.receive_json()["type"] for _ in range(5)] == [f"e{i}" for i in range(5)]


class TestShutdown:
    def test_closed_registry_refuses_new_sessions(self, ws_client, relay_app):
        relay_app.state.registry.close()
        with ws_client.websocket_connect("/") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()
        assert exc_info.value.code == 1001
        assert relay_app.state.registry.size() == 0


class _StubSocket:
    def __init__(self, app_state: WebSocketState, client_state: WebSocketState) -> None:
        self.application_state = app_state
        self.client_state = client_state


class TestReadyStateMapping:
    @pytest.mark.parametrize(
        ("app_state", "client_state", "expected"),
        [
            (WebSocketState.CONNECTED, WebSocketState.CONNECTED, ReadyState.OPEN),
            (WebSocketState.CONNECTING, WebSocketState.CONNECTED, ReadyState.CONNECTING),
            (WebSocketState.CONNECTED, WebSocketState.DISCONNECTED, ReadyState.CLOSED),
            (WebSocketState.DISCONNECTED, WebSocketState.CONNECTED, ReadyState.CLOSED),
        ],
    )
    def test_state_mapping(self, app_state, client_state, expected):
        conn = WebSocketConnection(_StubSocket(app_state, client_state))
        assert conn.state is expected

    def test_closing_flag(self):
        conn = WebSocketConnection(
            _StubSocket(WebSocketState.CONNECTED, WebSocketState.CONNECTED)
        )
        conn._closing = True
        assert conn.state is ReadyState.CLOSING
