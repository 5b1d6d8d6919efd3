"""Starlette WebSocket adapter for the relay core."""

from __future__ import annotations

from starlette.websockets import WebSocket, WebSocketState

from fanrelay.core.connection import Connection, ReadyState


class WebSocketConnection(Connection):
    """:class:`Connection` backed by a Starlette/FastAPI ``WebSocket``.

    Messages go out as text frames; broadcast payloads are UTF-8 JSON.
    """

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        super().__init__(connection_id)
        self.websocket = websocket
        self._closing = False

    @property
    def state(self) -> ReadyState:
        app_state = self.websocket.application_state
        client_state = self.websocket.client_state
        if WebSocketState.DISCONNECTED in (app_state, client_state):
            return ReadyState.CLOSED
        if self._closing:
            return ReadyState.CLOSING
        if app_state is WebSocketState.CONNECTED and client_state is WebSocketState.CONNECTED:
            return ReadyState.OPEN
        if app_state is WebSocketState.RESPONSE:
            return ReadyState.CLOSED
        return ReadyState.CONNECTING

    async def _transmit(self, message: bytes) -> None:
        await self.websocket.send_text(message.decode("utf-8"))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.state in (ReadyState.CLOSING, ReadyState.CLOSED):
            return
        self._closing = True
        await self.websocket.close(code=code, reason=reason or None)
