"""Shared fixtures for fanrelay tests."""

from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from fanrelay.api.app import create_app
from fanrelay.config import Settings
from fanrelay.core.connection import Connection, ReadyState
from fanrelay.core.registry import ConnectionRegistry


class FakeConnection(Connection):
    """In-memory connection recording every message it accepts."""

    def __init__(
        self,
        name: str,
        state: ReadyState = ReadyState.OPEN,
        *,
        fail: bool = False,
        delay: float = 0.0,
    ) -> None:
        super().__init__(name)
        self._state = state
        self.fail = fail
        self.delay = delay
        self.received: list[bytes] = []
        self.attempts = 0
        self.closed_with: tuple[int, str] | None = None

    @property
    def state(self) -> ReadyState:
        return self._state

    @state.setter
    def state(self, value: ReadyState) -> None:
        self._state = value

    async def _transmit(self, message: bytes) -> None:
        self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise ConnectionResetError(f"{self.connection_id} went away")
        self.received.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = (code, reason)
        self._state = ReadyState.CLOSED


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def relay_settings():
    """Settings isolated from the environment; rate limiting off."""
    return Settings(
        _env_file=None,
        webhook_secret=None,
        send_timeout=1.0,
        shutdown_timeout=1.0,
        rate_limit="none",
    )


@pytest.fixture
def relay_app(relay_settings):
    return create_app(relay_settings)


@pytest_asyncio.fixture
async def client(relay_app):
    """HTTP test client wired to a fresh relay app."""
    transport = ASGITransport(app=relay_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
