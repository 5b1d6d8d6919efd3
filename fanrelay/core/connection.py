"""Transport-agnostic connection handle used by the registry and broadcaster.

A :class:`Connection` wraps one duplex channel to a remote peer. Concrete
transports implement :attr:`state` and :meth:`_transmit`; the base class
serializes sends per connection and turns transport failures into a
:class:`SendOutcome` instead of an exception.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from enum import Enum
from uuid import uuid4

logger = logging.getLogger("fanrelay.core")


class ReadyState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class SendOutcome(str, Enum):
    DELIVERED = "delivered"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def ok(self) -> bool:
        return self is SendOutcome.DELIVERED


class Connection(ABC):
    """Handle to a single peer.

    Sends on one connection are serialized through a FIFO lock, so messages
    reach the peer in the order :meth:`send` was called, even when several
    broadcasts run concurrently.
    """

    def __init__(self, connection_id: str | None = None) -> None:
        self.connection_id = connection_id or uuid4().hex[:8]
        self._send_lock = asyncio.Lock()

    @property
    @abstractmethod
    def state(self) -> ReadyState:
        """Current readiness of the underlying channel."""

    @abstractmethod
    async def _transmit(self, message: bytes) -> None:
        """Write *message* to the channel; raise on any transport failure."""

    async def close(self, code: int = 1000, reason: str = "") -> None:  # noqa: B027
        """Close the underlying channel. Transports override this."""

    async def _send_serialized(self, message: bytes) -> None:
        async with self._send_lock:
            await self._transmit(message)

    async def send(self, message: bytes, timeout: float | None = None) -> SendOutcome:
        """Send *message*, waiting at most *timeout* seconds (lock wait included)."""
        try:
            await asyncio.wait_for(self._send_serialized(message), timeout)
        except asyncio.TimeoutError:
            logger.info(
                "Send to connection %s timed out after %.1fs",
                self.connection_id,
                timeout,
                extra={"connection_id": self.connection_id},
            )
            return SendOutcome.TIMED_OUT
        except Exception:
            logger.debug(
                "Send to connection %s failed",
                self.connection_id,
                exc_info=True,
                extra={"connection_id": self.connection_id},
            )
            return SendOutcome.FAILED
        return SendOutcome.DELIVERED

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.connection_id} {self.state.value}>"
