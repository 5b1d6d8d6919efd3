"""Fan-out delivery of one serialized message to every registered connection."""

from __future__ import annotations

import asyncio
import logging

from fanrelay.core.connection import Connection, ReadyState, SendOutcome
from fanrelay.core.models import Event
from fanrelay.core.registry import ConnectionRegistry
from fanrelay.metrics import RelayMetrics

logger = logging.getLogger("fanrelay.core")

# Upper bound for closing a dropped peer when sends are unbounded.
_CLOSE_TIMEOUT = 1.0


class Broadcaster:
    """Deliver messages to a :class:`ConnectionRegistry`, pruning failed peers.

    Each broadcast works from a registry snapshot and sends to all OPEN
    connections concurrently, every send bounded by ``send_timeout``. A send
    that fails or times out unregisters that connection and closes it with
    code 1011. The failure is otherwise absorbed: it never aborts delivery
    to the others and never reaches the caller. Failed sends are not retried.

    Non-OPEN connections are skipped and not counted. When ``prune_closed``
    is set, connections already CLOSED are also unregistered; CONNECTING and
    CLOSING ones are left to their own close handlers.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        *,
        send_timeout: float | None = 5.0,
        prune_closed: bool = True,
        metrics: RelayMetrics | None = None,
    ) -> None:
        self.registry = registry
        self.send_timeout = send_timeout
        self.prune_closed = prune_closed
        self.metrics = metrics
        self._inflight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    async def broadcast(self, message: bytes) -> int:
        """Send *message* to every OPEN connection; return how many accepted it."""
        recipients = self.registry.snapshot()
        if not recipients:
            return 0

        self._inflight += 1
        self._idle.clear()
        try:
            results = await asyncio.gather(*(self._deliver(conn, message) for conn in recipients))
        finally:
            self._inflight -= 1
            if self._inflight == 0:
                self._idle.set()

        delivered = sum(results)
        if self.metrics is not None:
            self.metrics.broadcasts.inc()
            self.metrics.deliveries.inc(delivered)
        logger.debug(
            "Broadcast delivered to %d of %d connections",
            delivered,
            len(recipients),
            extra={"delivered": delivered, "total_clients": self.registry.size()},
        )
        return delivered

    async def broadcast_event(self, event: Event) -> int:
        return await self.broadcast(event.serialize())

    async def _deliver(self, connection: Connection, message: bytes) -> bool:
        state = connection.state
        if state is not ReadyState.OPEN:
            if state is ReadyState.CLOSED and self.prune_closed:
                self.registry.unregister(connection)
            return False

        outcome = await connection.send(message, timeout=self.send_timeout)
        if outcome is SendOutcome.DELIVERED:
            return True

        if self.registry.unregister(connection):
            logger.info(
                "Dropped connection %s after send %s",
                connection.connection_id,
                outcome.value,
                extra={"connection_id": connection.connection_id},
            )
            if self.metrics is not None:
                self.metrics.failures.labels(reason=outcome.value).inc()
            await self._close_dropped(connection)
        return False

    async def _close_dropped(self, connection: Connection) -> None:
        """Tell a dropped peer it is gone; bounded so a stuck peer cannot stall the broadcast."""
        timeout = self.send_timeout if self.send_timeout is not None else _CLOSE_TIMEOUT
        try:
            await asyncio.wait_for(connection.close(1011, "send failed"), timeout)
        except Exception:
            logger.debug(
                "Closing dropped connection %s failed",
                connection.connection_id,
                exc_info=True,
                extra={"connection_id": connection.connection_id},
            )

    @property
    def inflight(self) -> int:
        return self._inflight

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight broadcasts to finish; False if *timeout* expired first."""
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning("Drain timed out with %d broadcasts in flight", self._inflight)
            return False
        return True

    async def close_all(self, code: int = 1001, reason: str = "") -> int:
        """Close and unregister every registered connection; return how many."""
        connections = self.registry.snapshot()
        for connection in connections:
            self.registry.unregister(connection)
        if connections:
            results = await asyncio.gather(
                *(conn.close(code, reason) for conn in connections), return_exceptions=True
            )
            for conn, result in zip(connections, results):
                if isinstance(result, Exception):
                    logger.debug(
                        "Closing connection %s failed: %r",
                        conn.connection_id,
                        result,
                        extra={"connection_id": conn.connection_id},
                    )
        return len(connections)
