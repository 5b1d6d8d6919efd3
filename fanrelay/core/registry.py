"""Registry of currently open connections."""

from __future__ import annotations

import logging
import threading

from fanrelay.core.connection import Connection

logger = logging.getLogger("fanrelay.core")


class ConnectionRegistry:
    """Set of connections eligible for broadcast.

    Mutations happen under a :class:`threading.Lock`; readers iterate over
    :meth:`snapshot`, an immutable tuple, so a broadcast never observes a
    half-mutated set and never trips over concurrent register/unregister.

    Every removal path (close, error, failed send) funnels through
    :meth:`unregister`, which is idempotent.
    """

    def __init__(self) -> None:
        self._connections: set[Connection] = set()
        self._lock = threading.Lock()
        self._closed = False

    def register(self, connection: Connection) -> bool:
        """Add *connection*; returns False only once the registry is closed."""
        with self._lock:
            if self._closed:
                return False
            if connection in self._connections:
                return True
            self._connections.add(connection)
            total = len(self._connections)
        logger.info(
            "Connection %s registered (%d total)",
            connection.connection_id,
            total,
            extra={"connection_id": connection.connection_id, "total_clients": total},
        )
        return True

    def unregister(self, connection: Connection) -> bool:
        """Remove *connection* if present; returns whether this call removed it."""
        with self._lock:
            if connection not in self._connections:
                return False
            self._connections.discard(connection)
            total = len(self._connections)
        logger.info(
            "Connection %s unregistered (%d total)",
            connection.connection_id,
            total,
            extra={"connection_id": connection.connection_id, "total_clients": total},
        )
        return True

    def snapshot(self) -> tuple[Connection, ...]:
        with self._lock:
            return tuple(self._connections)

    def size(self) -> int:
        with self._lock:
            return len(self._connections)

    def close(self) -> tuple[Connection, ...]:
        """Stop accepting registrations and return what is still registered."""
        with self._lock:
            self._closed = True
            return tuple(self._connections)

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, connection: object) -> bool:
        with self._lock:
            return connection in self._connections
