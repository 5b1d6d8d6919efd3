"""Connection registry and broadcast delivery."""

from fanrelay.core.broadcaster import Broadcaster
from fanrelay.core.connection import Connection, ReadyState, SendOutcome
from fanrelay.core.models import Event
from fanrelay.core.registry import ConnectionRegistry

__all__ = [
    "Broadcaster",
    "Connection",
    "ConnectionRegistry",
    "Event",
    "ReadyState",
    "SendOutcome",
]
