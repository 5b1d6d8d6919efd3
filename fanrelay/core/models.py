"""Domain models for the relay.

- Event: normalized notification record built from an inbound webhook body
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _now_ms() -> int:
    return int(time.time() * 1000)


def _first_text(raw: dict[str, Any], *keys: str) -> str | None:
    """Return the first non-empty string or number under *keys*, as text."""
    for key in keys:
        value = raw.get(key)
        # Objects, arrays and booleans have no text form.
        if not value or isinstance(value, bool) or not isinstance(value, (str, int, float)):
            continue
        return str(value)
    return None


class Event(BaseModel):
    """Immutable notification broadcast to every connected peer.

    Wire names are camelCase (``sourceId``); Python attributes are snake_case.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = Field(min_length=1)
    source_id: str = Field(min_length=1, alias="sourceId")
    timestamp: int = Field(default_factory=_now_ms, description="Milliseconds since the epoch")
    payload: Any = None

    @classmethod
    def from_webhook(
        cls,
        raw: dict[str, Any],
        *,
        default_type: str,
        default_source_id: str,
        timestamp: int | None = None,
    ) -> Event:
        """Normalize an untrusted webhook body, applying defaults for missing fields.

        Provider field names (``event``, ``appId``, ``data``) take precedence
        over the relay's own (``type``, ``sourceId``, ``payload``). Empty
        values are skipped, as are objects, arrays and booleans given for the
        type or source; numbers are rendered as text.
        """
        event_type = _first_text(raw, "event", "type") or default_type
        source_id = _first_text(raw, "appId", "sourceId") or default_source_id
        payload = raw["data"] if "data" in raw else raw.get("payload")
        return cls(
            type=event_type,
            source_id=source_id,
            timestamp=timestamp if timestamp is not None else _now_ms(),
            payload=payload,
        )

    def serialize(self) -> bytes:
        """Encode once; the same bytes go to every recipient."""
        return self.model_dump_json(by_alias=True).encode("utf-8")
