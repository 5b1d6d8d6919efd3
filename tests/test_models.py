"""Unit tests for the Event model."""

from __future__ import annotations

import json
import time

import pytest
from pydantic import ValidationError

from fanrelay.core.models import Event

DEFAULTS = {"default_type": "onMessageSent", "default_source_id": "admin_monitor_webhook"}


class TestFromWebhook:
    def test_provider_fields_are_mapped(self):
        event = Event.from_webhook(
            {"event": "onMessageEdited", "appId": "app-1", "data": {"text": "hi"}},
            timestamp=42,
            **DEFAULTS,
        )
        assert event.type == "onMessageEdited"
        assert event.source_id == "app-1"
        assert event.payload == {"text": "hi"}
        assert event.timestamp == 42

    def test_defaults_applied_when_missing(self):
        event = Event.from_webhook({}, **DEFAULTS)
        assert event.type == "onMessageSent"
        assert event.source_id == "admin_monitor_webhook"
        assert event.payload is None

    def test_empty_values_fall_back_to_defaults(self):
        event = Event.from_webhook({"event": "", "appId": None}, **DEFAULTS)
        assert event.type == "onMessageSent"
        assert event.source_id == "admin_monitor_webhook"

    def test_relay_field_names_are_accepted(self):
        event = Event.from_webhook(
            {"type": "ping", "sourceId": "svc", "payload": [1, 2]},
            **DEFAULTS,
        )
        assert (event.type, event.source_id, event.payload) == ("ping", "svc", [1, 2])

    def test_provider_names_take_precedence(self):
        event = Event.from_webhook({"event": "a", "type": "b"}, **DEFAULTS)
        assert event.type == "a"

    def test_non_string_type_is_stringified(self):
        event = Event.from_webhook({"event": 7}, **DEFAULTS)
        assert event.type == "7"

    @pytest.mark.parametrize("value", [{"name": "x"}, ["a", "b"], True])
    def test_non_scalar_identifiers_fall_back_to_defaults(self, value):
        event = Event.from_webhook({"event": value, "appId": value}, **DEFAULTS)
        assert event.type == "onMessageSent"
        assert event.source_id == "admin_monitor_webhook"

    def test_non_scalar_provider_name_yields_to_relay_name(self):
        event = Event.from_webhook({"event": {"name": "x"}, "type": "ping"}, **DEFAULTS)
        assert event.type == "ping"

    def test_timestamp_defaults_to_now_in_ms(self):
        before = int(time.time() * 1000)
        event = Event.from_webhook({}, **DEFAULTS)
        after = int(time.time() * 1000)
        assert before <= event.timestamp <= after


class TestEvent:
    def test_event_is_immutable(self):
        event = Event(type="ping", source_id="svc")
        with pytest.raises(ValidationError):
            event.type = "pong"

    def test_serialize_uses_wire_names(self):
        event = Event(type="ping", source_id="svc", timestamp=5, payload={"k": "v"})
        assert json.loads(event.serialize()) == {
            "type": "ping",
            "sourceId": "svc",
            "timestamp": 5,
            "payload": {"k": "v"},
        }

    def test_serialize_is_bytes(self):
        assert isinstance(Event(type="ping", source_id="svc").serialize(), bytes)

    def test_alias_population(self):
        event = Event.model_validate({"type": "t", "sourceId": "s"})
        assert event.source_id == "s"

    def test_empty_type_rejected(self):
        with pytest.raises(ValidationError):
            Event(type="", source_id="svc")
