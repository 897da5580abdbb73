"""Tests for the Message entity and trace propagation through it."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone

import pytest
from faker import Faker
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, SpanContext, TraceFlags

from servicebus.core.errors import IncorrectTypeError
from servicebus.core.tracing import extract_context, inject_context, message_getter
from servicebus.schemas.message import Message, SystemProperties


def test_from_string(faker: Faker) -> None:
    text = faker.sentence()
    message = Message.from_string(text)
    assert message.data == text.encode("utf-8")
    assert message.amqp_message is None
    assert message.lock_token is None
    assert message.delivery_count == 0


def test_schedule_at_creates_system_properties_in_utc() -> None:
    message = Message(b"x")
    local = datetime(2030, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    message.schedule_at(local)

    assert message.system_properties is not None
    scheduled = message.system_properties.scheduled_enqueue_time
    assert scheduled == datetime(2030, 1, 1, 12, 0, tzinfo=UTC)
    assert scheduled.utcoffset() == timedelta(0)


def test_schedule_at_keeps_existing_system_properties() -> None:
    message = Message(b"x", system_properties=SystemProperties(partition_key="pk"))
    message.schedule_at(datetime(2030, 1, 1, tzinfo=UTC))
    assert message.system_properties.partition_key == "pk"


def test_set_adds_user_property() -> None:
    message = Message(b"x")
    message.set("traceparent", "value")
    assert message.user_properties == {"traceparent": "value"}


def test_foreach_key_visits_string_properties() -> None:
    message = Message(b"x", user_properties={"a": "1", "b": "2"})
    seen: list[tuple[str, str]] = []
    message.foreach_key(lambda key, value: seen.append((key, value)))
    assert sorted(seen) == [("a", "1"), ("b", "2")]


def test_foreach_key_rejects_non_string_before_visiting() -> None:
    message = Message(b"x", user_properties={"a": "1", "count": 2, "z": "3"})
    seen: list[str] = []

    with pytest.raises(IncorrectTypeError) as exc:
        message.foreach_key(lambda key, value: seen.append(key))

    assert exc.value.key == "count"
    assert exc.value.expected_type is str
    assert seen == []


def test_foreach_key_propagates_handler_errors() -> None:
    message = Message(b"x", user_properties={"a": "1"})

    def fail(key: str, value: str) -> None:
        raise KeyError(key)

    with pytest.raises(KeyError):
        message.foreach_key(fail)


def test_trace_context_round_trip() -> None:
    span_context = SpanContext(
        trace_id=0x4BF92F3577B34DA6A3CE929D0E0E4736,
        span_id=0x00F067AA0BA902B7,
        is_remote=False,
        trace_flags=TraceFlags(TraceFlags.SAMPLED),
    )
    context = trace.set_span_in_context(NonRecordingSpan(span_context))
    message = Message(b"x")

    inject_context(message, context)
    assert message.user_properties["traceparent"].startswith("00-4bf92f3577b34da6")

    extracted = trace.get_current_span(extract_context(message)).get_span_context()
    assert extracted.trace_id == span_context.trace_id
    assert extracted.span_id == span_context.span_id


def test_getter_rejects_non_string_values() -> None:
    message = Message(b"x", user_properties={"traceparent": 1})
    with pytest.raises(IncorrectTypeError):
        message_getter.get(message, "traceparent")
    assert message_getter.get(message, "missing") is None
