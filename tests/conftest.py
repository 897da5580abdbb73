"""Pytest fixtures for the translation layer.

The suite never talks to a broker: settlement goes through `FakeSettler`,
RabbitMQ deliveries are `FakeIncoming` objects and connections are replaced
with `FakeConnection` via monkeypatching `aio_pika.connect_robust`.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterator
from typing import Any

import aio_pika
import pytest

from servicebus.schemas import disposition
from servicebus.schemas.amqp import AMQPError, AMQPMessage, MessageHeader, MessageProperties
from servicebus.services.lock_token import delivery_tag_from_lock_token


class FakeSettler:
    """Records settlement calls; optionally fails or hangs."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.error: Exception | None = None
        self.hang: bool = False

    async def _record(self, name: str, **kwargs: Any) -> None:
        if self.hang:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        self.calls.append((name, kwargs))

    async def accept(self, message: AMQPMessage) -> None:
        await self._record("accept")

    async def modify(
        self,
        message: AMQPMessage,
        delivery_failed: bool,
        undeliverable_here: bool,
        annotations: dict[str, Any] | None,
    ) -> None:
        await self._record(
            "modify",
            delivery_failed=delivery_failed,
            undeliverable_here=undeliverable_here,
            annotations=annotations,
        )

    async def reject(self, message: AMQPMessage, error: AMQPError | None) -> None:
        await self._record("reject", error=error)


class _FakeProcessContext:
    def __init__(self, message: FakeIncoming, requeue: bool, ignore_processed: bool) -> None:
        self._message = message
        self._requeue = requeue
        self._ignore_processed = ignore_processed

    async def __aenter__(self) -> FakeIncoming:
        return self._message

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if self._ignore_processed and self._message.processed:
            return None
        if exc_type is not None:
            await self._message.reject(requeue=self._requeue)
        else:
            await self._message.ack()
        return None


class FakeIncoming:
    """Subset of `aio_pika.IncomingMessage` used by the bridge."""

    def __init__(
        self,
        body: bytes = b"payload",
        *,
        headers: dict[str, Any] | None = None,
        message_id: str | None = None,
        correlation_id: str | None = None,
        content_type: str | None = None,
        reply_to: str | None = None,
        type: str | None = None,
        expiration: Any = None,
        redelivered: bool = False,
        delivery_tag: int | None = 1,
    ) -> None:
        self.body = body
        self.headers = headers or {}
        self.message_id = message_id
        self.correlation_id = correlation_id
        self.content_type = content_type
        self.reply_to = reply_to
        self.type = type
        self.expiration = expiration
        self.redelivered = redelivered
        self.delivery_tag = delivery_tag
        self.settled: list[tuple[str, dict[str, Any]]] = []

    @property
    def processed(self) -> bool:
        return bool(self.settled)

    async def ack(self, multiple: bool = False) -> None:
        self.settled.append(("ack", {}))

    async def nack(self, multiple: bool = False, requeue: bool = True) -> None:
        self.settled.append(("nack", {"requeue": requeue}))

    async def reject(self, requeue: bool = False) -> None:
        self.settled.append(("reject", {"requeue": requeue}))

    def process(
        self,
        requeue: bool = False,
        reject_on_redelivered: bool = False,
        ignore_processed: bool = False,
    ) -> _FakeProcessContext:
        return _FakeProcessContext(self, requeue, ignore_processed)


class FakeQueue:
    def __init__(self, messages: list[FakeIncoming] | None = None) -> None:
        self.messages = list(messages or [])
        self.consumers: list[Any] = []

    async def get(
        self, *, no_ack: bool = False, fail: bool = True, timeout: float | None = 5
    ) -> FakeIncoming | None:
        return self.messages.pop(0) if self.messages else None

    async def consume(self, callback: Any, **kwargs: Any) -> str:
        self.consumers.append(callback)
        return "ctag"


class FakeExchange:
    def __init__(self) -> None:
        self.published: list[tuple[aio_pika.Message, str]] = []
        self.error: Exception | None = None

    async def publish(
        self, message: aio_pika.Message, routing_key: str, *, mandatory: bool = True, **kwargs: Any
    ) -> None:
        if self.error is not None:
            raise self.error
        self.published.append((message, routing_key))


class FakeChannel:
    def __init__(self) -> None:
        self.default_exchange = FakeExchange()
        self.queue = FakeQueue()
        self.declared: list[tuple[str, bool]] = []
        self.prefetch_count: int | None = None
        self.options: dict[str, Any] = {}

    async def declare_queue(self, name: str, *, durable: bool = False, **kwargs: Any) -> FakeQueue:
        self.declared.append((name, durable))
        return self.queue

    async def set_qos(self, prefetch_count: int = 0, **kwargs: Any) -> None:
        self.prefetch_count = prefetch_count


class FakeConnection:
    def __init__(self) -> None:
        self.fake_channel = FakeChannel()
        self.dsn: str | None = None
        self.closed = False

    async def channel(self, **kwargs: Any) -> FakeChannel:
        self.fake_channel.options = kwargs
        return self.fake_channel

    async def __aenter__(self) -> FakeConnection:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self.closed = True


class FakeSpan:
    def __init__(self, name: str, context: Any) -> None:
        self.name = name
        self.context = context
        self.attributes: dict[str, Any] = {}

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __enter__(self) -> FakeSpan:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        return False


class FakeTracer:
    def __init__(self) -> None:
        self.spans: list[FakeSpan] = []

    def start_as_current_span(self, name: str, context: Any = None, **kwargs: Any) -> FakeSpan:
        span = FakeSpan(name, context)
        self.spans.append(span)
        return span


@pytest.fixture()
def settler() -> FakeSettler:
    return FakeSettler()


@pytest.fixture()
def lock_token() -> uuid.UUID:
    return uuid.UUID("5a7e3c2b-9d14-4f6a-8b21-0c3d4e5f6a7b")


@pytest.fixture()
def received_amqp_message(settler: FakeSettler, lock_token: uuid.UUID) -> AMQPMessage:
    """A wire message as the transport would deliver it."""
    return AMQPMessage(
        data=[b"hello"],
        properties=MessageProperties(message_id="msg-1", content_type="text/plain"),
        header=MessageHeader(delivery_count=0),
        delivery_tag=delivery_tag_from_lock_token(lock_token),
        receiver=settler,
    )


@pytest.fixture()
def fake_tracer(monkeypatch: pytest.MonkeyPatch) -> FakeTracer:
    tracer = FakeTracer()
    monkeypatch.setattr(disposition, "get_tracer", lambda: tracer)
    return tracer


@pytest.fixture()
def fake_connection(monkeypatch: pytest.MonkeyPatch) -> Iterator[FakeConnection]:
    connection = FakeConnection()

    async def _connect(dsn: str, **kwargs: Any) -> FakeConnection:
        connection.dsn = dsn
        return connection

    monkeypatch.setattr(aio_pika, "connect_robust", _connect)
    yield connection
