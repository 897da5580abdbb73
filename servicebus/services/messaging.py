"""
RabbitMQ transport for Service Bus style messages.

This module defines:
- Mapping between the AMQP 1.0 wire model and RabbitMQ (AMQP 0-9-1) messages.
- A `Settler` backed by an incoming RabbitMQ delivery.
- Publisher protocol (interface) and a RabbitMQ-based implementation.

Mapping notes:
- Native 0-9-1 properties carry message id, correlation id, content type and
  reply-to; the subject travels as the message `type`.
- Properties without a 0-9-1 slot use the `x-sb-to`, `x-sb-group-id`,
  `x-sb-group-sequence` and `x-sb-reply-to-group-id` headers.
- Message and delivery annotations travel as tables under the
  `x-sb-annotations` and `x-sb-delivery-annotations` headers.
- Every other header is an application property, except the dead-lettering
  and delivery-count headers RabbitMQ adds itself. User properties may not
  use those names or the `x-sb-` prefix.
- RabbitMQ delivery tags are channel-scoped integers, so received messages
  have no lock token.

Non-responsibilities:
- Connection lifecycle beyond a single publish (see consumers).
- Retry policies.
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from typing import Any, Protocol

import aio_pika
from aio_pika.abc import AbstractIncomingMessage
from aio_pika.exceptions import DeliveryError

from servicebus.core.errors import BrokerError, ReservedPropertyError
from servicebus.schemas.amqp import AMQPError, AMQPMessage, MessageHeader, MessageProperties
from servicebus.schemas.message import Message
from servicebus.services.translator import to_amqp_message

logger = logging.getLogger(__name__)

BRIDGE_PREFIX = "x-sb-"
TO_HEADER = "x-sb-to"
GROUP_ID_HEADER = "x-sb-group-id"
GROUP_SEQUENCE_HEADER = "x-sb-group-sequence"
REPLY_TO_GROUP_ID_HEADER = "x-sb-reply-to-group-id"
ANNOTATIONS_HEADER = "x-sb-annotations"
DELIVERY_ANNOTATIONS_HEADER = "x-sb-delivery-annotations"

DELIVERY_COUNT_HEADER = "x-delivery-count"
BROKER_HEADERS = frozenset(
    {
        DELIVERY_COUNT_HEADER,
        "x-death",
        "x-first-death-exchange",
        "x-first-death-queue",
        "x-first-death-reason",
        "x-last-death-exchange",
        "x-last-death-queue",
        "x-last-death-reason",
    }
)


def is_reserved_header(key: str) -> bool:
    return key.startswith(BRIDGE_PREFIX) or key in BROKER_HEADERS


def _header_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _header_table(values: dict[str, Any]) -> dict[str, Any]:
    return {key: _header_value(value) for key, value in values.items()}


def to_rabbit_message(amqp_message: AMQPMessage) -> aio_pika.Message:
    """
    Convert a wire message to a persistent RabbitMQ message.

    Args:
        amqp_message: Message produced by `to_amqp_message`.

    Returns:
        aio_pika message ready to publish.

    Raises:
        ReservedPropertyError: If an application property uses a header name
            reserved for the bridge or the broker.
    """
    body = amqp_message.data[0] if amqp_message.data else b""
    props = amqp_message.properties or MessageProperties()

    headers: dict[str, Any] = {}
    for key, value in (amqp_message.application_properties or {}).items():
        if is_reserved_header(key):
            raise ReservedPropertyError(key)
        headers[key] = _header_value(value)
    if amqp_message.annotations:
        headers[ANNOTATIONS_HEADER] = _header_table(amqp_message.annotations)
    if amqp_message.delivery_annotations:
        headers[DELIVERY_ANNOTATIONS_HEADER] = _header_table(amqp_message.delivery_annotations)

    if props.to:
        headers[TO_HEADER] = props.to
    if props.group_id:
        headers[GROUP_ID_HEADER] = props.group_id
    if props.group_sequence:
        headers[GROUP_SEQUENCE_HEADER] = props.group_sequence
    if props.reply_to_group_id:
        headers[REPLY_TO_GROUP_ID_HEADER] = props.reply_to_group_id

    expiration = None
    if amqp_message.header is not None and amqp_message.header.ttl > timedelta(0):
        expiration = amqp_message.header.ttl

    return aio_pika.Message(
        body=body,
        headers=headers,
        content_type=props.content_type or None,
        correlation_id=str(props.correlation_id) if props.correlation_id else None,
        message_id=str(props.message_id) if props.message_id else None,
        reply_to=props.reply_to or None,
        type=props.subject or None,
        expiration=expiration,
        delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
    )


def _ttl(expiration: Any) -> timedelta | None:
    if expiration is None:
        return None
    if isinstance(expiration, timedelta):
        return expiration
    return timedelta(seconds=float(expiration))


class RabbitSettler:
    """
    Settles wire messages by acknowledging the RabbitMQ delivery they came from.

    - accept -> ack
    - modify -> nack, requeued unless the message is undeliverable here. A
      0-9-1 nack has no way to say whether delivery failed or to carry
      annotations, so `delivery_failed` and `annotations` are dropped.
    - reject -> reject without requeue; the queue's dead-letter exchange, if
      any, receives the message. The AMQP error cannot travel over 0-9-1 and
      is logged instead.
    """

    def __init__(self, incoming: AbstractIncomingMessage) -> None:
        self._incoming = incoming

    async def accept(self, message: AMQPMessage) -> None:
        await self._incoming.ack()

    async def modify(
        self,
        message: AMQPMessage,
        delivery_failed: bool,
        undeliverable_here: bool,
        annotations: dict[str, Any] | None,
    ) -> None:
        await self._incoming.nack(requeue=not undeliverable_here)

    async def reject(self, message: AMQPMessage, error: AMQPError | None) -> None:
        if error is not None:
            logger.warning(
                "Dead-lettering message %s: %s %s (info=%s)",
                self._incoming.message_id,
                error.condition,
                error.description,
                error.info,
            )
        await self._incoming.reject(requeue=False)


def amqp_message_from_rabbit(incoming: AbstractIncomingMessage) -> AMQPMessage:
    """
    Convert a RabbitMQ delivery to a wire message settled through it.

    Args:
        incoming: Delivery received from a queue.

    Returns:
        Wire message whose receiver is a `RabbitSettler`.
    """
    headers = dict(incoming.headers or {})

    properties = MessageProperties(
        message_id=incoming.message_id,
        correlation_id=incoming.correlation_id,
        content_type=incoming.content_type or "",
        subject=incoming.type or "",
        reply_to=incoming.reply_to or "",
        to=str(headers.get(TO_HEADER) or ""),
        group_id=str(headers.get(GROUP_ID_HEADER) or ""),
        group_sequence=int(headers.get(GROUP_SEQUENCE_HEADER) or 0),
        reply_to_group_id=str(headers.get(REPLY_TO_GROUP_ID_HEADER) or ""),
    )

    if DELIVERY_COUNT_HEADER in headers:
        delivery_count = int(headers[DELIVERY_COUNT_HEADER])
    else:
        delivery_count = 1 if incoming.redelivered else 0
    header = MessageHeader(durable=True, delivery_count=delivery_count)
    ttl = _ttl(incoming.expiration)
    if ttl is not None:
        header.ttl = ttl

    annotations = dict(headers.get(ANNOTATIONS_HEADER) or {})
    application_properties = {
        key: value for key, value in headers.items() if not is_reserved_header(key)
    }

    return AMQPMessage(
        data=[incoming.body],
        properties=properties,
        header=header,
        application_properties=application_properties or None,
        annotations=annotations or None,
        receiver=RabbitSettler(incoming),
    )


class Publisher(Protocol):
    """
    Messaging publisher protocol.

    Lets callers depend on an abstract publisher, decoupled from the concrete
    transport (RabbitMQ, in-memory fakes in tests, etc.).
    """

    async def send(self, message: Message) -> None:
        """
        Publish a message.

        Args:
            message: Message to send.
        """
        ...


class RabbitPublisher:
    """
    RabbitMQ-based implementation of the Publisher protocol.

    Notes:
        - Establishes a connection per publish call.
        - Publishes with confirms; returned or nacked messages raise BrokerError.
    """

    def __init__(self, dsn: str, queue_name: str) -> None:
        """
        Initialize RabbitMQ publisher.

        Args:
            dsn: RabbitMQ connection DSN.
            queue_name: Target queue.
        """
        self._dsn = dsn
        self._queue_name = queue_name

    async def send(self, message: Message) -> None:
        """
        Translate and publish a message to RabbitMQ.

        Args:
            message: Message to send.

        Raises:
            BrokerError: If the broker returns or refuses the message.
            NotAStructureError: If system properties cannot be projected.

        Side effects:
            - Declares the queue if it does not exist.
        """
        rabbit_message = to_rabbit_message(to_amqp_message(message))

        connection = await aio_pika.connect_robust(self._dsn)
        async with connection:
            channel = await connection.channel(on_return_raises=True)
            await channel.declare_queue(self._queue_name, durable=True)
            try:
                await channel.default_exchange.publish(
                    rabbit_message,
                    routing_key=self._queue_name,
                    mandatory=True,
                )
            except DeliveryError as err:
                frame = err.frame
                raise BrokerError(
                    getattr(frame, "reply_code", 0),
                    getattr(frame, "reply_text", "") or "message was not confirmed",
                ) from err

        logger.debug("Published message %r to %s", message.message_id, self._queue_name)
