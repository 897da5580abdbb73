"""RabbitMQ consumer that hands translated messages to a `Handler`."""

from __future__ import annotations

import asyncio
import logging

import aio_pika
from aio_pika.abc import AbstractIncomingMessage, AbstractQueue, AbstractRobustConnection
from aio_pika.exceptions import AMQPConnectionError
from opentelemetry.context import Context

from servicebus.core.config import Settings, get_settings
from servicebus.core.errors import NoMessagesError
from servicebus.core.logging import configure_logging
from servicebus.core.tracing import extract_context
from servicebus.schemas.disposition import DispositionAction
from servicebus.schemas.message import Message
from servicebus.services.handler import Handler, HandlerFunc
from servicebus.services.messaging import amqp_message_from_rabbit
from servicebus.services.translator import message_from_amqp

logger = logging.getLogger(__name__)


async def connect_rabbit(settings: Settings) -> AbstractRobustConnection:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + settings.rabbitmq_connect_timeout
    last: Exception | None = None

    while loop.time() < deadline:
        try:
            return await aio_pika.connect_robust(settings.rabbitmq_dsn)
        except (OSError, AMQPConnectionError) as e:
            last = e
            logger.warning("RabbitMQ not ready: %r", e)
            await asyncio.sleep(1)

    raise RuntimeError(f"RabbitMQ not ready: {last!r}")


class RabbitConsumer:
    """
    Feeds RabbitMQ deliveries through the translation layer to a handler.

    The handler's disposition action settles the delivery. A handler that
    returns None leaves settlement to `process()`, which acks on success;
    exceptions reject the delivery without requeue and propagate.
    """

    def __init__(
        self,
        handler: Handler,
        queue_name: str,
        *,
        prefetch_count: int = 10,
        settle_timeout: float | None = None,
    ) -> None:
        self._handler = handler
        self._queue_name = queue_name
        self._prefetch_count = prefetch_count
        self._settle_timeout = settle_timeout

    async def handle_message(self, incoming: AbstractIncomingMessage) -> None:
        """Translate one delivery, run the handler and settle it."""
        async with incoming.process(ignore_processed=True):
            message = message_from_amqp(amqp_message_from_rabbit(incoming))
            context = extract_context(message)
            action = await self._handler.handle(context, message)
            if action is not None:
                await action(context, timeout=self._settle_timeout)

    async def receive_one(self, queue: AbstractQueue) -> None:
        """
        Fetch and handle a single delivery.

        Raises:
            NoMessagesError: If the queue is currently empty.
        """
        incoming = await queue.get(no_ack=False, fail=False)
        if incoming is None:
            raise NoMessagesError()
        await self.handle_message(incoming)

    async def consume(self, connection: AbstractRobustConnection) -> None:
        """Consume from the queue indefinitely."""
        channel = await connection.channel()
        await channel.set_qos(prefetch_count=self._prefetch_count)
        queue = await channel.declare_queue(self._queue_name, durable=True)
        await queue.consume(self.handle_message)
        logger.info("Consuming from %s", self._queue_name)
        await asyncio.Future()


async def log_and_complete(context: Context, message: Message) -> DispositionAction:
    logger.info(
        "Received message %r (delivery %d, %d bytes)",
        message.message_id,
        message.delivery_count,
        len(message.data),
    )
    return message.complete()


async def main() -> None:
    """Consume from RabbitMQ indefinitely, logging and completing every message."""
    settings = get_settings()
    configure_logging(settings)
    consumer = RabbitConsumer(
        HandlerFunc(log_and_complete),
        settings.rabbitmq_queue,
        prefetch_count=settings.rabbitmq_prefetch_count,
        settle_timeout=settings.settle_timeout_seconds,
    )
    connection = await connect_rabbit(settings)
    async with connection:
        await consumer.consume(connection)


if __name__ == "__main__":
    asyncio.run(main())
