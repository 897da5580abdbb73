"""Application-facing message entities."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from servicebus.core.errors import IncorrectTypeError, MissingFieldError
from servicebus.schemas import disposition
from servicebus.schemas.amqp import AMQPMessage, MessageErrorCondition
from servicebus.schemas.disposition import DispositionAction
from servicebus.schemas.tags import annotation


@dataclass
class SystemProperties:
    """Metadata set by the broker, carried in message annotations."""

    locked_until: datetime | None = annotation("x-opt-locked-until")
    sequence_number: int | None = annotation("x-opt-sequence-number")
    partition_id: int | None = annotation("x-opt-partition-id")
    partition_key: str | None = annotation("x-opt-partition-key")
    enqueued_time: datetime | None = annotation("x-opt-enqueued-time")
    dead_letter_source: str | None = annotation("x-opt-deadletter-source")
    scheduled_enqueue_time: datetime | None = annotation("x-opt-scheduled-enqueue-time")
    enqueued_sequence_number: int | None = annotation("x-opt-enqueue-sequence-number")
    via_partition_key: str | None = annotation("x-opt-via-partition-key")


@dataclass
class Message:
    """
    A Service Bus message to be sent or received.

    `delivery_count` and `lock_token` are filled in by the broker on receipt;
    `amqp_message` refers to the wire message a received message was parsed
    from and is None for messages built by the application.
    """

    data: bytes = b""
    content_type: str = ""
    correlation_id: str = ""
    delivery_count: int = field(default=0, init=False)
    group_id: str | None = None
    group_sequence: int | None = None
    message_id: str = ""
    label: str = ""
    reply_to: str = ""
    reply_to_group_id: str = ""
    to: str = ""
    ttl: timedelta | None = None
    lock_token: uuid.UUID | None = None
    system_properties: SystemProperties | None = None
    user_properties: dict[str, Any] = field(default_factory=dict)
    _amqp_message: AMQPMessage | None = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def from_string(cls, text: str) -> Message:
        """Build a message whose payload is the UTF-8 encoding of `text`."""
        return cls(data=text.encode("utf-8"))

    @property
    def amqp_message(self) -> AMQPMessage | None:
        return self._amqp_message

    def complete(self) -> DispositionAction:
        """Report successful handling; the message is deleted from the queue."""
        return disposition.complete(self._received())

    def abandon(self) -> DispositionAction:
        """Report a failure; the message is re-queued for delivery."""
        return disposition.abandon(self._received())

    def dead_letter(self, err: BaseException) -> DispositionAction:
        """Report a failure; the message moves to the dead-letter queue."""
        return disposition.dead_letter(self._received(), err)

    def dead_letter_with_info(
        self,
        err: BaseException,
        condition: MessageErrorCondition | str,
        info: Mapping[str, str] | None = None,
    ) -> DispositionAction:
        """Dead-letter with an explicit AMQP condition and additional context."""
        return disposition.dead_letter_with_info(self._received(), err, condition, info)

    def schedule_at(self, when: datetime) -> None:
        """
        Ask the broker to deliver the message after `when`.

        Delivery usually happens within a minute of the requested time. Naive
        datetimes are interpreted as local time.
        """
        if self.system_properties is None:
            self.system_properties = SystemProperties()
        self.system_properties.scheduled_enqueue_time = when.astimezone(timezone.utc)

    def set(self, key: str, value: str) -> None:
        """Set a user property; used by trace propagators to inject context."""
        self.user_properties[key] = value

    def foreach_key(self, handler: Callable[[str, str], Any]) -> None:
        """
        Call `handler(key, value)` for every user property.

        Raises:
            IncorrectTypeError: If any value is not a string. Values are checked
                before the handler sees any of them.
        """
        items = list(self.user_properties.items())
        for key, value in items:
            if not isinstance(value, str):
                raise IncorrectTypeError(key, str, value)
        for key, value in items:
            handler(key, value)

    def _received(self) -> AMQPMessage:
        if self._amqp_message is None:
            raise MissingFieldError("amqp_message")
        return self._amqp_message
