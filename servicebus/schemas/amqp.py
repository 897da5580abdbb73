"""
AMQP 1.0 wire message as handed over by the transport.

Only the sections the translation layer reads or writes are modeled:
- properties and header blocks,
- application properties, message annotations and delivery annotations,
- the raw delivery tag.

Settlement is delegated to the `Settler` the message arrived on, so a wire
message can be accepted, modified or rejected without this layer knowing
anything about links or sessions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Protocol

from servicebus.core.errors import MissingFieldError


@dataclass
class MessageProperties:
    """The immutable properties block of an AMQP message."""

    message_id: Any = None
    user_id: bytes | None = None
    to: str = ""
    subject: str = ""
    reply_to: str = ""
    correlation_id: Any = None
    content_type: str = ""
    content_encoding: str = ""
    absolute_expiry_time: datetime | None = None
    creation_time: datetime | None = None
    group_id: str = ""
    group_sequence: int = 0
    reply_to_group_id: str = ""


@dataclass
class MessageHeader:
    """Transport headers; `delivery_count` counts failed prior deliveries."""

    durable: bool = False
    priority: int = 4
    ttl: timedelta = timedelta(0)
    first_acquirer: bool = False
    delivery_count: int = 0


class MessageErrorCondition(str, Enum):
    """Well-known AMQP error conditions accepted when dead-lettering."""

    INTERNAL_ERROR = "amqp:internal-error"
    NOT_FOUND = "amqp:not-found"
    UNAUTHORIZED_ACCESS = "amqp:unauthorized-access"
    DECODE_ERROR = "amqp:decode-error"
    RESOURCE_LIMIT_EXCEEDED = "amqp:resource-limit-exceeded"
    NOT_ALLOWED = "amqp:not-allowed"
    INVALID_FIELD = "amqp:invalid-field"
    NOT_IMPLEMENTED = "amqp:not-implemented"
    RESOURCE_LOCKED = "amqp:resource-locked"
    PRECONDITION_FAILED = "amqp:precondition-failed"
    RESOURCE_DELETED = "amqp:resource-deleted"
    ILLEGAL_STATE = "amqp:illegal-state"


@dataclass(frozen=True)
class AMQPError:
    """Error attached to a rejected delivery."""

    condition: str
    description: str = ""
    info: dict[str, Any] | None = None


class Settler(Protocol):
    """
    Settlement primitive provided by the transport receiver.

    Implementations perform network I/O and may raise on failure; this layer
    never retries.
    """

    async def accept(self, message: AMQPMessage) -> None:
        ...

    async def modify(
        self,
        message: AMQPMessage,
        delivery_failed: bool,
        undeliverable_here: bool,
        annotations: dict[str, Any] | None,
    ) -> None:
        ...

    async def reject(self, message: AMQPMessage, error: AMQPError | None) -> None:
        ...


@dataclass
class AMQPMessage:
    """
    A single AMQP message.

    Attributes:
        data: Data sections; the first one is the payload.
        delivery_tag: Broker-assigned tag for this delivery attempt.
        receiver: Settler for received messages, None for outgoing ones.
    """

    data: list[bytes] = field(default_factory=list)
    properties: MessageProperties | None = None
    header: MessageHeader | None = None
    application_properties: dict[str, Any] | None = None
    annotations: dict[str, Any] | None = None
    delivery_annotations: dict[str, Any] | None = None
    delivery_tag: bytes | None = None
    receiver: Settler | None = field(default=None, repr=False, compare=False)

    @classmethod
    def from_bytes(cls, data: bytes) -> AMQPMessage:
        """Build an outgoing message with a single data section."""
        return cls(data=[data])

    async def accept(self) -> None:
        """Settle as accepted."""
        await self._settler().accept(self)

    async def modify(
        self,
        delivery_failed: bool,
        undeliverable_here: bool,
        annotations: dict[str, Any] | None = None,
    ) -> None:
        """Settle as modified; the broker may redeliver the message."""
        await self._settler().modify(self, delivery_failed, undeliverable_here, annotations)

    async def reject(self, error: AMQPError | None = None) -> None:
        """Settle as rejected."""
        await self._settler().reject(self, error)

    def _settler(self) -> Settler:
        if self.receiver is None:
            raise MissingFieldError("receiver")
        return self.receiver
