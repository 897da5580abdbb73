"""Exceptions raised by the translation layer and its transport bridge.

`MissingFieldError` and `IncorrectTypeError` should only be seen when this
library has a bug or the broker changed its behavior unexpectedly.
`NoMessagesError` is informational: the caller should try again later.
"""

from __future__ import annotations

from typing import Any


class ServiceBusError(Exception):
    """Base class for all errors raised by this package."""


class MissingFieldError(ServiceBusError):
    """An expected property was missing from an AMQP message."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"missing value {field!r}")


class IncorrectTypeError(ServiceBusError):
    """A value did not have the type the protocol promises."""

    def __init__(self, key: str, expected_type: type, actual_value: Any) -> None:
        self.key = key
        self.expected_type = expected_type
        self.actual_value = actual_value
        super().__init__(
            f"value at {key!r} was expected to be of type {expected_type.__name__!r} "
            f"but was actually of type {type(actual_value).__name__!r}"
        )


class BrokerError(ServiceBusError):
    """The broker answered with a structured error code and description."""

    def __init__(self, code: int, description: str) -> None:
        self.code = code
        self.description = description
        super().__init__(f"server says ({code}) {description}")


class NoMessagesError(ServiceBusError):
    """A fetch returned nothing. More messages may arrive later."""

    def __init__(self) -> None:
        super().__init__("no messages available")


class InvalidDeliveryTagError(ServiceBusError):
    """A delivery tag could not be turned into a lock token."""

    def __init__(self, tag: bytes) -> None:
        self.tag = tag
        super().__init__(f"the message contained an invalid delivery tag: {tag!r}")


class NotAStructureError(ServiceBusError):
    """The structure projector was given something that is not a dataclass."""

    def __init__(self, value: Any) -> None:
        self.value = value
        super().__init__(f"must provide a dataclass, got {type(value).__name__!r}")


class UnrecognizedTagOptionError(ServiceBusError):
    """A field annotation carried a flag that is not understood."""

    def __init__(self, option: str) -> None:
        self.option = option
        super().__init__(f"key {option!r} is not understood")


class EmptyPayloadError(ServiceBusError):
    """A received AMQP message had no data section."""

    def __init__(self) -> None:
        super().__init__("the AMQP message has no data section")


class ReservedPropertyError(ServiceBusError):
    """A user property uses a header name the RabbitMQ bridge reserves."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"user property {key!r} uses a reserved header name")
