"""OpenTelemetry integration: tracer and trace-context propagation.

Trace context travels in a message's user properties, so any text-map
propagator configured globally (W3C tracecontext by default) can inject
into an outgoing `Message` and extract from a received one.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from opentelemetry import propagate, trace
from opentelemetry.context import Context
from opentelemetry.propagators.textmap import Getter, Setter

from servicebus.core.errors import IncorrectTypeError

if TYPE_CHECKING:
    from servicebus.schemas.message import Message

TRACER_NAME = "servicebus"


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(TRACER_NAME)


class MessageSetter(Setter["Message"]):
    def set(self, carrier: Message, key: str, value: str) -> None:
        carrier.set(key, value)


class MessageGetter(Getter["Message"]):
    def get(self, carrier: Message, key: str) -> list[str] | None:
        value = carrier.user_properties.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            raise IncorrectTypeError(key, str, value)
        return [value]

    def keys(self, carrier: Message) -> list[str]:
        keys: list[str] = []
        carrier.foreach_key(lambda key, _value: keys.append(key))
        return keys


message_setter = MessageSetter()
message_getter = MessageGetter()


def inject_context(message: Message, context: Context | None = None) -> None:
    """Write the current (or given) trace context into the message's user properties."""
    propagate.inject(message, context=context, setter=message_setter)


def extract_context(message: Message, context: Context | None = None) -> Context:
    """Read a trace context propagated through the message's user properties."""
    return propagate.extract(message, context=context, getter=message_getter)
