"""
Deferred settlement of received messages.

A `DispositionAction` captures one terminal outcome for one wire message.
The mapping from outcome to settlement call lives only here:

- complete    -> accept: the message is removed from the queue.
- abandon     -> modify(delivery_failed=False, undeliverable_here=False):
                 the message becomes available for redelivery.
- dead-letter -> reject(error): the message moves to the dead-letter queue.

Failures raised by the transport propagate to whoever awaits the action.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from opentelemetry.context import Context

from servicebus.core.tracing import get_tracer
from servicebus.schemas.amqp import AMQPError, AMQPMessage, MessageErrorCondition

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    COMPLETE = "complete"
    ABANDON = "abandon"
    DEAD_LETTER = "dead-letter"


@dataclass(frozen=True)
class DispositionAction:
    """
    Settlement to run once the application has decided a message's fate.

    Attributes:
        message: Wire message the outcome applies to.
        outcome: Terminal outcome.
        span_name: Name of the span wrapping the settlement call.
        error: Rejection error, dead-letter outcomes only.
    """

    message: AMQPMessage
    outcome: Outcome
    span_name: str
    error: AMQPError | None = None

    async def __call__(
        self,
        context: Context | None = None,
        timeout: float | None = None,
    ) -> None:
        """
        Settle the message with the broker.

        Args:
            context: Trace context used as the parent of the settlement span.
            timeout: Seconds to wait for the settlement before giving up.

        Raises:
            TimeoutError: If `timeout` elapses first.
            asyncio.CancelledError: If the awaiting task is cancelled.
        """
        with get_tracer().start_as_current_span(self.span_name, context=context) as span:
            span.set_attribute("servicebus.outcome", self.outcome.value)
            if self.error is not None:
                span.set_attribute("servicebus.error.condition", self.error.condition)
            async with asyncio.timeout(timeout):
                await self._settle()
        logger.debug("Settled message as %s", self.outcome.value)

    async def _settle(self) -> None:
        if self.outcome is Outcome.COMPLETE:
            await self.message.accept()
        elif self.outcome is Outcome.ABANDON:
            await self.message.modify(False, False, None)
        else:
            await self.message.reject(self.error)


def complete(message: AMQPMessage) -> DispositionAction:
    return DispositionAction(message, Outcome.COMPLETE, "sb.Message.Complete")


def abandon(message: AMQPMessage) -> DispositionAction:
    return DispositionAction(message, Outcome.ABANDON, "sb.Message.Abandon")


def dead_letter(message: AMQPMessage, err: BaseException) -> DispositionAction:
    error = AMQPError(condition=MessageErrorCondition.INTERNAL_ERROR.value, description=str(err))
    return DispositionAction(message, Outcome.DEAD_LETTER, "sb.Message.DeadLetter", error)


def dead_letter_with_info(
    message: AMQPMessage,
    err: BaseException,
    condition: MessageErrorCondition | str,
    info: Mapping[str, str] | None = None,
) -> DispositionAction:
    """
    Dead-letter with a caller-chosen condition and extra context.

    Raises:
        ValueError: If `condition` is not a known `MessageErrorCondition`.
    """
    error = AMQPError(
        condition=MessageErrorCondition(condition).value,
        description=str(err),
        info=dict(info) if info is not None else None,
    )
    return DispositionAction(message, Outcome.DEAD_LETTER, "sb.Message.DeadLetterWithInfo", error)
