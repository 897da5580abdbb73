"""Handler contracts used by receivers to process messages."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from opentelemetry.context import Context

from servicebus.schemas.disposition import DispositionAction
from servicebus.schemas.message import Message

HandleFunc = Callable[[Context, Message], Awaitable[DispositionAction | None]]


class Handler(Protocol):
    """Processes one message and returns how it should be settled."""

    async def handle(self, context: Context, message: Message) -> DispositionAction | None:
        ...


class SessionHandler(Handler, Protocol):
    """
    Handles the messages of one Service Bus session together.

    `start` is called once the receiver holds the session lock, `end` after the
    last message of the session has been handled, for any reason.
    """

    def start(self, session: Any) -> None:
        ...

    def end(self) -> None:
        ...


class HandlerFunc:
    """Adapter that lets a coroutine function be used as a `Handler`."""

    def __init__(self, func: HandleFunc) -> None:
        self._func = func

    async def handle(self, context: Context, message: Message) -> DispositionAction | None:
        return await self._func(context, message)


class _DefaultSessionHandler:
    def __init__(
        self,
        base: Handler,
        start: Callable[[Any], None],
        end: Callable[[], None],
    ) -> None:
        self._base = base
        self._start = start
        self._end = end

    async def handle(self, context: Context, message: Message) -> DispositionAction | None:
        return await self._base.handle(context, message)

    def start(self, session: Any) -> None:
        self._start(session)

    def end(self) -> None:
        self._end()


def new_session_handler(
    base: Handler,
    start: Callable[[Any], None],
    end: Callable[[], None],
) -> SessionHandler:
    """Tie a handler and session start/end callbacks into a `SessionHandler`."""
    return _DefaultSessionHandler(base, start, end)
