"""Minimal publish/subscribe with one typed channel per event kind.

Each ``Channel`` carries one kind of event with a fixed argument shape;
an ``EventEmitter`` owns one channel per member of an event enum.  There is
no string-keyed dispatch: publishing on an unknown event is a KeyError.

Fan-out rules:
    1. Subscribers are called synchronously, in subscription order.
    2. Every subscriber is called even if an earlier one raises, so one
       listener's failure never starves the others.
    3. Failures are re-raised after the fan-out, never swallowed.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Generic, Iterable, TypeVar

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]
Unsubscribe = Callable[[], None]

E = TypeVar("E", bound=Enum)


class Channel:
    """A single event kind with removable subscriptions."""

    __slots__ = ("name", "_handlers")

    def __init__(self, name: str) -> None:
        self.name = name
        self._handlers: list[Handler] = []

    def subscribe(self, handler: Handler) -> Unsubscribe:
        """Register *handler*; return a function that removes it again."""
        entry = _Subscription(handler)
        self._handlers.append(entry)

        def unsubscribe() -> None:
            try:
                self._handlers.remove(entry)
            except ValueError:
                pass  # already removed

        return unsubscribe

    def emit(self, *args: Any) -> None:
        errors: list[Exception] = []
        # Snapshot so subscribers may unsubscribe while being notified.
        for handler in list(self._handlers):
            try:
                handler(*args)
            except Exception as exc:
                logger.debug("Subscriber on '%s' raised %r", self.name, exc)
                errors.append(exc)
        raise_collected(errors, f"{len(errors)} subscribers of '{self.name}' failed")

    def __len__(self) -> int:
        return len(self._handlers)


class _Subscription:
    """Identity wrapper so the same function can be subscribed twice."""

    __slots__ = ("handler",)

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    def __call__(self, *args: Any) -> Any:
        return self.handler(*args)


class EventEmitter(Generic[E]):
    """A fixed set of channels, one per member of *events*.

    Usage:
        emitter = EventEmitter(ActionEvent)
        off = emitter.on(ActionEvent.UNDO, handler)
        emitter.emit(ActionEvent.UNDO, token, records)
        off()
    """

    def __init__(self, events: Iterable[E]) -> None:
        self._channels: dict[E, Channel] = {e: Channel(str(e.value)) for e in events}

    def on(self, event: E, handler: Handler) -> Unsubscribe:
        return self._channels[event].subscribe(handler)

    def emit(self, event: E, *args: Any) -> None:
        self._channels[event].emit(*args)

    def listener_count(self, event: E) -> int:
        return len(self._channels[event])


def raise_collected(errors: list[Exception], summary: str) -> None:
    """Re-raise collected failures: one as itself, several as a group."""
    if not errors:
        return
    if len(errors) == 1:
        raise errors[0]
    raise ExceptionGroup(summary, errors)
