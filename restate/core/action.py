"""Action: a named, invokable intent signal.

Calling an Action does not change any state by itself.  It bumps the
Action's invocation counter, publishes a TRIGGERED event carrying a fresh
token, and hands back an ActionHandle.  Every Store bound to the Action
queues the request and resolves it on its next reduce cycle.

Audit protocol:
    - Right before a Store invokes a reducer for a token it calls
      ``did_invoke(token, record)``.  The Action caches the record.
    - ``undo(token)`` / ``redo(token)`` / ``cancel(token)`` publish the
      cached records; each Store picks out the one carrying its own
      container id and ignores the rest.
    - ``flush()`` drops the cache, which makes outstanding handles inert.

One Action may be bound to any number of Stores; it owns nothing but its
counter, its cache and its event channels.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional

from restate.config import settings
from restate.domain.enums import ActionEvent, Strategy
from restate.domain.errors import InvalidActionError
from restate.domain.history import AuditRecord, Invocation
from restate.events.emitter import EventEmitter, Unsubscribe

logger = logging.getLogger(__name__)

Reducer = Callable[[dict, Any], Mapping]


class Action:
    """A named intent signal.

    Args:
        name: Non-empty name, used in middleware metadata and logs.
        reducer: Optional default reducer, used when a Store binds this
            Action without supplying one.
        flush_frequency: Clear the whole audit cache every N invocations.
            Bounds memory at the cost of undo/redo for earlier calls.
    """

    strategies = Strategy

    def __init__(
        self,
        name: str,
        reducer: Optional[Reducer] = None,
        *,
        flush_frequency: Optional[int] = None,
    ) -> None:
        if not isinstance(name, str) or not name.strip():
            raise InvalidActionError(f"action name must be a non-empty string, got {name!r}")
        if reducer is not None and not callable(reducer):
            raise InvalidActionError(f"reducer for action '{name}' must be callable")

        self._name = name
        self._reducer = reducer
        self._flush_frequency = (
            flush_frequency if flush_frequency is not None else settings.action_flush_frequency
        )
        self._call_count = 0
        self._calls: dict[int, list[AuditRecord]] = {}
        self._emitter: EventEmitter[ActionEvent] = EventEmitter(ActionEvent)

    # ── Invocation ───────────────────────────────────────────────────────

    def __call__(self, payload: Any = None) -> ActionHandle:
        self._call_count += 1
        token = self._call_count
        logger.debug("Action '%s' triggered (token=%d)", self._name, token)
        self._emitter.emit(ActionEvent.TRIGGERED, Invocation(token=token, payload=payload))
        return ActionHandle(self, token)

    def did_invoke(self, token: int, record: AuditRecord) -> None:
        """Cache *record* for *token*; called by a Store once per reducer invocation."""
        if self._flush_frequency and self._call_count % self._flush_frequency == 0:
            self._calls = {}
            logger.debug("Action '%s' flushed audit cache at call %d", self._name, self._call_count)
            return
        self._calls.setdefault(token, []).append(record)

    def audit_records(self, token: int) -> tuple[AuditRecord, ...]:
        return tuple(self._calls.get(token, ()))

    # ── Revision requests ────────────────────────────────────────────────

    def undo(self, token: int) -> None:
        self._emitter.emit(ActionEvent.UNDO, token, self.audit_records(token))

    def redo(self, token: int) -> None:
        self._emitter.emit(ActionEvent.REDO, token, self.audit_records(token))

    def cancel(self, token: int) -> None:
        self._emitter.emit(ActionEvent.CANCEL, token, self.audit_records(token))

    def flush(self, token: Optional[int] = None) -> None:
        """Forget audit records for *token*, or for every token when omitted."""
        if token is None:
            self._calls = {}
        else:
            self._calls.pop(token, None)

    # ── Subscriptions (used by Stores) ───────────────────────────────────

    def on_trigger(self, handler: Callable[[Invocation], Any]) -> Unsubscribe:
        return self._emitter.on(ActionEvent.TRIGGERED, handler)

    def on_undo(self, handler: Callable[[int, tuple[AuditRecord, ...]], Any]) -> Unsubscribe:
        return self._emitter.on(ActionEvent.UNDO, handler)

    def on_redo(self, handler: Callable[[int, tuple[AuditRecord, ...]], Any]) -> Unsubscribe:
        return self._emitter.on(ActionEvent.REDO, handler)

    def on_cancel(self, handler: Callable[[int, tuple[AuditRecord, ...]], Any]) -> Unsubscribe:
        return self._emitter.on(ActionEvent.CANCEL, handler)

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_count(self) -> int:
        return self._call_count

    @property
    def reducer(self) -> Optional[Reducer]:
        return self._reducer

    @property
    def flush_frequency(self) -> Optional[int]:
        return self._flush_frequency

    def __repr__(self) -> str:
        return f"Action({self._name!r}, calls={self._call_count})"


class ActionHandle:
    """Returned by every Action call; targets that single invocation."""

    __slots__ = ("action", "token")

    def __init__(self, action: Action, token: int) -> None:
        self.action = action
        self.token = token

    def undo(self) -> None:
        self.action.undo(self.token)

    def redo(self) -> None:
        self.action.redo(self.token)

    def cancel(self) -> None:
        self.action.cancel(self.token)

    def flush(self) -> None:
        self.action.flush(self.token)

    @property
    def audit_records(self) -> tuple[AuditRecord, ...]:
        return self.action.audit_records(self.token)

    def __repr__(self) -> str:
        return f"ActionHandle({self.action.name!r}, token={self.token})"


def create_actions(names: Iterable[str]) -> dict[str, Action]:
    """Build one Action per name, keyed by name."""
    return {name: Action(name) for name in names}
