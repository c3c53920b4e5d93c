"""Store: a versioned state container with a batching reduce-cycle scheduler.

Design notes:
    - History is an append-only list of frozen HistoryEntry snapshots plus
      a cursor.  Committing while the cursor is behind the end discards the
      old future branch first.
    - Action invocations are only *queued* on the bound registration.  The
      first one moves the store READY → QUEUED and schedules one deferred
      callback; everything queued before it fires is resolved in a single
      reduce cycle and produces at most one notification.
    - While REDUCING, an Action firing into this store is a circular
      invocation and is rejected instead of growing the cycle.
    - Undo/redo rewrite one entry in place and schedule a revision that
      replays every later entry against its recomputed predecessor.  A
      guid check makes stale undo/redo requests harmless no-ops.
    - The store never swallows errors: reducer and middleware failures
      leave the deferred callback.  Install an error-boundary middleware
      first to trap them.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence
from uuid import UUID

from pyrsistent import PMap

from restate.config import settings
from restate.core.action import Action, ActionHandle, Reducer
from restate.domain.enums import Operation, Phase, Strategy, StoreEvent
from restate.domain.errors import (
    CircularInvocationError,
    InvalidActionError,
    InvalidDeltaError,
    InvalidIndexError,
    InvalidReducerError,
    InvalidReturnError,
)
from restate.domain.history import (
    AuditRecord,
    HistoryEntry,
    Invocation,
    PendingRequest,
    ResolutionMeta,
)
from restate.events.emitter import EventEmitter, Unsubscribe
from restate.foundation.identifiers import new_id
from restate.store.merge import is_mapping, merge_state, to_plain, to_snapshot
from restate.store.middleware import Middleware, MiddlewarePipeline, passthrough
from restate.store.registry import (
    NOOP_POSITION,
    ReducerRegistration,
    noop_reducer,
    replace_state_reducer,
    set_state_reducer,
)
from restate.store.scheduler import AsyncioScheduler, Scheduler

logger = logging.getLogger(__name__)

Listener = Callable[[dict, dict], Any]


class Store:
    """A reactive, versioned state container.

    Args:
        initial_state: Mapping used as history entry 0.
        middleware: Links applied, in order, around every reducer result.
        scheduler: Batch-boundary primitive; defaults to the running
            asyncio event loop.

    Usage:
        add_item = Action("add_item")
        store = Store({"cart": []})
        store.when(add_item, lambda state, item: {"cart": state["cart"] + [item]})
        handle = add_item("apple")      # resolved on the next tick
        handle.undo()                   # later: revert just that call
    """

    errors = {
        "INVALID_DELTA": InvalidDeltaError,
        "INVALID_RETURN": InvalidReturnError,
        "INVALID_REDUCER": InvalidReducerError,
        "INVALID_INDEX": InvalidIndexError,
        "INVALID_ACTION": InvalidActionError,
        "CIRCULAR_INVOCATION": CircularInvocationError,
    }

    def __init__(
        self,
        initial_state: Optional[Mapping] = None,
        middleware: Optional[Iterable[Middleware]] = None,
        *,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        if initial_state is not None and not is_mapping(initial_state):
            raise InvalidDeltaError(
                f"initial state must be a mapping, got {type(initial_state).__name__}"
            )

        self._container_id: UUID = new_id()
        self._history: list[HistoryEntry] = [
            HistoryEntry(
                state=to_snapshot(initial_state),
                guid=new_id(),
                reducer_invoked=NOOP_POSITION,
                payload={},
            )
        ]
        self._cursor = 0
        self._phase = Phase.READY
        self._pending_revisions: set[int] = set()
        self._requeue = False
        self._registrations: list[ReducerRegistration] = []
        self._bound: dict[Action, ReducerRegistration] = {}
        self._pipeline = MiddlewarePipeline(middleware)
        self._scheduler: Scheduler = scheduler or AsyncioScheduler()
        self._emitter: EventEmitter[StoreEvent] = EventEmitter(StoreEvent)
        self._published: PMap = self._history[0].state

        # Built-ins always occupy positions 0-2.
        self._set_state_action = Action("setState")
        self._replace_state_action = Action("replaceState")
        self.when(Action("noop"), noop_reducer)
        self.when(self._set_state_action, set_state_reducer, Strategy.COMPOUND)
        self.when(self._replace_state_action, replace_state_reducer, Strategy.TAIL)

    # ── Binding ──────────────────────────────────────────────────────────

    def when(
        self,
        action: Action | Sequence[Action | Mapping[str, Any]],
        reducer: Optional[Reducer] = None,
        strategy: Strategy | str | None = None,
    ) -> Store:
        """Bind *action* to *reducer*, or bind a batch.

        The batch form takes a list whose items are Actions (bound with their
        own reducer) or mappings ``{"action", "reducer", "strategy"}``.
        Re-binding an Action that is already bound is a no-op.

        Raises:
            InvalidActionError: If an item is not an Action.
            InvalidReducerError: If no reducer is available for an Action.
        """
        if isinstance(action, (list, tuple)):
            for item in action:
                if isinstance(item, Action):
                    self._bind(item, None, None)
                elif is_mapping(item):
                    self._bind(item.get("action"), item.get("reducer"), item.get("strategy"))
                else:
                    raise InvalidActionError(f"cannot bind {item!r}")
            return self
        self._bind(action, reducer, strategy)
        return self

    listen_to = when

    def _bind(self, action: Any, reducer: Optional[Reducer], strategy: Strategy | str | None) -> ReducerRegistration:
        if not isinstance(action, Action):
            raise InvalidActionError(f"cannot bind {action!r}: not an Action")
        reducer = reducer or action.reducer
        if reducer is None or not callable(reducer):
            raise InvalidReducerError(f"no reducer supplied for action '{action.name}'")

        existing = self._bound.get(action)
        if existing is not None:
            return existing

        registration = ReducerRegistration(
            action=action,
            reducer=reducer,
            position=len(self._registrations),
            strategy=Strategy.parse(strategy, settings.default_strategy),
        )
        self._registrations.append(registration)
        self._bound[action] = registration

        action.on_trigger(partial(self._on_trigger, registration))
        action.on_undo(partial(self._on_undo, registration))
        action.on_redo(partial(self._on_redo, registration))
        action.on_cancel(partial(self._on_cancel, registration))

        logger.debug(
            "Store %s bound '%s' at position %d (%s)",
            self._container_id,
            action.name,
            registration.position,
            registration.strategy.value,
        )
        return registration

    # ── Action listeners ─────────────────────────────────────────────────

    def _on_trigger(self, registration: ReducerRegistration, invocation: Invocation) -> None:
        if self._phase is Phase.REDUCING:
            raise CircularInvocationError(
                f"'{registration.action_name}' was invoked while store "
                f"{self._container_id} was reducing"
            )
        # Schedule first: a request must not outlive a failed schedule.
        self._queue_cycle()
        registration.enqueue(invocation.token, invocation.payload)

    def _on_undo(self, registration: ReducerRegistration, token: int, records: Sequence[AuditRecord]) -> None:
        registration.mark_pending(token, canceled=True)
        record = self._own_record(records)
        if record is not None:
            self.undo(record.history_index, record.guid)

    def _on_redo(self, registration: ReducerRegistration, token: int, records: Sequence[AuditRecord]) -> None:
        registration.mark_pending(token, canceled=False)
        record = self._own_record(records)
        if record is not None:
            self.redo(record.history_index, record.guid)

    def _on_cancel(self, registration: ReducerRegistration, token: int, records: Sequence[AuditRecord]) -> None:
        if registration.mark_pending(token, canceled=True):
            return
        # Already resolved: cancellation degrades to an undo.
        record = self._own_record(records)
        if record is not None:
            self.undo(record.history_index, record.guid)

    def _own_record(self, records: Sequence[AuditRecord]) -> Optional[AuditRecord]:
        for record in records:
            if record.container_id == self._container_id:
                return record
        return None

    # ── Scheduler ────────────────────────────────────────────────────────

    def _queue_cycle(self) -> None:
        if self._phase is Phase.READY:
            self._scheduler.schedule(self._run_cycle)
            self._phase = Phase.QUEUED
        elif self._phase is Phase.REDUCING:
            self._requeue = True

    def _run_cycle(self) -> None:
        self._phase = Phase.REDUCING
        start_cursor = self._cursor
        try:
            revised = self._resolve_revisions()
            self._resolve_actions()
        finally:
            self._phase = Phase.READY
            if self._requeue or any(r.requests for r in self._registrations):
                self._requeue = False
                self._queue_cycle()

        moved = self._cursor != start_cursor
        logger.debug(
            "Store %s reduce cycle: cursor %d -> %d, revised=%s",
            self._container_id,
            start_cursor,
            self._cursor,
            revised,
        )
        if moved or (revised and self._current.state != self._published):
            self.trigger()

    def _resolve_revisions(self) -> bool:
        if not self._pending_revisions:
            return False
        # Cleared only once the replay succeeds, so a failed one is retried
        # by the next cycle.
        self._revise_history(min(self._pending_revisions))
        self._pending_revisions.clear()
        return True

    def _resolve_actions(self) -> None:
        for registration in sorted(self._registrations, key=lambda r: r.position):
            if not registration.requests:
                continue
            for request in registration.take_requests():
                self._resolve_request(registration, request)

    def _resolve_request(self, registration: ReducerRegistration, request: PendingRequest) -> None:
        snapshot = self._current.state
        index = self._cursor + 1
        record = AuditRecord(container_id=self._container_id, history_index=index, guid=new_id())
        meta = ResolutionMeta(
            action_name=registration.action_name,
            guid=record.guid,
            index=index,
            last_state=to_plain(snapshot),
            operation=Operation.CANCEL if request.canceled else Operation.RESOLVE,
            payload=request.payload,
            reducer_position=registration.position,
        )

        def produce() -> Mapping:
            return registration.invoke(to_plain(snapshot), request.payload, record, request.token)

        self._pipeline.run(produce, meta, self._push_state)

    def _push_state(self, get_delta: Callable[[], Any], call_next: Callable, meta: ResolutionMeta, exports: dict) -> dict:
        """Terminal link: commit the delta as a new history entry."""
        delta = get_delta()
        if not is_mapping(delta):
            raise InvalidReturnError(
                f"reducer for '{meta.action_name}' returned {type(delta).__name__}, expected a mapping"
            )

        current = self._current
        next_state = merge_state(current.state, delta)
        if next_state != current.state:
            del self._history[self._cursor + 1:]
            self._history.append(
                HistoryEntry(
                    state=next_state,
                    guid=meta.guid,
                    reducer_invoked=meta.reducer_position,
                    payload=meta.payload,
                )
            )
            self._cursor += 1
            if meta.operation is Operation.CANCEL:
                # Keep the slot, drop the effect, without another cycle.
                self._revert_entry(self._cursor, meta.guid)
        return self.state

    # ── Undo / Redo / Revision ───────────────────────────────────────────

    def undo(self, index: int, guid: UUID) -> bool:
        """Revert the entry at *index* if it still belongs to *guid*.

        Returns False (and schedules nothing) when the slot was overwritten
        since, or is already reverted.
        """
        entry = self._entry_for(index, guid)
        if entry is None or entry.reverted:
            return False
        self._queue_cycle()
        self._revert_entry(index, guid)
        self._pending_revisions.add(index)
        logger.debug("Store %s undid entry %d", self._container_id, index)
        return True

    def redo(self, index: int, guid: UUID) -> bool:
        """Restore a reverted entry at *index* if it still belongs to *guid*."""
        entry = self._entry_for(index, guid)
        if entry is None or not entry.reverted or entry.original is None:
            return False
        self._queue_cycle()
        self._history[index] = entry.original
        self._pending_revisions.add(index)
        logger.debug("Store %s redid entry %d", self._container_id, index)
        return True

    def _revert_entry(self, index: int, guid: UUID) -> bool:
        entry = self._entry_for(index, guid)
        if entry is None or entry.reverted:
            return False
        self._history[index] = entry.revert_onto(self._history[index - 1], NOOP_POSITION)
        return True

    def _entry_for(self, index: Any, guid: UUID) -> Optional[HistoryEntry]:
        # Entry 0 is the initial state; it has no predecessor to revert onto.
        if not _is_int(index) or not 0 < index < len(self._history):
            return None
        entry = self._history[index]
        return entry if entry.guid == guid else None

    def _revise_history(self, from_index: int) -> None:
        """Replay every entry from *from_index* on against its recomputed predecessor.

        Positions, guids and the cursor are left untouched.
        """
        from_index = max(from_index, 1)
        if from_index >= len(self._history):
            return
        predecessor = self._history[from_index - 1]
        for index in range(from_index, len(self._history)):
            entry = self._history[index]
            registration = self._registrations[entry.reducer_invoked]
            source = registration
            if entry.reverted and entry.original is not None:
                source = self._registrations[entry.original.reducer_invoked]

            meta = ResolutionMeta(
                action_name=source.action_name,
                guid=entry.guid,
                index=index,
                last_state=to_plain(predecessor.state),
                operation=Operation.UNDO if entry.reverted else Operation.REDO,
                payload=entry.payload,
                reducer_position=source.position,
            )
            produce = partial(_replay, registration, predecessor.state, entry.payload)
            delta = self._pipeline.run(produce, meta, passthrough)
            if not is_mapping(delta):
                # An error boundary dropped this replay.
                delta = {}

            entry = entry.with_state(merge_state(predecessor.state, delta))
            self._history[index] = entry
            predecessor = entry

        logger.debug(
            "Store %s revised history from %d to %d",
            self._container_id,
            from_index,
            len(self._history) - 1,
        )

    # ── Direct state operations ──────────────────────────────────────────

    def set_state(self, delta: Mapping) -> ActionHandle:
        """Deep-merge *delta* into state on the next tick.

        Set a key to ``"$unset"`` to remove it.
        """
        if not is_mapping(delta):
            raise InvalidDeltaError(f"set_state expects a mapping, got {type(delta).__name__}")
        return self._set_state_action(delta)

    def replace_state(self, new_state: Mapping) -> ActionHandle:
        """Replace the whole state on the next tick."""
        if not is_mapping(new_state):
            raise InvalidDeltaError(f"replace_state expects a mapping, got {type(new_state).__name__}")
        return self._replace_state_action(new_state)

    def reset(self, hard: bool = False) -> Optional[ActionHandle]:
        """Return to the initial state.

        A hard reset drops all history but entry 0 and notifies right away.
        A soft reset replaces state with the initial state on the next tick,
        keeping history.
        """
        if hard:
            del self._history[1:]
            self._cursor = 0
            self._pending_revisions.clear()
            logger.info("Store %s hard reset", self._container_id)
            self.trigger()
            return None
        return self._replace_state_action(self.get_initial_state())

    def revert(self, index: int) -> None:
        """Move to *index* and discard every later entry.  Destructive."""
        index = self._clamp(_require_int(index))
        if index == len(self._history) - 1 and index == self._cursor:
            return
        del self._history[index + 1:]
        self._pending_revisions = {i for i in self._pending_revisions if i <= index}
        self._cursor = index
        logger.info("Store %s reverted to entry %d", self._container_id, index)
        self.trigger()

    # ── Time travel ──────────────────────────────────────────────────────

    def goto(self, index: int) -> None:
        """Move the cursor to *index* (clamped to history).  History is kept."""
        self._move_to(_require_int(index))

    def fast_forward(self, n: int = 1) -> None:
        """Step *n* entries forward; a step of 0 counts as 1."""
        self._move_to(self._cursor + _steps(n))

    def rewind(self, n: int = 1) -> None:
        """Step *n* entries back; a step of 0 counts as 1."""
        self._move_to(self._cursor - _steps(n))

    def _move_to(self, index: int) -> None:
        index = self._clamp(index)
        if index == self._cursor:
            return
        self._cursor = index
        self.trigger()

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self._history) - 1))

    # ── Subscriptions ────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Unsubscribe:
        """Call *listener(current_state, previous_state)* on every change."""
        return self._emitter.on(StoreEvent.STATE_CHANGE, listener)

    def trigger(self) -> None:
        """Notify subscribers with the current state and the last one they saw."""
        current = self._current.state
        previous, self._published = self._published, current
        self._emitter.emit(StoreEvent.STATE_CHANGE, to_plain(current), to_plain(previous))

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def _current(self) -> HistoryEntry:
        return self._history[self._cursor]

    @property
    def state(self) -> dict:
        return to_plain(self._current.state)

    def get_state(self, index: Optional[int] = None) -> Optional[dict]:
        """State at *index* (default: the cursor), or None outside history."""
        if index is None:
            index = self._cursor
        _require_int(index)
        if not 0 <= index < len(self._history):
            return None
        return to_plain(self._history[index].state)

    def get_initial_state(self) -> dict:
        return to_plain(self._history[0].state)

    def get_immutable_state(self) -> PMap:
        return self._current.state

    @property
    def history(self) -> tuple[HistoryEntry, ...]:
        return tuple(self._history)

    @property
    def depth(self) -> int:
        return len(self._history)

    @property
    def index(self) -> int:
        return self._cursor

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def container_id(self) -> UUID:
        return self._container_id

    @property
    def reducers(self) -> list[dict]:
        return [r.to_dict() for r in self._registrations]

    def __repr__(self) -> str:
        return f"Store(depth={self.depth}, index={self._cursor}, phase={self._phase.value})"


# ── Helpers ──────────────────────────────────────────────────────────────────

def _replay(registration: ReducerRegistration, snapshot: PMap, payload: Any) -> Mapping:
    return registration.invoke(to_plain(snapshot), payload)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_int(value: Any) -> int:
    if not _is_int(value):
        raise InvalidIndexError(f"expected an integer, got {value!r}")
    return value


def _steps(n: Any) -> int:
    return abs(_require_int(n)) or 1
