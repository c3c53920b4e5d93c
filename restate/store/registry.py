"""Reducer registrations and the built-in reducers every Store carries.

A registration binds one Action to one Store.  Its position is assigned at
binding time, never reused, and decides the order reducers run in within
a reduce cycle.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from restate.core.action import Action, Reducer
from restate.domain.enums import Strategy
from restate.domain.history import AuditRecord, PendingRequest
from restate.store.merge import deep_merge, replacement_delta

# Positions of the built-in reducers.
NOOP_POSITION = 0
SET_STATE_POSITION = 1
REPLACE_STATE_POSITION = 2


class ReducerRegistration:
    """One Action bound to one Store, with its queue of pending requests."""

    __slots__ = ("action", "reducer", "position", "strategy", "requests")

    def __init__(self, action: Action, reducer: Reducer, position: int, strategy: Strategy) -> None:
        self.action = action
        self.reducer = reducer
        self.position = position
        self.strategy = strategy
        self.requests: list[PendingRequest] = []

    @property
    def action_name(self) -> str:
        return self.action.name

    def invoke(
        self,
        last_state: dict,
        payload: Any,
        record: Optional[AuditRecord] = None,
        token: Optional[int] = None,
    ) -> Mapping:
        """Run the reducer.  Fresh invocations are audited; revisions are not."""
        if record is not None and token is not None:
            self.action.did_invoke(token, record)
        return self.reducer(last_state, payload)

    def enqueue(self, token: int, payload: Any) -> None:
        self.requests.append(PendingRequest(token=token, payload=payload))

    def mark_pending(self, token: int, canceled: bool) -> bool:
        """Flip the cancel flag of a still-pending request; False if none."""
        for request in self.requests:
            if request.token == token:
                request.canceled = canceled
                return True
        return False

    def take_requests(self) -> list[PendingRequest]:
        """Pop the requests this cycle applies, according to the strategy."""
        requests, self.requests = self.requests, []
        if not requests:
            return []
        if self.strategy is Strategy.COMPOUND:
            return requests
        if self.strategy is Strategy.HEAD:
            return requests[:1]
        return requests[-1:]

    def to_dict(self) -> dict:
        return {
            "action_name": self.action_name,
            "position": self.position,
            "strategy": self.strategy.value,
            "pending": len(self.requests),
        }


# ── Built-in reducers ────────────────────────────────────────────────────────

def noop_reducer(last_state: dict, payload: Any = None) -> dict:
    """Pass-through; the reducer of every reverted history entry."""
    return last_state


def set_state_reducer(last_state: dict, delta: Mapping) -> dict:
    return deep_merge(last_state, delta)


def replace_state_reducer(last_state: dict, new_state: Mapping) -> dict:
    return replacement_delta(last_state, new_state)
