"""Controlled enumerations for the restate domain.

Every categorical value the engine dispatches on is defined here.
Free-form strings are accepted at the public boundary only where they are
parsed straight into one of these enums.
"""

from __future__ import annotations

from enum import Enum


class Strategy(str, Enum):
    """Which pending invocations of a reducer a reduce cycle applies."""

    HEAD = "HEAD"
    TAIL = "TAIL"
    COMPOUND = "COMPOUND"

    @classmethod
    def parse(cls, value: Strategy | str | None, default: Strategy | str | None = None) -> Strategy:
        """Case-insensitive lookup.  Unknown or missing names resolve to TAIL."""
        if value is None:
            value = default
        if isinstance(value, Strategy):
            return value
        if isinstance(value, str):
            try:
                return cls(value.upper())
            except ValueError:
                pass
        return cls.TAIL


class Phase(str, Enum):
    """Reduce-cycle scheduler phases: READY → QUEUED → REDUCING → READY."""

    READY = "ready"
    QUEUED = "queued"
    REDUCING = "reducing"


class Operation(str, Enum):
    """What kind of resolution a middleware link is taking part in."""

    RESOLVE = "resolve"
    CANCEL = "cancel"
    UNDO = "undo"
    REDO = "redo"

    @property
    def is_revision(self) -> bool:
        return self in (Operation.UNDO, Operation.REDO)


class ActionEvent(str, Enum):
    """Event channels an Action publishes on."""

    TRIGGERED = "triggered"
    UNDO = "undo"
    REDO = "redo"
    CANCEL = "cancel"


class StoreEvent(str, Enum):
    """Event channels a Store publishes on."""

    STATE_CHANGE = "state_change"
