"""Error taxonomy.

Every error here is a programmer-contract violation, not a recoverable
runtime condition.  They are raised synchronously at the point of the
violation; errors raised during a deferred reduce cycle propagate out of
the scheduler callback that ran it.
"""

from __future__ import annotations


class RestateError(Exception):
    """Base class for all restate contract violations."""

    default_message = "restate contract violation"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidReducerError(RestateError):
    """Raised when binding without a reducer function."""

    default_message = "a reducer function is required to bind an action"


class InvalidActionError(InvalidReducerError):
    """Raised when a value used as an Action was not built by ``Action()``.

    Also raised by ``Action()`` itself for a missing or empty name.
    Subclasses InvalidReducerError: binding a non-Action is a bad binding too.
    """

    default_message = "actions must be created with Action(name)"


class InvalidDeltaError(RestateError):
    """Raised when set_state/replace_state/Store() receive a non-mapping."""

    default_message = "state deltas must be mappings"


class InvalidReturnError(RestateError):
    """Raised when a reducer or middleware link yields a non-mapping."""

    default_message = "reducers and middleware must return a mapping"


class InvalidIndexError(RestateError):
    """Raised when a history index or step count is not an integer."""

    default_message = "history indices must be integers"


class CircularInvocationError(RestateError):
    """Raised when an Action fires into a Store that is mid reduce cycle."""

    default_message = (
        "an action bound to this store was invoked while the store was reducing"
    )
