from restate.core.action import Action, ActionHandle, create_actions
from restate.domain.enums import Operation, Phase, Strategy
from restate.domain.errors import (
    CircularInvocationError,
    InvalidActionError,
    InvalidDeltaError,
    InvalidIndexError,
    InvalidReducerError,
    InvalidReturnError,
    RestateError,
)
from restate.domain.history import AuditRecord, HistoryEntry, ResolutionMeta
from restate.store.merge import UNDEFINED, UNSET
from restate.store.middleware import exception_handler, log_meta
from restate.store.scheduler import AsyncioScheduler, ManualScheduler
from restate.store.state_store import Store

__all__ = [
    # actions
    "Action", "ActionHandle", "create_actions",
    # store
    "Store", "AsyncioScheduler", "ManualScheduler", "exception_handler", "log_meta",
    "UNSET", "UNDEFINED",
    # domain
    "Operation", "Phase", "Strategy", "AuditRecord", "HistoryEntry", "ResolutionMeta",
    # errors
    "RestateError", "CircularInvocationError", "InvalidActionError", "InvalidDeltaError",
    "InvalidIndexError", "InvalidReducerError", "InvalidReturnError",
]
