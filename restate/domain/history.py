"""History and audit models: the provenance records behind every snapshot.

A HistoryEntry is one addressable version of a Store's state.  Entries are
frozen: revising history replaces an entry with an updated copy instead of
mutating it, so a snapshot handed out earlier never changes underneath its
holder.

An AuditRecord is the receipt a Store hands to an Action just before it
invokes a reducer for one of the Action's tokens.  The Action keeps the
receipts so that ``undo(token)`` can be routed back to the right Store and
the right history slot later on.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pyrsistent import PMap

from restate.domain.enums import Operation


# ── History ──────────────────────────────────────────────────────────────────

class HistoryEntry(BaseModel):
    """One immutable state snapshot plus the invocation that produced it."""

    state: PMap = Field(..., description="Persistent snapshot of the whole state")
    guid: UUID = Field(..., description="Identity of the logical invocation behind this entry")
    reducer_invoked: int = Field(
        default=0,
        ge=0,
        description="Registration position of the reducer that produced this entry",
    )
    payload: Any = Field(default=None, description="Payload the reducer was invoked with")
    reverted: bool = Field(default=False)
    original: Optional[HistoryEntry] = Field(
        default=None,
        description="Pre-revert entry, kept so a matching redo can restore it",
    )

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    def revert_onto(self, predecessor: HistoryEntry, noop_position: int) -> HistoryEntry:
        """Return a pass-through copy of this entry that keeps *self* as original."""
        return HistoryEntry(
            state=predecessor.state,
            guid=self.guid,
            reducer_invoked=noop_position,
            payload={},
            reverted=True,
            original=self,
        )

    def with_state(self, state: PMap) -> HistoryEntry:
        return self.model_copy(update={"state": state})


HistoryEntry.model_rebuild()


# ── Audit ────────────────────────────────────────────────────────────────────

class AuditRecord(BaseModel):
    """Proof of which Store and slot a single invocation affected."""

    container_id: UUID
    history_index: int = Field(..., ge=0)
    guid: UUID

    model_config = ConfigDict(frozen=True)


# ── Requests ─────────────────────────────────────────────────────────────────

class Invocation(BaseModel):
    """Payload of the TRIGGERED event an Action emits per call."""

    token: int = Field(..., ge=1)
    payload: Any = None

    model_config = ConfigDict(frozen=True)


class PendingRequest(BaseModel):
    """A queued invocation waiting for the next reduce cycle.

    ``canceled`` stays mutable: undo/redo/cancel may flip it until the
    request is resolved.
    """

    token: int
    payload: Any = None
    canceled: bool = False


class ResolutionMeta(BaseModel):
    """Read-only context handed to every middleware link."""

    action_name: str
    guid: UUID
    index: int
    last_state: dict[Any, Any] = Field(default_factory=dict)
    operation: Operation = Operation.RESOLVE
    payload: Any = None
    reducer_position: int

    model_config = ConfigDict(frozen=True)
