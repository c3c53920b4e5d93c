"""Opaque identifier generation for containers, history entries and audits."""

from __future__ import annotations

from uuid import UUID, uuid4


def new_id() -> UUID:
    """Generate a new random UUID v4.

    Guids identify *which* invocation produced a history entry, so they
    must never be derived from positions or counters.
    """
    return uuid4()
