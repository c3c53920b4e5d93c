"""Snapshot merge rules.

Snapshots are pyrsistent ``PMap``s (nested mappings become ``PMap``,
sequences ``PVector``), so two snapshots compare structurally with ``==``
and a no-op delta can be detected without walking the tree by hand.

Merge rule, applied key by key and recursively into nested mappings:
    - ``UNSET`` ("$unset")  → delete the key
    - ``UNDEFINED``         → keep the previous value
    - anything else         → overwrite (sequences are replaced, not merged)
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pyrsistent import PMap, freeze, pmap, thaw

UNSET = "$unset"


class _Undefined:
    """Marker for "no value supplied"; merging it keeps the previous value."""

    _instance: _Undefined | None = None

    def __new__(cls) -> _Undefined:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()


def is_mapping(value: Any) -> bool:
    return isinstance(value, Mapping)


def is_unset(value: Any) -> bool:
    return isinstance(value, str) and value == UNSET


def to_snapshot(state: Mapping | None) -> PMap:
    """Freeze a plain mapping into a persistent snapshot."""
    if not state:
        return pmap()
    return merge_state(pmap(), state)


def to_plain(snapshot: PMap) -> dict:
    """Thaw a snapshot into fresh, caller-owned dicts and lists."""
    return thaw(snapshot)


def merge_state(prev: PMap, delta: Mapping) -> PMap:
    """Deep-merge *delta* into *prev*, returning a new snapshot."""
    result = prev
    for key, value in delta.items():
        if value is UNDEFINED:
            continue
        if is_unset(value):
            result = result.discard(key)
            continue
        current = prev.get(key)
        if is_mapping(value) and isinstance(current, PMap):
            result = result.set(key, merge_state(current, value))
        elif is_mapping(value):
            result = result.set(key, merge_state(pmap(), value))
        else:
            result = result.set(key, freeze(value))
    return result


def deep_merge(base: Mapping, delta: Mapping) -> dict:
    """Plain-dict deep merge; sentinels are carried through untouched."""
    merged = dict(base)
    for key, value in delta.items():
        current = merged.get(key)
        if is_mapping(value) and is_mapping(current):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def replacement_delta(current: Mapping, new_state: Mapping) -> dict:
    """Delta that turns *current* into exactly *new_state* under merge_state.

    Keys missing from *new_state* are marked UNSET at every depth, so the
    deep merge cannot leave stale nested keys behind.
    """
    delta: dict = {}
    for key in current:
        if key not in new_state:
            delta[key] = UNSET
    for key, value in new_state.items():
        old = current.get(key)
        if is_mapping(value) and is_mapping(old):
            delta[key] = replacement_delta(old, value)
        else:
            delta[key] = value
    return delta
