"""Tests for the snapshot merge rules."""

from pyrsistent import PMap, pmap

from restate.store.merge import (
    UNDEFINED,
    UNSET,
    deep_merge,
    merge_state,
    replacement_delta,
    to_plain,
    to_snapshot,
)


class TestMergeState:
    def test_overwrites_and_adds(self) -> None:
        merged = merge_state(to_snapshot({"a": 1}), {"a": 2, "b": 3})
        assert to_plain(merged) == {"a": 2, "b": 3}

    def test_unset_deletes(self) -> None:
        merged = merge_state(to_snapshot({"a": 1, "b": 2}), {"a": UNSET, "missing": UNSET})
        assert to_plain(merged) == {"b": 2}

    def test_undefined_keeps_value(self) -> None:
        merged = merge_state(to_snapshot({"a": 1}), {"a": UNDEFINED})
        assert to_plain(merged) == {"a": 1}

    def test_nested_mappings_merge(self) -> None:
        prev = to_snapshot({"user": {"name": "Peter", "age": 3}})
        merged = merge_state(prev, {"user": {"age": 4, "name": UNSET}})
        assert to_plain(merged) == {"user": {"age": 4}}

    def test_sequences_are_replaced(self) -> None:
        merged = merge_state(to_snapshot({"items": [1, 2, 3]}), {"items": [4]})
        assert to_plain(merged) == {"items": [4]}

    def test_no_op_delta_is_structurally_equal(self) -> None:
        prev = to_snapshot({"cart": [{"id": 1}], "total": 0.5})
        merged = merge_state(prev, {"cart": [{"id": 1}], "total": 0.5})
        assert merged == prev

    def test_previous_snapshot_is_untouched(self) -> None:
        prev = to_snapshot({"a": {"b": 1}})
        merge_state(prev, {"a": {"b": 2}})
        assert prev["a"]["b"] == 1


class TestSnapshots:
    def test_to_snapshot_freezes_nested_values(self) -> None:
        snapshot = to_snapshot({"a": {"b": [1]}})
        assert isinstance(snapshot, PMap)
        assert isinstance(snapshot["a"], PMap)

    def test_empty(self) -> None:
        assert to_snapshot(None) == pmap()
        assert to_snapshot({}) == pmap()

    def test_to_plain_returns_fresh_containers(self) -> None:
        snapshot = to_snapshot({"items": [1]})
        plain = to_plain(snapshot)
        plain["items"].append(2)
        assert to_plain(snapshot) == {"items": [1]}


class TestDeepMerge:
    def test_merges_plain_dicts(self) -> None:
        base = {"a": {"x": 1}, "b": 1}
        assert deep_merge(base, {"a": {"y": 2}}) == {"a": {"x": 1, "y": 2}, "b": 1}
        assert base == {"a": {"x": 1}, "b": 1}

    def test_carries_sentinels(self) -> None:
        assert deep_merge({"a": 1}, {"a": UNSET}) == {"a": UNSET}


class TestReplacementDelta:
    def test_marks_missing_keys_at_every_depth(self) -> None:
        current = {"a": 1, "b": {"x": 1, "y": 2}}
        delta = replacement_delta(current, {"b": {"y": 3}})
        assert delta == {"a": UNSET, "b": {"x": UNSET, "y": 3}}

    def test_applied_delta_yields_the_new_state(self) -> None:
        current = {"a": 1, "b": {"x": 1, "y": 2}}
        new_state = {"b": {"y": 3}, "c": 0}
        merged = merge_state(to_snapshot(current), replacement_delta(current, new_state))
        assert to_plain(merged) == new_state
