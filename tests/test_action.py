"""Tests for Action, ActionHandle and create_actions."""

from unittest.mock import Mock
from uuid import uuid4

import pytest

from restate import Action, ActionHandle, AuditRecord, InvalidActionError, create_actions
from restate.domain.history import Invocation


def _record(index: int = 1) -> AuditRecord:
    return AuditRecord(container_id=uuid4(), history_index=index, guid=uuid4())


class TestConstruction:
    def test_name_and_reducer(self) -> None:
        reducer = Mock()
        action = Action("add_item", reducer)
        assert action.name == "add_item"
        assert action.reducer is reducer
        assert action.call_count == 0

    @pytest.mark.parametrize("name", ["", "   ", None, 42])
    def test_rejects_invalid_names(self, name) -> None:
        with pytest.raises(InvalidActionError):
            Action(name)

    def test_rejects_non_callable_reducer(self) -> None:
        with pytest.raises(InvalidActionError):
            Action("add_item", "reducer")

    def test_flush_frequency_defaults_to_settings(self) -> None:
        assert Action("add_item").flush_frequency is None
        assert Action("add_item", flush_frequency=5).flush_frequency == 5

    def test_create_actions(self) -> None:
        actions = create_actions(["add_item", "remove_item"])
        assert set(actions) == {"add_item", "remove_item"}
        assert all(isinstance(a, Action) for a in actions.values())
        assert actions["remove_item"].name == "remove_item"


class TestInvocation:
    def test_call_returns_a_handle_with_a_fresh_token(self) -> None:
        action = Action("add_item")
        first, second = action(1), action(2)
        assert isinstance(first, ActionHandle)
        assert (first.token, second.token) == (1, 2)
        assert action.call_count == 2

    def test_call_publishes_an_invocation(self) -> None:
        action = Action("add_item")
        handler = Mock()
        action.on_trigger(handler)

        action({"id": 3})

        (invocation,) = handler.call_args.args
        assert isinstance(invocation, Invocation)
        assert invocation.token == 1
        assert invocation.payload == {"id": 3}

    def test_unsubscribed_handlers_are_not_called(self) -> None:
        action = Action("add_item")
        handler = Mock()
        off = action.on_trigger(handler)
        off()
        action()
        handler.assert_not_called()


class TestAuditCache:
    def test_did_invoke_caches_records_per_token(self) -> None:
        action = Action("add_item")
        handle = action()
        one, two = _record(1), _record(4)
        action.did_invoke(handle.token, one)
        action.did_invoke(handle.token, two)
        assert handle.audit_records == (one, two)
        assert action.audit_records(99) == ()

    @pytest.mark.parametrize("method, subscribe", [
        ("undo", "on_undo"),
        ("redo", "on_redo"),
        ("cancel", "on_cancel"),
    ])
    def test_revision_requests_publish_cached_records(self, method: str, subscribe: str) -> None:
        action = Action("add_item")
        handler = Mock()
        getattr(action, subscribe)(handler)
        handle = action()
        record = _record()
        action.did_invoke(handle.token, record)

        getattr(handle, method)()

        handler.assert_called_once_with(handle.token, (record,))

    def test_flush_one_token(self) -> None:
        action = Action("add_item")
        first, second = action(), action()
        action.did_invoke(first.token, _record())
        action.did_invoke(second.token, _record())

        first.flush()
        assert first.audit_records == ()
        assert len(second.audit_records) == 1

    def test_flush_frequency_clears_the_cache(self) -> None:
        action = Action("add_item", flush_frequency=2)
        first = action()
        action.did_invoke(first.token, _record())
        second = action()
        action.did_invoke(second.token, _record())
        assert first.audit_records == ()
        assert second.audit_records == ()


def test_handle_repr() -> None:
    assert repr(Action("add_item")()) == "ActionHandle('add_item', token=1)"
