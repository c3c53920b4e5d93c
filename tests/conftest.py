"""Shared fixtures: a manually ticked scheduler, a shopping-cart store and its actions."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from restate import Action, ManualScheduler, Store

from tests.carts import PRICES, add_item, checkout, clear_cart, remove_item


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def store(scheduler: ManualScheduler) -> Store:
    return Store({"cart": [], "price_list": dict(PRICES)}, scheduler=scheduler)


@pytest.fixture
def listener(store: Store) -> Mock:
    spy = Mock()
    store.subscribe(spy)
    return spy


@pytest.fixture
def add() -> Action:
    return Action("add_item")


@pytest.fixture
def cart_reducers() -> dict:
    return {
        "add_item": add_item,
        "remove_item": remove_item,
        "clear_cart": clear_cart,
        "checkout": checkout,
    }
