"""
Semantic test: root store wiring between authentication and entity stores.

Invariant:
Logging out (voluntarily or forced by an authentication failure) clears the
strategy and order stores; logging in scopes order queries to the user.
"""

from __future__ import annotations

import pytest

from trading_dashboard.core.domain.errors import EngineApiError, StoreError
from trading_dashboard.engine.storage import InMemoryStorage
from trading_dashboard.stores.root_store import RootStore


@pytest.fixture
def root(fake_api, fast_config, clock, no_sleep, user_strategy_raw, api_order_raw) -> RootStore:
    fake_api.dashboard = {"active_strategies": [user_strategy_raw("S1")], "recent_orders": []}
    fake_api.orders = [api_order_raw("O1")]
    return RootStore(fast_config, api=fake_api, clock=clock, sleep=no_sleep, sinks=[])


def test_login_scopes_orders_to_user(root, fake_api) -> None:
    root.auth.login("U1", "key-1")
    root.orders.fetch_orders()

    assert root.orders.user_id == "U1"
    assert fake_api.calls[-1][1][0]["user_id"] == "U1"


def test_logout_clears_entity_stores(root) -> None:
    root.auth.login("U1", "key-1")
    root.strategies.fetch_strategies()
    root.orders.fetch_orders()

    root.auth.logout()

    assert root.strategies.strategies == ()
    assert root.orders.orders == ()
    assert root.orders.user_id is None


def test_authentication_failure_forces_logout(root, fake_api) -> None:
    root.auth.login("U1", "key-1")
    root.strategies.fetch_strategies()
    fake_api.failures["pause_strategy"] = EngineApiError("authentication", "Session expired", status_code=401)

    with pytest.raises(StoreError):
        root.strategies.pause("S1")

    assert not root.auth.is_authenticated
    assert root.storage.snapshot() == {}
    assert root.strategies.strategies == ()


def test_context_manager_restores_and_disposes(fake_api, fast_config) -> None:
    storage = InMemoryStorage({"engine_access_token": "stored"})
    closed = []
    fake_api.close = lambda: closed.append(True)

    with RootStore(fast_config, api=fake_api, storage=storage, sinks=[]) as root:
        assert root.auth.is_authenticated

    assert closed == [True]
    assert root.bus.closed
    root.dispose()
    assert closed == [True]

