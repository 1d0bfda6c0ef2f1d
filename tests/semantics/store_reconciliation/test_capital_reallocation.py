"""
Semantic test: capital reallocation is two steps without rollback.

Invariant:
Reallocation deactivates then re-activates with the new amount. If the
second step fails the strategy stays STOPPED locally, the error is
surfaced to the caller and the engine saw exactly one activation attempt.
"""

from __future__ import annotations

import pytest

from trading_dashboard.core.domain.errors import EngineApiError, StoreError
from trading_dashboard.stores.strategy_store import StrategyStore


@pytest.fixture
def store(fake_api, fast_config, clock, no_sleep, user_strategy_raw) -> StrategyStore:
    fake_api.dashboard = {
        "active_strategies": [
            user_strategy_raw("S1", "active", allocation_amount=5000),
            user_strategy_raw("S4", "available"),
        ]
    }
    s = StrategyStore(fake_api, config=fast_config, clock=clock, sleep=no_sleep)
    s.fetch_strategies()
    return s


def test_reallocation_success(store, fake_api) -> None:
    store.reallocate_capital("S1", 20000)

    s1 = store.get("S1")
    assert s1.status == "ACTIVE"
    assert s1.capital_allocated == 20000.0
    assert [name for name, _ in fake_api.calls[-2:]] == ["deactivate_strategy", "activate_strategy"]
    assert not store.is_submitting


def test_second_step_failure_leaves_strategy_stopped(store, fake_api) -> None:
    fake_api.failures["activate_strategy"] = EngineApiError("remote_internal", "allocation service down", status_code=502)

    with pytest.raises(StoreError) as info:
        store.reallocate_capital("S1", 20000)

    assert info.value.action == "reallocate_capital"
    assert info.value.kind == "remote_internal"
    assert "allocation service down" in info.value.message
    assert store.error is info.value

    s1 = store.get("S1")
    assert s1.status == "STOPPED"
    assert s1.capital_allocated == 5000.0
    assert fake_api.count("deactivate_strategy") == 1
    assert fake_api.count("activate_strategy") == 1
    assert not store.is_submitting


def test_first_step_failure_changes_nothing(store, fake_api) -> None:
    fake_api.failures["deactivate_strategy"] = EngineApiError("network", "Request timeout")

    with pytest.raises(StoreError) as info:
        store.reallocate_capital("S1", 20000)

    assert info.value.kind == "network"
    assert store.get("S1").status == "ACTIVE"
    assert fake_api.count("activate_strategy") == 0


def test_reallocation_requires_running_strategy(store, fake_api) -> None:
    with pytest.raises(StoreError) as info:
        store.reallocate_capital("S4", 1000)
    assert info.value.kind == "validation"

    with pytest.raises(StoreError):
        store.reallocate_capital("S1", -5)
    assert fake_api.count("deactivate_strategy") == 0
