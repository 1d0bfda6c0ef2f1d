"""Shared fixtures: an in-process fake of the engine API and a fixed clock."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

import pytest

from trading_dashboard.engine.config import EngineConfig

FIXED_NOW = datetime(2024, 3, 13, 10, 30, tzinfo=timezone.utc)  # a Wednesday


class FakeEngineApi:
    """Records every call; per-method responses and failures are configurable.

    ``failures[method]`` may hold one exception (raised on every call) or a
    list consumed one per call (``None`` entries let the call succeed).
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.responses: dict[str, Any] = {}
        self.failures: dict[str, Any] = {}
        self.marketplace: list[dict[str, Any]] = []
        self.dashboard: dict[str, Any] = {"active_strategies": [], "recent_orders": []}
        self.orders: Any = []
        self.summary: dict[str, Any] = {}

    def _call(self, method: str, *args: Any, default: Any = None) -> Any:
        self.calls.append((method, args))
        failure = self.failures.get(method)
        if isinstance(failure, list):
            failure = failure.pop(0) if failure else None
        if failure is not None:
            raise failure
        return self.responses.get(method, default)

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    # ---- Authentication ----
    def login(self, user_id: str, api_key: str) -> dict[str, Any]:
        return self._call(
            "login",
            user_id,
            api_key,
            default={
                "access_token": "access-1",
                "refresh_token": "refresh-1",
                "expires_in": 3600,
                "user_id": user_id,
                "permissions": ["trade"],
            },
        )

    def refresh(self, refresh_token: str) -> dict[str, Any]:
        return self._call("refresh", refresh_token, default={"access_token": "access-2"})

    def logout(self) -> Any:
        return self._call("logout", default={"ok": True})

    # ---- Strategies ----
    def get_marketplace(self) -> list[Any]:
        return self._call("get_marketplace", default=self.marketplace)

    def get_user_dashboard(self) -> dict[str, Any]:
        return self._call("get_user_dashboard", default=self.dashboard)

    def activate_strategy(self, strategy_id: str, allocation_amount: float) -> dict[str, Any]:
        return self._call(
            "activate_strategy",
            strategy_id,
            allocation_amount,
            default={"strategy_id": strategy_id, "status": "active", "allocation_amount": allocation_amount},
        )

    def deactivate_strategy(self, strategy_id: str) -> dict[str, Any]:
        return self._call("deactivate_strategy", strategy_id, default={"strategy_id": strategy_id})

    def pause_strategy(self, strategy_id: str) -> dict[str, Any]:
        return self._call("pause_strategy", strategy_id, default={"strategy_id": strategy_id, "status": "paused"})

    def resume_strategy(self, strategy_id: str) -> dict[str, Any]:
        return self._call("resume_strategy", strategy_id, default={"strategy_id": strategy_id, "status": "active"})

    def update_strategy(self, strategy_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return self._call("update_strategy", strategy_id, dict(payload), default={"strategy_id": strategy_id})

    def delete_strategy(self, strategy_id: str) -> Any:
        return self._call("delete_strategy", strategy_id)

    # ---- Orders ----
    def get_orders(self, params: Mapping[str, Any] | None = None) -> Any:
        return self._call("get_orders", dict(params or {}), default=self.orders)

    def get_orders_summary(self, user_id: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        return self._call("get_orders_summary", user_id, dict(params or {}), default=self.summary)

    def cancel_order(self, order_id: str) -> Any:
        return self._call("cancel_order", order_id, default={"order_id": order_id, "status": "cancelled"})

    def update_order(self, order_id: str, payload: Mapping[str, Any]) -> Any:
        return self._call("update_order", order_id, dict(payload), default={"order_id": order_id})

    def delete_order(self, order_id: str) -> Any:
        return self._call("delete_order", order_id)

    # ---- Status ----
    def get_health(self) -> dict[str, Any]:
        return self._call("get_health", default={"status": "ok"})

    def get_system_status(self) -> dict[str, Any]:
        return self._call("get_system_status", default={"status": "ok"})


@pytest.fixture
def fake_api() -> FakeEngineApi:
    return FakeEngineApi()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def fast_config() -> EngineConfig:
    return EngineConfig(backoff_base_seconds=0.0, backoff_max_seconds=0.0)


@pytest.fixture
def no_sleep():
    slept: list[float] = []
    return slept.append


@pytest.fixture
def user_strategy_raw():
    def _make(strategy_id: str = "S1", status: str = "active", **overrides: Any) -> dict[str, Any]:
        data = {
            "user_id": "U1",
            "strategy_id": strategy_id,
            "status": status,
            "activated_at": "2024-03-01T09:15:00Z",
            "allocation_amount": 5000,
            "custom_parameters": {},
            "total_orders": 10,
            "successful_orders": 7,
            "total_pnl": 1200.5,
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def api_order_raw():
    def _make(order_id: str = "O1", status: str = "PLACED", **overrides: Any) -> dict[str, Any]:
        data = {
            "id": order_id,
            "user_id": "U1",
            "strategy_id": "S1",
            "symbol": "RELIANCE",
            "signal_type": "BUY",
            "quantity": 10,
            "order_type": "LIMIT",
            "price": 2500.0,
            "status": status,
            "filled_quantity": 0,
            "timestamp": "2024-03-13T09:20:00Z",
        }
        data.update(overrides)
        return data

    return _make
