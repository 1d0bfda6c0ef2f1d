"""Trading engine API protocol.

This module defines the remote boundary consumed by the stores. Concrete
implementations adapt a specific transport (HTTP, test fakes) to this
protocol. Payloads are raw JSON-compatible objects; normalization into
canonical entities is the entity adapter's job, never the transport's.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol


class EngineApi(Protocol):
    """Engine-facing boundary.

    Every method raises ``EngineApiError`` on failure and returns the decoded
    JSON body on success.
    """

    # ---- Authentication ----
    def login(self, user_id: str, api_key: str) -> dict[str, Any]:
        """POST /auth/login -> {access_token, refresh_token, expires_in, user_id, permissions}."""

    def refresh(self, refresh_token: str) -> dict[str, Any]:
        """POST /auth/refresh -> {access_token, ...}."""

    def logout(self) -> Any:
        """POST /auth/logout."""

    # ---- Strategies ----
    def get_marketplace(self) -> list[Any]:
        """GET /marketplace -> EngineStrategy[]."""

    def get_user_dashboard(self) -> dict[str, Any]:
        """GET /user/dashboard -> {user_info, active_strategies, recent_orders, ...}."""

    def activate_strategy(self, strategy_id: str, allocation_amount: float) -> dict[str, Any]:
        """POST /user/activate/{id} {allocation_amount} -> UserStrategy."""

    def deactivate_strategy(self, strategy_id: str) -> dict[str, Any]:
        """POST /user/deactivate/{id} -> UserStrategy."""

    def pause_strategy(self, strategy_id: str) -> dict[str, Any]:
        """POST /user/pause/{id} -> UserStrategy."""

    def resume_strategy(self, strategy_id: str) -> dict[str, Any]:
        """POST /user/resume/{id} -> UserStrategy."""

    def update_strategy(self, strategy_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        """PUT /strategies/{id}."""

    def delete_strategy(self, strategy_id: str) -> Any:
        """DELETE /strategies/{id}."""

    # ---- Orders ----
    def get_orders(self, params: Mapping[str, Any] | None = None) -> Any:
        """GET /orders or /orders/{user_id} -> EngineOrder[] or a paginated envelope."""

    def get_orders_summary(self, user_id: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """GET /orders/{user_id}/summary."""

    def cancel_order(self, order_id: str) -> Any:
        """POST /orders/{id}/cancel."""

    def update_order(self, order_id: str, payload: Mapping[str, Any]) -> Any:
        """PUT /orders/{id}."""

    def delete_order(self, order_id: str) -> Any:
        """DELETE /orders/{id}."""

    # ---- Status ----
    def get_health(self) -> dict[str, Any]:
        """GET /health."""

    def get_system_status(self) -> dict[str, Any]:
        """GET /system/status."""


class TokenProvider(Protocol):
    """Source of bearer tokens for the HTTP client (implemented by AuthStore)."""

    @property
    def access_token(self) -> str | None:
        """Current access token, if authenticated."""

    def refresh_access_token(self) -> bool:
        """Try to obtain a new access token; return True on success."""

    def force_logout(self, reason: str) -> None:
        """Drop all credentials after an unrecoverable authentication failure."""
