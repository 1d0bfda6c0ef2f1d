"""HTTP client for the trading engine REST API.

Auth flow:
- POST /auth/login with user_id + api_key returns access/refresh tokens.
- Every other call carries ``Authorization: Bearer <access_token>``.
- A 401 on a non-auth endpoint asks the token provider to refresh once and
  replays the request once; a second 401 forces a logout.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Mapping

import requests

from trading_dashboard.core.adapters.entity_adapter import activation_payload
from trading_dashboard.core.domain.errors import EngineApiError, kind_for_status
from trading_dashboard.core.ports.engine_api import TokenProvider
from trading_dashboard.engine.config import EngineConfig

LOGGER = logging.getLogger(__name__)

AUTH_PATHS: frozenset[str] = frozenset({"/auth/login", "/auth/refresh", "/auth/logout"})


@dataclass(slots=True)
class EngineClientMetrics:
    total_requests: int = 0
    network_failures: int = 0
    token_refreshes: int = 0
    auth_failures: int = 0


def _extract_detail(response: requests.Response) -> Any:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        for key in ("detail", "message", "error"):
            if payload.get(key):
                return payload[key]
    return None


def _detail_message(detail: Any, status_code: int) -> str:
    if isinstance(detail, str) and detail.strip():
        return detail.strip()
    if isinstance(detail, list) and detail:
        # FastAPI validation errors: [{"loc": [...], "msg": "...", ...}]
        messages = [str(item.get("msg")) for item in detail if isinstance(item, dict) and item.get("msg")]
        if messages:
            return "; ".join(messages)
    if isinstance(detail, dict) and detail:
        return json.dumps(detail, sort_keys=True)
    return f"HTTP {status_code}"


class EngineApiClient:
    """Engine REST client implementing the ``EngineApi`` port."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        session: requests.Session | None = None,
        token_provider: TokenProvider | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.base_url = self.config.normalized_base_url
        self.timeout_seconds = self.config.timeout_seconds
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
            }
        )
        self.token_provider = token_provider
        self._metrics = EngineClientMetrics()

    def bind_token_provider(self, provider: TokenProvider | None) -> None:
        self.token_provider = provider

    def metrics_snapshot(self) -> dict[str, int]:
        return asdict(self._metrics)

    def close(self) -> None:
        self.session.close()

    def _auth_headers(self) -> dict[str, str]:
        if self.token_provider is None:
            return {}
        token = self.token_provider.access_token
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None,
        payload: Any,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        self._metrics.total_requests += 1
        try:
            return self.session.request(
                method=method,
                url=url,
                headers=self._auth_headers(),
                params=dict(params) if params else None,
                json=payload,
                timeout=self.timeout_seconds,
            )
        except requests.Timeout as exc:
            self._metrics.network_failures += 1
            raise EngineApiError("network", "Request timeout", endpoint=path) from exc
        except requests.RequestException as exc:
            self._metrics.network_failures += 1
            raise EngineApiError("network", f"Network connection failed: {exc}", endpoint=path) from exc

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Any = None,
    ) -> Any:
        response = self._send(method, path, params=params, payload=payload)

        if response.status_code == 401 and path not in AUTH_PATHS and self.token_provider is not None:
            self._metrics.token_refreshes += 1
            LOGGER.info("Access token rejected, refreshing endpoint=%s", path)
            if self.token_provider.refresh_access_token():
                response = self._send(method, path, params=params, payload=payload)
            if response.status_code == 401:
                self._metrics.auth_failures += 1
                self.token_provider.force_logout("token refresh failed")

        if response.status_code >= 400:
            detail = _extract_detail(response)
            message = _detail_message(detail, response.status_code)
            kind = kind_for_status(response.status_code)
            LOGGER.warning(
                "Engine call failed method=%s endpoint=%s status=%s kind=%s message=%s",
                method,
                path,
                response.status_code,
                kind,
                message,
            )
            raise EngineApiError(
                kind,
                message,
                status_code=response.status_code,
                endpoint=path,
                detail=detail,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise EngineApiError(
                "unknown",
                "Engine returned a non-JSON response",
                status_code=response.status_code,
                endpoint=path,
            ) from exc

    # ---- Authentication ----
    def login(self, user_id: str, api_key: str) -> dict[str, Any]:
        return self._request("POST", "/auth/login", payload={"user_id": user_id, "api_key": api_key})

    def refresh(self, refresh_token: str) -> dict[str, Any]:
        return self._request("POST", "/auth/refresh", payload={"refresh_token": refresh_token})

    def logout(self) -> Any:
        return self._request("POST", "/auth/logout")

    # ---- Strategies ----
    def get_marketplace(self) -> list[Any]:
        data = self._request("GET", "/marketplace")
        return data if isinstance(data, list) else []

    def get_user_dashboard(self) -> dict[str, Any]:
        data = self._request("GET", "/user/dashboard")
        return data if isinstance(data, dict) else {}

    def activate_strategy(self, strategy_id: str, allocation_amount: float) -> dict[str, Any]:
        return self._request(
            "POST",
            f"/user/activate/{strategy_id}",
            payload=activation_payload(allocation_amount),
        )

    def deactivate_strategy(self, strategy_id: str) -> dict[str, Any]:
        return self._request("POST", f"/user/deactivate/{strategy_id}")

    def pause_strategy(self, strategy_id: str) -> dict[str, Any]:
        return self._request("POST", f"/user/pause/{strategy_id}")

    def resume_strategy(self, strategy_id: str) -> dict[str, Any]:
        return self._request("POST", f"/user/resume/{strategy_id}")

    def update_strategy(self, strategy_id: str, payload: Mapping[str, Any]) -> dict[str, Any]:
        return self._request("PUT", f"/strategies/{strategy_id}", payload=dict(payload))

    def delete_strategy(self, strategy_id: str) -> Any:
        return self._request("DELETE", f"/strategies/{strategy_id}")

    # ---- Orders ----
    def get_orders(self, params: Mapping[str, Any] | None = None) -> Any:
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        user_id = query.pop("user_id", None)
        path = f"/orders/{user_id}" if user_id else "/orders"
        return self._request("GET", path, params=query)

    def get_orders_summary(self, user_id: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        query = {k: v for k, v in (params or {}).items() if v is not None and v != ""}
        data = self._request("GET", f"/orders/{user_id}/summary", params=query)
        return data if isinstance(data, dict) else {}

    def cancel_order(self, order_id: str) -> Any:
        return self._request("POST", f"/orders/{order_id}/cancel")

    def update_order(self, order_id: str, payload: Mapping[str, Any]) -> Any:
        return self._request("PUT", f"/orders/{order_id}", payload=dict(payload))

    def delete_order(self, order_id: str) -> Any:
        return self._request("DELETE", f"/orders/{order_id}")

    # ---- Status ----
    def get_health(self) -> dict[str, Any]:
        return self._request("GET", "/health")

    def get_system_status(self) -> dict[str, Any]:
        return self._request("GET", "/system/status")
