"""
Semantic test: engine HTTP client error classification and token refresh.

Invariant:
Every failed engine call surfaces as an EngineApiError of exactly one kind.
A 401 on a non-auth endpoint triggers one token refresh and one replay; a
second 401 forces a logout.
"""

from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from trading_dashboard.core.domain.errors import EngineApiError
from trading_dashboard.engine.client import EngineApiClient
from trading_dashboard.engine.config import EngineConfig


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = None, *, raw: bytes | None = None) -> None:
        self.status_code = status_code
        if raw is not None:
            self.content = raw
        else:
            self.content = b"" if body is None else json.dumps(body).encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))


class FakeSession:
    def __init__(self, *responses: Any) -> None:
        self.headers: dict[str, str] = {}
        self.queue = list(responses)
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def request(self, **kwargs: Any) -> FakeResponse:
        self.requests.append(kwargs)
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


class FakeTokens:
    def __init__(self, token: str | None = "access-1", *, refresh_ok: bool = True) -> None:
        self._token = token
        self.refresh_ok = refresh_ok
        self.refreshes = 0
        self.logouts: list[str] = []

    @property
    def access_token(self) -> str | None:
        return self._token

    def refresh_access_token(self) -> bool:
        self.refreshes += 1
        if self.refresh_ok:
            self._token = "access-2"
        return self.refresh_ok

    def force_logout(self, reason: str) -> None:
        self.logouts.append(reason)


def make_client(session: FakeSession, tokens: FakeTokens | None = None) -> EngineApiClient:
    config = EngineConfig(base_url="http://engine.test:8000/", timeout_seconds=5.0)
    return EngineApiClient(config, session=session, token_provider=tokens)  # type: ignore[arg-type]


def test_bearer_header_timeout_and_json_headers() -> None:
    session = FakeSession(FakeResponse(200, {"status": "ok"}))
    client = make_client(session, FakeTokens())

    assert client.get_health() == {"status": "ok"}

    sent = session.requests[0]
    assert sent["url"] == "http://engine.test:8000/health"
    assert sent["headers"] == {"Authorization": "Bearer access-1"}
    assert sent["timeout"] == 5.0
    assert session.headers["Content-Type"] == "application/json"


def test_no_authorization_header_without_token() -> None:
    session = FakeSession(FakeResponse(200, []))
    client = make_client(session, FakeTokens(token=None))
    assert client.get_marketplace() == []
    assert session.requests[0]["headers"] == {}


def test_timeout_is_a_network_error() -> None:
    session = FakeSession(requests.Timeout("read timed out"))
    client = make_client(session)

    with pytest.raises(EngineApiError) as info:
        client.get_user_dashboard()

    assert info.value.kind == "network"
    assert info.value.message == "Request timeout"
    assert info.value.retryable
    assert client.metrics_snapshot()["network_failures"] == 1


def test_connection_error_is_a_network_error() -> None:
    session = FakeSession(requests.ConnectionError("refused"))
    with pytest.raises(EngineApiError) as info:
        make_client(session).get_marketplace()
    assert info.value.kind == "network"


def test_validation_detail_is_surfaced_verbatim() -> None:
    session = FakeSession(FakeResponse(422, {"detail": "Insufficient capital for allocation"}))
    client = make_client(session, FakeTokens())

    with pytest.raises(EngineApiError) as info:
        client.activate_strategy("S1", 1000.0)

    assert info.value.kind == "validation"
    assert info.value.message == "Insufficient capital for allocation"
    assert info.value.status_code == 422
    assert not info.value.retryable
    assert session.requests[0]["json"] == {"allocation_amount": 1000.0}


def test_fastapi_error_list_is_joined() -> None:
    detail = [{"loc": ["body", "quantity"], "msg": "must be positive"}, {"loc": ["body"], "msg": "bad symbol"}]
    session = FakeSession(FakeResponse(400, {"detail": detail}))
    with pytest.raises(EngineApiError) as info:
        make_client(session).update_order("O1", {"quantity": -1})
    assert info.value.message == "must be positive; bad symbol"


def test_server_error_is_remote_internal() -> None:
    session = FakeSession(FakeResponse(503, raw=b"<html>Service Unavailable</html>"))
    with pytest.raises(EngineApiError) as info:
        make_client(session).get_system_status()
    assert info.value.kind == "remote_internal"
    assert info.value.message == "HTTP 503"


def test_non_json_success_body_is_unknown() -> None:
    session = FakeSession(FakeResponse(200, raw=b"not json"))
    with pytest.raises(EngineApiError) as info:
        make_client(session).get_health()
    assert info.value.kind == "unknown"


def test_empty_success_body_returns_none() -> None:
    session = FakeSession(FakeResponse(204))
    assert make_client(session, FakeTokens()).delete_order("O1") is None
    assert session.requests[0]["method"] == "DELETE"


def test_401_refreshes_once_and_replays() -> None:
    session = FakeSession(FakeResponse(401, {"detail": "expired"}), FakeResponse(200, {"active_strategies": []}))
    tokens = FakeTokens()
    client = make_client(session, tokens)

    assert client.get_user_dashboard() == {"active_strategies": []}

    assert tokens.refreshes == 1
    assert tokens.logouts == []
    assert session.requests[1]["headers"] == {"Authorization": "Bearer access-2"}


def test_second_401_forces_logout() -> None:
    session = FakeSession(FakeResponse(401, {"detail": "expired"}), FakeResponse(401, {"detail": "revoked"}))
    tokens = FakeTokens()
    client = make_client(session, tokens)

    with pytest.raises(EngineApiError) as info:
        client.get_user_dashboard()

    assert info.value.kind == "authentication"
    assert tokens.refreshes == 1
    assert tokens.logouts == ["token refresh failed"]
    assert client.metrics_snapshot()["auth_failures"] == 1


def test_failed_refresh_does_not_replay() -> None:
    session = FakeSession(FakeResponse(401, {"detail": "expired"}))
    tokens = FakeTokens(refresh_ok=False)

    with pytest.raises(EngineApiError) as info:
        make_client(session, tokens).get_marketplace()

    assert info.value.kind == "authentication"
    assert len(session.requests) == 1
    assert tokens.logouts == ["token refresh failed"]


def test_login_401_is_not_refreshed() -> None:
    session = FakeSession(FakeResponse(401, {"detail": "Invalid API key"}))
    tokens = FakeTokens()

    with pytest.raises(EngineApiError) as info:
        make_client(session, tokens).login("U1", "wrong")

    assert info.value.message == "Invalid API key"
    assert tokens.refreshes == 0


def test_orders_are_routed_by_user_and_params_cleaned() -> None:
    session = FakeSession(FakeResponse(200, []), FakeResponse(200, {"total_orders": 0}))
    client = make_client(session, FakeTokens())

    client.get_orders({"user_id": "U1", "limit": 20, "offset": 0, "status": None, "symbol": ""})
    client.get_orders_summary("U1", {"start_date": "2024-03-13T00:00:00+00:00"})

    assert session.requests[0]["url"] == "http://engine.test:8000/orders/U1"
    assert session.requests[0]["params"] == {"limit": 20, "offset": 0}
    assert session.requests[1]["url"] == "http://engine.test:8000/orders/U1/summary"


def test_close_closes_session() -> None:
    session = FakeSession()
    make_client(session).close()
    assert session.closed
