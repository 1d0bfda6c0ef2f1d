"""Authentication store: the only writer of persisted credentials."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping

from trading_dashboard.core.domain.errors import EngineApiError, StoreError, classify_error
from trading_dashboard.core.events.events import AuthStateChangedEvent
from trading_dashboard.core.ports.token_storage import (
    ACCESS_TOKEN_KEY,
    AUTH_STORAGE_KEYS,
    REFRESH_TOKEN_KEY,
    USER_DATA_KEY,
    KeyValueStorage,
)
from trading_dashboard.engine.retry import RetryPolicy, with_retry
from trading_dashboard.stores.base import ActionKey, ReconcilingStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuthState:
    authenticated: bool = False
    user_id: str | None = None
    permissions: tuple[str, ...] = ()
    expires_at: datetime | None = None

    is_loading: bool = False
    in_flight: frozenset[ActionKey] = frozenset()
    error: StoreError | None = None
    last_updated: datetime | None = None


class AuthStore(ReconcilingStore[AuthState]):
    """Login, token refresh and logout.

    Tokens live only in the key-value storage and never appear in published
    snapshots. Implements the HTTP client's ``TokenProvider`` protocol.
    """

    name = "auth"

    def __init__(self, api: Any, storage: KeyValueStorage, **kwargs: Any) -> None:
        self._storage = storage
        super().__init__(api, **kwargs)
        self._login_policy = RetryPolicy(
            max_attempts=self._config.login_max_attempts,
            base_delay=self._config.backoff_base_seconds,
            max_delay=self._config.backoff_max_seconds,
            sleep=self._fetch_policy.sleep,
        )

    def _initial_state(self) -> AuthState:
        return AuthState()

    # ---- TokenProvider ----
    @property
    def access_token(self) -> str | None:
        return self._storage.get(ACCESS_TOKEN_KEY) or None

    def refresh_access_token(self) -> bool:
        return self.refresh()

    def force_logout(self, reason: str) -> None:
        """Drop credentials locally without calling the engine."""
        if not self._state.authenticated and self.access_token is None:
            return
        LOGGER.warning("Forced logout user=%s reason=%s", self._state.user_id, reason)
        self._clear_credentials(reason)

    # ---- Reads ----
    @property
    def is_authenticated(self) -> bool:
        return self._state.authenticated and self.access_token is not None

    @property
    def current_user(self) -> dict[str, Any] | None:
        if not self._state.authenticated:
            return None
        return {
            "user_id": self._state.user_id,
            "permissions": list(self._state.permissions),
            "expires_at": self._state.expires_at.isoformat() if self._state.expires_at else None,
        }

    # ---- Actions ----
    def initialize(self) -> bool:
        """Restore a previous session from storage; returns True if one was found."""
        token = self.access_token
        if token is None:
            return False
        user = _load_user(self._storage.get(USER_DATA_KEY))
        self._set_state(
            "initialize",
            authenticated=True,
            user_id=user.get("user_id"),
            permissions=tuple(user.get("permissions") or ()),
            expires_at=_parse_dt(user.get("expires_at")),
        )
        self._bus.emit(AuthStateChangedEvent(authenticated=True, user_id=self._state.user_id, reason="restored"))
        LOGGER.info("Session restored user=%s", self._state.user_id)
        return True

    def login(self, user_id: str, api_key: str) -> dict[str, Any] | None:
        if not user_id or not api_key:
            raise self._reject("login", (user_id,), "User id and API key are required")

        def _call() -> Mapping[str, Any]:
            body = with_retry(lambda: self._api.login(user_id, api_key), self._login_policy, label="auth.login")
            if not isinstance(body, Mapping) or not body.get("access_token"):
                raise EngineApiError("authentication", "Login response did not include an access token", endpoint="/auth/login")
            return body

        def _patch(_state: AuthState, body: Mapping[str, Any]) -> dict[str, Any]:
            expires_at = None
            if body.get("expires_in"):
                try:
                    expires_at = self._now() + timedelta(seconds=float(body["expires_in"]))
                except (TypeError, ValueError):
                    expires_at = None
            resolved_user = str(body.get("user_id") or user_id)
            permissions = tuple(str(p) for p in body.get("permissions") or ())
            self._storage.set(ACCESS_TOKEN_KEY, str(body["access_token"]))
            if body.get("refresh_token"):
                self._storage.set(REFRESH_TOKEN_KEY, str(body["refresh_token"]))
            self._storage.set(
                USER_DATA_KEY,
                json.dumps(
                    {
                        "user_id": resolved_user,
                        "permissions": list(permissions),
                        "expires_at": expires_at.isoformat() if expires_at else None,
                    }
                ),
            )
            return {
                "authenticated": True,
                "user_id": resolved_user,
                "permissions": permissions,
                "expires_at": expires_at,
            }

        self._run_action("login", (user_id,), _call, _patch)
        self._bus.emit(AuthStateChangedEvent(authenticated=True, user_id=self._state.user_id, reason="login"))
        return self.current_user

    def refresh(self) -> bool:
        """Exchange the refresh token for a new access token."""
        refresh_token = self._storage.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            return False
        try:
            body = self._api.refresh(refresh_token)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            kind, message, _ = classify_error(exc)
            LOGGER.warning("Token refresh failed kind=%s message=%s", kind, message)
            return False
        if not isinstance(body, Mapping) or not body.get("access_token"):
            LOGGER.warning("Token refresh response did not include an access token")
            return False
        self._storage.set(ACCESS_TOKEN_KEY, str(body["access_token"]))
        if body.get("refresh_token"):
            self._storage.set(REFRESH_TOKEN_KEY, str(body["refresh_token"]))
        self._set_state("refresh", authenticated=True, last_updated=self._now())
        LOGGER.info("Access token refreshed user=%s", self._state.user_id)
        return True

    def logout(self) -> None:
        """Tell the engine (best effort) and always clear local credentials."""
        if self.access_token is not None:
            try:
                self._api.logout()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                kind, message, _ = classify_error(exc)
                LOGGER.warning("Remote logout failed kind=%s message=%s", kind, message)
        self._clear_credentials("logout")

    def _clear_credentials(self, reason: str) -> None:
        user_id = self._state.user_id
        for key in AUTH_STORAGE_KEYS:
            self._storage.remove(key)
        self._set_state(
            reason,
            authenticated=False,
            user_id=None,
            permissions=(),
            expires_at=None,
            last_updated=self._now(),
        )
        self._bus.emit(AuthStateChangedEvent(authenticated=False, user_id=user_id, reason=reason))
        LOGGER.info("Logged out user=%s reason=%s", user_id, reason)


def _load_user(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        LOGGER.warning("Discarding unreadable stored user data")
        return {}
    return data if isinstance(data, dict) else {}


def _parse_dt(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
