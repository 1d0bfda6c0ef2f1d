"""Error taxonomy for remote calls and store actions.

Every failed remote call is classified into exactly one kind:

- network: timeout, connection refused (retryable)
- authentication: 401 / expired token (refresh once, then forced logout)
- validation: any other 4xx (not retried, surfaced verbatim)
- remote_internal: 5xx (retryable with backoff)
- unknown: anything else (not retried, logged with full context)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

import requests

ErrorKind = Literal["network", "authentication", "validation", "remote_internal", "unknown"]

RETRYABLE_KINDS: frozenset[str] = frozenset({"network", "remote_internal"})


def kind_for_status(status_code: int | None) -> ErrorKind:
    """Classify an HTTP status code."""
    if status_code is None:
        return "unknown"
    if status_code == 401:
        return "authentication"
    if 400 <= status_code < 500:
        return "validation"
    if 500 <= status_code < 600:
        return "remote_internal"
    return "unknown"


class EngineApiError(Exception):
    """A failed call against the trading engine HTTP API."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind: ErrorKind = kind
        self.message = message
        self.status_code = status_code
        self.endpoint = endpoint
        self.detail = detail

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def __repr__(self) -> str:
        return (
            f"EngineApiError(kind={self.kind!r}, message={self.message!r}, "
            f"status_code={self.status_code!r}, endpoint={self.endpoint!r})"
        )


@dataclass(eq=False)
class StoreError(Exception):
    """Structured error surfaced by a store action to its caller.

    Carries the classified kind, a display message, the originating action
    and the identifiers of the entities the action targeted.
    """

    kind: ErrorKind
    message: str
    action: str
    entity_ids: tuple[str, ...] = ()
    status_code: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def __str__(self) -> str:
        return self.message

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "action": self.action,
            "entity_ids": list(self.entity_ids),
            "status_code": self.status_code,
            "timestamp": self.timestamp.isoformat(),
        }


def classify_error(exc: BaseException) -> tuple[ErrorKind, str, int | None]:
    """Return ``(kind, message, status_code)`` for any exception."""
    if isinstance(exc, EngineApiError):
        return exc.kind, exc.message, exc.status_code

    if isinstance(exc, StoreError):
        return exc.kind, exc.message, exc.status_code

    if isinstance(exc, requests.Timeout):
        return "network", "Request timeout", None

    if isinstance(exc, requests.ConnectionError):
        return "network", "Network connection failed", None

    if isinstance(exc, requests.HTTPError):
        response = exc.response
        status = None if response is None else response.status_code
        return kind_for_status(status), str(exc) or "HTTP error", status

    if isinstance(exc, TimeoutError):
        return "network", "Request timeout", None

    if isinstance(exc, ConnectionError):
        return "network", "Network connection failed", None

    message = str(exc) or type(exc).__name__
    return "unknown", message, None


def to_store_error(exc: BaseException, *, action: str, entity_ids: tuple[str, ...] = ()) -> StoreError:
    """Classify ``exc`` into a StoreError bound to ``action``."""
    if isinstance(exc, StoreError) and exc.action == action:
        return exc
    kind, message, status_code = classify_error(exc)
    return StoreError(
        kind=kind,
        message=message,
        action=action,
        entity_ids=tuple(entity_ids),
        status_code=status_code,
    )
