"""
Domain event models.

These events represent immutable facts observed by the reconciling stores.
They are consumed by view subscribers, loggers and recorders.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class StoreSnapshotEvent:
    """A store published a new immutable snapshot."""

    store: str
    reason: str
    snapshot: Any


@dataclass(frozen=True, slots=True)
class ActionSucceededEvent:
    store: str
    action: str
    entity_ids: tuple[str, ...]
    ts: datetime


@dataclass(frozen=True, slots=True)
class ActionFailedEvent:
    store: str
    action: str
    entity_ids: tuple[str, ...]

    kind: str
    message: str
    status_code: int | None
    ts: datetime


@dataclass(frozen=True, slots=True)
class RetryScheduledEvent:
    store: str
    action: str
    attempt: int
    max_attempts: int
    delay_seconds: float
    kind: str
    message: str


@dataclass(frozen=True, slots=True)
class AuthStateChangedEvent:
    authenticated: bool
    user_id: str | None
    reason: str
