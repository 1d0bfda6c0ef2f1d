"""
Logging event sink.
"""
from __future__ import annotations

import logging
from typing import Any

from trading_dashboard.core.events.events import (
    ActionFailedEvent,
    RetryScheduledEvent,
    StoreSnapshotEvent,
)


class LoggingEventSink:
    """Logs domain events using the standard logging module."""

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def on_event(self, event: Any) -> None:
        if isinstance(event, StoreSnapshotEvent):
            # Snapshots are frequent and large; keep them at debug level.
            self._logger.debug("store_snapshot store=%s reason=%s", event.store, event.reason)
            return
        if isinstance(event, ActionFailedEvent):
            self._logger.warning("domain_event", extra={"event": event})
            return
        if isinstance(event, RetryScheduledEvent):
            self._logger.warning("domain_event", extra={"event": event})
            return
        self._logger.info("domain_event", extra={"event": event})
