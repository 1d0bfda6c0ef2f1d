from __future__ import annotations

import json
import logging
import os
from typing import Any

from prometheus_client import CollectorRegistry, Counter, push_to_gateway

from trading_dashboard.core.events.events import (
    ActionFailedEvent,
    ActionSucceededEvent,
    AuthStateChangedEvent,
    RetryScheduledEvent,
)

LOGGER = logging.getLogger(__name__)


class PrometheusEventSink:
    """Counts store actions, retries and auth changes on a private registry.

    Expected environment (optional):
    - PROMETHEUS_PUSHGATEWAY_URL: Pushgateway to push to on close().
    - PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON: JSON object used as grouping key.

    Pushing is best-effort: delivery failures are logged, never raised.
    """

    def __init__(self, *, job: str = "trading_dashboard", registry: CollectorRegistry | None = None) -> None:
        self._job = job
        self._pushgateway_url = os.environ.get("PROMETHEUS_PUSHGATEWAY_URL")
        self._grouping_key = self._load_grouping_key()
        self.registry = registry or CollectorRegistry()

        self._actions = Counter(
            "dashboard_store_actions",
            "Store actions by outcome",
            labelnames=["store", "action", "outcome", "kind"],
            registry=self.registry,
        )
        self._retries = Counter(
            "dashboard_fetch_retries",
            "Scheduled fetch retries",
            labelnames=["store", "action", "kind"],
            registry=self.registry,
        )
        self._auth = Counter(
            "dashboard_auth_changes",
            "Authentication state changes",
            labelnames=["authenticated", "reason"],
            registry=self.registry,
        )

    @staticmethod
    def _load_grouping_key() -> dict[str, str]:
        raw = os.environ.get("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON")
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.warning("Invalid PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON; ignoring")
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def is_enabled(self) -> bool:
        return self._pushgateway_url is not None

    def on_event(self, event: Any) -> None:
        if isinstance(event, ActionSucceededEvent):
            self._actions.labels(store=event.store, action=event.action, outcome="success", kind="").inc()
        elif isinstance(event, ActionFailedEvent):
            self._actions.labels(store=event.store, action=event.action, outcome="failure", kind=event.kind).inc()
        elif isinstance(event, RetryScheduledEvent):
            self._retries.labels(store=event.store, action=event.action, kind=event.kind).inc()
        elif isinstance(event, AuthStateChangedEvent):
            self._auth.labels(authenticated=str(event.authenticated).lower(), reason=event.reason).inc()

    def close(self) -> None:
        if not self._pushgateway_url:
            return
        try:
            push_to_gateway(
                gateway=self._pushgateway_url,
                job=self._job,
                registry=self.registry,
                grouping_key=self._grouping_key,
            )
        except OSError as exc:
            LOGGER.warning("Prometheus push failed url=%s error=%s", self._pushgateway_url, exc)
            return
        LOGGER.info("Prometheus metrics pushed", extra={"job": self._job, "grouping_key": self._grouping_key})
