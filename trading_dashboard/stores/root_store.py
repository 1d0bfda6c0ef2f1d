"""
Root store.

Explicit context object wiring the engine client, the event bus and the
three stores together. Callers create one per session and dispose it when
done; there is no module-level instance.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

import requests

from trading_dashboard.core.adapters.entity_adapter import Clock
from trading_dashboard.core.events.event_bus import EventBus
from trading_dashboard.core.events.event_sink import EventSink
from trading_dashboard.core.events.events import AuthStateChangedEvent
from trading_dashboard.core.events.sinks.sink_logging import LoggingEventSink
from trading_dashboard.core.ports.token_storage import KeyValueStorage
from trading_dashboard.engine.client import EngineApiClient
from trading_dashboard.engine.config import EngineConfig
from trading_dashboard.engine.storage import InMemoryStorage
from trading_dashboard.stores.auth_store import AuthStore
from trading_dashboard.stores.order_store import OrderStore
from trading_dashboard.stores.strategy_store import StrategyStore

LOGGER = logging.getLogger(__name__)


class RootStore:
    def __init__(
        self,
        config: EngineConfig | None = None,
        *,
        storage: KeyValueStorage | None = None,
        api: Any = None,
        session: requests.Session | None = None,
        sinks: Iterable[EventSink] | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.storage = storage if storage is not None else InMemoryStorage()
        if sinks is None:
            sinks = [LoggingEventSink(logging.getLogger("trading_dashboard.events"))]
        self.bus = EventBus(sinks)
        self.api = api if api is not None else EngineApiClient(self.config, session=session)

        common: dict[str, Any] = {"bus": self.bus, "config": self.config, "clock": clock, "sleep": sleep}
        self.auth = AuthStore(self.api, self.storage, **common)
        if isinstance(self.api, EngineApiClient):
            self.api.bind_token_provider(self.auth)
        self.strategies = StrategyStore(self.api, on_auth_failure=self.auth.force_logout, **common)
        self.orders = OrderStore(self.api, on_auth_failure=self.auth.force_logout, **common)

        self._unsubscribe = self.bus.subscribe(self._on_event)
        self._disposed = False

    def _on_event(self, event: Any) -> None:
        if not isinstance(event, AuthStateChangedEvent):
            return
        if event.authenticated:
            self.orders.set_user(event.user_id)
        else:
            self.strategies.clear()
            self.orders.clear()

    def init(self) -> bool:
        """Restore a stored session; returns True when the user is authenticated."""
        restored = self.auth.initialize()
        LOGGER.info("Root store initialised authenticated=%s", restored)
        return restored

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._unsubscribe()
        self.strategies.clear()
        self.orders.clear()
        self.bus.close()
        close_fn = getattr(self.api, "close", None)
        if callable(close_fn):
            close_fn()
        LOGGER.info("Root store disposed")

    def __enter__(self) -> RootStore:
        self.init()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.dispose()
