"""
Semantic test: event bus dispatch and sinks.

Invariant:
Every store snapshot and action outcome is published on the bus, in order,
to every registered sink; sinks are closed exactly once with the bus.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

import pytest
from prometheus_client import CollectorRegistry

from trading_dashboard.core.domain.errors import EngineApiError, StoreError
from trading_dashboard.core.events.event_bus import EventBus
from trading_dashboard.core.events.events import (
    ActionFailedEvent,
    ActionSucceededEvent,
    AuthStateChangedEvent,
    RetryScheduledEvent,
)
from trading_dashboard.core.events.sinks.file_recorder import FileRecorderSink
from trading_dashboard.core.events.sinks.prometheus_sink import PrometheusEventSink
from trading_dashboard.core.events.sinks.sink_logging import LoggingEventSink
from trading_dashboard.stores.strategy_store import StrategyStore

TS = datetime(2024, 3, 13, 10, 30, tzinfo=timezone.utc)


def test_subscribe_and_unsubscribe() -> None:
    bus = EventBus()
    seen: list[object] = []
    unsubscribe = bus.subscribe(seen.append)

    bus.emit("first")
    unsubscribe()
    bus.emit("second")

    assert seen == ["first"]


def test_closed_bus_drops_events_and_closes_sinks_once() -> None:
    class Sink:
        def __init__(self) -> None:
            self.events: list[object] = []
            self.closes = 0

        def on_event(self, event: object) -> None:
            self.events.append(event)

        def close(self) -> None:
            self.closes += 1

    sink = Sink()
    bus = EventBus([sink])
    bus.close()
    bus.close()
    bus.emit("late")

    assert sink.closes == 1
    assert sink.events == []


def test_file_recorder_writes_json_lines(tmp_path, fake_api, fast_config, clock, user_strategy_raw) -> None:
    path = tmp_path / "events" / "session.jsonl"
    recorder = FileRecorderSink(path)
    fake_api.dashboard = {"active_strategies": [user_strategy_raw("S1")]}
    store = StrategyStore(fake_api, bus=EventBus([recorder]), config=fast_config, clock=clock)

    store.fetch_strategies()
    store.pause("S1")
    recorder.close()

    records = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    types = [r["event_type"] for r in records]
    assert "StoreSnapshotEvent" in types
    assert types[-1] == "ActionSucceededEvent"
    assert records[-1]["entity_ids"] == ["S1"]

    snapshot = next(r["snapshot"] for r in reversed(records) if r["event_type"] == "StoreSnapshotEvent")
    assert snapshot["strategies"][0]["status"] == "PAUSED"


def test_logging_sink_levels(caplog) -> None:
    sink = LoggingEventSink(logging.getLogger("trading_dashboard.events.test"))
    failed = ActionFailedEvent("orders", "cancel", ("O1",), "validation", "already filled", 409, TS)

    with caplog.at_level(logging.DEBUG, logger="trading_dashboard.events.test"):
        sink.on_event(failed)
        sink.on_event(ActionSucceededEvent("orders", "cancel", ("O2",), TS))

    levels = [r.levelno for r in caplog.records]
    assert levels == [logging.WARNING, logging.INFO]
    assert caplog.records[0].event is failed


def test_prometheus_sink_counts_outcomes(monkeypatch) -> None:
    monkeypatch.delenv("PROMETHEUS_PUSHGATEWAY_URL", raising=False)
    registry = CollectorRegistry()
    sink = PrometheusEventSink(registry=registry)

    sink.on_event(ActionSucceededEvent("orders", "cancel", ("O1",), TS))
    sink.on_event(ActionSucceededEvent("orders", "cancel", ("O2",), TS))
    sink.on_event(ActionFailedEvent("orders", "cancel", ("O3",), "validation", "already filled", 409, TS))
    sink.on_event(RetryScheduledEvent("strategies", "fetch_strategies", 1, 3, 1.0, "network", "timeout"))
    sink.on_event(AuthStateChangedEvent(authenticated=False, user_id="U1", reason="logout"))

    def value(name: str, **labels: str) -> float | None:
        return registry.get_sample_value(name, labels)

    assert value("dashboard_store_actions_total", store="orders", action="cancel", outcome="success", kind="") == 2.0
    assert value("dashboard_store_actions_total", store="orders", action="cancel", outcome="failure", kind="validation") == 1.0
    assert value("dashboard_fetch_retries_total", store="strategies", action="fetch_strategies", kind="network") == 1.0
    assert value("dashboard_auth_changes_total", authenticated="false", reason="logout") == 1.0

    assert not sink.is_enabled()
    sink.close()


def test_prometheus_push_failure_is_logged(monkeypatch, caplog) -> None:
    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_URL", "http://127.0.0.1:9")
    monkeypatch.setenv("PROMETHEUS_PUSHGATEWAY_GROUPING_KEY_JSON", '{"instance": "ci"}')
    pushed = []

    def failing_push(**kwargs):
        pushed.append(kwargs)
        raise OSError("connection refused")

    monkeypatch.setattr("trading_dashboard.core.events.sinks.prometheus_sink.push_to_gateway", failing_push)
    sink = PrometheusEventSink(job="dashboard_test")

    with caplog.at_level(logging.WARNING):
        sink.close()

    assert pushed[0]["job"] == "dashboard_test"
    assert pushed[0]["grouping_key"] == {"instance": "ci"}
    assert "Prometheus push failed" in caplog.text


def test_store_failures_reach_every_sink(fake_api, fast_config, clock, no_sleep) -> None:
    registry = CollectorRegistry()
    metrics = PrometheusEventSink(registry=registry)
    seen: list[object] = []
    bus = EventBus([metrics])
    bus.subscribe(seen.append)
    store = StrategyStore(fake_api, bus=bus, config=fast_config, clock=clock, sleep=no_sleep)
    fake_api.failures["get_marketplace"] = EngineApiError("remote_internal", "HTTP 502", status_code=502)

    with pytest.raises(StoreError):
        store.fetch_marketplace()

    assert sum(isinstance(e, RetryScheduledEvent) for e in seen) == 2
    assert registry.get_sample_value(
        "dashboard_store_actions_total",
        {"store": "strategies", "action": "fetch_marketplace", "outcome": "failure", "kind": "remote_internal"},
    ) == 1.0
