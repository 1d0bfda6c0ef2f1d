"""
Simple synchronous event bus.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable

from trading_dashboard.core.events.event_sink import EventSink


class CallbackSink:
    """Adapts a plain callable to the EventSink protocol."""

    def __init__(self, callback: Callable[[Any], None]) -> None:
        self._callback = callback

    def on_event(self, event: Any) -> None:
        self._callback(event)


class EventBus:
    """Dispatches events to registered sinks, in registration order."""

    def __init__(self, sinks: Iterable[EventSink] | None = None) -> None:
        self._sinks: list[EventSink] = list(sinks) if sinks is not None else []
        self._closed = False

    def register(self, sink: EventSink) -> None:
        """Register a new sink."""
        self._sinks.append(sink)

    def unregister(self, sink: EventSink) -> None:
        """Remove a sink; unknown sinks are ignored."""
        if sink in self._sinks:
            self._sinks.remove(sink)

    def subscribe(self, sink: EventSink | Callable[[Any], None]) -> Callable[[], None]:
        """Register a sink or callable and return a function that unregisters it."""
        target: EventSink = sink if hasattr(sink, "on_event") else CallbackSink(sink)  # type: ignore[arg-type]
        self.register(target)

        def _unsubscribe() -> None:
            self.unregister(target)

        return _unsubscribe

    def emit(self, event: Any) -> None:
        """Emit an event to all sinks."""
        if self._closed:
            return
        # Copy so a sink may unsubscribe while being notified.
        for sink in list(self._sinks):
            sink.on_event(event)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """
        Finalize all sinks that expose a close() method.
        """
        if self._closed:
            return

        for sink in self._sinks:
            close_fn = getattr(sink, "close", None)
            if callable(close_fn):
                close_fn()

        self._sinks.clear()
        self._closed = True
