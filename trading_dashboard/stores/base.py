"""
Reconciling store base.

A store owns the client-side copy of one family of entities. Its state is an
immutable snapshot; every change builds a new snapshot and publishes it on the
event bus, so subscribers never observe a half-applied update.

Mutating actions follow one fixed sequence:

1. refuse an identical action (same name, same entity ids) already in flight
2. clear the previous error
3. call the engine
4. on success, apply the local patch and recompute derived aggregates in one step
5. on failure, classify the error, keep it, publish it and re-raise it
6. always leave the submitting state
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from datetime import datetime
from typing import Any, Callable, Generic, Iterable, TypeVar

from trading_dashboard.core.adapters.entity_adapter import Clock, utc_now
from trading_dashboard.core.domain.errors import StoreError, to_store_error
from trading_dashboard.core.events.event_bus import EventBus
from trading_dashboard.core.events.event_sink import EventSink
from trading_dashboard.core.events.events import (
    ActionFailedEvent,
    ActionSucceededEvent,
    RetryScheduledEvent,
    StoreSnapshotEvent,
)
from trading_dashboard.engine.config import EngineConfig
from trading_dashboard.engine.retry import RetryPolicy, with_retry

LOGGER = logging.getLogger(__name__)

S = TypeVar("S")
R = TypeVar("R")

ActionKey = tuple[str, tuple[str, ...]]
Patch = Callable[[Any, Any], dict[str, Any]]


class ReconcilingStore(Generic[S]):
    """Shared action runner, flags and snapshot publishing.

    Subclasses provide ``_initial_state`` and may override ``_recompute`` to
    refresh derived aggregates. State dataclasses must carry the
    ``is_loading``, ``in_flight``, ``error`` and ``last_updated`` fields.
    """

    name: str = "store"

    def __init__(
        self,
        api: Any,
        *,
        bus: EventBus | None = None,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        on_auth_failure: Callable[[str], None] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._api = api
        self._bus = bus if bus is not None else EventBus()
        self._config = config or EngineConfig()
        self._clock: Clock = clock or utc_now
        self._on_auth_failure = on_auth_failure
        self._lock = threading.RLock()
        self._state: S = self._initial_state()

        policy = RetryPolicy(
            max_attempts=self._config.fetch_max_attempts,
            base_delay=self._config.backoff_base_seconds,
            max_delay=self._config.backoff_max_seconds,
        )
        if sleep is not None:
            policy.sleep = sleep
        self._fetch_policy = policy

    # ---- State ----
    def _initial_state(self) -> S:
        raise NotImplementedError

    def _recompute(self, state: S) -> S:
        """Return ``state`` with derived aggregates refreshed."""
        return state

    @property
    def state(self) -> S:
        return self._state

    def _now(self) -> datetime:
        return self._clock()

    def _set_state(self, reason: str, *, recompute: bool = False, **changes: Any) -> S:
        with self._lock:
            new_state = dataclasses.replace(self._state, **changes)  # type: ignore[type-var]
            if recompute:
                new_state = self._recompute(new_state)
            self._state = new_state
        self._bus.emit(StoreSnapshotEvent(store=self.name, reason=reason, snapshot=new_state))
        return new_state

    def subscribe(self, sink: EventSink | Callable[[Any], None]) -> Callable[[], None]:
        """Subscribe to this store's bus; returns an unsubscribe callable."""
        return self._bus.subscribe(sink)

    # ---- Flags ----
    @property
    def is_loading(self) -> bool:
        return self._state.is_loading  # type: ignore[attr-defined]

    @property
    def is_submitting(self) -> bool:
        return bool(self._state.in_flight)  # type: ignore[attr-defined]

    def is_submitting_for(self, entity_id: str) -> bool:
        return any(entity_id in ids for _, ids in self._state.in_flight)  # type: ignore[attr-defined]

    @property
    def error(self) -> StoreError | None:
        return self._state.error  # type: ignore[attr-defined]

    def clear_error(self) -> None:
        if self.error is not None:
            self._set_state("clear_error", error=None)

    # ---- Action runner ----
    def _enter(self, action: str, entity_ids: tuple[str, ...]) -> ActionKey:
        key: ActionKey = (action, entity_ids)
        with self._lock:
            in_flight = self._state.in_flight  # type: ignore[attr-defined]
            if key in in_flight:
                raise StoreError(
                    kind="validation",
                    message=f"{action} already in progress for {', '.join(entity_ids) or 'store'}",
                    action=action,
                    entity_ids=entity_ids,
                )
            self._set_state(f"{action}:submitting", in_flight=in_flight | {key}, error=None)
        return key

    def _leave(self, key: ActionKey, reason: str, **changes: Any) -> None:
        with self._lock:
            in_flight = self._state.in_flight  # type: ignore[attr-defined]
            if key not in in_flight and not changes:
                return
            self._set_state(reason, in_flight=in_flight - {key}, **changes)

    def _reject(self, action: str, entity_ids: Iterable[str], message: str) -> StoreError:
        """Record a local validation failure (no remote call was made)."""
        error = StoreError(kind="validation", message=message, action=action, entity_ids=tuple(entity_ids))
        LOGGER.warning("%s rejected locally store=%s ids=%s reason=%s", action, self.name, error.entity_ids, message)
        self._set_state(f"{action}:rejected", error=error)
        self._emit_failure(error)
        return error

    def _fail(self, exc: Exception, action: str, entity_ids: tuple[str, ...]) -> StoreError:
        error = to_store_error(exc, action=action, entity_ids=entity_ids)
        if error.kind == "unknown":
            LOGGER.exception("%s failed store=%s ids=%s", action, self.name, entity_ids)
        else:
            LOGGER.error(
                "%s failed store=%s ids=%s kind=%s message=%s",
                action,
                self.name,
                entity_ids,
                error.kind,
                error.message,
            )
        return error

    def _emit_failure(self, error: StoreError) -> None:
        self._bus.emit(
            ActionFailedEvent(
                store=self.name,
                action=error.action,
                entity_ids=error.entity_ids,
                kind=error.kind,
                message=error.message,
                status_code=error.status_code,
                ts=error.timestamp,
            )
        )
        if error.kind == "authentication" and self._on_auth_failure is not None:
            self._on_auth_failure(error.message)

    def _run_action(
        self,
        action: str,
        entity_ids: Iterable[str],
        remote_call: Callable[[], R],
        patch: Patch | None = None,
        *,
        refetch: Callable[[], Any] | None = None,
    ) -> R:
        """Run one mutating engine call and reconcile local state with it.

        ``patch(state, result)`` returns the state changes to apply on success.
        Engine failures are re-raised as ``StoreError``.
        """
        ids = tuple(entity_ids)
        key = self._enter(action, ids)
        try:
            try:
                result = remote_call()
            except Exception as exc:  # pylint: disable=broad-exception-caught
                error = self._fail(exc, action, ids)
                self._leave(key, f"{action}:failed", error=error)
                self._emit_failure(error)
                raise error from exc

            with self._lock:
                changes = patch(self._state, result) if patch is not None else {}
                self._leave(key, action, recompute=True, last_updated=self._now(), **changes)
        finally:
            self._leave(key, f"{action}:settled")

        LOGGER.info("%s succeeded store=%s ids=%s", action, self.name, ids)
        self._bus.emit(ActionSucceededEvent(store=self.name, action=action, entity_ids=ids, ts=self._now()))

        if refetch is not None and self._config.confirm_mutations_with_refetch:
            try:
                refetch()
            except StoreError:
                LOGGER.warning("Confirming refetch after %s failed store=%s", action, self.name)
        return result

    def _run_fetch(
        self,
        action: str,
        remote_call: Callable[[], R],
        apply: Callable[[Any, R], dict[str, Any]],
        *,
        recompute: bool = True,
    ) -> R:
        """Run a read under the fetch retry policy and replace state from it.

        On failure the previous entities are kept; only the error changes.
        """
        self._set_state(f"{action}:loading", is_loading=True, error=None)

        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            error = to_store_error(exc, action=action)
            self._bus.emit(
                RetryScheduledEvent(
                    store=self.name,
                    action=action,
                    attempt=attempt,
                    max_attempts=self._fetch_policy.max_attempts,
                    delay_seconds=delay,
                    kind=error.kind,
                    message=error.message,
                )
            )

        try:
            result = with_retry(remote_call, self._fetch_policy, label=f"{self.name}.{action}", on_retry=_on_retry)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            error = self._fail(exc, action, ())
            self._set_state(f"{action}:failed", is_loading=False, error=error)
            self._emit_failure(error)
            raise error from exc

        with self._lock:
            changes = apply(self._state, result)
            self._set_state(action, recompute=recompute, is_loading=False, last_updated=self._now(), **changes)
        LOGGER.debug("%s fetched store=%s", action, self.name)
        return result
