"""Strategy store: catalog, user strategies, lifecycle actions and view state."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from trading_dashboard.core.adapters.entity_adapter import (
    adapt_strategies,
    default_strategy,
    engine_strategy_to_strategy,
    strategy_update_payload,
    user_strategy_to_performance,
)
from trading_dashboard.core.domain.errors import StoreError
from trading_dashboard.core.domain.lifecycle import is_valid_strategy_transition
from trading_dashboard.core.domain.types import (
    STRUCTURAL_STRATEGY_FIELDS,
    USER_EDITABLE_STRATEGY_FIELDS,
    AssetClass,
    Strategy,
    StrategyPerformance,
    StrategyStatus,
    StrategySummary,
)
from trading_dashboard.stores.base import ActionKey, Patch, ReconcilingStore

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StrategyFilters:
    status: StrategyStatus | None = None
    asset_class: AssetClass | None = None
    strategy_type: str | None = None

    def matches(self, strategy: Strategy) -> bool:
        if self.status is not None and strategy.status != self.status:
            return False
        if self.asset_class is not None and strategy.asset_class != self.asset_class:
            return False
        if self.strategy_type is not None and strategy.strategy_type.lower() != self.strategy_type.lower():
            return False
        return True


@dataclass(frozen=True, slots=True)
class StrategyState:
    strategies: tuple[Strategy, ...] = ()
    catalog: tuple[Strategy, ...] = ()
    performance: Mapping[str, StrategyPerformance] = field(default_factory=dict)
    summary: StrategySummary = field(default_factory=StrategySummary)
    total: int = 0

    selected_id: str | None = None
    search: str = ""
    filters: StrategyFilters = field(default_factory=StrategyFilters)
    page: int = 1
    page_size: int = 20

    is_loading: bool = False
    in_flight: frozenset[ActionKey] = frozenset()
    error: StoreError | None = None
    last_updated: datetime | None = None


def summarize_strategies(strategies: Iterable[Strategy]) -> StrategySummary:
    """Aggregate counts and P&L; win rate is the mean over all strategies."""
    items = list(strategies)
    count = len(items)

    def _count(status: str) -> int:
        return sum(1 for s in items if s.status == status)

    return StrategySummary(
        total_strategies=count,
        active_strategies=_count("ACTIVE"),
        paused_strategies=_count("PAUSED"),
        stopped_strategies=_count("STOPPED"),
        draft_strategies=_count("DRAFT"),
        total_pnl=sum(s.total_pnl for s in items),
        total_trades=sum(s.total_trades for s in items),
        win_rate=sum(s.win_rate for s in items) / count if count else 0.0,
    )


def _replace_strategy(strategies: tuple[Strategy, ...], updated: Strategy) -> tuple[Strategy, ...]:
    found = False
    out: list[Strategy] = []
    for s in strategies:
        if s.id == updated.id:
            out.append(updated)
            found = True
        else:
            out.append(s)
    if not found:
        out.append(updated)
    return tuple(out)


class StrategyStore(ReconcilingStore[StrategyState]):
    """Client-side copy of the user's strategies."""

    name = "strategies"

    def _initial_state(self) -> StrategyState:
        return StrategyState(page_size=self._config.strategy_page_size)

    def _recompute(self, state: StrategyState) -> StrategyState:
        return replace(state, summary=summarize_strategies(state.strategies))

    # ---- Reads ----
    @property
    def strategies(self) -> tuple[Strategy, ...]:
        return self._state.strategies

    @property
    def catalog(self) -> tuple[Strategy, ...]:
        return self._state.catalog

    @property
    def summary(self) -> StrategySummary:
        return self._state.summary

    @property
    def total(self) -> int:
        return self._state.total

    def get(self, strategy_id: str) -> Strategy | None:
        for s in self._state.strategies:
            if s.id == strategy_id:
                return s
        return None

    def performance(self, strategy_id: str) -> StrategyPerformance | None:
        return self._state.performance.get(strategy_id)

    def _catalog_entry(self, strategy_id: str) -> Strategy | None:
        for s in self._state.catalog:
            if s.id == strategy_id:
                return s
        return None

    # ---- Fetches ----
    def fetch_marketplace(self) -> tuple[Strategy, ...]:
        def _apply(_state: StrategyState, raws: Any) -> dict[str, Any]:
            now = self._now()
            return {"catalog": tuple(engine_strategy_to_strategy(raw, now=now) for raw in raws or ())}

        self._run_fetch("fetch_marketplace", self._api.get_marketplace, _apply)
        return self._state.catalog

    def fetch_strategies(self) -> tuple[Strategy, ...]:
        """Load the catalog, then the user's strategies enriched from it."""
        try:
            self.fetch_marketplace()
        except StoreError as exc:
            LOGGER.warning("Strategy catalog unavailable (%s); loading strategies without enrichment", exc.message)

        def _apply(state: StrategyState, dashboard: Any) -> dict[str, Any]:
            raws = dashboard.get("active_strategies") if isinstance(dashboard, Mapping) else None
            raws = raws if isinstance(raws, list) else []
            catalog = {s.id: s for s in state.catalog}
            strategies = tuple(adapt_strategies(raws, source="user_strategy", catalog=catalog, now=self._now()))
            performance = {}
            for raw in raws:
                perf = user_strategy_to_performance(raw if isinstance(raw, Mapping) else {})
                performance[perf.strategy_id] = perf
            selected = state.selected_id if any(s.id == state.selected_id for s in strategies) else None
            return {
                "strategies": strategies,
                "performance": performance,
                "total": len(strategies),
                "selected_id": selected,
            }

        self._run_fetch("fetch_strategies", self._api.get_user_dashboard, _apply)
        return self._state.strategies

    # ---- Lifecycle guards ----
    def _require(self, action: str, strategy_id: str) -> Strategy:
        strategy = self.get(strategy_id)
        if strategy is None:
            raise self._reject(action, (strategy_id,), f"Unknown strategy {strategy_id}")
        return strategy

    def _guard_transition(self, action: str, strategy: Strategy, target: StrategyStatus) -> None:
        if not is_valid_strategy_transition(strategy.status, target):
            raise self._reject(
                action,
                (strategy.id,),
                f"Cannot {action} strategy {strategy.id} from {strategy.status}",
            )

    def _set_status(self, strategy_id: str, status: StrategyStatus, **extra: Any) -> Patch:
        def _patch(state: StrategyState, _result: Any) -> dict[str, Any]:
            current = next((s for s in state.strategies if s.id == strategy_id), None)
            if current is None:
                current = self._catalog_entry(strategy_id) or default_strategy(strategy_id, now=self._now())
            updated = current.model_copy(update={"status": status, "updated_at": self._now(), **extra})
            strategies = _replace_strategy(state.strategies, updated)
            return {"strategies": strategies, "total": state.total + (len(strategies) - len(state.strategies))}

        return _patch

    # ---- Mutations ----
    def activate(self, strategy_id: str, allocation_amount: float = 0.0) -> Any:
        """Activate a strategy with a capital allocation (ACTIVE, capital set)."""
        if allocation_amount < 0 or math.isnan(allocation_amount):
            raise self._reject("activate", (strategy_id,), "Allocation amount must be a non-negative number")
        current = self.get(strategy_id)
        if current is not None:
            self._guard_transition("activate", current, "ACTIVE")
        return self._run_action(
            "activate",
            (strategy_id,),
            lambda: self._api.activate_strategy(strategy_id, float(allocation_amount)),
            self._set_status(strategy_id, "ACTIVE", capital_allocated=float(allocation_amount)),
            refetch=self.fetch_strategies,
        )

    def deactivate(self, strategy_id: str) -> Any:
        self._guard_transition("deactivate", self._require("deactivate", strategy_id), "STOPPED")
        return self._run_action(
            "deactivate",
            (strategy_id,),
            lambda: self._api.deactivate_strategy(strategy_id),
            self._set_status(strategy_id, "STOPPED"),
            refetch=self.fetch_strategies,
        )

    def pause(self, strategy_id: str) -> Any:
        self._guard_transition("pause", self._require("pause", strategy_id), "PAUSED")
        return self._run_action(
            "pause",
            (strategy_id,),
            lambda: self._api.pause_strategy(strategy_id),
            self._set_status(strategy_id, "PAUSED"),
            refetch=self.fetch_strategies,
        )

    def resume(self, strategy_id: str) -> Any:
        self._guard_transition("resume", self._require("resume", strategy_id), "ACTIVE")
        return self._run_action(
            "resume",
            (strategy_id,),
            lambda: self._api.resume_strategy(strategy_id),
            self._set_status(strategy_id, "ACTIVE"),
            refetch=self.fetch_strategies,
        )

    def start(self, strategy_id: str) -> Any:
        """Resume a paused strategy, otherwise activate it with its current allocation."""
        current = self.get(strategy_id)
        if current is not None and current.status == "PAUSED":
            return self.resume(strategy_id)
        amount = current.capital_allocated if current is not None else 0.0
        return self.activate(strategy_id, amount)

    def stop(self, strategy_id: str) -> Any:
        return self.deactivate(strategy_id)

    def update(self, strategy_id: str, changes: Mapping[str, Any]) -> Strategy:
        """Apply user edits; structural edits bump the strategy version."""
        current = self._require("update", strategy_id)
        if "capital_allocated" in changes:
            raise self._reject("update", (strategy_id,), "Capital changes go through reallocate_capital")
        unknown = sorted(set(changes) - USER_EDITABLE_STRATEGY_FIELDS)
        if unknown:
            raise self._reject("update", (strategy_id,), f"Fields not editable: {', '.join(unknown)}")
        try:
            candidate = Strategy.model_validate({**current.model_dump(), **dict(changes)})
        except ValidationError as exc:
            raise self._reject("update", (strategy_id,), f"Invalid strategy update: {exc.errors()[0]['msg']}") from exc

        structural = any(getattr(candidate, f) != getattr(current, f) for f in STRUCTURAL_STRATEGY_FIELDS & set(changes))

        def _patch(state: StrategyState, _result: Any) -> dict[str, Any]:
            latest = next((s for s in state.strategies if s.id == strategy_id), current)
            update: dict[str, Any] = {f: getattr(candidate, f) for f in changes}
            update["updated_at"] = self._now()
            if structural:
                update["version"] = latest.version + 1
            return {"strategies": _replace_strategy(state.strategies, latest.model_copy(update=update))}

        self._run_action(
            "update",
            (strategy_id,),
            lambda: self._api.update_strategy(strategy_id, strategy_update_payload(changes)),
            _patch,
            refetch=self.fetch_strategies,
        )
        return self.get(strategy_id)  # type: ignore[return-value]

    def delete(self, strategy_id: str) -> None:
        self._require("delete", strategy_id)

        def _patch(state: StrategyState, _result: Any) -> dict[str, Any]:
            remaining = tuple(s for s in state.strategies if s.id != strategy_id)
            removed = len(state.strategies) - len(remaining)
            return {
                "strategies": remaining,
                "total": max(0, state.total - removed),
                "selected_id": None if state.selected_id == strategy_id else state.selected_id,
            }

        self._run_action(
            "delete",
            (strategy_id,),
            lambda: self._api.delete_strategy(strategy_id),
            _patch,
            refetch=self.fetch_strategies,
        )

    def reallocate_capital(self, strategy_id: str, new_amount: float) -> Any:
        """Move a running strategy to a new allocation: deactivate, then activate.

        The two engine calls are not atomic. If activation fails the strategy
        stays STOPPED locally and the error is surfaced; nothing is rolled back.
        """
        action = "reallocate_capital"
        if new_amount < 0 or math.isnan(new_amount):
            raise self._reject(action, (strategy_id,), "Allocation amount must be a non-negative number")
        current = self._require(action, strategy_id)
        if current.status not in ("ACTIVE", "PAUSED"):
            raise self._reject(action, (strategy_id,), f"Cannot reallocate strategy {strategy_id} from {current.status}")

        key = self._enter(action, (strategy_id,))
        try:
            self.deactivate(strategy_id)
            try:
                result = self.activate(strategy_id, new_amount)
            except StoreError as exc:
                LOGGER.error(
                    "Reallocation incomplete strategy=%s amount=%.2f: deactivated but activation failed: %s",
                    strategy_id,
                    new_amount,
                    exc.message,
                )
                error = StoreError(
                    kind=exc.kind,
                    message=f"Strategy {strategy_id} was stopped but could not be reactivated: {exc.message}",
                    action=action,
                    entity_ids=(strategy_id,),
                    status_code=exc.status_code,
                )
                self._leave(key, f"{action}:failed", error=error)
                self._emit_failure(error)
                raise error from exc
        finally:
            self._leave(key, f"{action}:settled")
        return result

    def bulk_stop(self, strategy_ids: Iterable[str]) -> dict[str, StoreError]:
        """Stop each strategy independently; returns the failures by id."""
        failures: dict[str, StoreError] = {}
        for strategy_id in strategy_ids:
            try:
                self.stop(strategy_id)
            except StoreError as exc:
                failures[strategy_id] = exc
        if failures:
            LOGGER.warning("bulk_stop finished with %d failure(s): %s", len(failures), sorted(failures))
        return failures

    # ---- View state ----
    def set_search(self, query: str) -> None:
        self._set_state("set_search", search=query or "", page=1)

    def set_filters(
        self,
        *,
        status: StrategyStatus | None = None,
        asset_class: AssetClass | None = None,
        strategy_type: str | None = None,
        refetch: bool = True,
    ) -> None:
        filters = StrategyFilters(status=status, asset_class=asset_class, strategy_type=strategy_type)
        self._set_state("set_filters", filters=filters, page=1)
        if refetch:
            self.fetch_strategies()

    def clear_filters(self, *, refetch: bool = True) -> None:
        self._set_state("clear_filters", filters=StrategyFilters(), search="", page=1)
        if refetch:
            self.fetch_strategies()

    @property
    def filtered(self) -> tuple[Strategy, ...]:
        """Strategies matching the filters and search query, before pagination."""
        state = self._state
        query = state.search.strip().lower()
        out = []
        for s in state.strategies:
            if not state.filters.matches(s):
                continue
            if query:
                haystack = [s.name, s.strategy_type, s.asset_class, s.id, *s.symbols]
                if not any(query in value.lower() for value in haystack):
                    continue
            out.append(s)
        return tuple(out)

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(len(self.filtered) / self._state.page_size))

    def set_page(self, page: int) -> None:
        self._set_state("set_page", page=min(max(1, int(page)), self.total_pages))

    def set_page_size(self, page_size: int) -> None:
        self._set_state("set_page_size", page_size=max(1, int(page_size)), page=1)

    def next_page(self) -> None:
        if self._state.page < self.total_pages:
            self.set_page(self._state.page + 1)

    def previous_page(self) -> None:
        if self._state.page > 1:
            self.set_page(self._state.page - 1)

    @property
    def visible(self) -> tuple[Strategy, ...]:
        items = self.filtered
        start = (self._state.page - 1) * self._state.page_size
        return items[start : start + self._state.page_size]

    def by_status(self, status: StrategyStatus) -> tuple[Strategy, ...]:
        return tuple(s for s in self._state.strategies if s.status == status)

    @property
    def current(self) -> Strategy | None:
        if self._state.selected_id is None:
            return None
        return self.get(self._state.selected_id)

    def select(self, strategy_id: str | None) -> None:
        self._set_state("select", selected_id=strategy_id)

    def clear(self) -> None:
        """Drop all entities and view state (logout / dispose)."""
        self._set_state(
            "clear",
            recompute=True,
            strategies=(),
            catalog=(),
            performance={},
            total=0,
            selected_id=None,
            search="",
            filters=StrategyFilters(),
            page=1,
            error=None,
            last_updated=None,
        )
