"""Order store: order list, summary, cancel/update/delete and view state."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import datetime, time, timedelta
from typing import Any, Iterable, Literal, Mapping

from pydantic import ValidationError

from trading_dashboard.core.adapters.entity_adapter import adapt_orders, order_update_payload
from trading_dashboard.core.domain.errors import StoreError
from trading_dashboard.core.domain.lifecycle import is_terminal_order_status, is_valid_order_transition
from trading_dashboard.core.domain.types import (
    USER_EDITABLE_ORDER_FIELDS,
    Order,
    OrderSide,
    OrderStatus,
    OrderSummary,
    OrderType,
)
from trading_dashboard.stores.base import ActionKey, ReconcilingStore

LOGGER = logging.getLogger(__name__)

DateMode = Literal["today", "this_week", "last_week", "all"]

PENDING_STATUSES: frozenset[str] = frozenset({"PENDING", "QUEUED"})
OPEN_STATUSES: frozenset[str] = frozenset({"PLACED", "OPEN"})
REJECTED_STATUSES: frozenset[str] = frozenset({"REJECTED", "ERROR"})


@dataclass(frozen=True, slots=True)
class OrderFilters:
    status: OrderStatus | None = None
    side: OrderSide | None = None
    order_type: OrderType | None = None
    symbol: str | None = None
    strategy_id: str | None = None
    date_mode: DateMode = "today"


@dataclass(frozen=True, slots=True)
class OrderState:
    orders: tuple[Order, ...] = ()
    summary: OrderSummary = field(default_factory=OrderSummary)
    total: int = 0
    server_paginated: bool = False
    server_total_pages: int = 1

    user_id: str | None = None
    selected_id: str | None = None
    search: str = ""
    filters: OrderFilters = field(default_factory=OrderFilters)
    page: int = 1
    page_size: int = 20

    is_loading: bool = False
    in_flight: frozenset[ActionKey] = frozenset()
    error: StoreError | None = None
    last_updated: datetime | None = None


def date_range(mode: str, now: datetime) -> tuple[datetime | None, datetime | None]:
    """Start/end bounds for a date mode; weeks start on Monday. ``all`` is unbounded."""
    day_start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    if mode == "today":
        return day_start, day_start + timedelta(days=1) - timedelta(microseconds=1)
    if mode in ("this_week", "last_week"):
        week_start = day_start - timedelta(days=now.weekday())
        if mode == "last_week":
            week_start -= timedelta(days=7)
        return week_start, week_start + timedelta(days=7) - timedelta(microseconds=1)
    return None, None


def summarize_orders(orders: Iterable[Order]) -> OrderSummary:
    items = list(orders)
    total_value = sum(o.notional for o in items)
    return OrderSummary(
        total_orders=len(items),
        pending_orders=sum(1 for o in items if o.status in PENDING_STATUSES),
        open_orders=sum(1 for o in items if o.status in OPEN_STATUSES),
        completed_orders=sum(1 for o in items if o.status == "COMPLETE"),
        cancelled_orders=sum(1 for o in items if o.status == "CANCELLED"),
        rejected_orders=sum(1 for o in items if o.status in REJECTED_STATUSES),
        total_value=total_value,
        avg_order_size=total_value / len(items) if items else 0.0,
    )


def summary_from_raw(raw: Any) -> OrderSummary | None:
    """Server summary body -> OrderSummary; None if it is not usable."""
    if not isinstance(raw, Mapping):
        return None
    known = {k: raw[k] for k in OrderSummary.model_fields if raw.get(k) is not None}
    if not known:
        return None
    try:
        summary = OrderSummary.model_validate(known)
    except ValidationError:
        return None
    if "avg_order_size" not in known and summary.total_orders:
        summary = summary.model_copy(update={"avg_order_size": summary.total_value / summary.total_orders})
    return summary


def _order_source(raws: list[Any]) -> str:
    for raw in raws:
        if isinstance(raw, Mapping):
            return "engine_order" if "order_id" in raw else "api_order"
    return "engine_order"


class OrderStore(ReconcilingStore[OrderState]):
    """Client-side copy of the user's orders."""

    name = "orders"

    def _initial_state(self) -> OrderState:
        return OrderState(page_size=self._config.order_page_size)

    def _recompute(self, state: OrderState) -> OrderState:
        return replace(state, summary=summarize_orders(state.orders))

    # ---- Reads ----
    @property
    def orders(self) -> tuple[Order, ...]:
        return self._state.orders

    @property
    def summary(self) -> OrderSummary:
        return self._state.summary

    @property
    def total(self) -> int:
        return self._state.total

    @property
    def user_id(self) -> str | None:
        return self._state.user_id

    def set_user(self, user_id: str | None) -> None:
        self._set_state("set_user", user_id=user_id or None)

    def get(self, order_id: str) -> Order | None:
        for o in self._state.orders:
            if o.id == order_id:
                return o
        return None

    def query_params(self) -> dict[str, Any]:
        """Engine query for the current user, filters and page."""
        state = self._state
        flt = state.filters
        start, end = date_range(flt.date_mode, self._now())
        params: dict[str, Any] = {
            "user_id": state.user_id,
            "limit": state.page_size,
            "offset": (state.page - 1) * state.page_size,
            "status": flt.status,
            "side": flt.side,
            "order_type": "SL-M" if flt.order_type == "SL_M" else flt.order_type,
            "symbol": flt.symbol,
            "strategy_id": flt.strategy_id,
            "start_date": start.isoformat() if start else None,
            "end_date": end.isoformat() if end else None,
        }
        return {k: v for k, v in params.items() if v is not None}

    # ---- Fetches ----
    def fetch_orders(self) -> tuple[Order, ...]:
        """Load one page of orders; accepts the paginated envelope or a bare list."""

        def _apply(state: OrderState, body: Any) -> dict[str, Any]:
            now = self._now()
            if isinstance(body, Mapping) and isinstance(body.get("data"), list):
                raws = body["data"]
                orders = tuple(adapt_orders(raws, source=_order_source(raws), now=now))
                total = _nonneg_int(body.get("total"), len(orders))
                pages = max(1, _nonneg_int(body.get("totalPages"), math.ceil(total / state.page_size)))
                return {
                    "orders": orders,
                    "total": total,
                    "server_paginated": True,
                    "server_total_pages": pages,
                    "page": max(1, _nonneg_int(body.get("page"), state.page)),
                }
            raws = body if isinstance(body, list) else []
            orders = tuple(adapt_orders(raws, source=_order_source(raws), now=now))
            return {"orders": orders, "total": len(orders), "server_paginated": False, "server_total_pages": 1}

        self._run_fetch("fetch_orders", lambda: self._api.get_orders(self.query_params()), _apply)
        return self._state.orders

    def fetch_recent_from_dashboard(self) -> tuple[Order, ...]:
        """Load the recent engine orders embedded in the user dashboard."""

        def _apply(_state: OrderState, dashboard: Any) -> dict[str, Any]:
            raws = dashboard.get("recent_orders") if isinstance(dashboard, Mapping) else None
            raws = raws if isinstance(raws, list) else []
            orders = tuple(adapt_orders(raws, source="engine_order", now=self._now()))
            return {"orders": orders, "total": len(orders), "server_paginated": False, "server_total_pages": 1}

        self._run_fetch("fetch_recent_from_dashboard", self._api.get_user_dashboard, _apply)
        return self._state.orders

    def fetch_summary(self) -> OrderSummary:
        """Server-side summary for the current filters, falling back to local counts."""
        user_id = self._state.user_id
        if not user_id:
            return self._state.summary
        params = {k: v for k, v in self.query_params().items() if k not in ("user_id", "limit", "offset")}

        def _apply(state: OrderState, body: Any) -> dict[str, Any]:
            summary = summary_from_raw(body)
            if summary is None:
                LOGGER.warning("Unusable order summary from engine; using local counts")
                summary = summarize_orders(state.orders)
            return {"summary": summary}

        try:
            self._run_fetch("fetch_summary", lambda: self._api.get_orders_summary(user_id, params), _apply, recompute=False)
        except StoreError as exc:
            LOGGER.warning("Order summary unavailable (%s); using local counts", exc.message)
            self._set_state("fetch_summary:fallback", summary=summarize_orders(self._state.orders))
        return self._state.summary

    def refresh(self) -> None:
        self.fetch_orders()
        self.fetch_summary()

    # ---- Guards ----
    def _require_mutable(self, action: str, order_id: str, target: OrderStatus | None = None) -> Order:
        order = self.get(order_id)
        if order is None:
            raise self._reject(action, (order_id,), f"Unknown order {order_id}")
        if is_terminal_order_status(order.status):
            raise self._reject(action, (order_id,), f"Order {order_id} is already {order.status}")
        if target is not None and not is_valid_order_transition(order.status, target):
            raise self._reject(action, (order_id,), f"Cannot move order {order_id} from {order.status} to {target}")
        return order

    # ---- Mutations ----
    def cancel(self, order_id: str) -> Any:
        self._require_mutable("cancel", order_id, "CANCELLED")

        def _patch(state: OrderState, _result: Any) -> dict[str, Any]:
            now = self._now()
            orders = tuple(
                o.model_copy(update={"status": "CANCELLED", "cancelled_at": now, "updated_at": now})
                if o.id == order_id
                else o
                for o in state.orders
            )
            return {"orders": orders}

        return self._run_action(
            "cancel",
            (order_id,),
            lambda: self._api.cancel_order(order_id),
            _patch,
            refetch=self.fetch_orders,
        )

    def update(self, order_id: str, changes: Mapping[str, Any]) -> Order:
        current = self._require_mutable("update", order_id)
        unknown = sorted(set(changes) - USER_EDITABLE_ORDER_FIELDS)
        if unknown:
            raise self._reject("update", (order_id,), f"Fields not editable: {', '.join(unknown)}")
        try:
            candidate = Order.model_validate({**current.model_dump(), **dict(changes)})
        except ValidationError as exc:
            raise self._reject("update", (order_id,), f"Invalid order update: {exc.errors()[0]['msg']}") from exc
        if "quantity" in changes and candidate.quantity <= current.filled_quantity:
            raise self._reject(
                "update", (order_id,), f"Quantity must exceed the filled quantity ({current.filled_quantity})"
            )

        def _patch(state: OrderState, _result: Any) -> dict[str, Any]:
            update = {f: getattr(candidate, f) for f in changes}
            update["updated_at"] = self._now()
            return {"orders": tuple(o.model_copy(update=update) if o.id == order_id else o for o in state.orders)}

        self._run_action(
            "update",
            (order_id,),
            lambda: self._api.update_order(order_id, order_update_payload(changes)),
            _patch,
            refetch=self.fetch_orders,
        )
        return self.get(order_id)  # type: ignore[return-value]

    def delete(self, order_id: str) -> None:
        if self.get(order_id) is None:
            raise self._reject("delete", (order_id,), f"Unknown order {order_id}")

        def _patch(state: OrderState, _result: Any) -> dict[str, Any]:
            remaining = tuple(o for o in state.orders if o.id != order_id)
            removed = len(state.orders) - len(remaining)
            return {
                "orders": remaining,
                "total": max(0, state.total - removed),
                "selected_id": None if state.selected_id == order_id else state.selected_id,
            }

        self._run_action(
            "delete",
            (order_id,),
            lambda: self._api.delete_order(order_id),
            _patch,
            refetch=self.fetch_orders,
        )

    def bulk_cancel(self, order_ids: Iterable[str]) -> dict[str, StoreError]:
        """Cancel each order independently; returns the failures by id."""
        failures: dict[str, StoreError] = {}
        for order_id in order_ids:
            try:
                self.cancel(order_id)
            except StoreError as exc:
                failures[order_id] = exc
        if failures:
            LOGGER.warning("bulk_cancel finished with %d failure(s): %s", len(failures), sorted(failures))
        return failures

    # ---- View state ----
    def set_search(self, query: str) -> None:
        self._set_state("set_search", search=query or "", page=1)

    def set_filters(
        self,
        *,
        status: OrderStatus | None = None,
        side: OrderSide | None = None,
        order_type: OrderType | None = None,
        symbol: str | None = None,
        strategy_id: str | None = None,
        date_mode: DateMode | None = None,
        refetch: bool = True,
    ) -> None:
        filters = OrderFilters(
            status=status,
            side=side,
            order_type=order_type,
            symbol=symbol or None,
            strategy_id=strategy_id or None,
            date_mode=date_mode or self._state.filters.date_mode,
        )
        self._set_state("set_filters", filters=filters, page=1)
        if refetch:
            self.refresh()

    def set_date_mode(self, mode: DateMode, *, refetch: bool = True) -> None:
        self._set_state("set_date_mode", filters=replace(self._state.filters, date_mode=mode), page=1)
        if refetch:
            self.refresh()

    def clear_filters(self, *, refetch: bool = True) -> None:
        self._set_state("clear_filters", filters=OrderFilters(), search="", page=1)
        if refetch:
            self.refresh()

    @property
    def filtered(self) -> tuple[Order, ...]:
        """Loaded orders matching the client-side search query."""
        query = self._state.search.strip().lower()
        if not query:
            return self._state.orders
        return tuple(
            o
            for o in self._state.orders
            if query in o.symbol.lower() or query in o.id.lower() or query in (o.strategy_id or "").lower()
        )

    @property
    def total_pages(self) -> int:
        state = self._state
        if state.server_paginated:
            return max(1, state.server_total_pages)
        return max(1, math.ceil(len(self.filtered) / state.page_size))

    @property
    def page(self) -> int:
        return self._state.page

    def set_page(self, page: int, *, refetch: bool = True) -> None:
        self._set_state("set_page", page=max(1, int(page)))
        if refetch and self._state.server_paginated:
            self.fetch_orders()

    def set_page_size(self, page_size: int, *, refetch: bool = True) -> None:
        self._set_state("set_page_size", page_size=max(1, int(page_size)), page=1)
        if refetch and self._state.server_paginated:
            self.fetch_orders()

    def next_page(self) -> None:
        if self._state.page < self.total_pages:
            self.set_page(self._state.page + 1)

    def previous_page(self) -> None:
        if self._state.page > 1:
            self.set_page(self._state.page - 1)

    @property
    def visible(self) -> tuple[Order, ...]:
        state = self._state
        items = self.filtered
        if state.server_paginated:
            return items
        start = (state.page - 1) * state.page_size
        return items[start : start + state.page_size]

    def by_status(self, status: OrderStatus) -> tuple[Order, ...]:
        return tuple(o for o in self._state.orders if o.status == status)

    @property
    def current(self) -> Order | None:
        if self._state.selected_id is None:
            return None
        return self.get(self._state.selected_id)

    def select(self, order_id: str | None) -> None:
        self._set_state("select", selected_id=order_id)

    def clear(self) -> None:
        self._set_state(
            "clear",
            recompute=True,
            orders=(),
            total=0,
            server_paginated=False,
            server_total_pages=1,
            user_id=None,
            selected_id=None,
            search="",
            filters=OrderFilters(),
            page=1,
            error=None,
            last_updated=None,
        )


def _nonneg_int(value: Any, default: int) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError, OverflowError):
        return default
