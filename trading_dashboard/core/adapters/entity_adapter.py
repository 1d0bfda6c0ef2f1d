"""Entity adapter: upstream source records -> canonical Order / Strategy.

One adapter function per upstream shape feeds a single canonical type.
Adapters are pure: no I/O, no hidden clock (``now`` is injectable), and
they never raise. A malformed or partially missing record degrades to
documented defaults instead of aborting a batch conversion.
"""

# pylint: disable=too-many-locals
from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from trading_dashboard.core.domain.lifecycle import ORDER_FAILURE_STATUSES
from trading_dashboard.core.domain.status_mapper import (
    map_asset_class,
    map_order_side,
    map_order_status,
    map_order_type,
    map_persisted_strategy_status,
    map_strategy_status,
)
from trading_dashboard.core.domain.types import (
    DEFAULT_ACTIVE_DAYS,
    DEFAULT_END_TIME,
    DEFAULT_EXCHANGE,
    DEFAULT_MAX_POSITIONS,
    DEFAULT_PRODUCT_TYPE,
    DEFAULT_START_TIME,
    DEFAULT_TIMEFRAME,
    DEFAULT_VARIETY,
    ORDER_RECORD_TYPES,
    PRODUCT_TYPES,
    STRATEGY_RECORD_TYPES,
    TIME_FRAMES,
    WEEKDAYS,
    ApiOrderRecord,
    EngineOrderRecord,
    EngineStrategyRecord,
    Order,
    OrderStatus,
    PersistedOrderRecord,
    PersistedStrategyRecord,
    SourceRecordBase,
    Strategy,
    StrategyPerformance,
    UserStrategyRecord,
)

LOGGER = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_timestamp(value: Any) -> datetime | None:
    """Parse ISO-8601 strings or epoch seconds / milliseconds; None if unparseable."""
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = float(value)
        # Heuristic: values beyond year ~5138 in seconds are milliseconds.
        if abs(seconds) > 1e11:
            seconds /= 1000.0
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_win_rate(winning: int, total: int) -> float:
    """Win rate in percent; 0 when there are no trades."""
    if total <= 0:
        return 0.0
    return min(100.0, max(0.0, winning / total * 100.0))


def reconcile_order_status(
    reported: OrderStatus,
    quantity: int,
    filled: int,
) -> tuple[OrderStatus, int]:
    """Return ``(status, filled_quantity)`` consistent with the fill counts.

    - a reported failure status (CANCELLED / REJECTED / ERROR) is kept
    - COMPLETE iff quantity > 0 and the order is fully filled
    - a partial fill is OPEN
    - an OPEN report without any fill is PLACED
    - a COMPLETE report without fill counts backfills filled = quantity
    """
    filled = min(max(0, filled), quantity)

    if reported in ORDER_FAILURE_STATUSES:
        return reported, filled

    if quantity <= 0:
        if reported in ("COMPLETE", "OPEN"):
            return "UNKNOWN", 0
        return reported, 0

    if filled == quantity:
        return "COMPLETE", filled

    if reported == "COMPLETE":
        return "COMPLETE", quantity

    if filled > 0:
        return "OPEN", filled

    if reported == "OPEN":
        return "PLACED", 0

    return reported, 0


def _placeholder_id(prefix: str, record: SourceRecordBase) -> str:
    digest = hashlib.sha1(record.model_dump_json().encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def _quantity(value: float) -> int:
    return max(0, int(value))


def _timeframe(value: str) -> str:
    text = value.strip().upper()
    return text if text in TIME_FRAMES else DEFAULT_TIMEFRAME


def _product_type(value: str) -> str:
    text = value.strip().upper()
    return text if text in PRODUCT_TYPES else DEFAULT_PRODUCT_TYPE


def _active_days(values: Iterable[str]) -> tuple[str, ...]:
    days = tuple(dict.fromkeys(v.strip().upper() for v in values if v.strip().upper() in WEEKDAYS))
    return days or DEFAULT_ACTIVE_DAYS


def _trade_counts(total: int, winning: int, losing: int | None = None) -> tuple[int, int, int]:
    total = max(0, total)
    winning = min(max(0, winning), total)
    if losing is None:
        losing = total - winning
    losing = min(max(0, losing), total - winning)
    return total, winning, losing


# ---------------------------------------------------------------------------
# Strategy adapters
# ---------------------------------------------------------------------------


def default_strategy(strategy_id: str, *, now: datetime | None = None) -> Strategy:
    """Minimal synthesized strategy used when no catalog entry matches."""
    now = now or utc_now()
    return Strategy(
        id=strategy_id or "unknown-strategy",
        user_id="",
        name=f"Strategy {strategy_id}",
        description="",
        strategy_type="unknown",
        asset_class="EQUITY",
        symbols=(),
        timeframe=DEFAULT_TIMEFRAME,
        status="DRAFT",
        parameters={},
        risk_parameters={},
        capital_allocated=0.0,
        max_positions=DEFAULT_MAX_POSITIONS,
        start_time=DEFAULT_START_TIME,
        end_time=DEFAULT_END_TIME,
        active_days=DEFAULT_ACTIVE_DAYS,
        version=1,
        created_at=now,
        updated_at=now,
    )


def engine_strategy_to_strategy(
    record: EngineStrategyRecord | Mapping[str, Any],
    *,
    user_id: str = "",
    now: datetime | None = None,
) -> Strategy:
    """Catalog entry -> canonical DRAFT strategy."""
    if not isinstance(record, EngineStrategyRecord):
        record = EngineStrategyRecord.from_raw(record)
    now = now or utc_now()

    strategy_id = record.strategy_id or _placeholder_id("strategy", record)
    return Strategy(
        id=strategy_id,
        user_id=user_id,
        name=record.name or f"Strategy {strategy_id}",
        description=record.description,
        strategy_type=record.category or "unknown",
        asset_class=map_asset_class(record.category),
        symbols=tuple(record.symbols),
        timeframe=DEFAULT_TIMEFRAME,
        status="DRAFT",
        parameters=dict(record.parameters),
        risk_parameters={
            "risk_level": record.risk_level,
            "min_capital": record.min_capital,
            "max_drawdown": record.max_drawdown,
        },
        max_drawdown=record.max_drawdown,
        capital_allocated=max(0.0, record.min_capital),
        max_positions=DEFAULT_MAX_POSITIONS,
        start_time=DEFAULT_START_TIME,
        end_time=DEFAULT_END_TIME,
        active_days=DEFAULT_ACTIVE_DAYS,
        version=1,
        created_at=now,
        updated_at=now,
    )


def user_strategy_to_strategy(
    record: UserStrategyRecord | Mapping[str, Any],
    catalog: Strategy | EngineStrategyRecord | Mapping[str, Any] | None = None,
    *,
    now: datetime | None = None,
) -> Strategy:
    """Per-user activation record (+ optional catalog entry) -> canonical strategy.

    Descriptive fields come from the catalog entry when one matches; counts,
    status and allocation always come from the activation record.
    """
    if not isinstance(record, UserStrategyRecord):
        record = UserStrategyRecord.from_raw(record)
    now = now or utc_now()

    strategy_id = record.strategy_id or _placeholder_id("strategy", record)

    if isinstance(catalog, Strategy):
        base = catalog
    elif catalog is not None:
        base = engine_strategy_to_strategy(catalog, now=now)
    else:
        base = default_strategy(strategy_id, now=now)

    total, winning, losing = _trade_counts(record.total_orders, record.successful_orders)

    return base.model_copy(
        update={
            "id": strategy_id,
            "user_id": record.user_id,
            "status": map_strategy_status(record.status),
            "total_pnl": record.total_pnl,
            "total_trades": total,
            "winning_trades": winning,
            "losing_trades": losing,
            "win_rate": compute_win_rate(winning, total),
            "capital_allocated": max(0.0, record.allocation_amount),
            "last_executed_at": parse_timestamp(record.activated_at),
            "parameters": {**base.parameters, **record.custom_parameters},
            "order_count": total,
        }
    )


def persisted_strategy_to_strategy(
    record: PersistedStrategyRecord | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Strategy:
    """Relational row -> canonical strategy (win rate recomputed from counts)."""
    if not isinstance(record, PersistedStrategyRecord):
        record = PersistedStrategyRecord.from_raw(record)
    now = now or utc_now()

    strategy_id = record.id or _placeholder_id("strategy", record)
    total, winning, losing = _trade_counts(record.totalTrades, record.winningTrades, record.losingTrades)
    created = parse_timestamp(record.createdAt) or now

    return Strategy(
        id=strategy_id,
        user_id=record.userId,
        name=record.name or f"Strategy {strategy_id}",
        description=record.description,
        strategy_type=record.strategyType or "unknown",
        asset_class=map_asset_class(record.assetClass),
        symbols=tuple(record.symbols),
        timeframe=_timeframe(record.timeframe),
        status=map_persisted_strategy_status(record.status),
        parameters=dict(record.parameters),
        risk_parameters=dict(record.riskParameters),
        total_pnl=record.totalPnl,
        total_trades=total,
        winning_trades=winning,
        losing_trades=losing,
        win_rate=compute_win_rate(winning, total),
        max_drawdown=record.maxDrawdown,
        capital_allocated=max(0.0, record.capitalAllocated),
        max_positions=max(DEFAULT_MAX_POSITIONS, record.maxPositions),
        start_time=record.startTime or DEFAULT_START_TIME,
        end_time=record.endTime or DEFAULT_END_TIME,
        active_days=_active_days(record.activeDays),
        version=max(1, record.version),
        order_count=max(0, record.orderCount),
        created_at=created,
        updated_at=parse_timestamp(record.updatedAt) or created,
        last_executed_at=parse_timestamp(record.lastExecutedAt),
    )


def user_strategy_to_performance(record: UserStrategyRecord | Mapping[str, Any]) -> StrategyPerformance:
    if not isinstance(record, UserStrategyRecord):
        record = UserStrategyRecord.from_raw(record)

    total, winning, losing = _trade_counts(record.total_orders, record.successful_orders)
    pnl = record.total_pnl
    return StrategyPerformance(
        strategy_id=record.strategy_id,
        total_pnl=pnl,
        total_trades=total,
        winning_trades=winning,
        losing_trades=losing,
        win_rate=compute_win_rate(winning, total),
        avg_profit_per_trade=pnl / total if total > 0 else 0.0,
        max_profit=pnl if pnl > 0 else 0.0,
        max_loss=abs(pnl) if pnl < 0 else 0.0,
        best_day=pnl if pnl > 0 else 0.0,
        worst_day=pnl if pnl < 0 else 0.0,
        net_profit=pnl,
    )


# ---------------------------------------------------------------------------
# Order adapters
# ---------------------------------------------------------------------------


def engine_order_to_order(
    record: EngineOrderRecord | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Order:
    if not isinstance(record, EngineOrderRecord):
        record = EngineOrderRecord.from_raw(record)
    now = now or utc_now()

    quantity = _quantity(record.quantity)
    status, filled = reconcile_order_status(
        map_order_status(record.status),
        quantity,
        _quantity(record.filled_quantity),
    )

    return Order(
        id=record.order_id or _placeholder_id("order", record),
        user_id=record.user_id,
        strategy_id=record.strategy_id,
        symbol=record.symbol,
        exchange=DEFAULT_EXCHANGE,
        side=map_order_side(record.side),
        order_type=map_order_type(record.order_type),
        product_type=DEFAULT_PRODUCT_TYPE,
        quantity=quantity,
        price=record.price or None,
        status=status,
        filled_quantity=filled,
        average_price=record.average_price or None,
        variety=DEFAULT_VARIETY,
        created_at=now,
        updated_at=now,
        placed_at=parse_timestamp(record.placed_at),
        executed_at=parse_timestamp(record.executed_at),
    )


def api_order_to_order(
    record: ApiOrderRecord | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Order:
    if not isinstance(record, ApiOrderRecord):
        record = ApiOrderRecord.from_raw(record)
    now = now or utc_now()

    quantity = _quantity(record.quantity)
    status, filled = reconcile_order_status(
        map_order_status(record.status),
        quantity,
        _quantity(record.filled_quantity),
    )
    stamped = parse_timestamp(record.timestamp)

    return Order(
        id=record.id or _placeholder_id("order", record),
        user_id=record.user_id,
        strategy_id=record.strategy_id,
        symbol=record.symbol,
        exchange=DEFAULT_EXCHANGE,
        side=map_order_side(record.signal_type),
        order_type=map_order_type(record.order_type),
        product_type=DEFAULT_PRODUCT_TYPE,
        quantity=quantity,
        price=record.price or None,
        trigger_price=record.trigger_price,
        broker_order_id=record.broker_order_id,
        status=status,
        status_message=record.status_message,
        filled_quantity=filled,
        average_price=record.filled_price or None,
        variety=DEFAULT_VARIETY,
        created_at=stamped or now,
        updated_at=stamped or now,
        placed_at=stamped,
        executed_at=parse_timestamp(record.filled_at),
    )


def persisted_order_to_order(
    record: PersistedOrderRecord | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> Order:
    if not isinstance(record, PersistedOrderRecord):
        record = PersistedOrderRecord.from_raw(record)
    now = now or utc_now()

    quantity = _quantity(record.quantity)
    status, filled = reconcile_order_status(
        map_order_status(record.status),
        quantity,
        _quantity(record.filledQuantity),
    )
    created = parse_timestamp(record.createdAt) or now

    return Order(
        id=record.id or _placeholder_id("order", record),
        user_id=record.userId,
        strategy_id=record.strategyId,
        symbol=record.symbol,
        exchange=record.exchange or DEFAULT_EXCHANGE,
        side=map_order_side(record.side),
        order_type=map_order_type(record.orderType),
        product_type=_product_type(record.productType),
        quantity=quantity,
        price=record.price,
        trigger_price=record.triggerPrice,
        broker_order_id=record.brokerOrderId,
        status=status,
        status_message=record.statusMessage,
        filled_quantity=filled,
        average_price=record.averagePrice,
        tags=tuple(record.tags),
        notes=record.notes,
        variety=record.variety or DEFAULT_VARIETY,
        parent_order_id=record.parentOrderId,
        created_at=created,
        updated_at=parse_timestamp(record.updatedAt) or created,
        placed_at=parse_timestamp(record.placedAt),
        executed_at=parse_timestamp(record.executedAt),
        cancelled_at=parse_timestamp(record.cancelledAt),
    )


# ---------------------------------------------------------------------------
# Dispatch and batch conversion
# ---------------------------------------------------------------------------

_ORDER_ADAPTERS: dict[str, Callable[..., Order]] = {
    "engine_order": engine_order_to_order,
    "api_order": api_order_to_order,
    "persisted_order": persisted_order_to_order,
}


def to_order(record: SourceRecordBase, *, now: datetime | None = None) -> Order:
    """Dispatch an order source record to its adapter by ``source`` tag."""
    adapter = _ORDER_ADAPTERS[record.source]  # type: ignore[attr-defined]
    return adapter(record, now=now)


def to_strategy(
    record: SourceRecordBase,
    *,
    catalog: Strategy | EngineStrategyRecord | Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> Strategy:
    """Dispatch a strategy source record to its adapter by ``source`` tag."""
    if isinstance(record, UserStrategyRecord):
        return user_strategy_to_strategy(record, catalog, now=now)
    if isinstance(record, EngineStrategyRecord):
        return engine_strategy_to_strategy(record, now=now)
    if isinstance(record, PersistedStrategyRecord):
        return persisted_strategy_to_strategy(record, now=now)
    raise TypeError(f"Not a strategy source record: {type(record).__name__}")


def adapt_orders(
    raws: Iterable[Any] | None,
    *,
    source: str = "engine_order",
    now: datetime | None = None,
) -> list[Order]:
    """Convert a list of raw upstream orders; one bad element never aborts the batch."""
    record_type = ORDER_RECORD_TYPES[source]
    now = now or utc_now()
    out: list[Order] = []
    for raw in raws or ():
        record = record_type.from_raw(raw)  # type: ignore[attr-defined]
        try:
            out.append(to_order(record, now=now))
        except ValidationError as exc:
            LOGGER.warning("Order record degraded to placeholder source=%s error=%s", source, exc)
            out.append(_fallback_order(record, now=now))
    return out


def adapt_strategies(
    raws: Iterable[Any] | None,
    *,
    source: str = "user_strategy",
    catalog: Mapping[str, Strategy] | None = None,
    now: datetime | None = None,
) -> list[Strategy]:
    """Convert a list of raw upstream strategies, enriching from ``catalog`` by id."""
    record_type = STRATEGY_RECORD_TYPES[source]
    now = now or utc_now()
    catalog = catalog or {}
    out: list[Strategy] = []
    for raw in raws or ():
        record = record_type.from_raw(raw)  # type: ignore[attr-defined]
        match = catalog.get(getattr(record, "strategy_id", "")) if catalog else None
        try:
            out.append(to_strategy(record, catalog=match, now=now))
        except ValidationError as exc:
            LOGGER.warning("Strategy record degraded to placeholder source=%s error=%s", source, exc)
            out.append(default_strategy(getattr(record, "strategy_id", "") or getattr(record, "id", ""), now=now))
    return out


def _fallback_order(record: SourceRecordBase, *, now: datetime) -> Order:
    return Order(
        id=_placeholder_id("order", record),
        side="BUY",
        order_type="LIMIT",
        quantity=0,
        status="UNKNOWN",
        created_at=now,
        updated_at=now,
    )


# ---------------------------------------------------------------------------
# Reverse adapters (canonical -> engine payloads)
# ---------------------------------------------------------------------------


def activation_payload(allocation_amount: float) -> dict[str, float]:
    return {"allocation_amount": max(0.0, float(allocation_amount))}


def strategy_update_payload(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Canonical strategy field changes -> REST update body (JSON-compatible)."""
    payload: dict[str, Any] = {}
    for key, value in changes.items():
        payload[key] = list(value) if isinstance(value, tuple) else value
    return payload


def order_to_engine_payload(order: Order | Mapping[str, Any]) -> dict[str, Any]:
    data = order.model_dump() if isinstance(order, Order) else dict(order)
    payload: dict[str, Any] = {
        "symbol": data.get("symbol") or "",
        "side": map_order_side(data.get("side")),
        "quantity": _quantity(float(data.get("quantity") or 0)),
        "order_type": "MARKET" if data.get("order_type") == "MARKET" else "LIMIT",
    }
    if data.get("price"):
        payload["price"] = data["price"]
    return payload


def order_update_payload(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Canonical order field changes -> REST update body."""
    payload: dict[str, Any] = {}
    for key, value in changes.items():
        if key == "order_type" and value == "SL_M":
            value = "SL-M"
        payload[key] = list(value) if isinstance(value, tuple) else value
    return payload
