"""Canonical dashboard entities and upstream source records.

This module defines the single normalized ``Order`` / ``Strategy`` shapes the
dashboard renders from, the enum vocabularies exchanged with the trading
engine, and one record model per upstream shape. These types are treated as
schema definitions and intentionally prioritize structural clarity over
minimal class size.
"""

# pylint: disable=line-too-long,missing-class-docstring,missing-function-docstring
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Mapping, get_args

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ---------------------------------------------------------------------------
# Enum vocabularies (values are wire contract, byte-exact)
# ---------------------------------------------------------------------------

OrderSide = Literal["BUY", "SELL"]
OrderType = Literal["MARKET", "LIMIT", "SL", "SL_M"]
OrderStatus = Literal[
    "PENDING",
    "PLACED",
    "OPEN",
    "COMPLETE",
    "CANCELLED",
    "REJECTED",
    "ERROR",
    "QUEUED",
    "UNKNOWN",
]
StrategyStatus = Literal["DRAFT", "ACTIVE", "PAUSED", "STOPPED", "ERROR"]
AssetClass = Literal["EQUITY", "DERIVATIVES", "CRYPTO", "COMMODITIES", "FOREX"]
ProductType = Literal["DELIVERY", "INTRADAY", "MARGIN", "NORMAL", "CARRYFORWARD", "BO", "CO"]
TimeFrame = Literal[
    "SECOND_1",
    "SECOND_5",
    "SECOND_15",
    "SECOND_30",
    "MINUTE_1",
    "MINUTE_3",
    "MINUTE_5",
    "MINUTE_15",
    "MINUTE_30",
    "HOUR_1",
    "HOUR_4",
    "DAY_1",
    "WEEK_1",
    "MONTH_1",
]
Weekday = Literal["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]

ORDER_SIDES: tuple[str, ...] = get_args(OrderSide)
ORDER_TYPES: tuple[str, ...] = get_args(OrderType)
ORDER_STATUSES: tuple[str, ...] = get_args(OrderStatus)
STRATEGY_STATUSES: tuple[str, ...] = get_args(StrategyStatus)
ASSET_CLASSES: tuple[str, ...] = get_args(AssetClass)
PRODUCT_TYPES: tuple[str, ...] = get_args(ProductType)
TIME_FRAMES: tuple[str, ...] = get_args(TimeFrame)
WEEKDAYS: tuple[str, ...] = get_args(Weekday)

# ---------------------------------------------------------------------------
# Defaults used when an upstream shape lacks a field
# ---------------------------------------------------------------------------

DEFAULT_EXCHANGE: str = "NSE"
DEFAULT_PRODUCT_TYPE: ProductType = "INTRADAY"
DEFAULT_TIMEFRAME: TimeFrame = "MINUTE_5"
DEFAULT_START_TIME: str = "09:15"
DEFAULT_END_TIME: str = "15:30"
DEFAULT_ACTIVE_DAYS: tuple[Weekday, ...] = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY")
DEFAULT_VARIETY: str = "regular"
DEFAULT_MAX_POSITIONS: int = 1


# ---------------------------------------------------------------------------
# Canonical entities
# ---------------------------------------------------------------------------


class Order(BaseModel):
    """Canonical order, independent of which upstream produced it."""

    id: str = Field(..., min_length=1)
    user_id: str = ""
    strategy_id: str | None = None

    symbol: str = ""
    exchange: str = DEFAULT_EXCHANGE
    side: OrderSide
    order_type: OrderType
    product_type: ProductType = DEFAULT_PRODUCT_TYPE

    quantity: int = Field(..., ge=0)
    price: float | None = None
    trigger_price: float | None = None
    broker_order_id: str | None = None

    status: OrderStatus
    status_message: str | None = None
    filled_quantity: int = Field(0, ge=0)
    average_price: float | None = None

    tags: tuple[str, ...] = ()
    notes: str | None = None
    variety: str = DEFAULT_VARIETY
    parent_order_id: str | None = None

    created_at: datetime
    updated_at: datetime
    placed_at: datetime | None = None
    executed_at: datetime | None = None
    cancelled_at: datetime | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def validate_fill_bounds(self) -> Order:
        if self.filled_quantity > self.quantity:
            raise ValueError("filled_quantity must not exceed quantity")
        return self

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.filled_quantity

    @property
    def notional(self) -> float:
        return (self.price or 0.0) * self.quantity


class Strategy(BaseModel):
    """Canonical strategy mirrored from the engine or the persisted store."""

    id: str = Field(..., min_length=1)
    user_id: str = ""
    name: str = ""
    description: str = ""
    strategy_type: str = "unknown"
    asset_class: AssetClass = "EQUITY"
    symbols: tuple[str, ...] = ()
    timeframe: TimeFrame = DEFAULT_TIMEFRAME
    status: StrategyStatus = "DRAFT"

    parameters: dict[str, Any] = Field(default_factory=dict)
    risk_parameters: dict[str, Any] = Field(default_factory=dict)

    # Aggregated by the engine, never set directly by a user action.
    total_pnl: float = 0.0
    total_trades: int = Field(0, ge=0)
    winning_trades: int = Field(0, ge=0)
    losing_trades: int = Field(0, ge=0)
    win_rate: float = Field(0.0, ge=0, le=100)
    max_drawdown: float = 0.0

    capital_allocated: float = Field(0.0, ge=0)
    max_positions: int = Field(DEFAULT_MAX_POSITIONS, ge=1)
    start_time: str = DEFAULT_START_TIME
    end_time: str = DEFAULT_END_TIME
    active_days: tuple[Weekday, ...] = DEFAULT_ACTIVE_DAYS

    version: int = Field(1, ge=1)
    order_count: int = Field(0, ge=0)

    created_at: datetime
    updated_at: datetime
    last_executed_at: datetime | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    @model_validator(mode="after")
    def validate_trade_counts(self) -> Strategy:
        if self.winning_trades + self.losing_trades > self.total_trades:
            raise ValueError("winning_trades + losing_trades must not exceed total_trades")
        return self


# Fields whose change counts as a structural update (bumps Strategy.version).
STRUCTURAL_STRATEGY_FIELDS: frozenset[str] = frozenset(
    {
        "strategy_type",
        "asset_class",
        "symbols",
        "timeframe",
        "parameters",
        "risk_parameters",
        "max_positions",
        "start_time",
        "end_time",
        "active_days",
    }
)

# Fields a caller may change through StrategyStore.update().
USER_EDITABLE_STRATEGY_FIELDS: frozenset[str] = STRUCTURAL_STRATEGY_FIELDS | frozenset(
    {"name", "description"}
)

# Fields a caller may change through OrderStore.update().
USER_EDITABLE_ORDER_FIELDS: frozenset[str] = frozenset(
    {"quantity", "price", "trigger_price", "order_type", "tags", "notes"}
)


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


class StrategyPerformance(BaseModel):
    strategy_id: str
    total_pnl: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_profit_per_trade: float = 0.0
    max_profit: float = 0.0
    max_loss: float = 0.0
    best_day: float = 0.0
    worst_day: float = 0.0
    net_profit: float = 0.0

    model_config = ConfigDict(extra="forbid", frozen=True)


class StrategySummary(BaseModel):
    total_strategies: int = 0
    active_strategies: int = 0
    paused_strategies: int = 0
    stopped_strategies: int = 0
    draft_strategies: int = 0
    total_pnl: float = 0.0
    total_trades: int = 0
    win_rate: float = 0.0

    model_config = ConfigDict(extra="forbid", frozen=True)


class OrderSummary(BaseModel):
    total_orders: int = 0
    pending_orders: int = 0
    open_orders: int = 0
    completed_orders: int = 0
    cancelled_orders: int = 0
    rejected_orders: int = 0
    total_value: float = 0.0
    avg_order_size: float = 0.0

    model_config = ConfigDict(extra="forbid", frozen=True)


# ---------------------------------------------------------------------------
# Upstream source records (closed union, one model per upstream shape)
#
# Every record accepts unknown keys and is built through ``from_raw``, which
# coerces field values best-effort and never raises.
# ---------------------------------------------------------------------------


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float, bool)):
        return str(value)
    return default


def _opt_str(value: Any) -> str | None:
    text = _str(value)
    return text or None


def _float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        out = float(value)
    except (TypeError, ValueError):
        return default
    if out != out or out in (float("inf"), float("-inf")):
        return default
    return out


def _opt_float(value: Any) -> float | None:
    if value is None:
        return None
    out = _float(value, default=float("nan"))
    return None if out != out else out


def _int(value: Any, default: int = 0) -> int:
    return int(_float(value, default=float(default)))


def _str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value] if value else []
    if not isinstance(value, (list, tuple)):
        return []
    return [item for item in (_str(v) for v in value) if item]


def _mapping(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return {str(k): v for k, v in value.items()}
    return {}


def _raw_time(value: Any) -> str | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return value
    if isinstance(value, datetime):
        return value.isoformat()
    return None


class SourceRecordBase(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class EngineStrategyRecord(SourceRecordBase):
    """Strategy catalog entry from ``GET /marketplace``."""

    source: Literal["engine_strategy"] = "engine_strategy"

    strategy_id: str = ""
    name: str = ""
    description: str = ""
    category: str = ""
    risk_level: str = ""
    min_capital: float = 0.0
    expected_return_annual: float = 0.0
    max_drawdown: float = 0.0
    symbols: list[str] = Field(default_factory=list)
    parameters: dict[str, Any] = Field(default_factory=dict)
    is_active: bool = False

    @classmethod
    def from_raw(cls, raw: Any) -> EngineStrategyRecord:
        d = _mapping(raw)
        return cls(
            strategy_id=_str(d.get("strategy_id") or d.get("id")),
            name=_str(d.get("name")),
            description=_str(d.get("description")),
            category=_str(d.get("category")),
            risk_level=_str(d.get("risk_level")),
            min_capital=_float(d.get("min_capital")),
            expected_return_annual=_float(d.get("expected_return_annual")),
            max_drawdown=_float(d.get("max_drawdown")),
            symbols=_str_list(d.get("symbols")),
            parameters=_mapping(d.get("parameters")),
            is_active=bool(d.get("is_active", False)),
        )


class UserStrategyRecord(SourceRecordBase):
    """Per-user activation record from ``/user/dashboard`` and ``/user/activate``."""

    source: Literal["user_strategy"] = "user_strategy"

    user_id: str = ""
    strategy_id: str = ""
    status: str = ""
    activated_at: str | float | None = None
    allocation_amount: float = 0.0
    custom_parameters: dict[str, Any] = Field(default_factory=dict)
    total_orders: int = 0
    successful_orders: int = 0
    total_pnl: float = 0.0

    @classmethod
    def from_raw(cls, raw: Any) -> UserStrategyRecord:
        d = _mapping(raw)
        return cls(
            user_id=_str(d.get("user_id")),
            strategy_id=_str(d.get("strategy_id")),
            status=_str(d.get("status")),
            activated_at=_raw_time(d.get("activated_at")),
            allocation_amount=_float(d.get("allocation_amount")),
            custom_parameters=_mapping(d.get("custom_parameters")),
            total_orders=_int(d.get("total_orders")),
            successful_orders=_int(d.get("successful_orders")),
            total_pnl=_float(d.get("total_pnl")),
        )


class PersistedStrategyRecord(SourceRecordBase):
    """Strategy row as stored by the relational backend (camelCase columns)."""

    source: Literal["persisted_strategy"] = "persisted_strategy"

    id: str = ""
    userId: str = ""
    name: str = ""
    description: str = ""
    strategyType: str = ""
    assetClass: str = ""
    symbols: list[str] = Field(default_factory=list)
    timeframe: str = ""
    status: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)
    riskParameters: dict[str, Any] = Field(default_factory=dict)
    totalPnl: float = 0.0
    totalTrades: int = 0
    winningTrades: int = 0
    losingTrades: int = 0
    maxDrawdown: float = 0.0
    capitalAllocated: float = 0.0
    maxPositions: int = 0
    startTime: str = ""
    endTime: str = ""
    activeDays: list[str] = Field(default_factory=list)
    version: int = 1
    createdAt: str | float | None = None
    updatedAt: str | float | None = None
    lastExecutedAt: str | float | None = None
    orderCount: int = 0

    @classmethod
    def from_raw(cls, raw: Any) -> PersistedStrategyRecord:
        d = _mapping(raw)
        counts = _mapping(d.get("_count"))
        return cls(
            id=_str(d.get("id")),
            userId=_str(d.get("userId")),
            name=_str(d.get("name")),
            description=_str(d.get("description")),
            strategyType=_str(d.get("strategyType")),
            assetClass=_str(d.get("assetClass")),
            symbols=_str_list(d.get("symbols")),
            timeframe=_str(d.get("timeframe")),
            status=_str(d.get("status")),
            parameters=_mapping(d.get("parameters")),
            riskParameters=_mapping(d.get("riskParameters")),
            totalPnl=_float(d.get("totalPnl")),
            totalTrades=_int(d.get("totalTrades")),
            winningTrades=_int(d.get("winningTrades")),
            losingTrades=_int(d.get("losingTrades")),
            maxDrawdown=_float(d.get("maxDrawdown")),
            capitalAllocated=_float(d.get("capitalAllocated")),
            maxPositions=_int(d.get("maxPositions")),
            startTime=_str(d.get("startTime")),
            endTime=_str(d.get("endTime")),
            activeDays=_str_list(d.get("activeDays")),
            version=_int(d.get("version"), default=1),
            createdAt=_raw_time(d.get("createdAt")),
            updatedAt=_raw_time(d.get("updatedAt")),
            lastExecutedAt=_raw_time(d.get("lastExecutedAt")),
            orderCount=_int(counts.get("orders")),
        )


class EngineOrderRecord(SourceRecordBase):
    """Order as reported by the engine (``/orders``, dashboard ``recent_orders``)."""

    source: Literal["engine_order"] = "engine_order"

    order_id: str = ""
    user_id: str = ""
    strategy_id: str | None = None
    symbol: str = ""
    side: str = ""
    quantity: float = 0.0
    order_type: str = ""
    price: float | None = None
    status: str = ""
    filled_quantity: float = 0.0
    average_price: float | None = None
    placed_at: str | float | None = None
    executed_at: str | float | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> EngineOrderRecord:
        d = _mapping(raw)
        return cls(
            order_id=_str(d.get("order_id") or d.get("id")),
            user_id=_str(d.get("user_id")),
            strategy_id=_opt_str(d.get("strategy_id")),
            symbol=_str(d.get("symbol")),
            side=_str(d.get("side")),
            quantity=_float(d.get("quantity")),
            order_type=_str(d.get("order_type")),
            price=_opt_float(d.get("price")),
            status=_str(d.get("status")),
            filled_quantity=_float(d.get("filled_quantity")),
            average_price=_opt_float(d.get("average_price")),
            placed_at=_raw_time(d.get("placed_at")),
            executed_at=_raw_time(d.get("executed_at")),
        )


class ApiOrderRecord(SourceRecordBase):
    """Order from the REST order API (``signal_type`` or ``side`` carries the side)."""

    source: Literal["api_order"] = "api_order"

    id: str = ""
    user_id: str = ""
    strategy_id: str | None = None
    symbol: str = ""
    signal_type: str = ""
    quantity: float = 0.0
    order_type: str = ""
    price: float | None = None
    trigger_price: float | None = None
    status: str = ""
    broker_order_id: str | None = None
    filled_quantity: float = 0.0
    filled_price: float | None = None
    timestamp: str | float | None = None
    filled_at: str | float | None = None
    status_message: str | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> ApiOrderRecord:
        d = _mapping(raw)
        return cls(
            id=_str(d.get("id") or d.get("order_id")),
            user_id=_str(d.get("user_id")),
            strategy_id=_opt_str(d.get("strategy_id")),
            symbol=_str(d.get("symbol")),
            signal_type=_str(d.get("signal_type") or d.get("side")),
            quantity=_float(d.get("quantity")),
            order_type=_str(d.get("order_type")),
            price=_opt_float(d.get("price")),
            trigger_price=_opt_float(d.get("trigger_price")),
            status=_str(d.get("status")),
            broker_order_id=_opt_str(d.get("broker_order_id")),
            filled_quantity=_float(d.get("filled_quantity")),
            filled_price=_opt_float(d.get("filled_price")),
            timestamp=_raw_time(d.get("timestamp")),
            filled_at=_raw_time(d.get("filled_at")),
            status_message=_opt_str(d.get("status_message") or d.get("error_message")),
        )


class PersistedOrderRecord(SourceRecordBase):
    """Order row as stored by the relational backend (camelCase columns)."""

    source: Literal["persisted_order"] = "persisted_order"

    id: str = ""
    userId: str = ""
    strategyId: str | None = None
    symbol: str = ""
    exchange: str = ""
    side: str = ""
    orderType: str = ""
    productType: str = ""
    quantity: float = 0.0
    price: float | None = None
    triggerPrice: float | None = None
    brokerOrderId: str | None = None
    status: str = ""
    statusMessage: str | None = None
    filledQuantity: float = 0.0
    averagePrice: float | None = None
    tags: list[str] = Field(default_factory=list)
    notes: str | None = None
    variety: str = ""
    parentOrderId: str | None = None
    createdAt: str | float | None = None
    updatedAt: str | float | None = None
    placedAt: str | float | None = None
    executedAt: str | float | None = None
    cancelledAt: str | float | None = None

    @classmethod
    def from_raw(cls, raw: Any) -> PersistedOrderRecord:
        d = _mapping(raw)
        return cls(
            id=_str(d.get("id")),
            userId=_str(d.get("userId")),
            strategyId=_opt_str(d.get("strategyId")),
            symbol=_str(d.get("symbol")),
            exchange=_str(d.get("exchange")),
            side=_str(d.get("side")),
            orderType=_str(d.get("orderType")),
            productType=_str(d.get("productType")),
            quantity=_float(d.get("quantity")),
            price=_opt_float(d.get("price")),
            triggerPrice=_opt_float(d.get("triggerPrice")),
            brokerOrderId=_opt_str(d.get("brokerOrderId")),
            status=_str(d.get("status")),
            statusMessage=_opt_str(d.get("statusMessage")),
            filledQuantity=_float(d.get("filledQuantity")),
            averagePrice=_opt_float(d.get("averagePrice")),
            tags=_str_list(d.get("tags")),
            notes=_opt_str(d.get("notes")),
            variety=_str(d.get("variety")),
            parentOrderId=_opt_str(d.get("parentOrderId")),
            createdAt=_raw_time(d.get("createdAt")),
            updatedAt=_raw_time(d.get("updatedAt")),
            placedAt=_raw_time(d.get("placedAt")),
            executedAt=_raw_time(d.get("executedAt")),
            cancelledAt=_raw_time(d.get("cancelledAt")),
        )


# Discriminated unions: Pydantic selects the record model based on ``source``.
OrderSourceRecord = Annotated[
    EngineOrderRecord | ApiOrderRecord | PersistedOrderRecord,
    Field(discriminator="source"),
]
StrategySourceRecord = Annotated[
    EngineStrategyRecord | UserStrategyRecord | PersistedStrategyRecord,
    Field(discriminator="source"),
]

ORDER_RECORD_TYPES: dict[str, type[SourceRecordBase]] = {
    "engine_order": EngineOrderRecord,
    "api_order": ApiOrderRecord,
    "persisted_order": PersistedOrderRecord,
}
STRATEGY_RECORD_TYPES: dict[str, type[SourceRecordBase]] = {
    "engine_strategy": EngineStrategyRecord,
    "user_strategy": UserStrategyRecord,
    "persisted_strategy": PersistedStrategyRecord,
}
