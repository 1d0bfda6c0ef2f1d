"""
Upstream status and vocabulary mapping.

Every function here is total: any input (including None, empty strings and
tokens the engine has not documented yet) maps to a defined canonical value.
Unrecognized tokens never default to a high-stakes status such as COMPLETE
or ACTIVE.
"""

from __future__ import annotations

from typing import Any

from trading_dashboard.core.domain.types import (
    AssetClass,
    OrderSide,
    OrderStatus,
    OrderType,
    StrategyStatus,
)

# Engine order vocabulary (lower-case tokens).
ENGINE_ORDER_STATUS_MAP: dict[str, OrderStatus] = {
    "pending": "PENDING",
    "placed": "PLACED",
    "filled": "COMPLETE",
    "rejected": "REJECTED",
    "cancelled": "CANCELLED",
}

# Secondary wire shape (REST order API, upper-case tokens).
API_ORDER_STATUS_MAP: dict[str, OrderStatus] = {
    "PENDING": "PENDING",
    "PLACED": "PLACED",
    "OPEN": "OPEN",
    "COMPLETE": "COMPLETE",
    "CANCELLED": "CANCELLED",
    "REJECTED": "REJECTED",
    "ERROR": "ERROR",
    "QUEUED": "QUEUED",
    "UNKNOWN": "UNKNOWN",
    "FAILED": "REJECTED",
}

ENGINE_STRATEGY_STATUS_MAP: dict[str, StrategyStatus] = {
    "active": "ACTIVE",
    "paused": "PAUSED",
    "available": "DRAFT",
}

ASSET_CLASS_BY_CATEGORY: dict[str, AssetClass] = {
    "equity": "EQUITY",
    "swing": "EQUITY",
    "momentum": "EQUITY",
    "derivatives": "DERIVATIVES",
    "options": "DERIVATIVES",
    "futures": "DERIVATIVES",
    "crypto": "CRYPTO",
    "commodities": "COMMODITIES",
    "forex": "FOREX",
}


def _token(value: Any) -> str:
    if value is None:
        return ""
    try:
        return str(value).strip()
    except Exception:  # pylint: disable=broad-exception-caught
        # str() on an arbitrary object may raise; totality wins.
        return ""


def map_order_status(token: Any) -> OrderStatus:
    """Map an engine or REST order status token to the canonical status.

    Engine tokens are matched exactly first, then the upper-case REST
    vocabulary. ``NULL``, ``DEFAULT`` and anything else map to UNKNOWN.
    """
    text = _token(token)
    mapped = ENGINE_ORDER_STATUS_MAP.get(text)
    if mapped is not None:
        return mapped
    return API_ORDER_STATUS_MAP.get(text, "UNKNOWN")


def map_strategy_status(token: Any) -> StrategyStatus:
    """Map an engine strategy token; unknown tokens fall back to DRAFT."""
    return ENGINE_STRATEGY_STATUS_MAP.get(_token(token), "DRAFT")


def map_persisted_strategy_status(token: Any) -> StrategyStatus:
    """Map a persisted-row strategy status (already canonical upper-case)."""
    text = _token(token).upper()
    if text in ("DRAFT", "ACTIVE", "PAUSED", "STOPPED", "ERROR"):
        return text  # type: ignore[return-value]
    return map_strategy_status(_token(token).lower())


def map_order_side(token: Any) -> OrderSide:
    return "BUY" if _token(token).upper() == "BUY" else "SELL"


def map_order_type(token: Any) -> OrderType:
    text = _token(token).upper().replace("-", "_")
    if text in ("MARKET", "LIMIT", "SL", "SL_M"):
        return text  # type: ignore[return-value]
    return "LIMIT"


def map_asset_class(category: Any) -> AssetClass:
    text = _token(category)
    upper = text.upper()
    if upper in ("EQUITY", "DERIVATIVES", "CRYPTO", "COMMODITIES", "FOREX"):
        return upper  # type: ignore[return-value]
    return ASSET_CLASS_BY_CATEGORY.get(text.lower(), "EQUITY")
