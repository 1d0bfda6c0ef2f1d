"""Public API for the trading_dashboard package.

Only symbols imported here are considered part of the stable,
supported external interface.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError, version

# ----------------------------------------------------------------------
# Canonical entities and mapping
# ----------------------------------------------------------------------
from trading_dashboard.core.adapters.entity_adapter import (
    adapt_orders,
    adapt_strategies,
    to_order,
    to_strategy,
)
from trading_dashboard.core.domain.errors import EngineApiError, StoreError, classify_error
from trading_dashboard.core.domain.status_mapper import map_order_status, map_strategy_status
from trading_dashboard.core.domain.types import (
    Order,
    OrderSummary,
    Strategy,
    StrategyPerformance,
    StrategySummary,
)

# ----------------------------------------------------------------------
# Engine access
# ----------------------------------------------------------------------
from trading_dashboard.engine.client import EngineApiClient
from trading_dashboard.engine.config import EngineConfig
from trading_dashboard.engine.storage import InMemoryStorage, JsonFileStorage

# ----------------------------------------------------------------------
# Stores
# ----------------------------------------------------------------------
from trading_dashboard.stores.auth_store import AuthStore
from trading_dashboard.stores.order_store import OrderStore
from trading_dashboard.stores.root_store import RootStore
from trading_dashboard.stores.strategy_store import StrategyStore

# ----------------------------------------------------------------------
# Public API definition
# ----------------------------------------------------------------------

__all__ = [
    # Entities
    "Order",
    "Strategy",
    "OrderSummary",
    "StrategySummary",
    "StrategyPerformance",

    # Mapping
    "map_order_status",
    "map_strategy_status",
    "to_order",
    "to_strategy",
    "adapt_orders",
    "adapt_strategies",

    # Errors
    "EngineApiError",
    "StoreError",
    "classify_error",

    # Engine
    "EngineConfig",
    "EngineApiClient",
    "InMemoryStorage",
    "JsonFileStorage",

    # Stores
    "RootStore",
    "AuthStore",
    "StrategyStore",
    "OrderStore",

    # Version
    "__version__",
]

# ----------------------------------------------------------------------
# Package version
# ----------------------------------------------------------------------

try:
    __version__ = version("trading-dashboard")
except PackageNotFoundError:
    __version__ = "0.0.0"
