"""
Semantic test: status mapping is total.

Invariant:
Every upstream token, including None, empty strings, non-strings and tokens
the engine has not documented, maps to a defined canonical status. Unknown
tokens never map to a high-stakes status such as COMPLETE or ACTIVE.
"""

from __future__ import annotations

import pytest

from trading_dashboard.core.domain.status_mapper import (
    map_asset_class,
    map_order_side,
    map_order_status,
    map_order_type,
    map_strategy_status,
)
from trading_dashboard.core.domain.types import ORDER_STATUSES, STRATEGY_STATUSES


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("pending", "PENDING"),
        ("placed", "PLACED"),
        ("filled", "COMPLETE"),
        ("rejected", "REJECTED"),
        ("cancelled", "CANCELLED"),
        ("OPEN", "OPEN"),
        ("COMPLETE", "COMPLETE"),
        ("QUEUED", "QUEUED"),
        ("ERROR", "ERROR"),
        ("FAILED", "REJECTED"),
    ],
)
def test_documented_order_tokens(token, expected) -> None:
    assert map_order_status(token) == expected


@pytest.mark.parametrize("token", [None, "", "   ", "NULL", "DEFAULT", "partially_filled", 42, 3.5, object(), ["filled"]])
def test_unknown_order_tokens_map_to_unknown(token) -> None:
    assert map_order_status(token) == "UNKNOWN"


@pytest.mark.parametrize(
    ("token", "expected"),
    [("active", "ACTIVE"), ("paused", "PAUSED"), ("available", "DRAFT")],
)
def test_documented_strategy_tokens(token, expected) -> None:
    assert map_strategy_status(token) == expected


@pytest.mark.parametrize("token", [None, "", "ACTIVE_NOW", "running", 1, {"status": "active"}])
def test_unknown_strategy_tokens_fall_back_to_draft(token) -> None:
    assert map_strategy_status(token) == "DRAFT"


def test_outputs_are_always_canonical() -> None:
    for token in ["pending", "x", None, "", "filled", "UNKNOWN", 0]:
        assert map_order_status(token) in ORDER_STATUSES
        assert map_strategy_status(token) in STRATEGY_STATUSES


def test_side_and_type_helpers_are_total() -> None:
    assert map_order_side("buy") == "BUY"
    assert map_order_side("SELL") == "SELL"
    assert map_order_side(None) == "SELL"

    assert map_order_type("SL-M") == "SL_M"
    assert map_order_type("market") == "MARKET"
    assert map_order_type("bracket") == "LIMIT"
    assert map_order_type(None) == "LIMIT"


def test_asset_class_from_category() -> None:
    assert map_asset_class("options") == "DERIVATIVES"
    assert map_asset_class("crypto") == "CRYPTO"
    assert map_asset_class("FOREX") == "FOREX"
    assert map_asset_class("something-else") == "EQUITY"
    assert map_asset_class(None) == "EQUITY"
