"""
Order and strategy lifecycle definitions.

This module defines the canonical statuses and the allowed transitions
between them. It is passive and validation-only: stores consult it before
issuing a mutating call, adapters never do (the engine is authoritative for
what it reports).
"""

from __future__ import annotations

# Terminal order statuses: no further mutation permitted.
ORDER_TERMINAL_STATUSES: frozenset[str] = frozenset(
    {
        "COMPLETE",
        "CANCELLED",
        "REJECTED",
    }
)

# Statuses reachable from any non-terminal order status.
ORDER_INTERRUPT_STATUSES: frozenset[str] = frozenset(
    {
        "CANCELLED",
        "REJECTED",
        "ERROR",
        "UNKNOWN",
    }
)

# Order statuses reported by the engine that end the order without a full fill.
ORDER_FAILURE_STATUSES: frozenset[str] = frozenset(
    {
        "CANCELLED",
        "REJECTED",
        "ERROR",
    }
)


# Allowed order status transitions.
#
# Key   : previous status (or None if the order was not previously observed)
# Value : set of allowed next statuses
#
# Notes:
# - Repeated statuses (e.g. OPEN -> OPEN on a further partial fill) are allowed.
# - QUEUED behaves like PENDING.
# - ERROR and UNKNOWN are not terminal; the engine may report progress later.
ORDER_ALLOWED_TRANSITIONS: dict[str | None, frozenset[str]] = {
    None: frozenset({"PENDING", "QUEUED", "PLACED", "OPEN", "COMPLETE"}) | ORDER_INTERRUPT_STATUSES,

    "PENDING": frozenset({"PENDING", "QUEUED", "PLACED", "OPEN", "COMPLETE"}) | ORDER_INTERRUPT_STATUSES,

    "QUEUED": frozenset({"QUEUED", "PENDING", "PLACED", "OPEN", "COMPLETE"}) | ORDER_INTERRUPT_STATUSES,

    "PLACED": frozenset({"PLACED", "OPEN", "COMPLETE"}) | ORDER_INTERRUPT_STATUSES,

    "OPEN": frozenset({"OPEN", "COMPLETE"}) | ORDER_INTERRUPT_STATUSES,

    "ERROR": frozenset({"PENDING", "PLACED", "OPEN", "COMPLETE"}) | ORDER_INTERRUPT_STATUSES,

    "UNKNOWN": frozenset({"PENDING", "PLACED", "OPEN", "COMPLETE"}) | ORDER_INTERRUPT_STATUSES,
}


# Allowed strategy status transitions.
#
# STOPPED is terminal unless reactivated by a fresh activation.
STRATEGY_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "DRAFT": frozenset({"ACTIVE", "ERROR"}),
    "ACTIVE": frozenset({"PAUSED", "STOPPED", "ERROR"}),
    "PAUSED": frozenset({"ACTIVE", "STOPPED", "ERROR"}),
    "STOPPED": frozenset({"ACTIVE", "ERROR"}),
    "ERROR": frozenset({"ACTIVE", "STOPPED", "ERROR"}),
}


def is_terminal_order_status(status: str) -> bool:
    """Return True if the given order status is terminal."""
    return status in ORDER_TERMINAL_STATUSES


def is_valid_order_transition(prev_status: str | None, next_status: str) -> bool:
    """Return True if the transition prev_status -> next_status is allowed."""
    allowed = ORDER_ALLOWED_TRANSITIONS.get(prev_status)
    if allowed is None:
        return False
    return next_status in allowed


def is_valid_strategy_transition(prev_status: str, next_status: str) -> bool:
    """Return True if the strategy transition prev_status -> next_status is allowed."""
    allowed = STRATEGY_ALLOWED_TRANSITIONS.get(prev_status)
    if allowed is None:
        return False
    return next_status in allowed
