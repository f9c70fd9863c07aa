"""Booking and payment state machines, plus booking price derivation."""
from __future__ import annotations

import math
import os
from datetime import date
from typing import Dict, FrozenSet, Tuple

from ..errors import InvalidTransition

PENDING = "pending"
CONFIRMED = "confirmed"
REJECTED = "rejected"
CANCELLED = "cancelled"
COMPLETED = "completed"

# Statuses that hold a room's dates
ACTIVE_STATUSES: Tuple[str, ...] = (PENDING, CONFIRMED)

BOOKING_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({CONFIRMED, REJECTED, CANCELLED}),
    CONFIRMED: frozenset({CANCELLED, COMPLETED}),
    REJECTED: frozenset(),
    CANCELLED: frozenset(),
    COMPLETED: frozenset(),
}

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_REFUNDED = "refunded"

PAYMENT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PAYMENT_PENDING: frozenset({PAYMENT_PAID}),
    PAYMENT_PAID: frozenset({PAYMENT_REFUNDED}),
    PAYMENT_REFUNDED: frozenset(),
}

# Share of each booking's total retained by the marketplace
PLATFORM_COMMISSION_RATE = float(os.getenv("PLATFORM_COMMISSION_RATE", "0.05"))


def can_transition(current: str, target: str) -> bool:
    return target in BOOKING_TRANSITIONS.get(current, frozenset())


def assert_booking_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(f"Cannot move a {current} booking to {target}")


def assert_payment_transition(current: str, target: str) -> None:
    if target not in PAYMENT_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Cannot move payment from {current} to {target}")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def duration_days(check_in: date, check_out: date) -> int:
    """Whole days between the dates, rounded up."""
    seconds = (check_out - check_in).total_seconds()
    return int(math.ceil(seconds / 86400))


def price_booking(
    room_price: int,
    check_in: date,
    check_out: date,
    commission_rate: float = PLATFORM_COMMISSION_RATE,
) -> Tuple[int, int]:
    """Return (total_amount, platform_commission) for a stay."""
    total = room_price * duration_days(check_in, check_out)
    return total, round_half_up(total * commission_rate)
