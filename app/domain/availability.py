"""Room availability ledger.

Capacity vs. current occupancy per room. The ``is_available`` flag is always
recomputed from the counters here and never assigned anywhere else.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Union

from .. import models

DateLike = Union[date, datetime]


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Half-open [start, end) overlap; a stay ending on X does not clash with one starting on X."""
    return a_start < b_end and a_end > b_start


def is_room_available(room: models.Room, on_date: DateLike) -> bool:
    return bool(
        room.is_available
        and room.current_occupancy < room.capacity
        and room.available_from <= _as_date(on_date)
    )


def derived_availability(room: models.Room, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return room.current_occupancy < room.capacity and room.available_from <= today


def apply_occupancy_delta(room: models.Room, delta: int, today: Optional[date] = None) -> models.Room:
    """
    Shift current_occupancy by `delta`, clamped to [0, capacity], and re-derive is_available.

    Callers must hold the room's lock (app.locks.room_lock) so the counter and the
    conflict check move together.
    """
    occupancy = (room.current_occupancy or 0) + delta
    room.current_occupancy = max(0, min(room.capacity, occupancy))
    room.is_available = derived_availability(room, today)
    return room


def occupancy_percentage(room: models.Room) -> int:
    if not room.capacity:
        return 0
    return int(room.current_occupancy * 100 / room.capacity + 0.5)


def availability_status(room: models.Room, today: Optional[date] = None) -> str:
    today = today or date.today()
    # Derived causes first; the bare flag only explains what they do not
    if room.current_occupancy >= room.capacity:
        return "full"
    if room.available_from > today:
        return "not-ready"
    if not room.is_available:
        return "unavailable"
    return "available"
