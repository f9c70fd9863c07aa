# Periodic maintenance run from the startup thread in app.main: closing out stays that have ended
# and re-deriving room availability flags as available_from dates arrive.
from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from .db import session_scope
from .domain.availability import apply_occupancy_delta
from .domain.booking_state import COMPLETED
from .errors import DomainError
from .events import EventBus
from .locks import room_lock
from .repositories import BookingRepository, RoomRepository
from .services.bookings import BookingService

logger = logging.getLogger("bookmysleep.sweepers")


def complete_finished_stays(
    db: Optional[Session] = None,
    today: Optional[date] = None,
    events: Optional[EventBus] = None,
) -> int:
    """
    Move confirmed bookings whose check-out date has arrived to 'completed'.

    Each one goes through BookingService.transition, so the occupancy policy and
    the BookingCompleted event apply exactly as for an owner-driven completion.
    A booking that changed in the meantime is skipped. Returns how many were completed.
    """
    if db is None:
        with session_scope() as own:
            return complete_finished_stays(own, today=today, events=events)

    today = today or date.today()
    service = BookingService.from_session(db, events=events)
    completed = 0
    for booking_id in BookingRepository(db).finished_stay_ids(today):
        try:
            service.transition(booking_id, COMPLETED)
        except DomainError as exc:
            logger.info("sweeper.skip", extra={"booking_id": booking_id, "reason": exc.detail})
            continue
        completed += 1
    if completed:
        logger.info("sweeper.completed_stays", extra={"count": completed, "today": today.isoformat()})
    return completed


def refresh_room_availability(db: Optional[Session] = None, today: Optional[date] = None) -> int:
    """
    Re-derive is_available for rooms whose flag went stale while nothing touched them.

    Occupancy changes re-derive the flag on the spot; this catches the other input,
    the calendar: a room whose available_from date has now arrived. Each room is
    updated under its room lock. Returns how many rooms were changed.
    """
    if db is None:
        with session_scope() as own:
            return refresh_room_availability(own, today=today)

    today = today or date.today()
    rooms = RoomRepository(db)
    refreshed = 0
    for room_id in rooms.stale_availability_ids(today):
        with room_lock(room_id) as locked:
            if not locked:
                logger.info("sweeper.room_busy", extra={"room_id": room_id})
                continue
            try:
                room = rooms.get_for_update(room_id)
                if room is None:
                    continue
                before = room.is_available
                apply_occupancy_delta(room, 0, today)
                db.commit()
            except Exception:
                db.rollback()
                raise
        if room.is_available != before:
            refreshed += 1
    if refreshed:
        logger.info("sweeper.refreshed_rooms", extra={"count": refreshed, "today": today.isoformat()})
    return refreshed
