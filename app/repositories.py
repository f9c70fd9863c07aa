# Data access for the booking core. Services receive these explicitly instead of reaching for models globally.
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models
from .db import is_sqlite
from .domain.booking_state import ACTIVE_STATUSES, CONFIRMED


class _Repository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _locking(self, query):
        # Row locks where supported; SQLite relies on app.locks.room_lock alone
        if not is_sqlite(str(self.db.get_bind().url)):
            query = query.with_for_update()
        return query


class UserRepository(_Repository):
    def get(self, user_id: int) -> Optional[models.User]:
        return self.db.get(models.User, user_id)


class PropertyRepository(_Repository):
    def get(self, property_id: int) -> Optional[models.Property]:
        return self.db.get(models.Property, property_id)

    def get_for_update(self, property_id: int) -> Optional[models.Property]:
        q = self.db.query(models.Property).filter(models.Property.id == property_id).populate_existing()
        return self._locking(q).first()


class RoomRepository(_Repository):
    def get(self, room_id: int) -> Optional[models.Room]:
        return self.db.get(models.Room, room_id)

    def get_for_update(self, room_id: int) -> Optional[models.Room]:
        """Fresh read of the room (bypassing the identity map), row-locked where the dialect allows."""
        q = self.db.query(models.Room).filter(models.Room.id == room_id).populate_existing()
        return self._locking(q).first()

    def stale_availability_ids(self, today: date) -> List[int]:
        """Rooms whose stored is_available flag no longer matches occupancy and readiness as of `today`."""
        derived = (models.Room.current_occupancy < models.Room.capacity) & (models.Room.available_from <= today)
        rows = (
            self.db.query(models.Room.id)
            .filter(
                ((models.Room.is_available.is_(False)) & derived)
                | ((models.Room.is_available.is_(True)) & ~derived)
            )
            .order_by(models.Room.id.asc())
            .all()
        )
        return [row[0] for row in rows]

    def list_for_property(self, property_id: int) -> List[models.Room]:
        return (
            self.db.query(models.Room)
            .filter(models.Room.property_id == property_id)
            .order_by(models.Room.id.asc())
            .all()
        )


class BookingRepository(_Repository):
    def get(self, booking_id: int) -> Optional[models.Booking]:
        return self.db.get(models.Booking, booking_id)

    def get_for_update(self, booking_id: int) -> Optional[models.Booking]:
        q = self.db.query(models.Booking).filter(models.Booking.id == booking_id).populate_existing()
        return self._locking(q).first()

    def has_conflict(
        self,
        room_id: int,
        check_in: date,
        check_out: date,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        """
        True if a pending/confirmed booking on the room overlaps [check_in, check_out).

        Overlap: existing.check_in < check_out AND existing.check_out > check_in.
        Strict on both sides, so back-to-back stays do not conflict.
        """
        q = self.db.query(models.Booking.id).filter(
            models.Booking.room_id == room_id,
            models.Booking.booking_status.in_(ACTIVE_STATUSES),
            models.Booking.check_in_date < check_out,
            models.Booking.check_out_date > check_in,
        )
        if exclude_booking_id is not None:
            q = q.filter(models.Booking.id != exclude_booking_id)
        return q.first() is not None

    def list_for_seeker(self, seeker_id: int, limit: int, offset: int) -> List[models.Booking]:
        return (
            self.db.query(models.Booking)
            .filter(models.Booking.seeker_id == seeker_id)
            .order_by(models.Booking.check_in_date.desc(), models.Booking.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def list_for_owner(self, owner_id: int, limit: int, offset: int) -> List[models.Booking]:
        return (
            self.db.query(models.Booking)
            .filter(models.Booking.owner_id == owner_id)
            .order_by(models.Booking.check_in_date.desc(), models.Booking.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def finished_stay_ids(self, today: date) -> List[int]:
        rows = (
            self.db.query(models.Booking.id)
            .filter(
                models.Booking.booking_status == CONFIRMED,
                models.Booking.check_out_date <= today,
            )
            .order_by(models.Booking.id.asc())
            .all()
        )
        return [row[0] for row in rows]


class ReviewRepository(_Repository):
    def get(self, review_id: int) -> Optional[models.Review]:
        return self.db.get(models.Review, review_id)

    def get_by_booking(self, booking_id: int) -> Optional[models.Review]:
        return self.db.query(models.Review).filter(models.Review.booking_id == booking_id).first()

    def rating_aggregate(self, property_id: int) -> Tuple[Optional[float], int]:
        """(mean rating or None, review count) for a property."""
        avg, count = (
            self.db.query(func.avg(models.Review.rating), func.count(models.Review.id))
            .filter(models.Review.property_id == property_id)
            .one()
        )
        return (float(avg) if avg is not None else None), int(count or 0)

    def rating_distribution(self, property_id: int) -> Dict[int, int]:
        rows = (
            self.db.query(models.Review.rating, func.count(models.Review.id))
            .filter(models.Review.property_id == property_id)
            .group_by(models.Review.rating)
            .all()
        )
        distribution = {star: 0 for star in range(1, 6)}
        for rating, count in rows:
            distribution[int(rating)] = int(count)
        return distribution

    def list_for_property(self, property_id: int, limit: int, offset: int) -> List[models.Review]:
        return (
            self.db.query(models.Review)
            .filter(models.Review.property_id == property_id)
            .order_by(models.Review.created_at.desc(), models.Review.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
