# Booking lifecycle: creation behind the conflict checker, status transitions and their occupancy/payment side effects.
# Every write runs under the room's lock and commits once; on any failure the session is rolled back.
from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator, List, NamedTuple, Optional

from sqlalchemy.orm import Session

from .. import models
from ..domain.availability import apply_occupancy_delta
from ..domain.booking_state import (
    ACTIVE_STATUSES,
    BOOKING_TRANSITIONS,
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
    PAYMENT_REFUNDED,
    PENDING,
    PLATFORM_COMMISSION_RATE,
    REJECTED,
    assert_booking_transition,
    assert_payment_transition,
    price_booking,
)
from ..errors import ConflictError, InvalidTransition, NotAuthorized, NotFound, ResourceBusy, ValidationError
from ..events import DomainEvent, EventBus, event_bus
from ..locks import room_lock
from ..redis_client import truthy
from ..repositories import BookingRepository, PropertyRepository, RoomRepository, UserRepository

logger = logging.getLogger("bookmysleep.bookings")

# Occupancy policy: "current occupancy" counts tenants currently resident, so a finished stay frees its bed.
# Set RELEASE_OCCUPANCY_ON_COMPLETE=false to keep completed stays counted.
RELEASE_OCCUPANCY_ON_COMPLETE = truthy(os.getenv("RELEASE_OCCUPANCY_ON_COMPLETE", "true"))

SPECIAL_REQUESTS_MAX_LENGTH = 500

# Who may drive each transition: the room's owner, the booking's seeker, or either.
_TRANSITION_ACTORS = {
    CONFIRMED: ("owner",),
    REJECTED: ("owner",),
    COMPLETED: ("owner",),
    CANCELLED: ("owner", "seeker"),
}

_TRANSITION_EVENTS = {
    CONFIRMED: "BookingConfirmed",
    REJECTED: "BookingRejected",
    CANCELLED: "BookingCancelled",
    COMPLETED: "BookingCompleted",
}


class RoomAvailability(NamedTuple):
    room: models.Room
    available: bool
    has_conflict: bool


class BookingService:
    """
    Orchestrates the booking lifecycle over explicitly injected repositories.

    Status moves (see app.domain.booking_state):
    - pending -> confirmed: conflict re-check, then occupancy +1
    - confirmed -> cancelled: occupancy -1; pending -> rejected/cancelled: no occupancy change
    - confirmed -> completed: occupancy -1 only when `release_on_complete` is set
    - a paid booking that is cancelled or rejected is marked refunded
    """

    def __init__(
        self,
        db: Session,
        bookings: BookingRepository,
        rooms: RoomRepository,
        properties: PropertyRepository,
        users: UserRepository,
        events: EventBus,
        *,
        commission_rate: float = PLATFORM_COMMISSION_RATE,
        release_on_complete: bool = RELEASE_OCCUPANCY_ON_COMPLETE,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self.db = db
        self.bookings = bookings
        self.rooms = rooms
        self.properties = properties
        self.users = users
        self.events = events
        self.commission_rate = commission_rate
        self.release_on_complete = release_on_complete
        self.clock = clock

    @classmethod
    def from_session(cls, db: Session, events: Optional[EventBus] = None, **options) -> "BookingService":
        return cls(
            db,
            BookingRepository(db),
            RoomRepository(db),
            PropertyRepository(db),
            UserRepository(db),
            events or event_bus,
            **options,
        )

    # ----------------
    # Queries
    # ----------------
    def get_booking(self, booking_id: int, actor_id: Optional[int] = None) -> models.Booking:
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        if actor_id is not None and actor_id not in (booking.seeker_id, booking.owner_id):
            raise NotAuthorized("Not allowed to view this booking")
        return booking

    def list_for_user(self, user: models.User, limit: int = 20, offset: int = 0) -> List[models.Booking]:
        if user.role == "owner":
            return self.bookings.list_for_owner(user.id, limit, offset)
        return self.bookings.list_for_seeker(user.id, limit, offset)

    def room_availability(self, room_id: int, check_in: date, check_out: date) -> RoomAvailability:
        """
        Read-only: would create_booking accept this range right now?

        Ready by check-in (available_from <= check_in) and no active overlap. The stored
        is_available flag describes today, so it is not consulted for a future range.
        """
        _validate_range(check_in, check_out)
        room = self.rooms.get(room_id)
        if room is None:
            raise NotFound("Room", room_id)
        conflict = self.bookings.has_conflict(room_id, check_in, check_out)
        return RoomAvailability(room, room.available_from <= check_in and not conflict, conflict)

    # ----------------
    # Commands
    # ----------------
    def create_booking(
        self,
        seeker_id: int,
        room_id: int,
        check_in: date,
        check_out: date,
        special_requests: Optional[str] = None,
    ) -> models.Booking:
        _validate_range(check_in, check_out)
        if check_in <= self.clock():
            raise ValidationError("Check-in date must be in the future")
        if special_requests is not None:
            special_requests = special_requests.strip() or None
        if special_requests and len(special_requests) > SPECIAL_REQUESTS_MAX_LENGTH:
            raise ValidationError("Special requests cannot exceed 500 characters")

        if self.users.get(seeker_id) is None:
            raise NotFound("User", seeker_id)
        room = self.rooms.get(room_id)
        if room is None:
            raise NotFound("Room", room_id)
        prop = self.properties.get(room.property_id)
        if prop is None:
            raise NotFound("Property", room.property_id)
        if prop.owner_id == seeker_id:
            raise NotAuthorized("Owners cannot book rooms in their own property")
        if not prop.is_active:
            raise ValidationError("This property is not accepting bookings")
        if room.available_from > check_in:
            raise ValidationError(f"This room is not available before {room.available_from.isoformat()}")

        total_amount, commission = price_booking(room.price, check_in, check_out, self.commission_rate)

        with self._room_guard(room_id):
            try:
                room = self.rooms.get_for_update(room_id)
                if room is None:
                    raise NotFound("Room", room_id)
                if self.bookings.has_conflict(room_id, check_in, check_out):
                    raise ConflictError()
                booking = models.Booking(
                    seeker_id=seeker_id,
                    owner_id=prop.owner_id,
                    property_id=prop.id,
                    room_id=room_id,
                    check_in_date=check_in,
                    check_out_date=check_out,
                    total_amount=total_amount,
                    security_deposit=room.security_deposit or 0,
                    platform_commission=commission,
                    booking_status=PENDING,
                    payment_status=PAYMENT_PENDING,
                    special_requests=special_requests,
                    version=1,
                )
                self.db.add(booking)
                self.db.commit()
                self.db.refresh(booking)
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            "booking.created",
            extra={"booking_id": booking.id, "room_id": room_id, "seeker_id": seeker_id, "total_amount": total_amount},
        )
        self._emit("BookingCreated", booking)
        return booking

    def transition(self, booking_id: int, new_status: str, actor_id: Optional[int] = None) -> models.Booking:
        """Move a booking to `new_status`, applying occupancy and payment side effects atomically."""
        if new_status not in BOOKING_TRANSITIONS:
            raise ValidationError(f"Unknown booking status '{new_status}'")
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        room_id = booking.room_id

        with self._room_guard(room_id):
            try:
                # Re-read under the lock; the first read may be stale
                booking = self.bookings.get_for_update(booking_id)
                if booking is None:
                    raise NotFound("Booking", booking_id)
                if actor_id is not None:
                    _authorize_transition(booking, new_status, actor_id)
                previous = booking.booking_status
                assert_booking_transition(previous, new_status)

                room = self.rooms.get_for_update(room_id)
                if room is None:
                    raise NotFound("Room", room_id)

                if new_status == CONFIRMED:
                    if self.bookings.has_conflict(
                        room_id, booking.check_in_date, booking.check_out_date, exclude_booking_id=booking.id
                    ):
                        raise ConflictError()
                    self._shift_occupancy(room, +1)
                elif new_status in (CANCELLED, REJECTED):
                    if previous == CONFIRMED:
                        self._shift_occupancy(room, -1)
                    if booking.payment_status == PAYMENT_PAID:
                        assert_payment_transition(booking.payment_status, PAYMENT_REFUNDED)
                        booking.payment_status = PAYMENT_REFUNDED
                elif new_status == COMPLETED and self.release_on_complete:
                    self._shift_occupancy(room, -1)

                booking.booking_status = new_status
                booking.version = (booking.version or 1) + 1
                self.db.commit()
                self.db.refresh(booking)
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            "booking.transition",
            extra={"booking_id": booking.id, "from": previous, "to": new_status, "actor_id": actor_id},
        )
        self._emit(_TRANSITION_EVENTS[new_status], booking)
        return booking

    def confirm(self, booking_id: int, actor_id: Optional[int] = None) -> models.Booking:
        return self.transition(booking_id, CONFIRMED, actor_id)

    def reject(self, booking_id: int, actor_id: Optional[int] = None) -> models.Booking:
        return self.transition(booking_id, REJECTED, actor_id)

    def cancel(self, booking_id: int, actor_id: Optional[int] = None) -> models.Booking:
        return self.transition(booking_id, CANCELLED, actor_id)

    def complete(self, booking_id: int, actor_id: Optional[int] = None) -> models.Booking:
        return self.transition(booking_id, COMPLETED, actor_id)

    def mark_paid(
        self,
        booking_id: int,
        actor_id: Optional[int] = None,
        payment_intent_id: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> models.Booking:
        """Record a successful payment for a pending or confirmed booking."""
        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)

        with self._room_guard(booking.room_id):
            try:
                booking = self.bookings.get_for_update(booking_id)
                if booking is None:
                    raise NotFound("Booking", booking_id)
                if actor_id is not None and actor_id != booking.seeker_id:
                    raise NotAuthorized("Only the guest can pay for this booking")
                if booking.booking_status not in ACTIVE_STATUSES:
                    raise InvalidTransition(f"A {booking.booking_status} booking cannot be paid")
                assert_payment_transition(booking.payment_status, PAYMENT_PAID)
                booking.payment_status = PAYMENT_PAID
                booking.payment_intent_id = payment_intent_id or booking.payment_intent_id
                booking.payment_method = payment_method or booking.payment_method
                booking.version = (booking.version or 1) + 1
                self.db.commit()
                self.db.refresh(booking)
            except Exception:
                self.db.rollback()
                raise

        logger.info("booking.paid", extra={"booking_id": booking.id, "payment_method": booking.payment_method})
        self._emit("PaymentReceived", booking)
        return booking

    # ----------------
    # Helpers
    # ----------------
    @contextmanager
    def _room_guard(self, room_id: int) -> Iterator[None]:
        with room_lock(room_id) as locked:
            if not locked:
                raise ResourceBusy()
            yield

    def _shift_occupancy(self, room: models.Room, delta: int) -> None:
        target = (room.current_occupancy or 0) + delta
        if target < 0 or target > room.capacity:
            logger.warning(
                "room.occupancy_clamped",
                extra={"room_id": room.id, "occupancy": room.current_occupancy, "delta": delta, "capacity": room.capacity},
            )
        apply_occupancy_delta(room, delta, self.clock())

    def _emit(self, name: str, booking: models.Booking) -> None:
        self.events.publish(
            DomainEvent(
                name=name,
                booking_id=booking.id,
                room_id=booking.room_id,
                property_id=booking.property_id,
                seeker_id=booking.seeker_id,
                owner_id=booking.owner_id,
            )
        )


def _validate_range(check_in: date, check_out: date) -> None:
    if check_out <= check_in:
        raise ValidationError("Check-out date must be after check-in date")


def _authorize_transition(booking: models.Booking, new_status: str, actor_id: int) -> None:
    allowed = _TRANSITION_ACTORS.get(new_status, ())
    if "owner" in allowed and actor_id == booking.owner_id:
        return
    if "seeker" in allowed and actor_id == booking.seeker_id:
        return
    raise NotAuthorized(f"Not allowed to mark this booking {new_status}")
