# BookingService: creation behind the conflict checker, status transitions, occupancy and payment side effects.
from datetime import date, timedelta

import pytest

from app import models
from app.errors import (
    ConflictError,
    InvalidTransition,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from app.services.bookings import BookingService
from conftest import make_room


# ----------------
# Helpers
# ----------------
def book(service, seeker, room, start: date, nights: int):
    return service.create_booking(seeker.id, room.id, start, start + timedelta(days=nights))


def record(bus, name="*"):
    seen = []
    bus.subscribe(name, lambda event: seen.append(event))
    return seen


# ----------------
# Lifecycle scenarios on a single-bed room
# ----------------
def test_create_then_confirm_fills_single_bed_room(db, bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 9)

    assert booking.booking_status == "pending"
    assert booking.payment_status == "pending"
    assert booking.owner_id == world.owner.id
    assert booking.property_id == world.prop.id
    assert booking.total_amount == 8000 * 9
    assert booking.platform_commission == 3600
    assert booking.security_deposit == 5000

    db.refresh(world.room)
    # Pending bookings do not touch occupancy
    assert world.room.current_occupancy == 0

    confirmed = bookings.confirm(booking.id, actor_id=world.owner.id)
    assert confirmed.booking_status == "confirmed"

    db.refresh(world.room)
    assert world.room.current_occupancy == 1
    assert world.room.is_available is False


def test_overlapping_booking_on_confirmed_room_is_rejected(bookings, world, stay_start):
    first = book(bookings, world.seeker, world.room, stay_start, 9)
    bookings.confirm(first.id, actor_id=world.owner.id)

    with pytest.raises(ConflictError) as exc:
        bookings.create_booking(
            world.other_seeker.id, world.room.id, stay_start + timedelta(days=4), stay_start + timedelta(days=14)
        )
    assert "already booked" in exc.value.detail


def test_pending_booking_also_blocks_overlap(bookings, world, stay_start):
    book(bookings, world.seeker, world.room, stay_start, 9)
    with pytest.raises(ConflictError):
        bookings.create_booking(
            world.other_seeker.id, world.room.id, stay_start + timedelta(days=8), stay_start + timedelta(days=20)
        )


def test_back_to_back_booking_is_allowed(db, bookings, world, stay_start):
    first = book(bookings, world.seeker, world.room, stay_start, 9)
    bookings.confirm(first.id, actor_id=world.owner.id)

    # Starts on the day the first stay ends
    second = book(bookings, world.other_seeker, world.room, stay_start + timedelta(days=9), 10)
    assert second.booking_status == "pending"

    # A stay ending on the day the first begins is also clear
    earlier = bookings.create_booking(
        world.other_seeker.id, world.room.id, stay_start - timedelta(days=5), stay_start
    )
    assert earlier.booking_status == "pending"


def test_confirming_adjacent_stay_keeps_occupancy_within_capacity(db, bookings, world, stay_start):
    first = book(bookings, world.seeker, world.room, stay_start, 9)
    bookings.confirm(first.id, actor_id=world.owner.id)
    second = book(bookings, world.other_seeker, world.room, stay_start + timedelta(days=9), 10)

    bookings.confirm(second.id, actor_id=world.owner.id)

    db.refresh(world.room)
    assert world.room.current_occupancy == world.room.capacity == 1
    assert world.room.is_available is False


def test_cancelled_and_rejected_bookings_free_the_dates(bookings, world, stay_start):
    first = book(bookings, world.seeker, world.room, stay_start, 9)
    bookings.cancel(first.id, actor_id=world.seeker.id)

    second = book(bookings, world.other_seeker, world.room, stay_start, 9)
    bookings.reject(second.id, actor_id=world.owner.id)

    third = book(bookings, world.seeker, world.room, stay_start + timedelta(days=2), 3)
    assert third.booking_status == "pending"


def test_multi_bed_room_tracks_each_confirmation(db, bookings, world, stay_start):
    dorm = make_room(db, world.prop, capacity=3, price=4000)
    a = book(bookings, world.seeker, dorm, stay_start, 5)
    b = book(bookings, world.other_seeker, dorm, stay_start + timedelta(days=5), 5)

    bookings.confirm(a.id, actor_id=world.owner.id)
    bookings.confirm(b.id, actor_id=world.owner.id)

    db.refresh(dorm)
    assert dorm.current_occupancy == 2
    assert dorm.is_available is True


# ----------------
# Creation validation
# ----------------
@pytest.mark.parametrize("nights", [0, -3])
def test_check_out_must_follow_check_in(bookings, world, stay_start, nights):
    with pytest.raises(ValidationError):
        bookings.create_booking(world.seeker.id, world.room.id, stay_start, stay_start + timedelta(days=nights))


@pytest.mark.parametrize("offset", [0, -1])
def test_check_in_must_be_in_the_future(bookings, world, offset):
    start = date.today() + timedelta(days=offset)
    with pytest.raises(ValidationError) as exc:
        bookings.create_booking(world.seeker.id, world.room.id, start, start + timedelta(days=3))
    assert "future" in exc.value.detail


def test_special_requests_length_is_bounded(bookings, world, stay_start):
    with pytest.raises(ValidationError):
        bookings.create_booking(
            world.seeker.id, world.room.id, stay_start, stay_start + timedelta(days=2), special_requests="x" * 501
        )
    ok = bookings.create_booking(
        world.seeker.id, world.room.id, stay_start, stay_start + timedelta(days=2), special_requests="  late arrival  "
    )
    assert ok.special_requests == "late arrival"


def test_unknown_room_and_user_are_not_found(bookings, world, stay_start):
    with pytest.raises(NotFound) as exc:
        bookings.create_booking(world.seeker.id, 9999, stay_start, stay_start + timedelta(days=2))
    assert exc.value.detail == "Room with ID '9999' not found"

    with pytest.raises(NotFound):
        bookings.create_booking(9999, world.room.id, stay_start, stay_start + timedelta(days=2))


def test_owner_cannot_book_own_room(bookings, world, stay_start):
    with pytest.raises(NotAuthorized):
        book(bookings, world.owner, world.room, stay_start, 3)


def test_inactive_property_rejects_bookings(db, bookings, world, stay_start):
    world.prop.is_active = False
    db.commit()
    with pytest.raises(ValidationError):
        book(bookings, world.seeker, world.room, stay_start, 3)


def test_room_not_ready_before_available_from(db, bookings, world, stay_start):
    world.room.available_from = stay_start + timedelta(days=10)
    db.commit()
    with pytest.raises(ValidationError) as exc:
        book(bookings, world.seeker, world.room, stay_start, 3)
    assert "not available before" in exc.value.detail

    later = book(bookings, world.seeker, world.room, stay_start + timedelta(days=10), 3)
    assert later.booking_status == "pending"


def test_custom_commission_rate(db, bus, world, stay_start):
    service = BookingService.from_session(db, events=bus, commission_rate=0.1)
    booking = book(service, world.seeker, world.room, stay_start, 30)
    assert booking.total_amount == 240000
    assert booking.platform_commission == 24000


# ----------------
# Transitions
# ----------------
def test_cancel_confirmed_booking_releases_bed(db, bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 9)
    bookings.confirm(booking.id, actor_id=world.owner.id)

    cancelled = bookings.cancel(booking.id, actor_id=world.seeker.id)
    assert cancelled.booking_status == "cancelled"

    db.refresh(world.room)
    assert world.room.current_occupancy == 0
    assert world.room.is_available is True


def test_cancel_or_reject_pending_leaves_occupancy_untouched(db, bookings, world, stay_start):
    dorm = make_room(db, world.prop, capacity=2, price=5000)
    a = book(bookings, world.seeker, dorm, stay_start, 3)
    b = book(bookings, world.other_seeker, dorm, stay_start + timedelta(days=3), 3)
    c = book(bookings, world.seeker, dorm, stay_start + timedelta(days=6), 3)
    bookings.confirm(a.id, actor_id=world.owner.id)

    bookings.cancel(b.id, actor_id=world.other_seeker.id)
    bookings.reject(c.id, actor_id=world.owner.id)

    db.refresh(dorm)
    assert dorm.current_occupancy == 1


def test_complete_releases_bed_by_default(db, bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 9)
    bookings.confirm(booking.id, actor_id=world.owner.id)

    done = bookings.complete(booking.id, actor_id=world.owner.id)
    assert done.booking_status == "completed"

    db.refresh(world.room)
    assert world.room.current_occupancy == 0
    assert world.room.is_available is True


def test_complete_can_keep_bed_counted(db, bus, world, stay_start):
    service = BookingService.from_session(db, events=bus, release_on_complete=False)
    booking = book(service, world.seeker, world.room, stay_start, 9)
    service.confirm(booking.id, actor_id=world.owner.id)
    service.complete(booking.id, actor_id=world.owner.id)

    db.refresh(world.room)
    assert world.room.current_occupancy == 1
    assert world.room.is_available is False


@pytest.mark.parametrize(
    "setup,target",
    [
        (("confirm", "complete"), "confirmed"),
        (("cancel",), "confirmed"),
        (("reject",), "pending"),
        ((), "completed"),
        (("confirm",), "rejected"),
        (("confirm", "complete"), "cancelled"),
    ],
)
def test_illegal_transition_leaves_booking_unchanged(db, bookings, world, stay_start, setup, target):
    booking = book(bookings, world.seeker, world.room, stay_start, 9)
    for step in setup:
        getattr(bookings, step)(booking.id)
    db.refresh(world.room)
    before = (booking.booking_status, booking.version, world.room.current_occupancy)

    with pytest.raises(InvalidTransition):
        bookings.transition(booking.id, target)

    db.refresh(booking)
    db.refresh(world.room)
    assert (booking.booking_status, booking.version, world.room.current_occupancy) == before


def test_unknown_status_is_a_validation_error(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    with pytest.raises(ValidationError):
        bookings.transition(booking.id, "archived")


def test_transition_on_missing_booking(bookings, world):
    with pytest.raises(NotFound):
        bookings.confirm(4242)


def test_only_owner_confirms_and_either_party_cancels(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)

    with pytest.raises(NotAuthorized):
        bookings.confirm(booking.id, actor_id=world.seeker.id)
    with pytest.raises(NotAuthorized):
        bookings.cancel(booking.id, actor_id=world.other_seeker.id)

    bookings.confirm(booking.id, actor_id=world.owner.id)
    with pytest.raises(NotAuthorized):
        bookings.complete(booking.id, actor_id=world.seeker.id)

    assert bookings.cancel(booking.id, actor_id=world.owner.id).booking_status == "cancelled"


def test_version_increments_on_each_write(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    assert booking.version == 1
    bookings.mark_paid(booking.id, actor_id=world.seeker.id)
    bookings.confirm(booking.id, actor_id=world.owner.id)
    assert bookings.get_booking(booking.id).version == 3


def test_get_booking_is_restricted_to_parties(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    assert bookings.get_booking(booking.id, actor_id=world.owner.id).id == booking.id
    assert bookings.get_booking(booking.id, actor_id=world.seeker.id).id == booking.id
    with pytest.raises(NotAuthorized):
        bookings.get_booking(booking.id, actor_id=world.other_seeker.id)


def test_list_for_user_by_role(bookings, world, stay_start):
    book(bookings, world.seeker, world.room, stay_start, 3)
    book(bookings, world.other_seeker, world.room, stay_start + timedelta(days=3), 3)

    assert len(bookings.list_for_user(world.seeker)) == 1
    assert len(bookings.list_for_user(world.owner)) == 2
    assert len(bookings.list_for_user(world.owner, limit=1)) == 1


def test_room_availability_query(bookings, world, stay_start):
    clear = bookings.room_availability(world.room.id, stay_start, stay_start + timedelta(days=3))
    assert clear.available is True
    assert clear.has_conflict is False

    book(bookings, world.seeker, world.room, stay_start, 3)
    busy = bookings.room_availability(world.room.id, stay_start + timedelta(days=1), stay_start + timedelta(days=2))
    assert busy.available is False
    assert busy.has_conflict is True

    after = bookings.room_availability(world.room.id, stay_start + timedelta(days=3), stay_start + timedelta(days=5))
    assert after.has_conflict is False


def test_room_availability_follows_available_from_not_todays_flag(db, bookings, world, stay_start):
    room = make_room(db, world.prop, capacity=2)
    room.available_from = stay_start + timedelta(days=10)
    room.is_available = False
    db.commit()

    early = bookings.room_availability(room.id, stay_start, stay_start + timedelta(days=3))
    assert early.available is False
    assert early.has_conflict is False

    later_in = stay_start + timedelta(days=12)
    later = bookings.room_availability(room.id, later_in, later_in + timedelta(days=3))
    assert later.available is True

    # Creation agrees with the query
    booking = bookings.create_booking(world.seeker.id, room.id, later_in, later_in + timedelta(days=3))
    assert booking.booking_status == "pending"
    with pytest.raises(ValidationError):
        bookings.create_booking(world.other_seeker.id, room.id, stay_start, stay_start + timedelta(days=3))


# ----------------
# Confirmation re-checks the room's calendar
# ----------------
def seed_booking(db, world, seeker, start: date, nights: int, status: str = "pending") -> models.Booking:
    """Insert a booking row directly, skipping the create-time conflict check."""
    booking = models.Booking(
        seeker_id=seeker.id,
        owner_id=world.owner.id,
        property_id=world.prop.id,
        room_id=world.room.id,
        check_in_date=start,
        check_out_date=start + timedelta(days=nights),
        total_amount=8000 * nights,
        booking_status=status,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


@pytest.mark.parametrize("status", ["pending", "confirmed"])
def test_confirm_refuses_when_an_overlapping_stay_is_active(db, bookings, world, stay_start, status):
    booking = book(bookings, world.seeker, world.room, stay_start, 9)
    seed_booking(db, world, world.other_seeker, stay_start + timedelta(days=5), 7, status=status)
    version = booking.version

    with pytest.raises(ConflictError):
        bookings.confirm(booking.id, actor_id=world.owner.id)

    db.refresh(booking)
    db.refresh(world.room)
    assert booking.booking_status == "pending"
    assert booking.version == version
    assert world.room.current_occupancy == 0


def test_confirm_ignores_inactive_overlaps(db, bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 9)
    seed_booking(db, world, world.other_seeker, stay_start, 9, status="cancelled")

    assert bookings.confirm(booking.id, actor_id=world.owner.id).booking_status == "confirmed"


# ----------------
# Payment
# ----------------
def test_mark_paid_records_payment(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    paid = bookings.mark_paid(booking.id, actor_id=world.seeker.id, payment_intent_id="pi_123", payment_method="card")
    assert paid.payment_status == "paid"
    assert paid.payment_intent_id == "pi_123"
    assert paid.payment_method == "card"


def test_paying_twice_is_an_invalid_transition(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    bookings.mark_paid(booking.id, actor_id=world.seeker.id)
    with pytest.raises(InvalidTransition):
        bookings.mark_paid(booking.id, actor_id=world.seeker.id)


def test_only_seeker_pays(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    with pytest.raises(NotAuthorized):
        bookings.mark_paid(booking.id, actor_id=world.owner.id)


def test_cannot_pay_cancelled_booking(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    bookings.cancel(booking.id, actor_id=world.seeker.id)
    with pytest.raises(InvalidTransition):
        bookings.mark_paid(booking.id, actor_id=world.seeker.id)


@pytest.mark.parametrize("step", ["cancel", "reject"])
def test_paid_booking_is_refunded_when_it_does_not_go_ahead(bookings, world, stay_start, step):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    bookings.mark_paid(booking.id, actor_id=world.seeker.id)
    result = getattr(bookings, step)(booking.id)
    assert result.payment_status == "refunded"


def test_unpaid_cancellation_stays_pending_payment(bookings, world, stay_start):
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    assert bookings.cancel(booking.id).payment_status == "pending"


# ----------------
# Events
# ----------------
def test_events_follow_the_lifecycle(bus, bookings, world, stay_start):
    seen = record(bus)
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    bookings.mark_paid(booking.id, actor_id=world.seeker.id)
    bookings.confirm(booking.id, actor_id=world.owner.id)
    bookings.complete(booking.id, actor_id=world.owner.id)

    assert [e.name for e in seen] == ["BookingCreated", "PaymentReceived", "BookingConfirmed", "BookingCompleted"]
    assert all(e.booking_id == booking.id and e.room_id == world.room.id for e in seen)
    assert seen[0].seeker_id == world.seeker.id
    assert seen[0].owner_id == world.owner.id


def test_failed_operations_emit_nothing(bus, bookings, world, stay_start):
    seen = record(bus)
    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    with pytest.raises(ConflictError):
        book(bookings, world.other_seeker, world.room, stay_start, 3)
    with pytest.raises(InvalidTransition):
        bookings.complete(booking.id)
    assert [e.name for e in seen] == ["BookingCreated"]


def test_failing_subscriber_does_not_break_booking(db, bus, bookings, world, stay_start):
    def boom(event):
        raise RuntimeError("push service down")

    bus.subscribe("BookingConfirmed", boom)
    seen = record(bus, "BookingConfirmed")

    booking = book(bookings, world.seeker, world.room, stay_start, 3)
    confirmed = bookings.confirm(booking.id, actor_id=world.owner.id)

    assert confirmed.booking_status == "confirmed"
    assert len(seen) == 1
    db.refresh(world.room)
    assert world.room.current_occupancy == 1
