# Booking endpoints: create, list, and drive the booking state machine (confirm/reject/cancel/complete/pay).
# Concurrency and consistency rules live in BookingService; handlers only resolve the caller and shape responses.
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query, status

from .. import models, schemas
from ..rate_limit import rate_limit
from ..services.bookings import BookingService
from .auth import get_current_user, require_owner, require_seeker
from .deps import get_booking_service

router = APIRouter()


@router.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("booking"))],
)
def create_booking(
    payload: schemas.BookingCreate,
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(require_seeker),
) -> models.Booking:
    return service.create_booking(
        seeker_id=user.id,
        room_id=payload.room_id,
        check_in=payload.check_in_date,
        check_out=payload.check_out_date,
        special_requests=payload.special_requests,
    )


@router.get("/bookings/me", response_model=List[schemas.BookingRead])
def list_my_bookings(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(get_current_user),
) -> List[models.Booking]:
    # Seekers see their own stays; owners see bookings for their properties
    return service.list_for_user(user, limit=limit, offset=offset)


@router.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(get_current_user),
) -> models.Booking:
    return service.get_booking(booking_id, actor_id=user.id)


@router.post(
    "/bookings/{booking_id}/confirm",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def confirm_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(require_owner),
) -> models.Booking:
    return service.confirm(booking_id, actor_id=user.id)


@router.post(
    "/bookings/{booking_id}/reject",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def reject_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(require_owner),
) -> models.Booking:
    return service.reject(booking_id, actor_id=user.id)


@router.post(
    "/bookings/{booking_id}/complete",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def complete_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(require_owner),
) -> models.Booking:
    return service.complete(booking_id, actor_id=user.id)


@router.post(
    "/bookings/{booking_id}/pay",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def pay_booking(
    booking_id: int,
    payload: schemas.PaymentCreate,
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(require_seeker),
) -> models.Booking:
    # Gateway confirmation happens upstream; this records the outcome against the booking
    return service.mark_paid(
        booking_id,
        actor_id=user.id,
        payment_intent_id=payload.payment_intent_id,
        payment_method=payload.payment_method,
    )


@router.delete(
    "/bookings/{booking_id}",
    response_model=schemas.BookingRead,
    dependencies=[Depends(rate_limit("write"))],
)
def cancel_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
    user: models.User = Depends(get_current_user),
) -> models.Booking:
    # Seeker may cancel their own booking; owner may cancel bookings on their property
    return service.cancel(booking_id, actor_id=user.id)
