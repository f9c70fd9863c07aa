# Property and room endpoints.
# Owners manage their own listings and rooms; anyone can browse and check room availability.
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..domain.availability import apply_occupancy_delta, availability_status, occupancy_percentage
from ..rate_limit import rate_limit
from ..repositories import RoomRepository
from ..services.bookings import BookingService
from .auth import require_owner
from .deps import get_booking_service

router = APIRouter()


def room_read(room: models.Room) -> schemas.RoomRead:
    return schemas.RoomRead(
        id=room.id,
        property_id=room.property_id,
        room_number=room.room_number,
        room_type=room.room_type,
        price=room.price,
        security_deposit=room.security_deposit,
        capacity=room.capacity,
        current_occupancy=room.current_occupancy,
        is_available=room.is_available,
        available_from=room.available_from,
        occupancy_percentage=occupancy_percentage(room),
        availability_status=availability_status(room),
    )


def _get_property(db: Session, property_id: int) -> models.Property:
    prop = db.get(models.Property, property_id)
    if not prop:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop


@router.get("/properties", response_model=List[schemas.PropertyRead])
def list_properties(
    city: Optional[str] = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """Active properties, best rated first."""
    q = db.query(models.Property).filter(models.Property.is_active.is_(True))
    if city:
        q = q.filter(models.Property.city == city.strip())
    return q.order_by(models.Property.rating.desc(), models.Property.id.desc()).offset(offset).limit(limit).all()


@router.get("/properties/{property_id}", response_model=schemas.PropertyRead)
def get_property(property_id: int, db: Session = Depends(get_db)):
    return _get_property(db, property_id)


@router.post(
    "/properties",
    response_model=schemas.PropertyRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_property(
    payload: schemas.PropertyCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_owner),
):
    # rating/review_count start at zero and are only changed by review recomputation
    obj = models.Property(
        owner_id=user.id,
        property_name=payload.property_name,
        description=payload.description,
        city=payload.city,
        property_type=payload.property_type,
        is_active=True,
        rating=0.0,
        review_count=0,
    )
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@router.post(
    "/properties/{property_id}/rooms",
    response_model=schemas.RoomRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("write"))],
)
def create_room(
    property_id: int,
    payload: schemas.RoomCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(require_owner),
) -> schemas.RoomRead:
    prop = _get_property(db, property_id)
    if prop.owner_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not owner of property")

    room = models.Room(
        property_id=prop.id,
        room_number=payload.room_number.strip(),
        room_type=payload.room_type,
        price=payload.price,
        security_deposit=payload.security_deposit,
        capacity=payload.capacity,
        current_occupancy=0,
        available_from=payload.available_from or date.today(),
    )
    # Derive is_available from the fresh counters
    apply_occupancy_delta(room, 0)
    db.add(room)
    db.commit()
    db.refresh(room)
    return room_read(room)


@router.get("/properties/{property_id}/rooms", response_model=List[schemas.RoomRead])
def list_rooms(property_id: int, db: Session = Depends(get_db)) -> List[schemas.RoomRead]:
    _get_property(db, property_id)
    return [room_read(r) for r in RoomRepository(db).list_for_property(property_id)]


@router.get("/rooms/{room_id}/availability", response_model=schemas.RoomAvailabilityRead)
def room_availability(
    room_id: int,
    check_in_date: date = Query(...),
    check_out_date: date = Query(...),
    service: BookingService = Depends(get_booking_service),
) -> schemas.RoomAvailabilityRead:
    result = service.room_availability(room_id, check_in_date, check_out_date)
    return schemas.RoomAvailabilityRead(
        room_id=room_id,
        check_in_date=check_in_date,
        check_out_date=check_out_date,
        available=result.available,
        has_conflict=result.has_conflict,
        availability_status=availability_status(result.room),
    )
