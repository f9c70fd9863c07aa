# Request-scoped service wiring: each request gets services bound to its own DB session.
from fastapi import Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.bookings import BookingService
from ..services.reviews import ReviewService


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService.from_session(db)


def get_review_service(db: Session = Depends(get_db)) -> ReviewService:
    return ReviewService.from_session(db)
