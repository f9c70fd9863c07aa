# Review gate: only the seeker of a completed booking may review it, once.
# Each create/delete recomputes the property's cached rating in the same transaction.
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .. import models
from ..domain.booking_state import COMPLETED, round_half_up
from ..errors import (
    BookingNotCompleted,
    DuplicateReview,
    NotAuthorized,
    NotFound,
    ResourceBusy,
    ValidationError,
)
from ..events import DomainEvent, EventBus, event_bus
from ..locks import property_lock
from ..repositories import BookingRepository, PropertyRepository, ReviewRepository

logger = logging.getLogger("bookmysleep.reviews")

REVIEW_MAX_LENGTH = 1000


class ReviewService:
    def __init__(
        self,
        db: Session,
        reviews: ReviewRepository,
        bookings: BookingRepository,
        properties: PropertyRepository,
        events: EventBus,
    ) -> None:
        self.db = db
        self.reviews = reviews
        self.bookings = bookings
        self.properties = properties
        self.events = events

    @classmethod
    def from_session(cls, db: Session, events: Optional[EventBus] = None) -> "ReviewService":
        return cls(db, ReviewRepository(db), BookingRepository(db), PropertyRepository(db), events or event_bus)

    def create_review(self, seeker_id: int, booking_id: int, rating: int, text: str) -> models.Review:
        """
        Attach a review to a booking.

        Rating and text are validated first (ValidationError), before any lookup.
        Then checked in order, first failure wins:
        1. booking exists (NotFound)
        2. booking is completed (BookingNotCompleted)
        3. author is the booking's seeker (NotAuthorized)
        4. booking has no review yet (DuplicateReview)
        """
        text = _validate_review_input(rating, text)

        booking = self.bookings.get(booking_id)
        if booking is None:
            raise NotFound("Booking", booking_id)
        if booking.booking_status != COMPLETED:
            raise BookingNotCompleted()
        if booking.seeker_id != seeker_id:
            raise NotAuthorized("Only the guest who stayed can review this booking")
        if self.reviews.get_by_booking(booking_id) is not None:
            raise DuplicateReview()

        with self._property_guard(booking.property_id):
            review = models.Review(
                seeker_id=seeker_id,
                owner_id=booking.owner_id,
                property_id=booking.property_id,
                booking_id=booking.id,
                rating=rating,
                review=text,
            )
            try:
                self.db.add(review)
                self.db.flush()
                self._refresh_property_rating(booking.property_id)
                self.db.commit()
            except IntegrityError:
                # Unique index on booking_id: a concurrent review got there first
                self.db.rollback()
                raise DuplicateReview()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(review)

        logger.info("review.created", extra={"review_id": review.id, "booking_id": booking_id, "rating": rating})
        self._emit("ReviewCreated", review)
        return review

    def delete_review(self, review_id: int, actor_id: Optional[int] = None) -> None:
        review = self.reviews.get(review_id)
        if review is None:
            raise NotFound("Review", review_id)
        if actor_id is not None and actor_id != review.seeker_id:
            raise NotAuthorized("Only the author can delete this review")

        event = DomainEvent(
            name="ReviewDeleted",
            review_id=review.id,
            booking_id=review.booking_id,
            property_id=review.property_id,
            seeker_id=review.seeker_id,
            owner_id=review.owner_id,
        )
        with self._property_guard(review.property_id):
            try:
                self.db.delete(review)
                self.db.flush()
                self._refresh_property_rating(event.property_id)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info("review.deleted", extra={"review_id": review_id, "property_id": event.property_id})
        self.events.publish(event)

    def recompute_property_rating(self, property_id: int) -> models.Property:
        """Rebuild rating/review_count from the review table. Safe to call repeatedly."""
        with self._property_guard(property_id):
            try:
                prop = self._refresh_property_rating(property_id)
                if prop is None:
                    raise NotFound("Property", property_id)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(prop)
        return prop

    def rating_stats(self, property_id: int) -> Dict[str, object]:
        if self.properties.get(property_id) is None:
            raise NotFound("Property", property_id)
        mean, count = self.reviews.rating_aggregate(property_id)
        return {
            "property_id": property_id,
            "average_rating": _one_decimal(mean) if count else 0.0,
            "total_reviews": count,
            "rating_distribution": self.reviews.rating_distribution(property_id),
        }

    def list_property_reviews(self, property_id: int, page: int = 1, limit: int = 10) -> Tuple[List[models.Review], int]:
        if self.properties.get(property_id) is None:
            raise NotFound("Property", property_id)
        _, total = self.reviews.rating_aggregate(property_id)
        items = self.reviews.list_for_property(property_id, limit=limit, offset=(page - 1) * limit)
        return items, total

    def _refresh_property_rating(self, property_id: int) -> Optional[models.Property]:
        prop = self.properties.get_for_update(property_id)
        if prop is None:
            return None
        mean, count = self.reviews.rating_aggregate(property_id)
        if count == 0:
            prop.rating = 0.0
            prop.review_count = 0
        else:
            prop.rating = _one_decimal(mean)
            prop.review_count = count
        return prop

    @contextmanager
    def _property_guard(self, property_id: int) -> Iterator[None]:
        with property_lock(property_id) as locked:
            if not locked:
                raise ResourceBusy("Reviews for this property are being updated, please retry")
            yield

    def _emit(self, name: str, review: models.Review) -> None:
        self.events.publish(
            DomainEvent(
                name=name,
                review_id=review.id,
                booking_id=review.booking_id,
                property_id=review.property_id,
                seeker_id=review.seeker_id,
                owner_id=review.owner_id,
            )
        )


def _one_decimal(mean: float) -> float:
    return round_half_up(mean * 10) / 10


def _validate_review_input(rating: int, text: str) -> str:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be a whole number between 1 and 5")
    text = (text or "").strip()
    if not text:
        raise ValidationError("Review text is required")
    if len(text) > REVIEW_MAX_LENGTH:
        raise ValidationError("Review cannot exceed 1000 characters")
    return text
