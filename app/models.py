# SQLAlchemy ORM models for the marketplace tables (users, properties, rooms, bookings, reviews).
# Keep business logic out of models; occupancy, status and rating rules live in app.domain and app.services.
from datetime import date

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_mixin

from .db import Base


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class User(Base, TimestampMixin):
    """Application user account.

    Roles:
    - owner: lists properties and rooms, confirms/rejects bookings
    - seeker: books rooms and reviews completed stays
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, index=True)  # "owner" or "seeker"
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)


class Property(Base, TimestampMixin):
    """A PG, hostel or flat listed by an owner.

    rating/review_count are a cache of the property's reviews and are only ever
    written by ReviewService.recompute_property_rating.
    """
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_name = Column(String(100), nullable=False)
    description = Column(String(1000), nullable=False, default="")
    city = Column(String(100), nullable=False, index=True)
    property_type = Column(String(20), nullable=False)  # "PG", "Hostel" or "Flat"
    is_active = Column(Boolean, nullable=False, default=True)
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)


class Room(Base, TimestampMixin):
    """Bookable room inside a property.

    is_available is derived from current_occupancy, capacity and available_from
    (see app.domain.availability.apply_occupancy_delta).
    """
    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    room_number = Column(String(20), nullable=False)
    room_type = Column(String(20), nullable=False)  # Single / Double / Triple / Dormitory
    price = Column(Integer, nullable=False)
    security_deposit = Column(Integer, nullable=False, default=0)
    capacity = Column(Integer, nullable=False)
    current_occupancy = Column(Integer, nullable=False, default=0)
    is_available = Column(Boolean, nullable=False, default=True)
    available_from = Column(Date, nullable=False, default=date.today)

    __table_args__ = (
        CheckConstraint("capacity >= 1", name="ck_rooms_capacity_positive"),
        CheckConstraint("current_occupancy >= 0", name="ck_rooms_occupancy_non_negative"),
        CheckConstraint("current_occupancy <= capacity", name="ck_rooms_occupancy_lte_capacity"),
        Index("ix_rooms_property_available", "property_id", "is_available"),
    )


class Booking(Base, TimestampMixin):
    """Reservation of a room for [check_in_date, check_out_date).

    Status transitions:
    pending -> confirmed -> completed
       |           └── cancelled
       └── rejected / cancelled

    Payment status: pending -> paid -> refunded.
    'version' is bumped on every mutation.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    seeker_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    total_amount = Column(Integer, nullable=False)
    security_deposit = Column(Integer, nullable=False, default=0)
    platform_commission = Column(Integer, nullable=False, default=0)
    booking_status = Column(String(20), nullable=False, default="pending")
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_intent_id = Column(String(255), nullable=True)
    payment_method = Column(String(50), nullable=True)
    special_requests = Column(String(500), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    # Availability queries filter by room and date range; dashboards by status
    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_bookings_dates_ordered"),
        Index("ix_bookings_room_dates", "room_id", "check_in_date", "check_out_date"),
        Index("ix_bookings_seeker_status", "seeker_id", "booking_status"),
        Index("ix_bookings_owner_status", "owner_id", "booking_status"),
        Index("ix_bookings_status", "booking_status"),
    )


class Review(Base, TimestampMixin):
    """Seeker's review of a completed booking; at most one per booking."""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    seeker_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    rating = Column(Integer, nullable=False)
    review = Column(Text, nullable=False)

    __table_args__ = (
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        Index("ix_reviews_property_created_at", "property_id", "created_at"),
    )
