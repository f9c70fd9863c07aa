# Pydantic models (request/response DTOs) used by the API layer.
# Keep models minimal and serializable; business rules live in app.services.
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, computed_field, field_validator

from .domain.booking_state import duration_days


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
    return v


# Authentication and user models

# User roles within the system
Role = Literal["seeker", "owner"]


class UserCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: Role = "seeker"
    first_name: Optional[str] = Field(None, max_length=50)
    last_name: Optional[str] = Field(None, max_length=50)

    # Normalize email input to lowercase without surrounding whitespace
    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


class UserRead(BaseModel):
    id: int
    email: EmailStr
    role: Role
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        if isinstance(v, str):
            v = v.strip().lower()
        return v


# OAuth2-style token response bundled with the current user profile
class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


# Properties and rooms
class PropertyCreate(BaseModel):
    property_name: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=1000)
    city: str = Field(..., min_length=1, max_length=100)
    property_type: Literal["PG", "Hostel", "Flat"]

    # Trim surrounding whitespace before validation
    @field_validator("property_name", "city", "description", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip(v)


class PropertyRead(BaseModel):
    id: int
    owner_id: int
    property_name: str
    description: str
    city: str
    property_type: str
    is_active: bool
    rating: float
    review_count: int

    model_config = ConfigDict(from_attributes=True)


class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=20)
    room_type: Literal["Single", "Double", "Triple", "Dormitory"]
    price: int = Field(..., ge=0)
    security_deposit: int = Field(0, ge=0)
    capacity: int = Field(..., ge=1, le=10)
    available_from: Optional[date] = None


class RoomRead(BaseModel):
    id: int
    property_id: int
    room_number: str
    room_type: str
    price: int
    security_deposit: int
    capacity: int
    current_occupancy: int
    is_available: bool
    available_from: date
    occupancy_percentage: int
    availability_status: Literal["unavailable", "full", "not-ready", "available"]


class RoomAvailabilityRead(BaseModel):
    room_id: int
    check_in_date: date
    check_out_date: date
    available: bool
    has_conflict: bool
    availability_status: str


# Bookings
class BookingCreate(BaseModel):
    room_id: int = Field(..., ge=1)
    check_in_date: date
    check_out_date: date
    special_requests: Optional[str] = Field(None, max_length=500)


class BookingRead(BaseModel):
    id: int
    seeker_id: int
    owner_id: int
    property_id: int
    room_id: int
    check_in_date: date
    check_out_date: date
    total_amount: int
    security_deposit: int
    platform_commission: int
    booking_status: Literal["pending", "confirmed", "rejected", "cancelled", "completed"]
    payment_status: Literal["pending", "paid", "refunded"]
    payment_method: Optional[str] = None
    special_requests: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def duration_days(self) -> int:
        return duration_days(self.check_in_date, self.check_out_date)

    @computed_field
    @property
    def total_with_deposit(self) -> int:
        return self.total_amount + self.security_deposit


class PaymentCreate(BaseModel):
    payment_intent_id: Optional[str] = Field(None, max_length=255)
    payment_method: Optional[str] = Field(None, max_length=50)


# Reviews
class ReviewCreate(BaseModel):
    booking_id: int = Field(..., ge=1)
    rating: int = Field(..., ge=1, le=5)
    review: str = Field(..., min_length=1, max_length=1000)

    @field_validator("review", mode="before")
    @classmethod
    def normalize_review(cls, v: str) -> str:
        return _strip(v)


class ReviewRead(BaseModel):
    id: int
    seeker_id: int
    owner_id: int
    property_id: int
    booking_id: int
    rating: int
    review: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ReviewListResponse(BaseModel):
    reviews: List[ReviewRead]
    pagination: Pagination


class RatingStats(BaseModel):
    property_id: int
    average_rating: float
    total_reviews: int
    rating_distribution: Dict[int, int]
