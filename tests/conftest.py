# Pytest configuration for the booking API and core services.
# Forces a local SQLite DB, disables Redis and the background sweeper, and wires a predictable JWT secret.
import os
from datetime import date, timedelta
from types import SimpleNamespace
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("BOOKMYSLEEP_JWT_SECRET", "test-secret")
os.environ.setdefault("COMPLETION_SWEEP_SECONDS", "0")

import sys
# Ensure the project root is on sys.path so 'app' resolves when running pytest from anywhere
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.main import app  # noqa: E402
from app.db import Base, SessionLocal, engine  # noqa: E402
from app import models  # noqa: E402
from app.events import EventBus  # noqa: E402
from app.services.bookings import BookingService  # noqa: E402
from app.services.reviews import ReviewService  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _bootstrap_db() -> Iterator[None]:
    """Create the schema once per session and drop it at the end."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_db() -> Iterator[None]:
    """
    Function-level isolation: drop and recreate schema before each test.

    Simple but effective for this small suite; avoids transactional complexity.
    """
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def client() -> Iterator[TestClient]:
    """FastAPI TestClient bound to the application for HTTP-level tests."""
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def db() -> Iterator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def bookings(db, bus) -> BookingService:
    return BookingService.from_session(db, events=bus)


@pytest.fixture()
def reviews(db, bus) -> ReviewService:
    return ReviewService.from_session(db, events=bus)


# Rows are written straight through the session; the password hash is irrelevant for service tests
def make_user(db, email: str, role: str) -> models.User:
    user = models.User(email=email, password_hash="x", role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_property(db, owner: models.User, name: str = "Sunrise PG") -> models.Property:
    prop = models.Property(
        owner_id=owner.id,
        property_name=name,
        description="Near the metro",
        city="Pune",
        property_type="PG",
    )
    db.add(prop)
    db.commit()
    db.refresh(prop)
    return prop


def make_room(db, prop: models.Property, capacity: int = 1, price: int = 8000, deposit: int = 5000) -> models.Room:
    room = models.Room(
        property_id=prop.id,
        room_number=f"R-{capacity}-{price}",
        room_type="Single" if capacity == 1 else "Dormitory",
        price=price,
        security_deposit=deposit,
        capacity=capacity,
        current_occupancy=0,
        is_available=True,
        available_from=date.today(),
    )
    db.add(room)
    db.commit()
    db.refresh(room)
    return room


@pytest.fixture()
def world(db) -> SimpleNamespace:
    """Owner with one property and a single-bed room, plus two seekers."""
    owner = make_user(db, "owner@example.com", "owner")
    seeker = make_user(db, "seeker@example.com", "seeker")
    other_seeker = make_user(db, "other@example.com", "seeker")
    prop = make_property(db, owner)
    room = make_room(db, prop)
    return SimpleNamespace(owner=owner, seeker=seeker, other_seeker=other_seeker, prop=prop, room=room)


@pytest.fixture()
def stay_start() -> date:
    # Check-in must be strictly in the future
    return date.today() + timedelta(days=30)
