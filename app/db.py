import os
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

# Local development runs on ./data.db; point DATABASE_URL at Postgres/MySQL elsewhere.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data.db")


def is_sqlite(url: str = DATABASE_URL) -> bool:
    return url.startswith("sqlite")


def _engine_options(url: str) -> dict:
    if is_sqlite(url):
        # Worker threads (sweeper, concurrent requests) share the file; writers wait up to 15s for the file lock
        return {"connect_args": {"check_same_thread": False, "timeout": 15}}
    return {
        "pool_pre_ping": True,
        "pool_recycle": 280,
        "pool_size": 10,
        "max_overflow": 20,
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Transactions are explicit: services commit or roll back themselves
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator:
    """
    FastAPI dependency.

    Yields a database session for the lifetime of the request and guarantees it
    is closed afterwards, even if an exception is raised.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session for code running outside a request (sweepers, scripts)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
