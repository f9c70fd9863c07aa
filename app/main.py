# Application entrypoint: configures middleware, error rendering, startup routines, and API routers.
import logging
import os
import threading
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .db import Base, engine, is_sqlite
from .errors import DomainError
from .routes.auth import router as auth_router
from .routes.bookings import router as bookings_router
from .routes.properties import router as properties_router
from .routes.reviews import router as reviews_router
from .sweepers import complete_finished_stays, refresh_room_availability

logger = logging.getLogger("bookmysleep.api")

COMPLETION_SWEEP_SECONDS = int(os.getenv("COMPLETION_SWEEP_SECONDS", "300"))


def _start_completion_sweeper(interval_seconds: int) -> None:
    """
    Launch a daemon thread that periodically completes confirmed stays whose check-out date has passed
    and re-derives room availability flags whose available_from date has arrived.

    Errors are logged and the sweep is retried on the next interval.
    """
    def _loop() -> None:
        while True:
            try:
                complete_finished_stays()
                refresh_room_availability()
            except Exception:
                logger.exception("sweeper.failed")
            time.sleep(interval_seconds)

    t = threading.Thread(target=_loop, name="stay-completion-sweeper", daemon=True)
    t.start()


# Parse CORS origins from a comma-separated env var.
# '*' cannot be combined with allow_credentials=True, so it maps to the local dev origins.
def _parse_cors_origins(env_value: str | None) -> list[str]:
    default_dev_origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    if not env_value:
        return default_dev_origins

    origins = [o.strip() for o in env_value.split(",") if o.strip()]
    if "*" in origins:
        return default_dev_origins

    return origins


app = FastAPI(title="Book My Sleep API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_cors_origins(os.getenv("CORS_ORIGINS")),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    # Expected, client-correctable outcomes: specific message per error kind
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "error": exc.code})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("database.error", extra={"path": request.url.path})
    return JSONResponse(status_code=500, content={"detail": "Internal server error", "error": "internal"})


@app.on_event("startup")
def on_startup() -> None:
    # For local SQLite, auto-create tables; other databases rely on Alembic migrations.
    if is_sqlite():
        Base.metadata.create_all(bind=engine)
    if COMPLETION_SWEEP_SECONDS > 0:
        _start_completion_sweeper(COMPLETION_SWEEP_SECONDS)


# Simple liveness endpoint for container orchestrators and uptime checks
@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok"}


app.include_router(auth_router, prefix="", tags=["auth"])
app.include_router(properties_router, prefix="/api/v1", tags=["properties"])
app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])
app.include_router(reviews_router, prefix="/api/v1", tags=["reviews"])
