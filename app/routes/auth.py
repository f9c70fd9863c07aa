# Authentication: password hashing, JWT issue/verify, and the caller-resolving dependencies used by every router.
from __future__ import annotations

import logging
import os
import time
from typing import Callable, Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Header, status
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..db import get_db
from .. import models, schemas
from ..rate_limit import rate_limit

logger = logging.getLogger("bookmysleep.auth")

router = APIRouter()

JWT_SECRET: str = os.getenv("BOOKMYSLEEP_JWT_SECRET", "dev-secret-change-me")
JWT_ALG: str = "HS256"
# One week unless overridden
JWT_TTL_SECONDS: int = int(os.getenv("BOOKMYSLEEP_JWT_TTL_SECONDS", str(7 * 24 * 3600)))

# bcrypt_sha256 pre-hashes, so passwords longer than 72 bytes still count in full
pwd_context = CryptContext(schemes=["bcrypt_sha256"], deprecated="auto")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ----------------
# Passwords and tokens
# ----------------
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def create_access_token(*, user: models.User, ttl_seconds: int = JWT_TTL_SECONDS) -> str:
    issued = int(time.time())
    claims = {
        "sub": str(user.id),
        "role": user.role,
        "iat": issued,
        "exp": issued + ttl_seconds,
    }
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict:
    """Verify signature and expiry; any failure is a 401."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG], options={"require": ["sub", "exp"]})
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise _unauthorized("Invalid token") from exc


def _token_response(user: models.User) -> schemas.TokenResponse:
    return schemas.TokenResponse(
        access_token=create_access_token(user=user),
        user=schemas.UserRead.model_validate(user),
    )


# ----------------
# Dependencies
# ----------------
def get_current_user(
    db: Session = Depends(get_db),
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> models.User:
    if not authorization:
        raise _unauthorized("Authorization header missing")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise _unauthorized("Invalid Authorization header")

    claims = decode_token(token)
    try:
        user_id = int(claims["sub"])
    except (TypeError, ValueError) as exc:
        raise _unauthorized("Invalid token payload") from exc

    user = db.get(models.User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    # Role is re-read from the database; a token minted before a role change is refused
    if claims.get("role") != user.role:
        raise _unauthorized("Token is stale, please sign in again")
    return user


def require_role(role: str) -> Callable[..., models.User]:
    def _dependency(user: models.User = Depends(get_current_user)) -> models.User:
        if user.role != role:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"{role.capitalize()} role required")
        return user

    return _dependency


require_owner = require_role("owner")
require_seeker = require_role("seeker")


# ----------------
# Routes
# ----------------
@router.post(
    "/auth/signup",
    response_model=schemas.TokenResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limit("signup"))],
)
def signup(payload: schemas.UserCreate, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    if db.query(models.User.id).filter(models.User.email == payload.email).first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = models.User(
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        first_name=payload.first_name,
        last_name=payload.last_name,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("user.signup", extra={"user_id": user.id, "role": user.role})
    return _token_response(user)


@router.post("/auth/login", response_model=schemas.TokenResponse, dependencies=[Depends(rate_limit("login"))])
def login(payload: schemas.LoginRequest, db: Session = Depends(get_db)) -> schemas.TokenResponse:
    user = db.query(models.User).filter(models.User.email == payload.email).first()
    # Same message for unknown email and wrong password
    if user is None or not verify_password(payload.password, user.password_hash):
        raise _unauthorized("Invalid credentials")
    return _token_response(user)


@router.get("/auth/me", response_model=schemas.UserRead)
def me(user: models.User = Depends(get_current_user)) -> models.User:
    return user
