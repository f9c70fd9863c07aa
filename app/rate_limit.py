# Redis-backed fixed-window rate limiter for write endpoints.
# - Per-IP counters keyed rl:bms:{scope}:{ip}, each with a TTL-based window.
# - Fail-open if Redis is unavailable, so bookings keep working in dev or during outages.
import logging
import os
from typing import Callable, Dict, Literal, Optional

from fastapi import HTTPException, Request, status

from .redis_client import get_redis

logger = logging.getLogger("bookmysleep.rate_limit")

Scope = Literal["login", "signup", "booking", "review", "write"]

# Requests allowed per window; override with RATE_LIMIT_<SCOPE>_PER_WINDOW
_DEFAULT_LIMITS: Dict[str, int] = {
    "login": 10,
    "signup": 5,
    "booking": 20,
    "review": 10,
    "write": 30,
}


def _to_int(val: Optional[str], default: int) -> int:
    try:
        return int(val) if val is not None else default
    except ValueError:
        return default


def _window_seconds() -> int:
    return _to_int(os.getenv("RATE_LIMIT_WINDOW_SECONDS"), 60)


def _limit_for_scope(scope: Scope) -> int:
    return _to_int(os.getenv(f"RATE_LIMIT_{scope.upper()}_PER_WINDOW"), _DEFAULT_LIMITS[scope])


def _client_ip(request: Request) -> str:
    # Connection address only; X-Forwarded-For is not trusted here
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit(scope: Scope) -> Callable[[Request], None]:
    """
    FastAPI dependency enforcing a fixed window per client IP and scope.

    On the first hit in a window the key's TTL is set; hits past the scope's limit
    get 429 with a retry_after hint. Without Redis the check is skipped.
    """
    window = _window_seconds()
    limit = _limit_for_scope(scope)

    def _dependency(request: Request) -> None:
        r = get_redis()
        if r is None:
            return

        ip = _client_ip(request)
        key = f"rl:bms:{scope}:{ip}"
        try:
            current = r.incr(key, amount=1)
            if current == 1:
                r.expire(key, window)
            if current <= limit:
                return
            ttl = r.ttl(key)
        except Exception as exc:
            logger.warning("Rate limit fail-open (scope=%s, ip=%s): %s", scope, ip, exc)
            return

        retry_after = ttl if isinstance(ttl, int) and ttl > 0 else window
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={"error": "rate_limited", "scope": scope, "limit": limit, "retry_after": retry_after},
        )

    return _dependency
