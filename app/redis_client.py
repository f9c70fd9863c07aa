# Optional shared Redis connection for room locks, rate limiting and event fan-out.
# Off unless REDIS_ENABLED is truthy; every caller must cope with get_redis() returning None.
import logging
import os
from typing import Optional

_logger = logging.getLogger("bookmysleep.redis")

_TRUTHY = frozenset({"1", "true", "t", "yes", "y", "on"})


def truthy(val: Optional[str]) -> bool:
    """Parse an env flag such as REDIS_ENABLED or RELEASE_OCCUPANCY_ON_COMPLETE."""
    return val is not None and val.strip().lower() in _TRUTHY


def is_redis_enabled() -> bool:
    return truthy(os.getenv("REDIS_ENABLED", "false"))


def _connect(url: str):
    import redis

    # Short timeouts: a slow Redis must not stall booking writes
    client = redis.Redis.from_url(
        url,
        socket_timeout=0.25,
        socket_connect_timeout=0.25,
        retry_on_timeout=False,
        health_check_interval=0,
    )
    client.ping()
    return client


# None until the first successful connect; _attempted stops retrying after a failure
_client = None
_attempted = False


def get_redis():
    """
    Shared client when Redis is enabled and answered a ping, else None.

    The first call connects. If that fails, the process stays without Redis
    (locks fall back to process-local, rate limiting is skipped) until
    reset_redis() is called.
    """
    global _client, _attempted
    if not is_redis_enabled():
        return None
    if _client is not None or _attempted:
        return _client

    _attempted = True
    url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    try:
        _client = _connect(url)
    except Exception as exc:
        _logger.warning("redis.unavailable (url=%s): %s", url, exc)
        _client = None
    else:
        _logger.info("redis.connected (url=%s)", url)
    return _client


def reset_redis() -> None:
    """Forget the cached client so the next get_redis() reconnects."""
    global _client, _attempted
    _client = None
    _attempted = False
