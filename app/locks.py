# Per-resource mutual exclusion for "check, then write" sequences (room bookings, property ratings).
# A process-local lock always applies; a Redis lock extends the guard across processes and fails open.
from __future__ import annotations

import logging
import os
import threading
from contextlib import contextmanager
from typing import Dict, Iterator
from uuid import uuid4

from .redis_client import get_redis

logger = logging.getLogger("bookmysleep.locks")

ROOM_LOCK_TTL_MS = int(os.getenv("ROOM_LOCK_TTL_MS", "5000"))
ROOM_LOCK_WAIT_SECONDS = float(os.getenv("ROOM_LOCK_WAIT_SECONDS", "5"))

_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
else
    return 0
end
"""


@contextmanager
def redis_try_lock(key: str, ttl_ms: int = ROOM_LOCK_TTL_MS) -> Iterator[bool]:
    """
    Best-effort distributed lock implemented with Redis SET NX PX.

    Behavior:
    - True when the lock is acquired, or when Redis is unavailable (fail-open).
    - False when another process holds the lock.
    - Unlock uses a token-checked Lua script to avoid releasing a lock we don't own.
    """
    r = get_redis()
    if r is None:
        yield True
        return

    token = uuid4().hex
    acquired = False
    try:
        acquired = bool(r.set(key, token, nx=True, px=ttl_ms))
    except Exception as exc:
        logger.warning("redis_try_lock error (key=%s): %s", key, exc)
        yield True
        return

    try:
        yield acquired
    finally:
        if acquired:
            try:
                r.eval(_RELEASE_SCRIPT, 1, key, token)
            except Exception as exc:
                # The lock will expire by TTL
                logger.debug("redis_try_lock release error (key=%s): %s", key, exc)


_local_locks: Dict[str, threading.Lock] = {}
_registry_guard = threading.Lock()


def _local_lock(key: str) -> threading.Lock:
    with _registry_guard:
        lock = _local_locks.get(key)
        if lock is None:
            lock = _local_locks[key] = threading.Lock()
        return lock


def room_lock_key(room_id: int) -> str:
    return f"lock:booking:room:{room_id}"


def property_lock_key(property_id: int) -> str:
    return f"lock:rating:property:{property_id}"


@contextmanager
def resource_lock(
    key: str,
    ttl_ms: int = ROOM_LOCK_TTL_MS,
    wait_seconds: float = ROOM_LOCK_WAIT_SECONDS,
) -> Iterator[bool]:
    """
    Serialize writers of one resource, in this process and (with Redis) across processes.

    Yields False when the resource could not be locked in time (local contention past
    `wait_seconds`, or another process holding the Redis lock); callers should ask
    the client to retry.
    """
    local = _local_lock(key)
    if not local.acquire(timeout=wait_seconds):
        logger.info("lock.timeout", extra={"key": key})
        yield False
        return
    try:
        with redis_try_lock(key, ttl_ms=ttl_ms) as locked:
            if not locked:
                logger.info("lock.busy", extra={"key": key})
            yield locked
    finally:
        local.release()


def room_lock(room_id: int, **kwargs):
    """
    Guard for "check conflict, then write" booking sequences on one room.

        with room_lock(room.id) as locked:
            if not locked:
                raise ResourceBusy()
            # conflict check + insert/update + commit
    """
    return resource_lock(room_lock_key(room_id), **kwargs)


def property_lock(property_id: int, **kwargs):
    """Guard for rating recomputation of one property."""
    return resource_lock(property_lock_key(property_id), **kwargs)
