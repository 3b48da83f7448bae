"""
redis_client.py — Shared Redis connection

Provides a single lazily-initialised Redis client used by run_guard.py to hold
the per-itinerary active-run pointer across worker processes.

Graceful degradation
--------------------
If REDIS_URL is not set, or the server is unreachable, get_redis() returns
None and run_guard.py falls back to a per-process dict. The database's
one-running-job index still guards across processes in that mode.
"""

import os
import logging
from urllib.parse import urlparse, urlunparse

import redis

logger = logging.getLogger(__name__)

_redis_client = None          # module-level singleton
_redis_checked = False        # only attempt connection once per process


def get_redis():
    """
    Return a connected Redis client, or None if Redis is unavailable.

    The connection is established once per process and reused.
    """
    global _redis_client, _redis_checked

    if _redis_checked:
        return _redis_client

    _redis_checked = True
    url = os.getenv('REDIS_URL', '').strip()

    if not url:
        logger.info('REDIS_URL not set — active-run pointer is per-process only')
        return None

    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
        )
        client.ping()
        logger.info('Redis connected: %s', redact_url(url))
        _redis_client = client
    except redis.RedisError as exc:
        logger.warning('Redis unavailable (%s) — active-run pointer falls back to memory', exc)
        _redis_client = None

    return _redis_client


def reset_redis() -> None:
    """Forget the cached client so the next get_redis() reconnects."""
    global _redis_client, _redis_checked
    _redis_client = None
    _redis_checked = False


def redact_url(url: str) -> str:
    """Return the Redis URL with the password replaced by ***."""
    p = urlparse(url)
    if p.password:
        netloc = f'{p.username or ""}:***@{p.hostname}' + (f':{p.port}' if p.port else '')
        return urlunparse(p._replace(netloc=netloc))
    return url
