"""
run_guard.py — Active-run pointer for single-flight generation.

Before a run creates its job row it claims gen:active:{itinerary_id}. The
claim is a compare-and-swap (Redis SET NX with a TTL); a second claim for
the same itinerary fails until the first is released or expires.

Redis path:  string key gen:active:{itinerary_id} = claim token, EX ttl
             release deletes the key only if it still holds our token
Fallback:    in-memory dict per process, guarded by a lock.
"""

import os
import logging
import threading
import time
import uuid

import redis

from redis_client import get_redis

logger = logging.getLogger(__name__)

RUN_LOCK_TTL_SECONDS = int(os.getenv('RUN_LOCK_TTL_SECONDS', '900'))

# Delete the key only when it still holds the caller's token.
_RELEASE_SCRIPT = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


def _key(itinerary_id) -> str:
    return f'gen:active:{itinerary_id}'


class RunGuard:

    def __init__(self, ttl_seconds: int = RUN_LOCK_TTL_SECONDS, redis_getter=get_redis):
        self.ttl_seconds = ttl_seconds
        self._redis_getter = redis_getter
        self._claims: dict = {}   # itinerary_id -> (token, expires_at), fallback only
        self._lock = threading.Lock()

    def claim(self, itinerary_id) -> str | None:
        """Return a claim token, or None if another run holds the itinerary."""
        token = uuid.uuid4().hex
        r = self._redis_getter()

        if r is not None:
            try:
                if r.set(_key(itinerary_id), token, nx=True, ex=self.ttl_seconds):
                    return token
                return None
            except redis.RedisError as exc:
                logger.warning('Redis run-guard claim error: %s — falling back to memory', exc)

        now = time.time()
        with self._lock:
            held = self._claims.get(itinerary_id)
            if held and held[1] > now:
                return None
            self._claims[itinerary_id] = (token, now + self.ttl_seconds)
            return token

    def release(self, itinerary_id, token: str) -> None:
        r = self._redis_getter()

        if r is not None:
            try:
                r.eval(_RELEASE_SCRIPT, 1, _key(itinerary_id), token)
                return
            except redis.RedisError as exc:
                logger.warning('Redis run-guard release error: %s — falling back to memory', exc)

        with self._lock:
            held = self._claims.get(itinerary_id)
            if held and held[0] == token:
                del self._claims[itinerary_id]
