"""
Redis job lock

Maintenance jobs may be scheduled on several instances; a short-lived Redis
key makes sure only one of them runs a given job at a time.
"""
from __future__ import annotations

import logging
from functools import lru_cache

import redis

from reconciler.core.config import settings

logger = logging.getLogger(__name__)

# Delete the key only if it still holds our token
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


@lru_cache(maxsize=1)
def get_redis() -> redis.Redis:
    """
    Process-wide Redis client

    The connection is opened lazily on first command.

    Returns:
        Redis client decoding responses to str
    """
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD,
        decode_responses=True,
    )


class JobLock:
    """
    Single-holder lock for a scheduled job

    Args:
        client: Redis client (injected so tests can pass a fake)
        key: lock key
        token: value identifying this holder
        ttl_seconds: expiry, so a crashed holder cannot block forever
    """

    def __init__(self, client: redis.Redis, key: str, token: str, ttl_seconds: int) -> None:
        self._client = client
        self._key = key
        self._token = token
        self._ttl = ttl_seconds

    def acquire(self) -> bool:
        """Try once to take the lock; ``False`` if another holder has it."""
        return bool(self._client.set(self._key, self._token, ex=self._ttl, nx=True))

    def release(self) -> bool:
        """Release the lock if we still hold it."""
        try:
            return bool(self._client.eval(_RELEASE_SCRIPT, 1, self._key, self._token))
        except redis.RedisError as exc:
            # the key expires on its own
            logger.error("Failed to release lock %s: %s", self._key, exc)
            return False
