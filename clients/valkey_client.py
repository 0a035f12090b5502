"""
Valkey (Redis-compatible) client for scheduled-job locks.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator

import redis

logger = logging.getLogger(__name__)

# Compare-and-delete so a run never releases a lock another run now holds
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        with client.lock("jobs:generate_recurring_invoices", ttl_seconds=600) as acquired:
            if acquired:
                generator.run()
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def acquire_lock(self, key: str, ttl_seconds: int) -> str | None:
        """
        Try to take an expiring lock (SET NX EX).

        Args:
            key: Lock key
            ttl_seconds: Lock lifetime; the lock frees itself if the holder dies

        Returns:
            Owner token if acquired, None if someone else holds the lock.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        token = uuid.uuid4().hex
        if self._client.set(key, token, nx=True, ex=ttl_seconds):
            return token
        return None

    def release_lock(self, key: str, token: str) -> bool:
        """
        Release a lock taken with acquire_lock.

        Returns False if the lock expired or is now held by another owner.
        """
        return bool(self._client.eval(_RELEASE_SCRIPT, 1, key, token))

    @contextmanager
    def lock(self, key: str, ttl_seconds: int) -> Iterator[bool]:
        """
        Hold a lock for the duration of the block.

        Yields True if the lock was acquired, False if it is held elsewhere.
        The block runs either way; callers skip their work on False.
        """
        token = self.acquire_lock(key, ttl_seconds)
        if token is None:
            logger.info(f"Lock {key} held elsewhere")
            yield False
            return

        try:
            yield True
        finally:
            if not self.release_lock(key, token):
                logger.warning(f"Lock {key} expired before release")

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
