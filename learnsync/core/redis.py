"""
Redis connection management.

This module provides the Redis connection shared by the API process and the
Celery workers. Redis backs the per-school locks that serialize group
reparenting across processes.
"""

import logging

import redis

from learnsync.config.settings import settings

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Redis connection manager.

    The client is created lazily from ``settings.redis_url`` so importing
    this module never opens a connection.
    """

    def __init__(self, url: str = None):
        self.url = url or settings.redis_url
        self._client = None

    @property
    def redis_client(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.from_url(
                self.url,
                decode_responses=True,  # Automatically decode responses to strings
                socket_connect_timeout=5,
                socket_timeout=5
            )
        return self._client

    def ping(self) -> bool:
        """
        Check that Redis answers.

        Returns:
            True if Redis responded, False otherwise
        """
        try:
            return bool(self.redis_client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False

    def lock(self, name: str, timeout: float, blocking_timeout: float):
        """
        Create a distributed lock object.

        Args:
            name: Lock key
            timeout: Seconds after which Redis releases the lock on its own
            blocking_timeout: Seconds to wait when acquiring
        """
        return self.redis_client.lock(name, timeout=timeout, blocking_timeout=blocking_timeout)


# Global Redis manager instance
redis_manager = RedisManager()


def get_redis() -> RedisManager:
    """
    FastAPI dependency function to get Redis manager.

    Returns:
        RedisManager: Redis connection manager instance
    """
    return redis_manager
