import logging
from typing import Optional

import redis
from redis.exceptions import RedisError

from tierguard.core.config import settings

logger = logging.getLogger(__name__)


class RedisCache:
    """Redis-backed counters for rate limiting. Every operation degrades to a no-op without Redis."""

    def __init__(self, url: Optional[str] = None, password: Optional[str] = None):
        """Initialize Redis cache (lazy connection)"""
        self._url = url or settings.redis_url
        self._password = password if password is not None else settings.redis_password
        self._client: Optional[redis.Redis] = None
        self._connected = False

    def _ensure_connected(self):
        if self._connected and self._client is not None:
            return
        self._connect()

    def _connect(self):
        client_kwargs = {
            'decode_responses': False,
            'socket_connect_timeout': 2,
            'socket_timeout': 2,
            'retry_on_timeout': False,
        }
        # Password from settings takes precedence over the one in the URL
        if self._password:
            client_kwargs['password'] = self._password

        try:
            self._client = redis.from_url(self._url, **client_kwargs)
            self._client.ping()
            self._connected = True
            logger.info("RedisCache: Connected")
        except RedisError as e:
            error_msg = str(e)
            if 'auth' in error_msg.lower() or 'password' in error_msg.lower():
                logger.error(f"RedisCache: Authentication failed - {error_msg}. Check REDIS_PASSWORD or REDIS_URL.")
            else:
                logger.warning(f"RedisCache: Connection failed - {error_msg}")
            self._connected = False
            self._client = None

    def incr(self, key: str, amount: int = 1) -> Optional[int]:
        """
        Atomically increment a counter in Redis.

        Returns:
            The new value after increment, or None if Redis unavailable
        """
        self._ensure_connected()
        if self._client is None:
            logger.warning(f"RedisCache: Cannot increment key {key} - Redis not available")
            return None

        try:
            new_value = self._client.incrby(key, amount)
            logger.debug(f"RedisCache: Incremented {key} by {amount} to {new_value}")
            return new_value
        except RedisError as e:
            logger.error(f"RedisCache: Error incrementing key {key}: {e}")
            self._connected = False
            return None

    def expire(self, key: str, seconds: int):
        self._ensure_connected()
        if self._client is None:
            logger.warning(f"RedisCache: Cannot set expiration on key {key} - Redis not available")
            return

        try:
            self._client.expire(key, seconds)
        except RedisError as e:
            logger.error(f"RedisCache: Error setting expiration on key {key}: {e}")
            self._connected = False


_cache_instance: Optional[RedisCache] = None


def get_cache() -> RedisCache:
    """Get global Redis cache instance"""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = RedisCache()
    return _cache_instance
