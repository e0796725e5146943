"""Redis cache facade with graceful degradation.

Features:
- Async Redis client with JSON encoding and optional zlib compression for large payloads.
- Per-key TTL with prefix overrides.
- Pub/sub `publish` used to mirror realtime broadcasts across processes.
- Every operation fails open: when Redis is missing or errors, reads behave as a miss
  and writes are dropped after logging.
"""

import asyncio
import base64
import json
import logging
import zlib
from typing import Any, Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisCache:
    """Async Redis cache facade with graceful fallback when Redis is unavailable."""

    def __init__(self, redis_url: Optional[str] = None, default_ttl: int = 300):
        self.redis_url = redis_url
        self.redis: Optional[redis.Redis] = None
        self.enabled = False
        self.default_ttl = default_ttl
        self._compression_threshold = 1024  # bytes
        self.failed_init = False

    async def init_cache(self):
        """Initialize Redis connection pool."""
        try:
            if not self.redis_url:
                # Fail open: leave caching disabled instead of blocking app startup when Redis is not configured.
                logger.warning("REDIS_URL not set. Caching disabled.")
                return

            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_timeout=5,
            )
            # Test connection
            await self.redis.ping()
            self.enabled = True
            self.failed_init = False
            logger.info("Redis cache initialized successfully.")
        except Exception as e:
            logger.error(f"Failed to initialize Redis cache: {e}")
            self.enabled = False
            self.failed_init = True

    async def close(self):
        """Close Redis connection."""
        if not self.redis:
            self.failed_init = False
            return
        close_method = getattr(self.redis, "aclose", None) or getattr(
            self.redis, "close", None
        )
        if close_method:
            result = close_method()
            if asyncio.iscoroutine(result):
                await result
        self.redis = None
        self.enabled = False
        self.failed_init = False

    async def get(self, key: str) -> Any:
        """Get value from cache."""
        if not self.enabled or not self.redis:
            return None
        try:
            data = await self.redis.get(key)
            if not data:
                return None
            return self._decode_value(data)
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = None) -> None:
        """Set value with optional TTL."""
        if not self.enabled or not self.redis:
            return
        try:
            serialized = self._encode_value(value)
            expiry = ttl if ttl is not None else self.default_ttl
            await self.redis.set(key, serialized, ex=expiry)
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {e}")

    async def delete(self, key: str) -> None:
        """Delete a specific key."""
        if not self.enabled or not self.redis:
            return
        try:
            await self.redis.delete(key)
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {e}")

    async def publish(self, channel: str, message: Any) -> None:
        """Publish a JSON message on a pub/sub channel (fire-and-forget)."""
        if not self.enabled or not self.redis:
            return
        try:
            await self.redis.publish(channel, json.dumps(message, default=str))
        except Exception as e:
            logger.error(f"Cache publish error for channel {channel}: {e}")

    # ===== Helper Functions =====

    def _encode_value(self, value: Any) -> str:
        """Serialize and optionally compress a value into a string safe for Redis."""
        serialized = json.dumps(value, default=str).encode("utf-8")
        if len(serialized) >= self._compression_threshold:
            compressed = zlib.compress(serialized)
            return "1|" + base64.b64encode(compressed).decode("ascii")
        return "0|" + serialized.decode("utf-8")

    def _decode_value(self, data: Any) -> Any:
        """Decode a value stored with `_encode_value`."""
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        if not isinstance(data, str):
            return data
        if data.startswith("1|"):
            payload = base64.b64decode(data[2:])
            return json.loads(zlib.decompress(payload))
        if data.startswith("0|"):
            data = data[2:]
        # Fallback for legacy/plain storage
        try:
            return json.loads(data)
        except ValueError:
            return None


def cache_key_user(prefix: str, user_id: int, **kwargs) -> str:
    """Generate cache key for user-specific data."""
    params = "_".join(f"{k}={v}" for k, v in sorted(kwargs.items()))
    return f"{prefix}:user:{user_id}:{params}" if params else f"{prefix}:user:{user_id}"
