"""Presence snapshot cache.

`PresenceTracker` talks only to the `PresenceCache` interface; the container picks
`RedisPresenceCache` when Redis is configured and `NullPresenceCache` otherwise.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .redis_cache import RedisCache, cache_key_user

PRESENCE_PREFIX = "presence"


class PresenceCache(ABC):
    """Best-effort TTL cache of presence snapshots keyed by user id."""

    @abstractmethod
    async def get(self, user_id: int) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set(self, user_id: int, snapshot: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def delete(self, user_id: int) -> None:
        ...


class RedisPresenceCache(PresenceCache):
    def __init__(self, cache: RedisCache, ttl: int = 300):
        self.cache = cache
        self.ttl = ttl

    @staticmethod
    def key_for(user_id: int) -> str:
        return cache_key_user(PRESENCE_PREFIX, user_id)

    async def get(self, user_id: int) -> Optional[Dict[str, Any]]:
        return await self.cache.get(self.key_for(user_id))

    async def set(self, user_id: int, snapshot: Dict[str, Any]) -> None:
        await self.cache.set(self.key_for(user_id), snapshot, ttl=self.ttl)

    async def delete(self, user_id: int) -> None:
        await self.cache.delete(self.key_for(user_id))


class NullPresenceCache(PresenceCache):
    """Always misses; used when Redis is not configured."""

    async def get(self, user_id: int) -> Optional[Dict[str, Any]]:
        return None

    async def set(self, user_id: int, snapshot: Dict[str, Any]) -> None:
        return None

    async def delete(self, user_id: int) -> None:
        return None
