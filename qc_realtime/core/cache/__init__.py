from .presence_cache import NullPresenceCache, PresenceCache, RedisPresenceCache
from .redis_cache import RedisCache

__all__ = ["RedisCache", "PresenceCache", "RedisPresenceCache", "NullPresenceCache"]
