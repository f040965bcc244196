"""Cache Services Package"""

from expense_tracker.services.cache.interface import CacheError, CacheInterface
from expense_tracker.services.cache.memory import InMemoryCache
from expense_tracker.services.cache.redis_cache import RedisCache
from expense_tracker.services.cache.safe import SafeCache

__all__ = [
    "CacheError",
    "CacheInterface",
    "InMemoryCache",
    "RedisCache",
    "SafeCache",
]
