import json
import asyncio
import fnmatch
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, Dict, Tuple
import time
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

class CacheBackend(ABC):
    """Storage for cached read models. Failures must never break the request."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int) -> bool:
        pass

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        pass

class MemoryCacheBackend(CacheBackend):
    SWEEP_INTERVAL = 60

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, Tuple[Any, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._next_sweep = clock() + self.SWEEP_INTERVAL

    def _sweep(self, now: float):
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._next_sweep = now + self.SWEEP_INTERVAL

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        async with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep(now)
            self._entries[key] = (value, now + ttl)
            return True

    async def delete_pattern(self, pattern: str) -> int:
        async with self._lock:
            self._sweep(self._clock())
            keys = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in keys:
                del self._entries[key]
            return len(keys)

class RedisCacheBackend(CacheBackend):
    def __init__(self, redis_url: str):
        import redis.asyncio as redis
        self.redis = redis.from_url(redis_url, decode_responses=True)

    @staticmethod
    def _serialize(value: Any) -> str:
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        return json.dumps(value, default=str)

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.redis.get(key)
            return json.loads(value) if value else None
        except Exception as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> bool:
        try:
            await self.redis.setex(key, ttl, self._serialize(value))
            return True
        except Exception as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            return False

    async def delete_pattern(self, pattern: str) -> int:
        try:
            keys = [key async for key in self.redis.scan_iter(match=pattern)]
            return await self.redis.delete(*keys) if keys else 0
        except Exception as e:
            logger.error(f"Redis pattern delete error for {pattern}: {e}")
            return 0

def create_cache_backend() -> CacheBackend:
    if settings.REDIS_URL:
        logger.info("Initializing Redis cache backend")
        return RedisCacheBackend(settings.REDIS_URL)

    logger.info("Using in-memory cache backend")
    return MemoryCacheBackend()

class CacheManager:
    """Namespaces keys and turns every call into a no-op when caching is disabled."""

    def __init__(self, backend: CacheBackend, namespace: str = settings.CACHE_NAMESPACE, enabled: bool = settings.CACHE_ENABLED):
        self.backend = backend
        self.namespace = namespace
        self.enabled = enabled

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    async def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        return await self.backend.get(self._key(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        if not self.enabled:
            return False
        return await self.backend.set(self._key(key), value, ttl or settings.CACHE_TTL)

    async def delete_pattern(self, pattern: str) -> int:
        if not self.enabled:
            return 0
        return await self.backend.delete_pattern(self._key(pattern))

cache = CacheManager(create_cache_backend())
