import functools
from typing import Optional, Callable
from app.core.cache import cache
import logging

logger = logging.getLogger(__name__)

_SKIP_KWARGS = {'db', 'current_user', 'processor', 'request'}


def cache_endpoint(ttl: int = 300, key_prefix: Optional[str] = None):
    """Cache an async endpoint's result per user and path/query arguments."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not cache.enabled:
                return await func(*args, **kwargs)

            cache_key = _generate_cache_key(key_prefix or func.__name__, kwargs)

            cached_value = await cache.get(cache_key)
            if cached_value is not None:
                logger.debug(f"Cache HIT for key: {cache_key}")
                return cached_value

            result = await func(*args, **kwargs)

            if result is not None:
                await cache.set(cache_key, result, ttl=ttl)
                logger.debug(f"Cache MISS for key: {cache_key} (stored with TTL {ttl}s)")

            return result

        return wrapper

    return decorator


def _generate_cache_key(prefix: str, kwargs: dict) -> str:
    current_user = kwargs.get('current_user')
    key_parts = [f"user:{current_user.id}:{prefix}"] if current_user is not None else [prefix]

    for k, v in sorted(kwargs.items()):
        if k not in _SKIP_KWARGS and not callable(v):
            key_parts.append(f"{k}={v}")

    return ":".join(key_parts)
