import logging

from app.core.cache import cache
from app.core.cache_config import INVALIDATION_PATTERNS

logger = logging.getLogger(__name__)

class CacheService:

    @staticmethod
    async def _invalidate_patterns(patterns: list):
        for pattern in patterns:
            deleted = await cache.delete_pattern(pattern)
            if deleted:
                logger.info(f"Invalidated {deleted} cache entries for pattern {pattern}")

    @staticmethod
    async def invalidate_progress_cache(user_id: int):
        patterns = [pattern.format(user_id) for pattern in INVALIDATION_PATTERNS["progress_update"]]
        await CacheService._invalidate_patterns(patterns)

    @staticmethod
    async def invalidate_user_cache(user_id: int):
        """Drop everything cached for a user whose course access changed."""
        patterns = [pattern.format(user_id) for pattern in INVALIDATION_PATTERNS["access_change"]]
        await CacheService._invalidate_patterns(patterns)

cache_service = CacheService()
