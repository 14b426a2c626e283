"""
Redis client for cache operations.

Caches the set of registered component IDs per microgrid under
``components:{microgrid_id}``. All cache operations are best-effort:
connection failures are logged and reported as a cache miss, never raised,
so that streams and ingestion are not blocked by cache infrastructure.

CHANGELOG:
- 2026-10-19: Initial creation
"""

import json
import logging

import redis.asyncio as redis

from reporting.config import get_settings

logger = logging.getLogger(__name__)


def component_cache_key(microgrid_id: int) -> str:
    """Return the cache key of a microgrid's component registry."""
    return f"components:{microgrid_id}"


async def get_redis() -> redis.Redis:
    """Create and return an async Redis client from settings.

    Returns:
        redis.Redis: Async Redis client.
    """
    return redis.from_url(get_settings().redis_url)


async def get_cached_component_ids(microgrid_id: int) -> set[int] | None:
    """Return the cached component IDs of a microgrid.

    Args:
        microgrid_id: The microgrid to look up.

    Returns:
        set[int] | None: Cached IDs, or None on cache miss or Redis failure.
    """
    key = component_cache_key(microgrid_id)
    try:
        client = await get_redis()
        try:
            cached = await client.get(key)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis read failed for key %s", key, exc_info=True)
        return None

    if cached is None:
        return None
    return {int(component_id) for component_id in json.loads(cached)}


async def cache_component_ids(
    microgrid_id: int, component_ids: set[int], ttl_s: int
) -> None:
    """Store a microgrid's component IDs with an expiry.

    Args:
        microgrid_id: The microgrid the IDs belong to.
        component_ids: Registered component IDs.
        ttl_s: Expiry in seconds.
    """
    key = component_cache_key(microgrid_id)
    try:
        client = await get_redis()
        try:
            await client.set(key, json.dumps(sorted(component_ids)), ex=ttl_s)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis write failed for key %s", key, exc_info=True)


async def invalidate_microgrid_cache(microgrid_id: int) -> None:
    """Delete the component registry cache entry of a microgrid.

    Args:
        microgrid_id: The microgrid whose cache should be cleared.
    """
    try:
        client = await get_redis()
        try:
            await client.delete(component_cache_key(microgrid_id))
        finally:
            await client.aclose()
    except Exception:
        logger.warning(
            "Failed to invalidate cache for microgrid %s",
            microgrid_id,
            exc_info=True,
        )
