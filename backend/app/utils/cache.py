"""Redis caching utilities for GreyLedger.

Read-heavy stock summaries are cached per company and invalidated by
every ledger mutation.  Redis failures never break a request: the
decorator falls back to the uncached call.  Set ``CACHE_ENABLED=false``
to bypass Redis entirely (tests, local runs without Redis).
"""

import functools
import hashlib
import json
import logging
from datetime import date, datetime
from typing import Callable, Optional

import redis.asyncio as redis
from app.config import settings

logger = logging.getLogger(__name__)

# Global Redis connection pool
_redis_client: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis client connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=50,
        )
    return _redis_client


async def close_redis():
    """Close Redis connection (call on app shutdown)."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def cache_key(*args, **kwargs) -> str:
    """Deterministic hash of the given arguments."""
    if not args and not kwargs:
        return "default"

    key_data = json.dumps({"args": args, "kwargs": kwargs}, sort_keys=True, default=str)
    return hashlib.md5(key_data.encode()).hexdigest()


def company_scope(company_id: str, prefix: str) -> str:
    return f"c:{company_id}:{prefix}"


def company_key_builder(prefix: str) -> Callable:
    """Key builder for routes taking an ``actor`` dependency.

    Query parameters (simple values) form the hash; the company comes
    from the actor so two companies never share an entry.
    """
    def build(*args, **kwargs) -> str:
        params = {
            k: v for k, v in kwargs.items()
            if isinstance(v, (int, str, bool, float, type(None)))
        }
        return company_scope(kwargs["actor"].company_id, f"{prefix}:{cache_key(**params)}")

    return build


def _serialize(result):
    if hasattr(result, "model_dump"):
        return result.model_dump(mode="json")
    if isinstance(result, list) and result and hasattr(result[0], "model_dump"):
        return [item.model_dump(mode="json") for item in result]
    return result


def cached(
    ttl: int = 300,
    prefix: str = "cache",
    key_builder: Optional[Callable] = None,
):
    """Decorator to cache function results in Redis.

    Args:
        ttl: Time-to-live in seconds (default: 300 = 5 minutes)
        prefix: Cache key prefix for namespacing
        key_builder: Custom function to build cache key from args/kwargs

    Cache keys: {prefix}:{function_name}:{args_hash} unless key_builder
    returns one (use ``company_scope`` there to keep companies apart).
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            if not settings.cache_enabled:
                return await func(*args, **kwargs)

            if key_builder:
                key = key_builder(*args, **kwargs)
            else:
                # Only simple kwargs; injected sessions/actors are skipped
                cache_kwargs = {}
                for k, v in kwargs.items():
                    if k.startswith("_"):
                        continue
                    if isinstance(v, (int, str, bool, float, type(None))):
                        cache_kwargs[k] = v
                    elif isinstance(v, (date, datetime)):
                        cache_kwargs[k] = v.isoformat()
                key = f"{prefix}:{func.__name__}:{cache_key(**cache_kwargs)}"

            try:
                redis_client = await get_redis()
                cached_value = await redis_client.get(key)
            except redis.RedisError as e:
                logger.warning(f"Redis error (falling back to uncached): {e}")
                return await func(*args, **kwargs)

            if cached_value:
                logger.debug(f"Cache HIT: {key}")
                return json.loads(cached_value)

            logger.debug(f"Cache MISS: {key}")
            result = await func(*args, **kwargs)

            try:
                await redis_client.setex(key, ttl, json.dumps(_serialize(result)))
            except redis.RedisError as e:
                logger.warning(f"Redis error storing {key}: {e}")

            return result

        return wrapper

    return decorator


async def invalidate_cache(pattern: str):
    """Invalidate cache keys matching a pattern.

    Example:
        await invalidate_cache(company_scope(company_id, "stock_summary:*"))
    """
    if not settings.cache_enabled:
        return
    try:
        redis_client = await get_redis()
        keys = []
        async for key in redis_client.scan_iter(match=pattern):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching {pattern}")
    except redis.RedisError as e:
        logger.warning(f"Failed to invalidate cache: {e}")


async def invalidate_company_stock(company_id: str):
    """Drop every cached stock view for a company after a ledger write."""
    await invalidate_cache(company_scope(company_id, "stock_summary:*"))
    await invalidate_cache(company_scope(company_id, "client_materials:*"))
