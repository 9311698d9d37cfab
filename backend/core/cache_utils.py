"""
Caching utilities for expensive report queries
Uses Redis (django-redis) in production, local memory otherwise
"""
from django.conf import settings
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

# Cache TTLs (in seconds)
REPORTS_CACHE_TTL = 600  # 10 minutes


def reports_cache_ttl():
    return getattr(settings, 'ALLOCATION_REPORTS_CACHE_TTL', REPORTS_CACHE_TTL)


def make_cache_key(prefix, *args, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{args}:{sorted(kwargs.items())}"
    # Hash it to keep key length reasonable
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{key_hash}"


def registry_key(prefix):
    """Cache key holding the keys written under a cached_query prefix"""
    return f"{prefix}:__keys__"


def remember_cache_key(prefix, cache_key):
    keys = cache.get(registry_key(prefix)) or []
    if cache_key not in keys:
        keys.append(cache_key)
        cache.set(registry_key(prefix), keys, None)


def cached_query(key_prefix="query", cache_ttl=None):
    """
    Decorator to cache expensive queries

    Usage:
        @cached_query(key_prefix="allocation_summary")
        def build_summary(year, lot):
            return data
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(*args, **kwargs)
            cache.set(cache_key, result, cache_ttl if cache_ttl is not None else reports_cache_ttl())
            remember_cache_key(key_prefix, cache_key)
            return result
        return wrapper
    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate all cache keys matching a pattern

    Redis is scanned for matching keys. Backends without pattern support
    (local memory) only drop the keys cached_query registered under
    ``pattern``, so there the pattern must be a cached_query key_prefix.
    """
    try:
        from django_redis import get_redis_connection
        redis_conn = get_redis_connection("default")
    except NotImplementedError:
        keys = cache.get(registry_key(pattern)) or []
        cache.delete_many(keys + [registry_key(pattern)])
        logger.debug(f"Invalidated {len(keys)} registered cache keys for prefix: {pattern}")
        return

    try:
        keys = []
        cursor = 0
        while True:
            cursor, partial_keys = redis_conn.scan(cursor, match=f"*{pattern}*", count=100)
            keys.extend(partial_keys)
            if cursor == 0:
                break

        if keys:
            redis_conn.delete(*keys)
            logger.info(f"Invalidated {len(keys)} cache keys matching pattern: {pattern}")
    except Exception as e:
        logger.warning(f"Could not invalidate cache pattern {pattern}: {str(e)}")
