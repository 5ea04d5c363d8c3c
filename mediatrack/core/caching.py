# core/caching.py
import time
from functools import wraps
from typing import Dict, Any, Callable, Tuple

from .config import get_config

# key -> (user_id, result, timestamp)
_cache: Dict[str, Tuple[Any, Any, float]] = {}
CACHE_DURATION = get_config().STATS_CACHE_DURATION


def cache_result(duration: int = CACHE_DURATION) -> Callable:
    """
    Decorator to cache function results with configurable duration.

    The first positional argument is recorded as the owning user so the
    entry can be dropped by clear_user_cache().

    Args:
        duration: Cache duration in seconds (default: STATS_CACHE_DURATION of the active settings)

    Returns:
        Decorated function with caching capability
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            cache_key = f"{func.__module__}.{func.__name__}:{str(args)}:{str(sorted(kwargs.items()))}"

            # Check if cached result exists and is still valid
            if cache_key in _cache:
                _, cached_data, timestamp = _cache[cache_key]
                if time.time() - timestamp < duration:
                    return cached_data

            result = func(*args, **kwargs)
            owner = args[0] if args else kwargs.get("user_id")
            _cache[cache_key] = (owner, result, time.time())
            return result
        return wrapper
    return decorator


def clear_user_cache(user_id: Any) -> int:
    """
    Clear all cache entries owned by a specific user_id.

    Args:
        user_id: The user ID whose cache entries should be cleared

    Returns:
        Number of cache entries cleared
    """
    keys_to_remove = [key for key, (owner, _, _) in _cache.items() if owner == user_id]
    for key in keys_to_remove:
        del _cache[key]
    return len(keys_to_remove)


def clear_old_cache(max_age: int = 1800) -> int:
    """
    Clear cache entries older than the specified age.

    Args:
        max_age: Maximum age in seconds (default: 30 minutes)

    Returns:
        Number of cache entries cleared
    """
    current_time = time.time()
    keys_to_remove = [
        key for key, (_, _, timestamp) in _cache.items()
        if current_time - timestamp > max_age
    ]
    for key in keys_to_remove:
        del _cache[key]
    return len(keys_to_remove)


def clear_all_cache() -> None:
    _cache.clear()


def get_cache_stats() -> Dict[str, Any]:
    """
    Get statistics about the current cache state.

    Returns:
        Dictionary containing cache statistics
    """
    current_time = time.time()
    total_entries = len(_cache)

    if total_entries == 0:
        return {
            "total_entries": 0,
            "oldest_entry_age": 0,
            "newest_entry_age": 0,
            "average_age": 0
        }

    ages = [current_time - timestamp for _, _, timestamp in _cache.values()]

    return {
        "total_entries": total_entries,
        "oldest_entry_age": max(ages),
        "newest_entry_age": min(ages),
        "average_age": sum(ages) / len(ages)
    }
