import asyncio
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import CACHE_MEMORY_MAX_KEYS, CACHE_REDIS_URL, REDIS_SOCKET_TIMEOUT_SECONDS  # noqa: E402
from core.cache import CacheService, build_cache_store  # noqa: E402
from core.invalidation import invalidate_user_activity_cache  # noqa: E402


async def clean_user_cache(user_id=None):
    """
    Drop the users listings, dashboard metrics and activity entries (one user or all).
    """
    store = build_cache_store(CACHE_REDIS_URL, socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS, max_keys=CACHE_MEMORY_MAX_KEYS)
    cache = CacheService(store)
    try:
        result = await invalidate_user_activity_cache(cache, user_id)
    finally:
        await store.close()

    print(f"Patterns: {', '.join(result.patterns)}")
    print(f"Removed {result.removed} keys" + ("" if result.ok else " (some deletes failed, see log)"))
    return 0 if result.ok else 1


if __name__ == "__main__":
    if not CACHE_REDIS_URL:
        print("Error: CACHE_REDIS_URL not set in environment variables")
        sys.exit(1)
    sys.exit(asyncio.run(clean_user_cache(sys.argv[1] if len(sys.argv) > 1 else None)))
