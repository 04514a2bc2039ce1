"""List cached keys per resource with their remaining TTL."""

import asyncio
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import CACHE_MEMORY_MAX_KEYS, CACHE_REDIS_URL, REDIS_SOCKET_TIMEOUT_SECONDS  # noqa: E402
from core.cache import build_cache_store  # noqa: E402
from core.cache_keys import registered_resources  # noqa: E402


async def main(resource_filter=None):
    if not CACHE_REDIS_URL:
        print("CACHE_REDIS_URL is not set; the in-process cache cannot be inspected from outside the server")
        return 1

    store = build_cache_store(CACHE_REDIS_URL, socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS, max_keys=CACHE_MEMORY_MAX_KEYS)
    try:
        for name, resource in sorted(registered_resources().items()):
            if resource_filter and name != resource_filter:
                continue
            keys = sorted(await store.keys(resource.pattern()))
            print(f"\n{name} (default ttl {resource.ttl}s): {len(keys)} keys")
            for key in keys:
                ttl = await store.ttl(key)
                print(f"  {ttl:>8}s  {key}")
    finally:
        await store.close()
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None)))
