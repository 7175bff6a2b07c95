import redis.asyncio as aioredis
from app.config import get_settings

settings = get_settings()

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=100,
        )
    return _redis_pool


async def close_redis() -> None:
    global _redis_pool
    if _redis_pool:
        await _redis_pool.aclose()
        _redis_pool = None


# ---------------------------------------------------------------------------
# Short-lived locks (SET NX PX)
# ---------------------------------------------------------------------------

# Delete only if the value is still ours; an expired lock may since belong to someone else
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


async def acquire_lock(redis: aioredis.Redis, key: str, owner: str, ttl_ms: int) -> bool:
    """Take `key` for `ttl_ms` unless somebody else holds it."""
    acquired = await redis.set(key, owner, nx=True, px=ttl_ms)
    return bool(acquired)


async def release_lock(redis: aioredis.Redis, key: str, owner: str) -> bool:
    """Release `key` if `owner` still holds it. Returns whether anything was deleted."""
    released = await redis.eval(_RELEASE_SCRIPT, 1, key, owner)
    return bool(released)


def ride_lease_key(ride_id: str) -> str:
    return f"dispatch:ride:{ride_id}:lease"


def drain_lock_key(ride_id: str, audience: str) -> str:
    return f"notification:{ride_id}:{audience}:lock"
