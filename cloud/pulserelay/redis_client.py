"""
Redis client for token lookup caching.
"""
import json
from typing import Optional

import redis.asyncio as redis

from pulserelay.config import get_settings

settings = get_settings()

# Global Redis connection pool
_redis_pool: Optional[redis.Redis] = None


async def get_redis() -> redis.Redis:
    """Get or create Redis connection."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.close()
        _redis_pool = None


# ============ Overlay Token Cache ============

def _overlay_key(token: str) -> str:
    return f"overlay_token:{token}"


async def cache_overlay_token(token: str, user_id: str, username: Optional[str]) -> None:
    """Cache overlay token -> owner mapping."""
    r = await get_redis()
    await r.set(
        _overlay_key(token),
        json.dumps({"user_id": user_id, "username": username}),
        ex=settings.overlay_token_cache_ttl_s,
    )


async def get_overlay_token_info(token: str) -> Optional[dict]:
    """Get cached overlay token owner, if any."""
    r = await get_redis()
    data = await r.get(_overlay_key(token))
    return json.loads(data) if data else None


async def invalidate_overlay_token(token: str) -> None:
    """Drop a cached overlay token (rotation or revocation)."""
    r = await get_redis()
    await r.delete(_overlay_key(token))
