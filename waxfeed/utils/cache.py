"""
WAXFEED — Best-effort Redis cache for pairwise match scores.

Keys embed both users' profile versions, so a recomputed profile never
reads a stale score; old entries simply expire.  Every Redis failure is
logged and treated as a cache miss.
"""

from __future__ import annotations

import json
import uuid
from typing import Any

import structlog

logger = structlog.get_logger("waxfeed.cache")

_KEY_PREFIX = "waxfeed:match:"


async def connect_redis(url: str) -> Any:
    """Open an async Redis client and verify connectivity."""
    import redis.asyncio as aioredis

    client = aioredis.from_url(url, decode_responses=True, socket_connect_timeout=5)
    await client.ping()
    logger.info("redis_connected", url=url)
    return client


def pair_key(
    user_a: uuid.UUID, version_a: int, user_b: uuid.UUID, version_b: int
) -> str:
    """Order-independent key for a pair of profile versions."""
    first, second = sorted([(str(user_a), version_a), (str(user_b), version_b)])
    return f"{_KEY_PREFIX}{first[0]}:v{first[1]}:{second[0]}:v{second[1]}"


class MatchCache:
    """Thin wrapper over a ``redis.asyncio`` client.  A ``None`` client
    disables caching."""

    def __init__(self, client: Any | None, ttl_seconds: int = 3600) -> None:
        self.client = client
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def get_many(self, keys: list[str]) -> dict[str, dict]:
        if not self.enabled or not keys:
            return {}
        try:
            values = await self.client.mget(keys)
        except Exception as exc:
            logger.warning("match_cache_read_failed", error=str(exc), keys=len(keys))
            return {}

        hits: dict[str, dict] = {}
        for key, raw in zip(keys, values):
            if raw is None:
                continue
            try:
                hits[key] = json.loads(raw)
            except (TypeError, ValueError):
                logger.warning("match_cache_corrupt_entry", key=key)
        return hits

    async def set_many(self, entries: dict[str, dict]) -> None:
        if not self.enabled or not entries:
            return
        try:
            async with self.client.pipeline(transaction=False) as pipe:
                for key, value in entries.items():
                    pipe.set(key, json.dumps(value), ex=self.ttl_seconds)
                await pipe.execute()
        except Exception as exc:
            logger.warning("match_cache_write_failed", error=str(exc), keys=len(entries))
