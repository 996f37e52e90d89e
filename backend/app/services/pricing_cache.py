"""
Pricing read-through cache.

Caches resolved pricing payloads in Redis. Entries are keyed by a generation
counter; invalidate() bumps the counter, which orphans every cached entry at
once. Every write to vehicle pricing (create, update, deactivate, bulk upsert,
backfill, default synthesis) goes through invalidate(), and nothing else
removes entries. Orphaned keys expire with their TTL.

Redis is optional: any Redis error degrades to a cache miss.
"""

import json
import logging
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from backend.app.core import redis_client as redis_module
from backend.app.core.config import settings

logger = logging.getLogger(__name__)

GENERATION_KEY = "pricing:generation"
DEFAULT_MODEL_MARKER = "*"


class PricingCache:

    def __init__(self, ttl_seconds: int = 300, enabled: bool = True):
        self.ttl_seconds = ttl_seconds
        self.enabled = enabled

    @staticmethod
    def _client():
        # Resolved per call; the module-level client can be replaced at runtime
        return redis_module.redis_client

    async def current_generation(self) -> Optional[str]:
        """
        Generation to read and write a single lookup under.

        Read it before resolving from the database and pass it to both get()
        and set(); an invalidation in between then orphans the write.
        Returns None when the cache is disabled or Redis is unreachable.
        """
        if not self.enabled:
            return None
        try:
            generation = await self._client().get(GENERATION_KEY)
        except RedisError as e:
            logger.warning("Pricing cache generation read failed: %s", e)
            return None
        return str(generation or 0)

    @staticmethod
    def build_key(generation: str, category: str, vehicle_type: str, vehicle_model: Optional[str], trip_type: str) -> str:
        model = vehicle_model or DEFAULT_MODEL_MARKER
        return f"pricing:{generation}:{category}:{vehicle_type}:{model}:{trip_type}"

    async def get(
        self,
        category: str,
        vehicle_type: str,
        vehicle_model: Optional[str],
        trip_type: str,
        generation: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        if not self.enabled:
            return None
        if generation is None:
            generation = await self.current_generation()
            if generation is None:
                return None
        try:
            raw = await self._client().get(
                self.build_key(generation, category, vehicle_type, vehicle_model, trip_type)
            )
        except RedisError as e:
            logger.warning("Pricing cache read failed: %s", e)
            return None
        return json.loads(raw) if raw else None

    async def set(
        self,
        category: str,
        vehicle_type: str,
        vehicle_model: Optional[str],
        trip_type: str,
        payload: Dict[str, Any],
        generation: Optional[str] = None,
    ) -> None:
        if not self.enabled:
            return
        if generation is None:
            generation = await self.current_generation()
            if generation is None:
                return
        try:
            await self._client().set(
                self.build_key(generation, category, vehicle_type, vehicle_model, trip_type),
                json.dumps(payload),
                ex=self.ttl_seconds,
            )
        except RedisError as e:
            logger.warning("Pricing cache write failed: %s", e)

    async def invalidate(self) -> None:
        """Drop every cached pricing entry."""
        if not self.enabled:
            return
        try:
            await self._client().incr(GENERATION_KEY)
        except RedisError as e:
            # Stale entries still expire after ttl_seconds
            logger.warning("Pricing cache invalidation failed: %s", e)


pricing_cache = PricingCache(
    ttl_seconds=settings.pricing_cache_ttl_seconds,
    enabled=settings.pricing_cache_enabled,
)
