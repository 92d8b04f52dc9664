"""RedisGuestLogStore: server-side copy of a guest's activity log.

Key:   swopify:guest:{guest_id}
Value: JSON of GuestActivityLog.to_dict()
TTL:   time left until the log's 30-day retention ends, capped at 30 days,
       so Redis drops expired logs on its own.

Redis failures surface as StorageError.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.sw_common.datetime_utils import ensure_utc, utc_now
from src.sw_common.errors import StorageError
from src.sw_common.redis_client import get_redis
from src.sw_guest.domain.models import GUEST_LOG_RETENTION, GuestActivityLog

logger = logging.getLogger(__name__)

KEY_PREFIX = "swopify:guest:"


def guest_key(guest_id: str) -> str:
    return f"{KEY_PREFIX}{guest_id}"


class RedisGuestLogStore:
    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
    ) -> None:
        self._redis_factory = redis_factory

    async def load(self, guest_id: str) -> GuestActivityLog | None:
        try:
            redis = await self._redis_factory()
            raw = await redis.get(guest_key(guest_id))
        except RedisError as exc:
            raise StorageError(f"guest log read failed: {exc}") from exc
        if raw is None:
            return None
        try:
            return GuestActivityLog.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable guest log %s", guest_id, exc_info=True)
            await self.clear(guest_id)
            return None

    async def save(self, log: GuestActivityLog, now: datetime | None = None) -> bool:
        """Store the log; returns False (and stores nothing) if it has already expired."""
        now = ensure_utc(now) if now else utc_now()
        remaining = min(log.expires_at() - now, GUEST_LOG_RETENTION)
        ttl_seconds = int(remaining.total_seconds())
        if ttl_seconds <= 0:
            await self.clear(log.guest_id)
            return False
        try:
            redis = await self._redis_factory()
            await redis.set(guest_key(log.guest_id), json.dumps(log.to_dict()), ex=ttl_seconds)
        except RedisError as exc:
            raise StorageError(f"guest log write failed: {exc}") from exc
        return True

    async def clear(self, guest_id: str) -> None:
        try:
            redis = await self._redis_factory()
            await redis.delete(guest_key(guest_id))
        except RedisError as exc:
            raise StorageError(f"guest log delete failed: {exc}") from exc
