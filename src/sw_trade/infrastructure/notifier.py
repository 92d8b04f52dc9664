"""RedisNotifier: publishes trade lifecycle events for the push/browser notification service.

Message format on settings.NOTIFY_CHANNEL:
    {"type": "TRADE_ACCEPTED", "trade_id": "...", "recipient_id": "...", "payload": {...}}

Delivery is fire-and-forget; the lifecycle service logs and ignores failures.
The durable record is the trade_events row written in the same transaction.
"""

import json
import logging
from collections.abc import Awaitable, Callable

import redis.asyncio as aioredis

from config.settings import settings
from src.sw_common.redis_client import get_redis
from src.sw_trade.domain.models import TradeEvent

logger = logging.getLogger(__name__)


def event_to_message(event: TradeEvent) -> str:
    return json.dumps(
        {
            "type": event.event_type.value,
            "trade_id": event.trade_id,
            "recipient_id": event.recipient_id,
            "payload": event.payload,
        }
    )


class RedisNotifier:
    def __init__(
        self,
        channel: str | None = None,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]] = get_redis,
    ) -> None:
        self._channel = channel or settings.NOTIFY_CHANNEL
        self._redis_factory = redis_factory

    async def notify(self, event: TradeEvent) -> None:
        redis = await self._redis_factory()
        receivers = await redis.publish(self._channel, event_to_message(event))
        logger.debug(
            "Published %s for trade %s to %d subscriber(s)",
            event.event_type.value, event.trade_id, receivers,
        )
