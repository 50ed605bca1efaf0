"""
Checkout Service — イベント発行 (Redis Pub/Sub)

コミット済みの状態変更を payment_events チャネルへ発行し、
他サービスへ通知する。

発行はコミット後に行う。発行に失敗してもコミットは取り消さない
（Pub/Sub は fire-and-forget 方式）。
"""

import json
import logging
from typing import Protocol

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

PAYMENT_EVENTS_CHANNEL = "payment_events"


class EventPublisher(Protocol):
    async def publish(self, event_type: str, data: dict) -> None: ...


class RedisEventPublisher:
    def __init__(self, redis: aioredis.Redis, channel: str = PAYMENT_EVENTS_CHANNEL) -> None:
        self.redis = redis
        self.channel = channel

    async def publish(self, event_type: str, data: dict) -> None:
        payload = json.dumps({"event_type": event_type, "data": data}, default=str)
        try:
            await self.redis.publish(self.channel, payload)
        except RedisError:
            logger.exception("Failed to publish %s to %s", event_type, self.channel)
            return
        logger.debug("Published %s to %s", event_type, self.channel)
