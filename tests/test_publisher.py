"""
Tests for Redis event publishing.
"""
import json
import logging
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from checkout.publisher import PAYMENT_EVENTS_CHANNEL, RedisEventPublisher


@pytest.mark.asyncio
async def test_publishes_json_payload() -> None:
    redis = AsyncMock()
    publisher = RedisEventPublisher(redis)

    await publisher.publish("PaymentCompleted", {"transaction_id": "TXN-1", "quantity": 2})

    channel, payload = redis.publish.await_args.args
    assert channel == PAYMENT_EVENTS_CHANNEL
    assert json.loads(payload) == {
        "event_type": "PaymentCompleted",
        "data": {"transaction_id": "TXN-1", "quantity": 2},
    }


@pytest.mark.asyncio
async def test_publish_failure_is_logged_not_raised(caplog) -> None:
    """発行失敗はコミットを取り消さない（ログだけ残す）"""
    redis = AsyncMock()
    redis.publish.side_effect = RedisConnectionError("connection refused")
    publisher = RedisEventPublisher(redis)

    with caplog.at_level(logging.ERROR, logger="checkout.publisher"):
        await publisher.publish("PaymentRefunded", {"transaction_id": "TXN-1"})

    assert "Failed to publish PaymentRefunded" in caplog.text
