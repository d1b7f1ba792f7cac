"""
Notification emitter.

The core's contract is "durably record the event for the recipient":
``record`` writes a ``notifications`` row inside the caller's unit of
work.  After the unit commits, ``publish`` hands each recorded event to
the real-time transport through a Redis channel per recipient.  Delivery
is fire-and-forget: a publish failure is logged and never undoes the
state change.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from carpool.domain.effects import Notify
from carpool.infrastructure.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


def channel_for(recipient_id: int) -> str:
    return f"notifications:{recipient_id}"


class NotificationEmitter:
    def __init__(self, redis: Optional[aioredis.Redis] = None):
        self.redis = redis

    async def record(self, uow: UnitOfWork, effect: Notify) -> int:
        row = await uow.notifications.add(effect)
        uow.outbox.append(
            {
                "id": row.id,
                "recipient_id": row.recipient_id,
                "sender_id": row.sender_id,
                "type": effect.type.value,
                "title": row.title,
                "message": row.message,
                "ride_id": row.ride_id,
                "transaction_id": row.transaction_id,
            }
        )
        logger.info(
            "notification %s -> user=%s ride=%s", effect.type.value, effect.recipient_id, effect.ride_id
        )
        return row.id

    async def publish(self, events: Iterable[dict]) -> None:
        if self.redis is None:
            return
        for event in events:
            try:
                await self.redis.publish(channel_for(event["recipient_id"]), json.dumps(event))
            except RedisError:
                logger.warning(
                    "Could not publish notification %s to user=%s",
                    event["id"],
                    event["recipient_id"],
                    exc_info=True,
                )
