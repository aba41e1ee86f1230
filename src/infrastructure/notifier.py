"""Redis pub/sub notifier: one channel per user, JSON payloads."""

from __future__ import annotations

import json

import redis.asyncio as aioredis

from src.domain.entities import utcnow


def user_channel(user_id: str) -> str:
    return f"notifications:{user_id}"


class RedisNotifier:
    def __init__(self, client: aioredis.Redis):
        self.redis = client

    async def notify(self, user_id: str, message: str) -> None:
        payload = json.dumps(
            {
                "user_id": user_id,
                "message": message,
                "created_at": utcnow().isoformat(),
            },
            ensure_ascii=False,
        )
        await self.redis.publish(user_channel(user_id), payload)
