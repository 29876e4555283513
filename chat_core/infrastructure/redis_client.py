# chat_core/infrastructure/redis_client.py
import json
import logging
from typing import Any

import redis.asyncio as redis


class RedisClient:
    """Publisher for the shared chat event bus.

    Other instances or services subscribe to ``chat:{id}`` channels; this
    process only publishes.
    """

    def __init__(self, host: str, port: int, logger: logging.Logger):
        self.host = host
        self.port = port
        self.client: redis.Redis | None = None
        self.logger = logger

    @property
    def connected(self) -> bool:
        return self.client is not None

    async def connect(self):
        self.client = redis.Redis(
            host=self.host,
            port=self.port,
            db=0,
            decode_responses=True,
        )
        try:
            await self.client.ping()
            self.logger.info(f"Connected to event bus at {self.host}:{self.port}")
        except redis.ConnectionError as e:
            self.logger.error(f"Failed to connect to Redis {self.host}:{self.port}: {e!s}")
            raise

    async def disconnect(self):
        if self.client:
            await self.client.aclose()
            self.client = None
            self.logger.info("Disconnected from Redis")

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        if self.client is None:
            raise RuntimeError("Redis client not connected")
        await self.client.publish(channel, json.dumps(payload, default=str))
        self.logger.debug(f"Published {payload.get('event', 'event')} to channel {channel}")
