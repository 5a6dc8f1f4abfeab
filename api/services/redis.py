# SPDX-License-Identifier: Apache-2.0

"""
Redis pub/sub real-time event publisher.

Each event is published as JSON on the Redis channel named after its
real-time channel (``pickup-{id}`` / ``user-{id}``).
"""

import os
import json
import logging
from typing import Optional, Dict, Any

import redis
from opentelemetry import trace

from domain.side_effects import RealtimeEvent
from .realtime import EventPublisher

tracer = trace.get_tracer(__name__)
logger = logging.getLogger(__name__)


class RedisConnectionError(Exception):
    """Raised when Redis connection fails."""
    pass


class RedisEventPublisher(EventPublisher):
    """Real-time publisher backed by the standard redis-py client."""

    def __init__(self, redis_url: Optional[str] = None, client: Optional[redis.Redis] = None):
        """
        Initialize the Redis publisher.

        Args:
            redis_url: Redis connection URL (redis://host:port)
            client: Pre-built client, mainly for tests
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")
        self.client = client or redis.from_url(self.redis_url, decode_responses=True)
        logger.info(f"Redis event publisher initialized at {self.redis_url}")

    def publish(self, event: RealtimeEvent) -> None:
        with tracer.start_as_current_span("redis.publish") as span:
            span.set_attributes({
                "redis.channel": event.channel,
                "realtime.event": event.event
            })
            message = json.dumps({"event": event.event, "payload": event.payload}, default=str)
            try:
                receivers = self.client.publish(event.channel, message)
            except redis.RedisError as e:
                span.record_exception(e)
                logger.error(f"Redis publish failed on {event.channel}: {str(e)}")
                raise RedisConnectionError(f"Redis publish failed: {str(e)}") from e
            span.set_attribute("redis.receivers", receivers)
            logger.debug(f"Published {event.event} to {event.channel} ({receivers} receivers)")

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {str(e)}")
            return False

    def health_check(self) -> Dict[str, Any]:
        """Perform Redis health check."""
        healthy = self.ping()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "url": self.redis_url
        }

    def close(self) -> None:
        self.client.close()
