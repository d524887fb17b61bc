"""
Factory for creating queue instances.
"""

import logging
from enum import Enum

from shortlink_app.config import Settings
from .strategies import InMemoryQueue, QueueStrategy, RedisStreamQueue

logger = logging.getLogger(__name__)


class QueueBackend(Enum):
    """Available queue backends"""
    REDIS_STREAMS = "redis_streams"
    MEMORY = "memory"


class QueueFactory:
    """
    Simple factory for creating queue instances.

    Returns a new instance on every call; the component container owns it.
    """

    @classmethod
    def create(cls, backend: QueueBackend, settings: Settings) -> QueueStrategy:
        """
        Create a queue.

        Args:
            backend: Type of queue backend (from enum)
            settings: Settings providing the Redis URL and consumer group

        Returns:
            New QueueStrategy instance

        Raises:
            redis.exceptions.ConnectionError: if Redis Streams was requested
                and Redis is unreachable
        """
        if backend == QueueBackend.REDIS_STREAMS:
            import redis

            redis_client = redis.from_url(
                settings.redis_url,
                decode_responses=False,
                socket_connect_timeout=2,
                socket_timeout=5,
            )

            # Test connection immediately
            redis_client.ping()

            logger.info("Redis Streams counter queue initialized")
            return RedisStreamQueue(
                redis_client,
                consumer_group=settings.queue_consumer_group,
                consumer_name=settings.queue_consumer_name or None,
                claim_idle_ms=settings.queue_claim_idle_ms or None,
            )

        if backend == QueueBackend.MEMORY:
            logger.info("In-memory counter queue initialized")
            return InMemoryQueue()

        raise ValueError(f"Unknown queue backend: {backend}")
