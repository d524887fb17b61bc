"""
Queue strategies using Strategy Pattern.
Allows switching between different queue backends (Redis Streams, In-Memory).

The queue carries CounterIncrement jobs from the redirect path to the counter
worker, so the redirect never waits on the counter UPDATE.
"""

import json
import logging
import socket
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Deque, Dict, List, Optional

from .models import CounterIncrement

logger = logging.getLogger(__name__)


class QueueStrategy(ABC):
    """
    Abstract base class for queue strategies.

    Delivery is at-least-once: a consumed job may be seen again (e.g. Redis
    redelivers unacknowledged messages), so consumers must be idempotent.
    """

    @abstractmethod
    def publish(self, queue_name: str, message: CounterIncrement) -> bool:
        """
        Publish a message to the queue.

        Never raises; failures are logged.

        Args:
            queue_name: Name of the queue
            message: CounterIncrement to publish

        Returns:
            True if successful, False otherwise
        """
        pass

    @abstractmethod
    def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[CounterIncrement]:
        """
        Consume messages from the queue.

        Args:
            queue_name: Name of the queue
            batch_size: Maximum number of messages to retrieve
            block_time: Time to wait for messages (milliseconds, 0 = don't wait)

        Returns:
            List of CounterIncrement messages
        """
        pass

    @abstractmethod
    def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        """
        Acknowledge messages (mark as processed).

        Args:
            queue_name: Name of the queue
            message_ids: List of message IDs to acknowledge

        Returns:
            True if successful
        """
        pass

    @abstractmethod
    def get_queue_length(self, queue_name: str) -> int:
        """
        Get the number of messages waiting in the queue.

        Args:
            queue_name: Name of the queue

        Returns:
            Number of waiting messages
        """
        pass

    def close(self) -> None:
        """Release backend connections"""
        pass


class RedisStreamQueue(QueueStrategy):
    """
    Redis Streams implementation for the counter queue.

    How it works:
    1. Producer publishes messages using XADD
    2. Consumer reads messages using XREADGROUP
    3. Consumer acknowledges messages using XACK
    4. Unacknowledged messages stay pending; ``consume`` hands them out again
       before reading new ones (see ``_read_unacknowledged``)

    Lets the counter worker run as its own process, next to several web
    processes sharing one database.
    """

    def __init__(
        self,
        redis_client,
        consumer_group: str = "counter_workers",
        consumer_name: Optional[str] = None,
        claim_idle_ms: Optional[int] = 60000
    ):
        """
        Initialize Redis Streams queue.

        Args:
            redis_client: Redis client instance (redis.Redis)
            consumer_group: Name of consumer group for workers
            consumer_name: Consumer identity, stable across restarts
                (default: worker-<hostname>)
            claim_idle_ms: Take over jobs another consumer has left
                unacknowledged for this long (None disables it)
        """
        self.redis = redis_client
        self.consumer_group = consumer_group
        self.consumer_name = consumer_name or f"worker-{socket.gethostname()}"
        self.claim_idle_ms = claim_idle_ms
        self._initialized_streams = set()
        self._recovered_streams = set()

    def _ensure_stream_exists(self, queue_name: str):
        """
        Ensure stream and consumer group exist.
        Creates them if they don't exist.
        """
        if queue_name in self._initialized_streams:
            return

        try:
            # MKSTREAM creates the stream along with the group
            self.redis.xgroup_create(
                name=queue_name,
                groupname=self.consumer_group,
                id="0",
                mkstream=True
            )
            logger.info("Created Redis stream %s", queue_name)
        except Exception as e:
            # Group might already exist, that's OK
            if "BUSYGROUP" not in str(e):
                raise

        self._initialized_streams.add(queue_name)

    def publish(self, queue_name: str, message: CounterIncrement) -> bool:
        try:
            self._ensure_stream_exists(queue_name)
            self.redis.xadd(queue_name, {"data": message.model_dump_json()})
            return True
        except Exception as e:
            logger.warning("Redis publish error: %s", e)
            return False

    def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[CounterIncrement]:
        try:
            self._ensure_stream_exists(queue_name)
        except Exception as e:
            logger.warning("Redis consume error: %s", e)
            return []

        entries = self._read_unacknowledged(queue_name, batch_size)
        if entries:
            return self._parse_entries(queue_name, entries)

        try:
            # '>' means "messages never delivered to other consumers";
            # block=None returns immediately (block=0 would wait forever)
            messages = self.redis.xreadgroup(
                groupname=self.consumer_group,
                consumername=self.consumer_name,
                streams={queue_name: ">"},
                count=batch_size,
                block=block_time or None
            )
        except Exception as e:
            logger.warning("Redis consume error: %s", e)
            return []

        entries = []
        for _stream_name, stream_messages in messages or []:
            entries.extend(stream_messages)
        return self._parse_entries(queue_name, entries)

    def _read_unacknowledged(self, queue_name: str, batch_size: int) -> list:
        """
        Entries delivered earlier but never acknowledged.

        1. This consumer's own backlog (id "0"), read until it is empty once
           after startup: a restarted worker picks up what it had in flight
        2. Entries another consumer has held for at least ``claim_idle_ms``,
           taken over with XAUTOCLAIM: a worker that died stops holding them
        """
        try:
            if queue_name not in self._recovered_streams:
                messages = self.redis.xreadgroup(
                    groupname=self.consumer_group,
                    consumername=self.consumer_name,
                    streams={queue_name: "0"},
                    count=batch_size
                )
                backlog = messages[0][1] if messages else []
                if backlog:
                    logger.info("Redelivering %d pending jobs from %s", len(backlog), queue_name)
                    return backlog
                self._recovered_streams.add(queue_name)

            if self.claim_idle_ms is None:
                return []

            response = self.redis.xautoclaim(
                queue_name,
                self.consumer_group,
                self.consumer_name,
                min_idle_time=self.claim_idle_ms,
                start_id="0-0",
                count=batch_size
            )
            claimed = list(response[1]) if response else []
            if claimed:
                logger.info("Claimed %d stale jobs from %s", len(claimed), queue_name)
            return claimed
        except Exception as e:
            logger.warning("Redis pending read error: %s", e)
            return []

    def _parse_entries(self, queue_name: str, entries: list) -> List[CounterIncrement]:
        jobs = []
        for message_id, message_data in entries:
            message_id = message_id.decode("utf-8") if isinstance(message_id, bytes) else message_id
            try:
                raw = message_data.get(b"data", message_data.get("data"))
                if isinstance(raw, bytes):
                    raw = raw.decode("utf-8")
                job = CounterIncrement(**json.loads(raw))
            except Exception as e:
                # Unparseable jobs would be redelivered forever; ack and drop
                logger.error("Dropping malformed message %s: %s", message_id, e)
                self.ack(queue_name, [message_id])
                continue
            job.message_id = message_id
            jobs.append(job)

        return jobs

    def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        if not message_ids:
            return True

        try:
            self.redis.xack(queue_name, self.consumer_group, *message_ids)
            return True
        except Exception as e:
            logger.warning("Redis ack error: %s", e)
            return False

    def get_queue_length(self, queue_name: str) -> int:
        """Messages not yet delivered to this consumer group"""
        try:
            for group in self.redis.xinfo_groups(queue_name):
                name = group.get("name")
                if isinstance(name, bytes):
                    name = name.decode("utf-8")
                if name == self.consumer_group:
                    return int(group.get("lag") or 0)
            return int(self.redis.xlen(queue_name))
        except Exception:
            return 0

    def close(self) -> None:
        self.redis.close()


class InMemoryQueue(QueueStrategy):
    """
    In-memory queue implementation using Python deque.

    Pros:
    - Simple (no external dependencies)
    - Fast (no network overhead)
    - Good for development and testing

    Cons:
    - Not persistent (lost on restart)
    - Not distributed (each process has its own queue)

    A Condition lets ``consume`` wait for new jobs instead of polling.
    """

    def __init__(self):
        self._queues: Dict[str, Deque[CounterIncrement]] = {}
        self._condition = threading.Condition()

    def _get_queue(self, queue_name: str) -> Deque[CounterIncrement]:
        """Get or create queue (caller holds the condition)"""
        if queue_name not in self._queues:
            self._queues[queue_name] = deque()
        return self._queues[queue_name]

    def publish(self, queue_name: str, message: CounterIncrement) -> bool:
        with self._condition:
            self._get_queue(queue_name).append(message)
            self._condition.notify()
        return True

    def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[CounterIncrement]:
        with self._condition:
            queue = self._get_queue(queue_name)
            if not queue and block_time > 0:
                self._condition.wait_for(lambda: len(queue) > 0, timeout=block_time / 1000)

            messages = []
            while queue and len(messages) < batch_size:
                messages.append(queue.popleft())
            return messages

    def ack(self, queue_name: str, message_ids: List[str]) -> bool:
        """
        Acknowledge messages.

        Note: In-memory queue doesn't need acknowledgment
        (messages are removed on consume)
        """
        return True

    def get_queue_length(self, queue_name: str) -> int:
        with self._condition:
            return len(self._get_queue(queue_name))
