"""
Click Counter Worker

This worker drains CounterIncrement jobs from the queue and applies them to
links.click_count.

Architecture:
- Consumes jobs from the queue in batches
- Applies each one as an atomic, idempotent UPDATE through the link store
- Failed increments are logged, retried up to counter_max_attempts, then dropped
- Runs as a thread inside the web app, or as its own process:

    python -m shortlink_app.hit_processor.counter_worker
"""

import logging
import signal
import sys
import threading
from typing import List, Optional

from shortlink_app.config import Settings, settings as default_settings
from shortlink_app.errors import StoreError
from shortlink_app.logging_utils import setup_logging
from shortlink_app.queue.factory import QueueBackend, QueueFactory
from shortlink_app.queue.models import CounterIncrement
from shortlink_app.queue.strategies import QueueStrategy
from shortlink_app.storage.factory import StoreBackend, StoreFactory
from shortlink_app.storage.strategies import LinkStore

logger = logging.getLogger(__name__)


class CounterWorker:
    """
    Applies queued click counter increments.

    Jobs are acknowledged once handled, whether the increment succeeded,
    was re-queued for another attempt, or was dropped.
    """

    def __init__(
        self,
        queue: QueueStrategy,
        store: LinkStore,
        queue_name: str,
        batch_size: int = 100,
        block_ms: int = 1000,
        max_attempts: int = 1
    ):
        """
        Initialize worker with dependencies.

        Args:
            queue: Queue strategy for consuming jobs
            store: Link store that applies the increments
            queue_name: Queue to consume from
            batch_size: Jobs taken per consume call
            block_ms: How long a consume call waits when the queue is empty
            max_attempts: Attempts per job before it is dropped
        """
        self.queue = queue
        self.store = store
        self.queue_name = queue_name
        self.batch_size = batch_size
        self.block_ms = block_ms
        self.max_attempts = max(1, max_attempts)

        self.processed_count = 0
        self.applied_count = 0
        self.dropped_count = 0

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def process_batch(self, jobs: List[CounterIncrement]) -> int:
        """
        Apply a batch of increments.

        Returns:
            Number of increments that changed a counter
        """
        applied = 0
        for job in jobs:
            try:
                if self.store.atomic_increment(job.link_id, "click_count", event_id=job.click_event_id):
                    applied += 1
            except StoreError as e:
                self._handle_failure(job, e)
            except Exception as e:
                # The job is already off the queue; account for it like a store failure
                logger.exception("Unexpected error applying increment for %s", job.link_id)
                self._handle_failure(job, e)

        self.processed_count += len(jobs)
        self.applied_count += applied
        return applied

    def _handle_failure(self, job: CounterIncrement, error: Exception):
        attempts = job.attempts + 1
        if attempts < self.max_attempts:
            logger.warning(
                "Increment for %s (event %s) failed, attempt %d/%d: %s",
                job.link_id, job.click_event_id, attempts, self.max_attempts, error,
            )
            retry = CounterIncrement(link_id=job.link_id, click_event_id=job.click_event_id, attempts=attempts)
            if self.queue.publish(self.queue_name, retry):
                return

        self.dropped_count += 1
        logger.error(
            "Dropping increment for %s (event %s) after %d attempt(s): %s",
            job.link_id, job.click_event_id, attempts, error,
        )

    def run_once(self, block_ms: Optional[int] = None) -> int:
        """
        Consume, apply and acknowledge one batch.

        Returns:
            Number of jobs handled
        """
        jobs = self.queue.consume(
            self.queue_name,
            batch_size=self.batch_size,
            block_time=self.block_ms if block_ms is None else block_ms
        )
        if not jobs:
            return 0

        self.process_batch(jobs)

        message_ids = [job.message_id for job in jobs if job.message_id]
        if message_ids:
            self.queue.ack(self.queue_name, message_ids)

        logger.debug("Handled %d counter jobs (total %d)", len(jobs), self.processed_count)
        return len(jobs)

    def drain(self) -> int:
        """
        Handle jobs until the queue is empty, without waiting for new ones.

        Returns:
            Number of jobs handled
        """
        handled = 0
        while True:
            count = self.run_once(block_ms=0)
            if count == 0:
                return handled
            handled += count

    def run_forever(self):
        """Loop until ``stop()`` is called"""
        logger.info("Counter worker started (batch size %d)", self.batch_size)

        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                # Keep the loop alive; the next batch may succeed
                logger.exception("Counter worker batch failed")
                self._stop_event.wait(1)

        logger.info("Counter worker stopped after %d jobs", self.processed_count)

    def start(self):
        """Run the worker loop in a background daemon thread"""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="counter-worker", daemon=True)
        self._thread.start()

    def request_stop(self):
        """Ask the loop to exit after the current batch"""
        self._stop_event.set()

    def stop(self, timeout: Optional[float] = None):
        """
        Stop the loop and apply whatever is still queued.

        Args:
            timeout: Seconds to wait for the thread (default: a little over block_ms)
        """
        self.request_stop()
        if self._thread is not None:
            self._thread.join(timeout if timeout is not None else self.block_ms / 1000 + 5)
            self._thread = None
        self.drain()


def main(settings: Optional[Settings] = None):
    """
    Run the counter worker as its own process.

    Useful with the redis_streams queue backend, where web processes only
    publish and this process applies the increments.
    """
    settings = settings or default_settings
    setup_logging(settings.log_level)
    logger.info(
        "Counter worker: environment=%s queue=%s store=%s",
        settings.environment, settings.queue_backend, settings.store_backend,
    )

    queue = QueueFactory.create(QueueBackend(settings.queue_backend), settings)
    store = StoreFactory.create(StoreBackend(settings.store_backend), settings)

    worker = CounterWorker(
        queue=queue,
        store=store,
        queue_name=settings.queue_name,
        batch_size=settings.queue_batch_size,
        block_ms=settings.queue_block_ms,
        max_attempts=settings.counter_max_attempts,
    )

    def _signal_handler(signum, frame):
        logger.info("Received signal %s, shutting down", signum)
        worker.request_stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        worker.run_forever()
        worker.drain()
    except Exception:
        logger.exception("Counter worker crashed")
        sys.exit(1)
    finally:
        queue.close()
        store.close()


if __name__ == "__main__":
    main()
