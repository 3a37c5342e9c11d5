"""
Queue worker: the lock / process / success-or-requeue loop.
"""

import logging
import signal
import threading
import time
import uuid
from typing import Any, Callable, Dict, Optional

from .queue.work_queue import WorkQueue

logger = logging.getLogger(__name__)


class QueueWorker:
    """
    Consumes a queue with a user-supplied handler.

    Each pass builds a fresh WorkQueue, because a WorkQueue never revisits
    elements it has scanned past: elements requeued during a pass are only
    seen again by the next pass. A handler exception requeues the element;
    a normal return removes it.
    """

    def __init__(self, queue_factory: Callable[[], WorkQueue],
                 handler: Callable[[Any], Any],
                 worker_id: Optional[str] = None,
                 batch_size: int = 10,
                 poll_interval: float = 5.0,
                 cleanup_timeout: Optional[int] = None):
        """
        Initialize queue worker.

        Args:
            queue_factory: Returns a new WorkQueue for each pass
            handler: Called with the payload of each locked element
            worker_id: Optional worker ID (generates one if not provided)
            batch_size: Elements retrieved per query
            poll_interval: Seconds to sleep after a pass that found no work
            cleanup_timeout: If set, requeue elements locked longer than this
                at the start of each pass
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.queue_factory = queue_factory
        self.handler = handler
        self.worker_id = worker_id or f"worker_{uuid.uuid4().hex[:8]}"
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.cleanup_timeout = cleanup_timeout
        self.running = False
        self.shutdown_requested = False

        self.stats = {
            "passes": 0,
            "processed": 0,
            "failed": 0,
            "skipped": 0,
            "requeued_orphans": 0,
            "start_time": None,
            "end_time": None,
        }

        logger.info(f"Initialized QueueWorker: {self.worker_id}")

    def run_once(self) -> Dict[str, int]:
        """
        Drain one snapshot of the queue.

        Returns:
            Counters for this pass
        """
        pass_stats = {"processed": 0, "failed": 0, "skipped": 0, "requeued_orphans": 0}
        queue = self.queue_factory()

        if self.cleanup_timeout is not None:
            pass_stats["requeued_orphans"] = len(queue.cleanup(self.cleanup_timeout))

        while not self.shutdown_requested:
            elements = queue.retrieve_batch(self.batch_size)
            if not elements:
                break

            for element in elements:
                if self.shutdown_requested:
                    break

                if not element.lock():
                    pass_stats["skipped"] += 1
                    continue

                try:
                    self.handler(element.data)
                except Exception as e:
                    logger.error(f"Worker {self.worker_id} failed on element {element.id}: {str(e)}")
                    element.requeue()
                    pass_stats["failed"] += 1
                else:
                    element.success()
                    pass_stats["processed"] += 1

        self.stats["passes"] += 1
        for key, value in pass_stats.items():
            self.stats[key] += value

        logger.debug(f"Worker {self.worker_id} pass finished: {pass_stats}")
        return pass_stats

    def run(self, max_passes: Optional[int] = None) -> Dict[str, Any]:
        """
        Process the queue until stopped.

        Args:
            max_passes: Stop after this many passes (default: run until stopped)

        Returns:
            Processing statistics
        """
        logger.info(f"Starting worker {self.worker_id}")

        previous_handlers = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                previous_handlers[signum] = signal.signal(signum, self._signal_handler)

        self.stats["start_time"] = time.time()
        self.running = True
        passes = 0

        try:
            while self.running and not self.shutdown_requested:
                pass_stats = self.run_once()
                passes += 1

                if max_passes is not None and passes >= max_passes:
                    break

                if not any(pass_stats.values()) and not self.shutdown_requested:
                    time.sleep(self.poll_interval)
        finally:
            self.running = False
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)

        self.stats["end_time"] = time.time()
        logger.info(
            f"Worker {self.worker_id} stopped. Processed {self.stats['processed']} elements "
            f"with {self.stats['failed']} failures"
        )
        return self.stats

    def stop(self):
        """Request graceful shutdown of the worker."""
        logger.info(f"Shutdown requested for worker {self.worker_id}")
        self.shutdown_requested = True
        self.running = False

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        signal_name = signal.Signals(signum).name
        logger.info(f"Worker {self.worker_id} received {signal_name} signal")
        self.stop()
