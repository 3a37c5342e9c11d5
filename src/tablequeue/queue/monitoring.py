"""
Health snapshot of a queue.
"""

import logging
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from .work_queue import UNLIMITED_RETRIES, WorkQueue

logger = logging.getLogger(__name__)


@dataclass
class QueueHealthMetrics:
    """Health metrics for one queue."""
    queue_name: str
    queue_id: int
    timestamp: datetime
    total: int = 0
    pending: int = 0
    locked: int = 0
    over_requeue_limit: int = 0
    oldest_lock_age_seconds: float = 0.0
    oldest_pending_age_seconds: float = 0.0
    stale_locks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat() if self.timestamp else None
        return data


class QueueMonitor:
    """Collects read-only health metrics from the element table."""

    def __init__(self, store):
        self.store = store

    def collect(self, queue: WorkQueue, stale_after: Optional[int] = None) -> QueueHealthMetrics:
        """
        Collect metrics for a queue with a single aggregate query.

        Args:
            queue: Queue to inspect
            stale_after: Locks older than this many seconds count as stale
                (cleanup candidates)

        Returns:
            QueueHealthMetrics
        """
        now = int(time.time())
        params = {'queue_id': queue.queue_id}

        over_limit = "0"
        if queue.max_requeue_count != UNLIMITED_RETRIES:
            over_limit = "CASE WHEN requeue_count > :limit THEN 1 ELSE 0 END"
            params['limit'] = queue.max_requeue_count

        stale = "0"
        if stale_after is not None:
            stale = "CASE WHEN lock_time < :stale_limit THEN 1 ELSE 0 END"
            params['stale_limit'] = now - stale_after

        row = self.store.execute_query(
            f"""
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN lock_time IS NULL THEN 1 ELSE 0 END) AS pending,
                SUM(CASE WHEN lock_time IS NOT NULL THEN 1 ELSE 0 END) AS locked,
                SUM({over_limit}) AS over_requeue_limit,
                SUM({stale}) AS stale_locks,
                MIN(lock_time) AS oldest_lock_time,
                MIN(CASE WHEN lock_time IS NULL THEN created END) AS oldest_pending_created
            FROM {queue.elements_table}
            WHERE queue_id = :queue_id
            """,
            params,
        )[0]

        oldest_lock = row.get('oldest_lock_time')
        oldest_pending = row.get('oldest_pending_created')
        metrics = QueueHealthMetrics(
            queue_name=queue.queue_name,
            queue_id=queue.queue_id,
            timestamp=datetime.now(),
            total=int(row.get('total') or 0),
            pending=int(row.get('pending') or 0),
            locked=int(row.get('locked') or 0),
            over_requeue_limit=int(row.get('over_requeue_limit') or 0),
            stale_locks=int(row.get('stale_locks') or 0),
            oldest_lock_age_seconds=float(now - oldest_lock) if oldest_lock is not None else 0.0,
            oldest_pending_age_seconds=float(now - oldest_pending) if oldest_pending is not None else 0.0,
        )
        logger.debug(f"Collected metrics for queue '{queue.queue_name}': {metrics.to_dict()}")
        return metrics
