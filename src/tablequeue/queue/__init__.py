"""
Table-backed work queue.

Multiple independent consumers can process the same queue without
duplicating work and without transactions. Each element is claimed with a
single conditional UPDATE; each consumer scans forward with a cursor that
never revisits an element it has passed.

Key Features:
- Lock/requeue/success protocol on atomic single-row writes
- Anti-backtracking scan with a per-consumer high-water mark
- Requeue limit to stop retrying poisoned elements
- Cleanup of elements whose lock outlived a timeout
"""

from .admin import QueueAdmin
from .element import QueueElement
from .monitoring import QueueHealthMetrics, QueueMonitor
from .schema import (
    DEFAULT_QUEUE_ELEMENTS_TABLE_NAME,
    DEFAULT_QUEUES_TABLE_NAME,
    QueueIdentity,
    TableNames,
    build_metadata,
    resolve_queue_identity,
)
from .work_queue import UNLIMITED_RETRIES, WorkQueue

__all__ = [
    'QueueAdmin',
    'QueueElement',
    'QueueHealthMetrics',
    'QueueMonitor',
    'QueueIdentity',
    'TableNames',
    'build_metadata',
    'resolve_queue_identity',
    'DEFAULT_QUEUES_TABLE_NAME',
    'DEFAULT_QUEUE_ELEMENTS_TABLE_NAME',
    'UNLIMITED_RETRIES',
    'WorkQueue',
]
