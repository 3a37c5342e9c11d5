"""
tablequeue - a queue stored in a shared relational table.

    from tablequeue import Config

    config = Config('config.yaml')
    queue = config.get_queue('emails', cleanup_timeout=3600)

    queue.enqueue({'to': 'user@example.com'})

    while (element := queue.next()) is not None:
        if not element.lock():
            continue
        try:
            process(element.data)
        except Exception:
            element.requeue()
        else:
            element.success()
"""

from .config import Config
from .errors import (
    BackendExecutionError,
    ConfigurationError,
    DeserializationError,
    PayloadTooLargeError,
    QueueAlreadyExistsError,
    QueueError,
    QueueNotFoundError,
)
from .queue import (
    UNLIMITED_RETRIES,
    QueueAdmin,
    QueueElement,
    QueueHealthMetrics,
    QueueIdentity,
    QueueMonitor,
    TableNames,
    WorkQueue,
)
from .serialization import MAX_PAYLOAD_SIZE, FunctionCodec, JsonCodec, PayloadCodec, PickleCodec
from .store import SQLAlchemyStore
from .verbosity import QueueVerbosity
from .worker import QueueWorker

__version__ = '1.0.0'

__all__ = [
    'Config',
    'QueueError',
    'ConfigurationError',
    'QueueNotFoundError',
    'QueueAlreadyExistsError',
    'PayloadTooLargeError',
    'DeserializationError',
    'BackendExecutionError',
    'UNLIMITED_RETRIES',
    'QueueAdmin',
    'QueueElement',
    'QueueHealthMetrics',
    'QueueIdentity',
    'QueueMonitor',
    'TableNames',
    'WorkQueue',
    'MAX_PAYLOAD_SIZE',
    'PayloadCodec',
    'PickleCodec',
    'JsonCodec',
    'FunctionCodec',
    'SQLAlchemyStore',
    'QueueVerbosity',
    'QueueWorker',
]
