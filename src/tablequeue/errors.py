"""
Exceptions raised by the table-backed queue.

Lost races on conditional writes are not errors: they surface as ``False``
or ``None`` return values. Everything below is fatal for the call that
raised it and is never retried internally.
"""

from typing import Optional


class QueueError(Exception):
    """Base class for all queue errors."""
    pass


class ConfigurationError(QueueError):
    """Raised when construction or call arguments are invalid."""
    pass


class QueueNotFoundError(ConfigurationError):
    """Raised when a queue name has no matching identity row."""
    def __init__(self, queue_name: str):
        super().__init__(f"The queue '{queue_name}' doesn't exist in the lookup table")
        self.queue_name = queue_name


class QueueAlreadyExistsError(ConfigurationError):
    """Raised when creating a queue whose name is already taken."""
    def __init__(self, queue_name: str):
        super().__init__(f"The queue '{queue_name}' already exists")
        self.queue_name = queue_name


class PayloadTooLargeError(QueueError):
    """Raised when an encoded payload exceeds the storage ceiling."""
    def __init__(self, size: int, limit: int):
        super().__init__(
            f"The size of the data to store ({size} bytes) exceeds the maximum "
            f"internal storage size available ({limit} bytes)"
        )
        self.size = size
        self.limit = limit


class DeserializationError(QueueError):
    """Raised when a stored payload cannot be decoded."""
    def __init__(self, element_id: Optional[int], message: str):
        super().__init__(f"Cannot decode payload of element {element_id}: {message}")
        self.element_id = element_id


class BackendExecutionError(QueueError):
    """Raised when the backing store reports a genuine failure."""
    pass
