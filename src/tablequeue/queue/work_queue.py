"""
Queue engine on top of a shared relational table.

Many independent WorkQueue instances, in any number of processes, can
consume the same named queue concurrently. They never share memory and
never open multi-statement transactions: an element is claimed by a
conditional UPDATE that only one caller can win (see QueueElement.lock).

Each instance keeps a scan cursor so that a single consumer never goes
back to an element it has already passed, even when that element is
unlocked or requeued by someone else in the meantime. This prevents
infinite loops on elements that keep failing.
"""

import logging
import time
from typing import Any, Iterable, Iterator, List, Optional

from ..errors import ConfigurationError, DeserializationError, PayloadTooLargeError
from ..serialization import MAX_PAYLOAD_SIZE, PayloadCodec, encoded_size, get_codec
from ..verbosity import QueueVerbosity
from .element import QueueElement
from .schema import TableNames, resolve_queue_identity

logger = logging.getLogger(__name__)

UNLIMITED_RETRIES = -1


def _check_non_negative_int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigurationError(f"{what} must be a non-negative integer, got {value!r}")
    return value


class WorkQueue:
    """A named queue backed by the queue element table."""

    def __init__(self, queue_name: str, store, *,
                 cleanup_timeout: Optional[int] = None,
                 max_requeue_count: int = UNLIMITED_RETRIES,
                 table_names: Optional[TableNames] = None,
                 codec: Optional[PayloadCodec] = None,
                 verbosity: Optional[QueueVerbosity] = None):
        """
        Initialize the queue and resolve its identity.

        Args:
            queue_name: Name of an existing queue
            store: Backing store (see tablequeue.store.SQLAlchemyStore)
            cleanup_timeout: If set, requeue elements locked for longer than
                this many seconds right away
            max_requeue_count: Elements requeued more often than this are no
                longer retrieved; UNLIMITED_RETRIES disables the limit
            table_names: Custom table names
            codec: Payload codec (defaults to PickleCodec)
            verbosity: Diagnostics collaborator

        Raises:
            ConfigurationError: If an argument is invalid
            QueueNotFoundError: If the queue doesn't exist
        """
        if not isinstance(queue_name, str) or not queue_name:
            raise ConfigurationError("Argument 'queue_name' is needed to create the queue")
        if store is None:
            raise ConfigurationError("Argument 'store' is needed to create the queue")
        if cleanup_timeout is not None:
            _check_non_negative_int(cleanup_timeout, "Cleanup timeout")

        self._store = store
        self._table_names = TableNames.from_value(table_names)
        self._codec = get_codec(codec)
        self._verbosity = verbosity or QueueVerbosity()
        self.max_requeue_count = max_requeue_count

        identity = resolve_queue_identity(store, queue_name, self._table_names)
        self._queue_id = identity.queue_id
        self._queue_name = identity.name

        # Scan cursor. last_seen_id is never reset for the lifetime of the
        # instance; high_water_mark is dropped whenever we enqueue.
        self._high_water_mark: Optional[int] = None
        self._last_seen_id = -1

        if cleanup_timeout is not None:
            self.cleanup(cleanup_timeout)

    @property
    def queue_id(self) -> int:
        return self._queue_id

    @property
    def queue_name(self) -> str:
        return self._queue_name

    @property
    def store(self):
        return self._store

    @property
    def table_names(self) -> TableNames:
        return self._table_names

    @property
    def codec(self) -> PayloadCodec:
        return self._codec

    @property
    def verbosity(self) -> QueueVerbosity:
        return self._verbosity

    @property
    def high_water_mark(self) -> Optional[int]:
        return self._high_water_mark

    @property
    def last_seen_id(self) -> int:
        return self._last_seen_id

    @property
    def max_requeue_count(self) -> int:
        return self._max_requeue_count

    @max_requeue_count.setter
    def max_requeue_count(self, value: int) -> None:
        if value is None:
            value = UNLIMITED_RETRIES
        if value != UNLIMITED_RETRIES or isinstance(value, bool):
            _check_non_negative_int(value, "max_requeue_count")
        self._max_requeue_count = value

    @property
    def elements_table(self) -> str:
        """Quoted name of the queue element table."""
        return self._store.quote_identifier(self._table_names.queue_elements)

    def count(self) -> int:
        """Return the number of elements in the queue, locked or not."""
        self._verbosity.step("Entering count().")
        total = self._store.execute_scalar(
            f"SELECT COUNT(*) FROM {self.elements_table} WHERE queue_id = :queue_id",
            {'queue_id': self._queue_id},
        )
        total = int(total or 0)
        self._verbosity.step("Found %d elements, leaving count().", total)
        return total

    def enqueue(self, data: Any) -> int:
        """
        Add an element at the end of the queue.

        Args:
            data: Any value the codec can encode

        Returns:
            Id assigned to the new element

        Raises:
            PayloadTooLargeError: If the encoded payload exceeds MAX_PAYLOAD_SIZE
            ConfigurationError: If the codec does not produce text
        """
        self._verbosity.step("Entering enqueue().")
        self._verbosity.detail("Data is: %r", data)

        payload = self._codec.encode(data)
        if not isinstance(payload, str):
            raise ConfigurationError(
                f"Codec {self._codec!r} must encode to str, got {type(payload).__name__}"
            )
        size = encoded_size(payload)
        if size > MAX_PAYLOAD_SIZE:
            raise PayloadTooLargeError(size, MAX_PAYLOAD_SIZE)

        element_id = self._store.execute_insert(
            f"INSERT INTO {self.elements_table} (queue_id, payload, lock_time, requeue_count, created) "
            f"VALUES (:queue_id, :payload, NULL, 0, :created)",
            {'queue_id': self._queue_id, 'payload': payload, 'created': int(time.time())},
            'element_id',
        )

        # Without this the current scan would stop at the old snapshot and
        # never see the element we just added.
        self._high_water_mark = None

        self._verbosity.step("Element %d inserted, leaving enqueue().", element_id)
        return element_id

    def next(self, id_filter: Optional[Iterable[int]] = None) -> Optional[QueueElement]:
        """
        Retrieve the next available element.

        Returns:
            QueueElement or None when this instance has nothing left to scan
        """
        self._verbosity.step("Entering next().")
        elements = self.retrieve_batch(1, id_filter=id_filter)
        self._verbosity.step("Leaving next().")
        return elements[0] if elements else None

    def retrieve_batch(self, max_count: int,
                       id_filter: Optional[Iterable[int]] = None) -> List[QueueElement]:
        """
        Retrieve up to max_count unlocked elements, in ascending id order.

        Only ids above the last id this instance returned and at most the
        high-water mark captured when scanning began are considered. Returned
        elements are not locked; call lock() on each before working on it.

        Args:
            max_count: Maximum size of the batch
            id_filter: Optional ids to restrict the search to

        Returns:
            List of QueueElement, possibly empty

        Raises:
            ConfigurationError: If max_count or id_filter is malformed
            DeserializationError: If a payload cannot be decoded
        """
        self._verbosity.step("Entering retrieve_batch().")
        _check_non_negative_int(max_count, "The number of elements to retrieve")

        ids = None
        if id_filter is not None:
            ids = list(id_filter)
            if any(isinstance(i, bool) or not isinstance(i, int) for i in ids):
                raise ConfigurationError(f"id_filter must contain integers, got {ids!r}")
            if not ids:
                return []

        if self._high_water_mark is None:
            max_id = self._store.execute_scalar(
                f"SELECT MAX(element_id) FROM {self.elements_table} WHERE queue_id = :queue_id",
                {'queue_id': self._queue_id},
            )
            if max_id is None:
                self._verbosity.step("Detected empty queue, leaving.")
                return []
            self._high_water_mark = int(max_id)

        if self._last_seen_id == self._high_water_mark:
            self._verbosity.step("Finished processing queue, leaving.")
            return []

        conditions = [
            "queue_id = :queue_id",
            "lock_time IS NULL",
            "element_id >= :first_id",
            "element_id <= :last_id",
        ]
        params = {
            'queue_id': self._queue_id,
            'first_id': self._last_seen_id + 1,
            'last_id': self._high_water_mark,
            'limit': max_count,
        }
        if self._max_requeue_count != UNLIMITED_RETRIES:
            conditions.append("requeue_count <= :max_requeue_count")
            params['max_requeue_count'] = self._max_requeue_count
        if ids is not None:
            conditions.append("element_id IN :ids")
            params['ids'] = ids

        self._verbosity.step("Retrieving data.")
        self._verbosity.detail("Parameters: last id %d, max id %d",
                               self._last_seen_id, self._high_water_mark)
        rows = self._store.execute_query(
            f"SELECT element_id, payload, requeue_count FROM {self.elements_table} "
            f"WHERE {' AND '.join(conditions)} "
            f"ORDER BY element_id ASC LIMIT :limit",
            params,
        )

        # Everything left in range is locked or over the requeue limit.
        if not rows:
            return []

        elements = [self._build_element(row) for row in rows]

        # Never look at these ids again, whatever happens to them later.
        self._last_seen_id = max(element.id for element in elements)

        self._verbosity.step("Leaving retrieve_batch().")
        return elements

    def get_element_by_id(self, element_id: int) -> Optional[QueueElement]:
        """
        Retrieve an element by id, ignoring any lock placed on it.

        Mostly useful to call success() or requeue() asynchronously, after
        the element was locked by an earlier retrieval.

        Returns:
            QueueElement, or None if the id doesn't exist or belongs to another queue
        """
        self._verbosity.step("Entering get_element_by_id().")
        if element_id is None:
            raise ConfigurationError("A queue element ID is required by this method")

        rows = self._store.execute_query(
            f"SELECT element_id, payload, requeue_count FROM {self.elements_table} "
            f"WHERE queue_id = :queue_id AND element_id = :element_id",
            {'queue_id': self._queue_id, 'element_id': element_id},
        )
        if not rows:
            return None

        self._verbosity.step("Leaving get_element_by_id().")
        return self._build_element(rows[0])

    def cleanup(self, timeout_seconds: int) -> List[QueueElement]:
        """
        Requeue elements that have been locked for more than timeout_seconds.

        An orphan requeued, relocked or removed by another process between
        the select and our requeue is skipped.

        Returns:
            Elements this call actually requeued
        """
        self._verbosity.step("Entering cleanup().")
        _check_non_negative_int(timeout_seconds, "Time in seconds")

        rows = self._store.execute_query(
            f"SELECT element_id, payload, requeue_count FROM {self.elements_table} "
            f"WHERE queue_id = :queue_id AND lock_time < :lock_limit",
            {'queue_id': self._queue_id, 'lock_limit': int(time.time()) - timeout_seconds},
        )

        requeued = []
        for row in rows:
            element = self._build_element(row)
            if element.requeue():
                requeued.append(element)

        self._verbosity.step("Found %d orphaned element(s).", len(requeued))
        if requeued:
            logger.info(f"Requeued {len(requeued)} orphaned element(s) in queue '{self._queue_name}'")
        return requeued

    def _build_element(self, row) -> QueueElement:
        element_id = int(row['element_id'])
        try:
            data = self._codec.decode(row['payload'])
        except Exception as e:
            raise DeserializationError(element_id, str(e)) from e
        return QueueElement(
            queue=self,
            data=data,
            element_id=element_id,
            requeue_count=int(row['requeue_count'] or 0),
        )

    def __iter__(self) -> Iterator[QueueElement]:
        while True:
            element = self.next()
            if element is None:
                return
            yield element

    def __repr__(self) -> str:
        return f"WorkQueue(name={self._queue_name!r}, queue_id={self._queue_id})"
