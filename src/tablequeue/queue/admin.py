"""
Administration of the queue tables and queue definitions.
"""

import logging
from typing import Any, List, Optional

from ..errors import BackendExecutionError, QueueAlreadyExistsError, QueueNotFoundError
from ..verbosity import QueueVerbosity
from .schema import QueueIdentity, TableNames, build_metadata, resolve_queue_identity
from .work_queue import WorkQueue

logger = logging.getLogger(__name__)


class QueueAdmin:
    """Creates the schema and manages named queues."""

    def __init__(self, store, table_names: Optional[TableNames] = None,
                 verbosity: Optional[QueueVerbosity] = None):
        """
        Initialize queue administration.

        Args:
            store: Backing store
            table_names: Custom table names
            verbosity: Diagnostics collaborator passed on to retrieved queues
        """
        self.store = store
        self.table_names = TableNames.from_value(table_names)
        self.verbosity = verbosity
        self.metadata = build_metadata(self.table_names)

    def _quoted(self, name: str) -> str:
        return self.store.quote_identifier(name)

    # Schema

    def create_tables(self, drop_if_exist: bool = False) -> None:
        """
        Create the queue tables.

        Args:
            drop_if_exist: If True, drop existing tables first (DANGEROUS!)
        """
        if drop_if_exist:
            logger.warning("Dropping existing queue tables...")
        logger.info(f"Creating queue tables {self.table_names.queues}, "
                    f"{self.table_names.queue_elements}")
        self.store.create_tables(self.metadata, drop_first=drop_if_exist)

    def drop_tables(self) -> None:
        logger.warning("Dropping queue tables...")
        self.store.drop_tables(self.metadata)

    def has_tables(self) -> bool:
        """Check whether both queue tables exist."""
        for table in (self.table_names.queues, self.table_names.queue_elements):
            if not self.store.has_table(table):
                logger.debug(f"Table {table} does not exist")
                return False
        return True

    def validate_schema(self) -> bool:
        """
        Validate that the schema is set up and both tables can be queried.

        Returns:
            True if schema is valid
        """
        if not self.has_tables():
            return False

        for table in (self.table_names.queues, self.table_names.queue_elements):
            self.store.execute_scalar(f"SELECT COUNT(*) FROM {self._quoted(table)}")

        logger.info("Schema validation successful")
        return True

    # Queues

    def create_queue(self, name: str) -> QueueIdentity:
        """
        Create a new queue.

        Raises:
            QueueAlreadyExistsError: If a queue with this name exists
        """
        if self.has_queue(name):
            raise QueueAlreadyExistsError(name)

        try:
            queue_id = self.store.execute_insert(
                f"INSERT INTO {self._quoted(self.table_names.queues)} (name) VALUES (:name)",
                {'name': name},
                'queue_id',
            )
        except BackendExecutionError:
            # Another process created it between the check and the insert
            if self.has_queue(name):
                raise QueueAlreadyExistsError(name)
            raise
        logger.info(f"Created queue '{name}' with id {queue_id}")
        return QueueIdentity(queue_id=queue_id, name=name)

    def has_queue(self, name: str) -> bool:
        try:
            resolve_queue_identity(self.store, name, self.table_names)
        except QueueNotFoundError:
            return False
        return True

    def list_queues(self) -> List[QueueIdentity]:
        rows = self.store.execute_query(
            f"SELECT queue_id, name FROM {self._quoted(self.table_names.queues)} ORDER BY name"
        )
        return [QueueIdentity(queue_id=int(row['queue_id']), name=row['name']) for row in rows]

    def retrieve_queue(self, name: str, **kwargs: Any) -> WorkQueue:
        """
        Build a WorkQueue for an existing queue.

        Args:
            name: Queue name
            **kwargs: Extra WorkQueue arguments (cleanup_timeout, max_requeue_count, codec...)
        """
        kwargs.setdefault('table_names', self.table_names)
        if self.verbosity is not None:
            kwargs.setdefault('verbosity', self.verbosity)
        return WorkQueue(name, self.store, **kwargs)

    def purge_queue(self, name: str) -> int:
        """
        Remove every element of a queue, locked or not, keeping the queue.

        Returns:
            Number of removed elements
        """
        identity = resolve_queue_identity(self.store, name, self.table_names)
        removed = self.store.execute_conditional_write(
            f"DELETE FROM {self._quoted(self.table_names.queue_elements)} WHERE queue_id = :queue_id",
            {'queue_id': identity.queue_id},
        )
        logger.info(f"Purged {removed} element(s) from queue '{name}'")
        return removed

    def delete_queue(self, name: str) -> int:
        """
        Delete a queue and all of its elements.

        Returns:
            Number of removed elements

        Raises:
            QueueNotFoundError: If the queue doesn't exist
        """
        identity = resolve_queue_identity(self.store, name, self.table_names)
        removed = self.store.execute_conditional_write(
            f"DELETE FROM {self._quoted(self.table_names.queue_elements)} WHERE queue_id = :queue_id",
            {'queue_id': identity.queue_id},
        )
        self.store.execute_conditional_write(
            f"DELETE FROM {self._quoted(self.table_names.queues)} WHERE queue_id = :queue_id",
            {'queue_id': identity.queue_id},
        )
        logger.info(f"Deleted queue '{name}' and {removed} element(s)")
        return removed
