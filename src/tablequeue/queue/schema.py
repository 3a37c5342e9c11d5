"""
Table layout and queue identity lookup.
"""

import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import (
    BigInteger, Column, ForeignKey, Integer, MetaData, String, Table, Text,
)

from ..errors import ConfigurationError, QueueNotFoundError

DEFAULT_QUEUES_TABLE_NAME = 'queues'
DEFAULT_QUEUE_ELEMENTS_TABLE_NAME = 'queue_elements'

_IDENTIFIER_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]{0,63}$')


def _check_table_name(name: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise ConfigurationError(f"Invalid table name: {name!r}")
    return name


@dataclass(frozen=True)
class TableNames:
    """Names of the queue definition table and the queue element table."""
    queues: str = DEFAULT_QUEUES_TABLE_NAME
    queue_elements: str = DEFAULT_QUEUE_ELEMENTS_TABLE_NAME

    def __post_init__(self):
        # Empty values fall back to the defaults.
        object.__setattr__(self, 'queues',
                           _check_table_name(self.queues or DEFAULT_QUEUES_TABLE_NAME))
        object.__setattr__(self, 'queue_elements',
                           _check_table_name(self.queue_elements or DEFAULT_QUEUE_ELEMENTS_TABLE_NAME))
        if self.queues == self.queue_elements:
            raise ConfigurationError("Queue and queue element tables must have different names")

    @classmethod
    def from_value(cls, value: Optional['TableNames']) -> 'TableNames':
        return value if value is not None else cls()


@dataclass(frozen=True)
class QueueIdentity:
    """A named queue and the id its elements reference."""
    queue_id: int
    name: str


def build_metadata(table_names: Optional[TableNames] = None) -> MetaData:
    """
    Describe the two queue tables.

    Timestamps are integer epoch seconds. ``lock_time`` is NULL while the
    element is available for retrieval.
    """
    names = TableNames.from_value(table_names)
    metadata = MetaData()

    Table(
        names.queues, metadata,
        Column('queue_id', Integer, primary_key=True, autoincrement=True),
        Column('name', String(255), nullable=False, unique=True),
    )

    Table(
        names.queue_elements, metadata,
        Column('element_id', Integer, primary_key=True, autoincrement=True),
        Column('queue_id', Integer, ForeignKey(f'{names.queues}.queue_id'),
               nullable=False, index=True),
        Column('payload', Text),
        Column('lock_time', BigInteger, nullable=True, default=None),
        Column('requeue_count', Integer, nullable=False, default=0, server_default='0'),
        Column('created', BigInteger, nullable=False, default=0, server_default='0'),
        sqlite_autoincrement=True,
    )

    return metadata


def resolve_queue_identity(store, name: str,
                           table_names: Optional[TableNames] = None) -> QueueIdentity:
    """
    Look up the identity of a named queue.

    Args:
        store: Backing store
        name: Queue name
        table_names: Table names in use

    Returns:
        QueueIdentity

    Raises:
        QueueNotFoundError: If no queue has that name
    """
    names = TableNames.from_value(table_names)
    rows = store.execute_query(
        f"SELECT queue_id, name FROM {store.quote_identifier(names.queues)} WHERE name = :name",
        {'name': name},
    )
    if not rows or rows[0].get('queue_id') is None:
        raise QueueNotFoundError(name)
    return QueueIdentity(queue_id=int(rows[0]['queue_id']), name=rows[0]['name'])
