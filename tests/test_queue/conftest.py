"""
Fixtures for queue tests.

Every test gets its own SQLite database file so that several engines and
connections can share it, the way independent consumers share a server
database.
"""

import os
import tempfile

import pytest

from tablequeue.queue.admin import QueueAdmin
from tablequeue.queue.work_queue import WorkQueue
from tablequeue.store import SQLAlchemyStore

QUEUE_NAME = 'test_queue'


@pytest.fixture
def temp_db_path():
    """Create a temporary database path."""
    with tempfile.NamedTemporaryFile(suffix='.db', delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    for path in (db_path, f"{db_path}-journal", f"{db_path}-wal", f"{db_path}-shm"):
        if os.path.exists(path):
            os.unlink(path)


@pytest.fixture
def db_url(temp_db_path):
    return f"sqlite:///{temp_db_path}"


@pytest.fixture
def store(db_url):
    """Backing store with the queue tables created."""
    store = SQLAlchemyStore(db_url)
    QueueAdmin(store).create_tables()
    yield store
    store.dispose()


@pytest.fixture
def admin(store):
    return QueueAdmin(store)


@pytest.fixture
def queue_name(admin):
    admin.create_queue(QUEUE_NAME)
    return QUEUE_NAME


@pytest.fixture
def make_queue(store, queue_name):
    """Factory for independent consumers of the test queue."""
    def _make(**kwargs):
        return WorkQueue(queue_name, store, **kwargs)
    return _make


@pytest.fixture
def queue(make_queue):
    return make_queue()


@pytest.fixture
def set_lock_time(store):
    """Force the lock time of an element, to simulate an old lock."""
    def _set(element_id, lock_time):
        store.execute_conditional_write(
            "UPDATE queue_elements SET lock_time = :lock_time WHERE element_id = :element_id",
            {'lock_time': lock_time, 'element_id': element_id},
        )
    return _set


@pytest.fixture
def fetch_row(store):
    """Read an element row directly, or None if it is gone."""
    def _fetch(element_id):
        rows = store.execute_query(
            "SELECT * FROM queue_elements WHERE element_id = :element_id",
            {'element_id': element_id},
        )
        return rows[0] if rows else None
    return _fetch
