"""
Tests for queue administration and table naming.
"""

from unittest.mock import Mock

import pytest

from tablequeue.errors import (
    BackendExecutionError,
    ConfigurationError,
    QueueAlreadyExistsError,
    QueueNotFoundError,
)
from tablequeue.queue.admin import QueueAdmin
from tablequeue.queue.schema import (
    DEFAULT_QUEUE_ELEMENTS_TABLE_NAME,
    DEFAULT_QUEUES_TABLE_NAME,
    TableNames,
    build_metadata,
    resolve_queue_identity,
)
from tablequeue.queue.work_queue import WorkQueue
from tablequeue.store import SQLAlchemyStore
from tablequeue.verbosity import QueueVerbosity


class TestTableNames:
    """Test TableNames validation."""

    def test_defaults(self):
        names = TableNames()
        assert names.queues == DEFAULT_QUEUES_TABLE_NAME == 'queues'
        assert names.queue_elements == DEFAULT_QUEUE_ELEMENTS_TABLE_NAME == 'queue_elements'

    def test_empty_values_fall_back(self):
        names = TableNames(queues='', queue_elements=None)
        assert names == TableNames()

    @pytest.mark.parametrize('name', ['1queues', 'queues; DROP TABLE x', 'a-b', 'x' * 65])
    def test_invalid_names(self, name):
        with pytest.raises(ConfigurationError):
            TableNames(queues=name)

    def test_same_name_rejected(self):
        with pytest.raises(ConfigurationError):
            TableNames(queues='jobs', queue_elements='jobs')

    def test_metadata_tables(self):
        metadata = build_metadata(TableNames('my_queues', 'my_elements'))
        assert set(metadata.tables) == {'my_queues', 'my_elements'}
        columns = set(metadata.tables['my_elements'].columns.keys())
        assert columns == {'element_id', 'queue_id', 'payload', 'lock_time', 'requeue_count', 'created'}


class TestSchema:
    """Test table creation and validation."""

    def test_create_tables(self, db_url):
        store = SQLAlchemyStore(db_url)
        admin = QueueAdmin(store)
        assert admin.has_tables() is False
        assert admin.validate_schema() is False

        admin.create_tables()
        assert admin.has_tables() is True
        assert admin.validate_schema() is True

    def test_create_tables_twice(self, admin):
        admin.create_tables()
        assert admin.has_tables()

    def test_drop_if_exist(self, admin, queue_name):
        admin.create_tables(drop_if_exist=True)
        assert admin.has_tables()
        assert admin.list_queues() == []

    def test_drop_tables(self, admin):
        admin.drop_tables()
        assert admin.has_tables() is False

    def test_custom_table_names(self, store):
        names = TableNames(queues='job_queues', queue_elements='job_elements')
        admin = QueueAdmin(store, names)
        admin.create_tables()
        admin.create_queue('jobs')

        queue = admin.retrieve_queue('jobs')
        assert queue.table_names == names
        element_id = queue.enqueue('work')

        assert store.has_table('job_elements')
        assert store.execute_scalar("SELECT COUNT(*) FROM job_elements") == 1
        assert store.execute_scalar("SELECT COUNT(*) FROM queue_elements") == 0
        assert queue.next().id == element_id

        with pytest.raises(QueueNotFoundError):
            WorkQueue('jobs', store)


class TestQueues:
    """Test queue management."""

    def test_create_queue(self, admin, store):
        identity = admin.create_queue('emails')
        assert identity.name == 'emails'
        assert identity.queue_id > 0
        assert resolve_queue_identity(store, 'emails') == identity

    def test_create_duplicate(self, admin):
        admin.create_queue('emails')
        with pytest.raises(QueueAlreadyExistsError):
            admin.create_queue('emails')

    def test_create_race_reports_existing_queue(self, admin, monkeypatch):
        admin.create_queue('emails')
        # Both creators passed the existence check before either inserted
        monkeypatch.setattr(admin, 'has_queue', Mock(side_effect=[False, True]))

        with pytest.raises(QueueAlreadyExistsError):
            admin.create_queue('emails')

    def test_create_insert_failure_propagates(self, admin, monkeypatch):
        admin.create_queue('emails')
        monkeypatch.setattr(admin, 'has_queue', Mock(return_value=False))

        with pytest.raises(BackendExecutionError):
            admin.create_queue('emails')

    def test_has_queue(self, admin):
        assert admin.has_queue('emails') is False
        admin.create_queue('emails')
        assert admin.has_queue('emails') is True

    def test_list_queues(self, admin):
        admin.create_queue('b_queue')
        admin.create_queue('a_queue')
        assert [q.name for q in admin.list_queues()] == ['a_queue', 'b_queue']

    def test_retrieve_queue_passes_options(self, store):
        verbosity = QueueVerbosity(1)
        admin = QueueAdmin(store, verbosity=verbosity)
        admin.create_queue('emails')

        queue = admin.retrieve_queue('emails', max_requeue_count=3)
        assert isinstance(queue, WorkQueue)
        assert queue.max_requeue_count == 3
        assert queue.verbosity is verbosity

    def test_retrieve_missing_queue(self, admin):
        with pytest.raises(QueueNotFoundError):
            admin.retrieve_queue('missing')

    def test_delete_queue(self, admin, queue):
        for value in ('A', 'B'):
            queue.enqueue(value)
        admin.create_queue('survivor')
        admin.retrieve_queue('survivor').enqueue('keep')

        assert admin.delete_queue(queue.queue_name) == 2
        assert admin.has_queue(queue.queue_name) is False
        assert admin.retrieve_queue('survivor').count() == 1

    def test_delete_missing_queue(self, admin):
        with pytest.raises(QueueNotFoundError):
            admin.delete_queue('missing')

    def test_purge_queue(self, admin, queue):
        for value in ('A', 'B', 'C'):
            queue.enqueue(value)
        queue.next().lock()

        assert admin.purge_queue(queue.queue_name) == 3
        assert admin.has_queue(queue.queue_name)
        assert queue.count() == 0
