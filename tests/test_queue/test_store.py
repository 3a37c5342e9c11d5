"""
Tests for the SQLAlchemy backing store.
"""

from unittest.mock import MagicMock

import pytest
import sqlalchemy

from tablequeue.errors import BackendExecutionError, ConfigurationError
from tablequeue.store import SQLAlchemyStore


class TestConstruction:

    @pytest.mark.parametrize('url', ['', None, 'not a database url', 'nosuchdialect://host/db'])
    def test_bad_url(self, url):
        with pytest.raises(ConfigurationError):
            SQLAlchemyStore(url)

    def test_existing_engine(self, db_url):
        engine = sqlalchemy.create_engine(db_url)
        store = SQLAlchemyStore(engine)
        assert store.engine is engine
        assert store.dialect_name == 'sqlite'
        engine.dispose()

    def test_quote_identifier(self, store):
        assert store.quote_identifier('queue_elements') == '"queue_elements"'
        assert store.quote_identifier('select') == '"select"'


class TestExecution:

    def test_missing_table(self, db_url):
        store = SQLAlchemyStore(db_url)
        with pytest.raises(BackendExecutionError):
            store.execute_query("SELECT * FROM queue_elements")
        with pytest.raises(BackendExecutionError):
            store.execute_conditional_write("DELETE FROM queue_elements")
        store.dispose()

    def test_insert_and_query(self, store):
        queue_id = store.execute_insert(
            "INSERT INTO queues (name) VALUES (:name)", {'name': 'emails'}, 'queue_id'
        )
        rows = store.execute_query("SELECT queue_id, name FROM queues")
        assert rows == [{'queue_id': queue_id, 'name': 'emails'}]
        assert store.execute_scalar("SELECT name FROM queues WHERE queue_id = :id", {'id': queue_id}) == 'emails'

    def test_scalar_without_rows(self, store):
        assert store.execute_scalar("SELECT name FROM queues") is None

    def test_expanding_parameters(self, store):
        ids = [
            store.execute_insert("INSERT INTO queues (name) VALUES (:name)", {'name': name}, 'queue_id')
            for name in ('a', 'b', 'c')
        ]
        rows = store.execute_query(
            "SELECT name FROM queues WHERE queue_id IN :ids ORDER BY name",
            {'ids': (ids[0], ids[2])},
        )
        assert [row['name'] for row in rows] == ['a', 'c']

    def test_conditional_write_counts_rows(self, store):
        store.execute_insert("INSERT INTO queues (name) VALUES (:name)", {'name': 'a'}, 'queue_id')
        assert store.execute_conditional_write("DELETE FROM queues WHERE name = :name", {'name': 'b'}) == 0
        assert store.execute_conditional_write("DELETE FROM queues WHERE name = :name", {'name': 'a'}) == 1

    @pytest.mark.parametrize('rowcount', [None, -1])
    def test_unknown_rowcount(self, store, rowcount):
        engine = MagicMock()
        conn = engine.begin.return_value.__enter__.return_value
        conn.execute.return_value.rowcount = rowcount
        store.engine = engine

        with pytest.raises(BackendExecutionError):
            store.execute_conditional_write("DELETE FROM queues")

    def test_has_table(self, store):
        assert store.has_table('queues')
        assert not store.has_table('missing')
