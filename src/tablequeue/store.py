"""
SQLAlchemy backing store for the queue tables.

Every method runs exactly one statement in its own connection scope and
commits it immediately. The queue never groups statements into a larger
transaction: all coordination between consumers relies on single-row
conditional writes and their affected-row counts.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import sqlalchemy
from sqlalchemy import bindparam, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import BackendExecutionError, ConfigurationError

logger = logging.getLogger(__name__)

Params = Optional[Mapping[str, Any]]


class SQLAlchemyStore:
    """Executes parameterized statements against a relational database."""

    def __init__(self, engine_or_url: Union[Engine, str],
                 connection_pool_size: Optional[int] = 5,
                 **engine_kwargs):
        """
        Initialize the store.

        Args:
            engine_or_url: Existing SQLAlchemy engine or a database URL
            connection_pool_size: Pool size for server databases (ignored for SQLite)
            **engine_kwargs: Extra arguments for sqlalchemy.create_engine
        """
        if isinstance(engine_or_url, Engine):
            self.engine = engine_or_url
        elif isinstance(engine_or_url, str) and engine_or_url:
            try:
                url = sqlalchemy.engine.make_url(engine_or_url)
                if url.get_backend_name() != 'sqlite' and connection_pool_size:
                    engine_kwargs.setdefault('pool_size', connection_pool_size)
                    engine_kwargs.setdefault('max_overflow', connection_pool_size * 2)
                    if url.get_backend_name() in ('mysql', 'mariadb'):
                        # Recycle connections after 1 hour for MySQL
                        engine_kwargs.setdefault('pool_recycle', 3600)
                self.engine = sqlalchemy.create_engine(url, **engine_kwargs)
            except (SQLAlchemyError, ImportError) as e:
                raise ConfigurationError(f"Cannot create database engine: {e}") from e
        else:
            raise ConfigurationError("A SQLAlchemy engine or database URL is required")

        logger.debug(f"Queue store using {self.safe_url}")

    @property
    def safe_url(self) -> str:
        """Database URL with the password masked."""
        return self.engine.url.render_as_string(hide_password=True)

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def quote_identifier(self, name: str) -> str:
        """Quote a table or column name for the connected dialect."""
        return self.engine.dialect.identifier_preparer.quote_identifier(name)

    @staticmethod
    def _prepare(statement: str, params: Params) -> Tuple[Any, Dict[str, Any]]:
        """Build a text clause, expanding list-valued parameters for IN (...)."""
        values = dict(params or {})
        clause = text(statement)
        expanding = [key for key, value in values.items()
                     if isinstance(value, (list, tuple, set, frozenset))]
        if expanding:
            clause = clause.bindparams(*(bindparam(key, expanding=True) for key in expanding))
            for key in expanding:
                values[key] = list(values[key])
        return clause, values

    def execute_query(self, statement: str, params: Params = None) -> List[Dict[str, Any]]:
        """
        Run a SELECT and return every row as a dictionary.

        Raises:
            BackendExecutionError: If the database reports an error
        """
        clause, values = self._prepare(statement, params)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(clause, values)
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as e:
            raise BackendExecutionError(f"Cannot execute SQL: {e}") from e

    def execute_scalar(self, statement: str, params: Params = None) -> Any:
        """Run a SELECT and return the first column of the first row, or None."""
        clause, values = self._prepare(statement, params)
        try:
            with self.engine.begin() as conn:
                return conn.execute(clause, values).scalar()
        except SQLAlchemyError as e:
            raise BackendExecutionError(f"Cannot execute SQL: {e}") from e

    def execute_conditional_write(self, statement: str, params: Params = None) -> int:
        """
        Run an UPDATE or DELETE and return the number of affected rows.

        Zero is a normal outcome (the condition did not match). A driver
        error or a negative count is not.

        Raises:
            BackendExecutionError: If the write failed
        """
        clause, values = self._prepare(statement, params)
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(clause, values).rowcount
        except SQLAlchemyError as e:
            raise BackendExecutionError(f"Cannot execute SQL: {e}") from e

        if rows is None or rows < 0:
            raise BackendExecutionError(
                f"Database did not report an affected row count (got {rows!r})"
            )
        return rows

    def execute_insert(self, statement: str, params: Params, id_column: str) -> int:
        """
        Run an INSERT and return the id the database assigned to the new row.

        Uses RETURNING where the dialect supports it, the cursor's lastrowid
        otherwise.
        """
        clause_sql = statement
        try:
            with self.engine.begin() as conn:
                returning = bool(getattr(conn.dialect, 'insert_returning', False))
                if returning:
                    clause_sql = f"{statement} RETURNING {self.quote_identifier(id_column)}"
                clause, values = self._prepare(clause_sql, params)
                result = conn.execute(clause, values)
                row_id = result.scalar() if returning else result.lastrowid
        except SQLAlchemyError as e:
            raise BackendExecutionError(f"Cannot execute SQL: {e}") from e

        if row_id is None:
            raise BackendExecutionError("Database did not report the id of the inserted row")
        return int(row_id)

    def create_tables(self, metadata: sqlalchemy.MetaData, drop_first: bool = False) -> None:
        """Create the tables described by metadata, optionally dropping them first."""
        try:
            if drop_first:
                metadata.drop_all(self.engine)
            metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise BackendExecutionError(f"Cannot create tables: {e}") from e

    def drop_tables(self, metadata: sqlalchemy.MetaData) -> None:
        try:
            metadata.drop_all(self.engine)
        except SQLAlchemyError as e:
            raise BackendExecutionError(f"Cannot drop tables: {e}") from e

    def has_table(self, table_name: str) -> bool:
        try:
            return sqlalchemy.inspect(self.engine).has_table(table_name)
        except SQLAlchemyError as e:
            raise BackendExecutionError(f"Cannot inspect database: {e}") from e

    def dispose(self) -> None:
        """Close pooled connections."""
        self.engine.dispose()
