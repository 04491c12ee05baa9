"""Sessions: one connection, one transaction scope, one local cache.

A ``Session`` runs mapped statements on a pooled connection. Used as a
context manager it commits on success and rolls back on exception.
Query results are cached per session (keyed by statement, paging, SQL and
parameter values) so nested queries repeated within one object graph hit
the database once; writes, commits and rollbacks clear the cache.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from enum import Enum
from typing import TYPE_CHECKING, Any

from rowgraph.core.enums import ParamStyle
from rowgraph.core.exceptions import (
    ConversionError,
    MultipleRowsError,
    ParameterBindingError,
    SessionClosedError,
    TransactionStateError,
)
from rowgraph.core.params import wrap_to_map_if_collection
from rowgraph.mapping.handler import ResultSetHandler
from rowgraph.mapping.lazy import ResultExtractor
from rowgraph.mapping.result_context import DEFAULT_ROW_BOUNDS, ResultHandler, RowBounds
from rowgraph.mapping.row_key import RowKey

if TYPE_CHECKING:
    from rowgraph.core.config import Configuration
    from rowgraph.core.connection import ConnectionManager
    from rowgraph.core.statement import MappedStatement
    from rowgraph.mapping.reflection import MetaObject
    from rowgraph.scripting.source import BoundSql

logger = logging.getLogger(__name__)


class _TxState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    CLOSED = "closed"


class _ExecutionPlaceholder:
    def __repr__(self) -> str:
        return "EXECUTION_PLACEHOLDER"


EXECUTION_PLACEHOLDER = _ExecutionPlaceholder()


class _DeferredLoad:
    """Sets a property from the local cache once its query has finished."""

    def __init__(
        self,
        meta_object: MetaObject,
        property_name: str,
        key: RowKey,
        local_cache: dict[RowKey, Any],
        statement_id: str,
        target_type: Any,
    ) -> None:
        self.meta_object = meta_object
        self.property = property_name
        self.key = key
        self.local_cache = local_cache
        self.statement_id = statement_id
        self.target_type = target_type
        self.extractor = ResultExtractor()

    def can_load(self) -> bool:
        cached = self.local_cache.get(self.key)
        return cached is not None and cached is not EXECUTION_PLACEHOLDER

    def load(self) -> None:
        rows = self.local_cache.get(self.key)
        if rows is None or rows is EXECUTION_PLACEHOLDER:
            return
        value = self.extractor.extract(rows, self.target_type, self.statement_id)
        self.meta_object.set_value(self.property, value)


def _format_parameters(params: list[Any] | dict[str, Any]) -> str:
    values = params.values() if isinstance(params, dict) else params
    return ", ".join(
        "null" if value is None else f"{value}({type(value).__name__})" for value in values
    )


def _in_statement(error: ConversionError, statement_id: str) -> ConversionError:
    return ConversionError(
        error.column, error.target_type, error.detail, statement_id, parameter=error.parameter
    )


class Session:
    """Executes mapped statements on one connection.

    Args:
        configuration: Registered statements, result maps and settings.
        connection_manager: Pool the connection is taken from on ``open``
            and returned to on ``close``.
    """

    def __init__(self, configuration: Configuration, connection_manager: ConnectionManager) -> None:
        self.configuration = configuration
        self._connection_manager = connection_manager
        self._adapter = connection_manager.adapter
        self._paramstyle = ParamStyle(self._adapter.paramstyle)
        self._connection: Any = None
        self._state = _TxState.IDLE
        self._local_cache: dict[RowKey, Any] = {}
        self._deferred_loads: list[_DeferredLoad] = []
        self._query_stack = 0

    def __enter__(self) -> Session:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        try:
            if self._state == _TxState.ACTIVE:
                if exc_type is not None:
                    self._connection.rollback()
                else:
                    self._connection.commit()
        finally:
            self.close()

    def open(self) -> Session:
        """Acquire a connection. Called by ``with``; returns self."""
        if self._state == _TxState.CLOSED:
            raise TransactionStateError("closed", "open")
        if self._state == _TxState.IDLE:
            self._connection = self._connection_manager.acquire()
            self._state = _TxState.ACTIVE
        return self

    @property
    def closed(self) -> bool:
        return self._state == _TxState.CLOSED

    def fork(self) -> Session:
        """A new open session on the same pool, for loads after this one closed."""
        return Session(self.configuration, self._connection_manager).open()

    # --- Statements ---

    def select_list(
        self,
        statement: str | MappedStatement,
        parameter: Any = None,
        row_bounds: RowBounds | None = None,
    ) -> list[Any]:
        """Run a select and return its mapped rows."""
        mapped = self._statement(statement)
        return self.query(mapped, wrap_to_map_if_collection(parameter), row_bounds or DEFAULT_ROW_BOUNDS)

    def select_one(self, statement: str | MappedStatement, parameter: Any = None) -> Any:
        """Run a select expected to return at most one row.

        Returns None if zero rows match.
        Raises MultipleRowsError if more than one row matches.
        """
        rows = self.select_list(statement, parameter)
        if len(rows) > 1:
            raise MultipleRowsError(self._statement(statement).id, len(rows))
        return rows[0] if rows else None

    def select_map(
        self,
        statement: str | MappedStatement,
        map_key: str,
        parameter: Any = None,
        row_bounds: RowBounds | None = None,
    ) -> dict[Any, Any]:
        """Run a select and key its rows by the *map_key* property of each row."""
        result: dict[Any, Any] = {}
        for row in self.select_list(statement, parameter, row_bounds):
            result[self.configuration.new_meta_object(row).get_value(map_key)] = row
        return result

    def select(
        self,
        statement: str | MappedStatement,
        parameter: Any,
        result_handler: ResultHandler,
        row_bounds: RowBounds | None = None,
    ) -> None:
        """Run a select, handing each mapped row to *result_handler*."""
        mapped = self._statement(statement)
        self.query(
            mapped, wrap_to_map_if_collection(parameter), row_bounds or DEFAULT_ROW_BOUNDS, result_handler
        )

    def select_cursor(self, statement: str | MappedStatement, parameter: Any = None) -> Iterator[Any]:
        """Run a select and yield mapped rows as they are read from the cursor."""
        self._check_active()
        mapped = self._statement(statement)
        parameter = wrap_to_map_if_collection(parameter)
        cursor = self._run(mapped, mapped.get_bound_sql(parameter))
        handler = ResultSetHandler.for_statement(self, mapped)
        count = 0
        try:
            for row in handler.iter_results(cursor):
                count += 1
                yield row
        finally:
            logger.debug("<==      Total: %d", count)
            cursor.close()

    def execute(self, statement: str | MappedStatement, parameter: Any = None) -> int:
        """Run an insert/update/delete. Returns affected row count."""
        self._check_active()
        mapped = self._statement(statement)
        self.clear_local_cache()
        cursor = self._run(mapped, mapped.get_bound_sql(wrap_to_map_if_collection(parameter)))
        try:
            updates = int(cursor.rowcount)
        finally:
            cursor.close()
        logger.debug("<==    Updates: %d", updates)
        return updates

    def commit(self) -> None:
        """Commit the current transaction and clear the local cache."""
        self._check_active("commit")
        self.clear_local_cache()
        self._connection.commit()

    def rollback(self) -> None:
        """Roll back the current transaction and clear the local cache."""
        self._check_active("rollback")
        self.clear_local_cache()
        self._connection.rollback()

    def close(self) -> None:
        """Return the connection to the pool. Closing twice is a no-op."""
        if self._state == _TxState.CLOSED:
            return
        try:
            if self._state == _TxState.ACTIVE:
                self._connection_manager.release(self._connection)
        finally:
            self._connection = None
            self._local_cache.clear()
            self._deferred_loads.clear()
            self._state = _TxState.CLOSED

    # --- Query execution (also used by nested queries) ---

    def query(
        self,
        statement: MappedStatement,
        parameter: Any,
        row_bounds: RowBounds = DEFAULT_ROW_BOUNDS,
        result_handler: ResultHandler | None = None,
        cache_key: RowKey | None = None,
        bound_sql: BoundSql | None = None,
    ) -> list[Any]:
        """Run *statement* through the local cache."""
        self._check_active()
        if bound_sql is None:
            bound_sql = statement.get_bound_sql(parameter)
        if cache_key is None:
            cache_key = self.create_cache_key(statement, parameter, row_bounds, bound_sql)
        if self._query_stack == 0 and statement.flush_cache:
            self.clear_local_cache()

        self._query_stack += 1
        try:
            cached = self._local_cache.get(cache_key) if result_handler is None else None
            if cached is not None and cached is not EXECUTION_PLACEHOLDER:
                result = cached
            else:
                result = self._query_from_database(statement, row_bounds, result_handler, cache_key, bound_sql)
        finally:
            self._query_stack -= 1

        if self._query_stack == 0:
            for deferred in self._deferred_loads:
                deferred.load()
            self._deferred_loads.clear()
        return result

    def create_cache_key(
        self,
        statement: MappedStatement,
        parameter: Any,
        row_bounds: RowBounds,
        bound_sql: BoundSql,
    ) -> RowKey:
        key = RowKey()
        key.update(statement.id)
        key.update(row_bounds.offset)
        key.update(row_bounds.limit)
        key.update(bound_sql.sql)
        try:
            key.update_all(bound_sql.parameter_values(self.configuration))
        except ConversionError as e:
            raise _in_statement(e, statement.id) from e
        database_id = self.configuration.settings.database_id
        if database_id is not None:
            key.update(database_id)
        return key

    def is_cached(self, statement: MappedStatement, key: RowKey) -> bool:
        return key in self._local_cache

    def defer_load(
        self,
        statement: MappedStatement,
        meta_object: MetaObject,
        property_name: str,
        key: RowKey,
        target_type: Any,
    ) -> None:
        """Fill *property_name* from the cached result of *key*, now or when it completes."""
        self._check_active()
        deferred = _DeferredLoad(
            meta_object, property_name, key, self._local_cache, statement.id, target_type
        )
        if deferred.can_load():
            deferred.load()
        else:
            self._deferred_loads.append(deferred)

    def clear_local_cache(self) -> None:
        self._local_cache.clear()

    def _query_from_database(
        self,
        statement: MappedStatement,
        row_bounds: RowBounds,
        result_handler: ResultHandler | None,
        cache_key: RowKey,
        bound_sql: BoundSql,
    ) -> list[Any]:
        self._local_cache[cache_key] = EXECUTION_PLACEHOLDER
        try:
            cursor = self._run(statement, bound_sql)
            try:
                handler = ResultSetHandler.for_statement(self, statement, row_bounds, result_handler)
                result = handler.handle_result_sets(cursor)
            finally:
                cursor.close()
        finally:
            self._local_cache.pop(cache_key, None)
        self._local_cache[cache_key] = result
        logger.debug("<==      Total: %d", len(result))
        return result

    def _run(self, statement: MappedStatement, bound_sql: BoundSql) -> Any:
        try:
            sql, params = bound_sql.render(self.configuration, self._paramstyle)
        except ConversionError as e:
            raise _in_statement(e, statement.id) from e
        logger.debug("==>  Preparing: %s", sql)
        logger.debug("==> Parameters: %s", _format_parameters(params))
        try:
            return self._adapter.execute(self._connection, sql, params)
        except Exception as e:
            raise ParameterBindingError(statement.id, str(e)) from e

    def _statement(self, statement: str | MappedStatement) -> MappedStatement:
        if isinstance(statement, str):
            return self.configuration.get_statement(statement)
        return statement

    def _check_active(self, action: str = "execute") -> None:
        if self._state == _TxState.CLOSED:
            raise SessionClosedError("Cannot use a closed session")
        if self._state == _TxState.IDLE:
            raise TransactionStateError("idle", action)
