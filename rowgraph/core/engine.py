"""Query execution engine.

The Engine owns the connection pool and the Configuration. It opens
Sessions and offers one-shot helpers that run a registered statement (or
inline SQL) in a session of their own.
"""

from __future__ import annotations

from typing import Any

from rowgraph.core.config import Configuration
from rowgraph.core.connection import ConnectionConfig, ConnectionManager
from rowgraph.core.params import is_raw_sql
from rowgraph.core.session import Session
from rowgraph.core.statement import MappedStatement, build_statement
from rowgraph.mapping.result_context import RowBounds

_INLINE_STATEMENT_ID = "<inline>"


class Engine:
    """Synchronous query execution engine."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        configuration: Configuration | None = None,
    ) -> None:
        self._connection_manager = connection_manager
        self.configuration = configuration or Configuration()

    @classmethod
    def from_config(
        cls,
        config: ConnectionConfig,
        configuration: Configuration | None = None,
    ) -> Engine:
        """Create an Engine from a ConnectionConfig and Configuration.

        Args:
            config: ConnectionConfig instance
            configuration: Registered statements and result maps

        Returns:
            Engine instance
        """
        connection_manager = ConnectionManager(config)
        return cls(connection_manager, configuration)

    @property
    def adapter(self) -> Any:
        return self._connection_manager.adapter

    def session(self) -> Session:
        """Create a new session; use it as a context manager.

        Example::

            with engine.session() as session:
                session.execute("users.insert", user)
                users = session.select_list("users.all")
        """
        return Session(self.configuration, self._connection_manager)

    def fetch_one(self, query: str, params: Any = None) -> Any:
        """Fetch a single mapped row.

        Returns None if zero rows match.
        Raises MultipleRowsError if more than one row matches.
        """
        with self.session() as session:
            return session.select_one(self._resolve(query), params)

    def fetch_all(self, query: str, params: Any = None, *, row_bounds: RowBounds | None = None) -> list[Any]:
        """Fetch all matching rows."""
        with self.session() as session:
            return session.select_list(self._resolve(query), params, row_bounds)

    def execute(self, query: str, params: Any = None) -> int:
        """Execute a write query. Returns affected row count."""
        with self.session() as session:
            return session.execute(self._resolve(query), params)

    def close(self) -> None:
        """Close every pooled connection."""
        self._connection_manager.close_pool()

    def _resolve(self, query: str) -> MappedStatement:
        if is_raw_sql(query):
            return build_statement(self.configuration, _INLINE_STATEMENT_ID, query)
        return self.configuration.get_statement(query)
