"""SQLite adapter using the stdlib sqlite3 module."""

from __future__ import annotations

import sqlite3
from typing import Any

from rowgraph.adapters.protocol import choose_paramstyle
from rowgraph.core.connection import ConnectionConfig
from rowgraph.core.enums import ParamStyle
from rowgraph.core.exceptions import ConnectionError

_MEMORY_DATABASE = ":memory:"


class SqliteSyncAdapter:
    """sqlite3 connections kept in a plain list.

    Rows come back as ``sqlite3.Row`` so duplicate join labels remain
    reachable by position.
    """

    SUPPORTED_PARAMSTYLES = (ParamStyle.QMARK, ParamStyle.NAMED)

    def __init__(self, paramstyle: ParamStyle | str | None = None) -> None:
        self._paramstyle = choose_paramstyle(paramstyle, self.SUPPORTED_PARAMSTYLES, "sqlite")

    @property
    def paramstyle(self) -> str:
        return self._paramstyle.value

    def create_pool(self, config: ConnectionConfig) -> list[sqlite3.Connection]:
        # An in-memory database is private to its connection.
        size = 1 if config.database == _MEMORY_DATABASE else config.pool_size
        pool: list[sqlite3.Connection] = []
        for _ in range(size):
            try:
                conn = sqlite3.connect(config.database, **config.extra)
            except sqlite3.Error as e:
                self.close_pool(pool)
                raise ConnectionError(f"Cannot open SQLite database '{config.database}': {e}") from e
            conn.row_factory = sqlite3.Row
            if config.database != _MEMORY_DATABASE:
                conn.execute("PRAGMA journal_mode=WAL")
            pool.append(conn)
        return pool

    def acquire_connection(self, pool: list[sqlite3.Connection]) -> sqlite3.Connection:
        if not pool:
            raise ConnectionError("No connections available in pool")
        return pool.pop()

    def release_connection(
        self, connection: sqlite3.Connection, pool: list[sqlite3.Connection]
    ) -> None:
        pool.append(connection)

    def close_pool(self, pool: list[sqlite3.Connection]) -> None:
        while pool:
            pool.pop().close()

    def execute(
        self,
        connection: sqlite3.Connection,
        sql: str,
        params: list[Any] | dict[str, Any] | None = None,
    ) -> sqlite3.Cursor:
        if params is None:
            params = {} if self._paramstyle is ParamStyle.NAMED else ()
        return connection.execute(sql, params)
