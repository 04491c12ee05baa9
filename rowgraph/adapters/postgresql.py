"""PostgreSQL adapter using psycopg (v3+)."""

from __future__ import annotations

from typing import Any

from rowgraph.adapters.protocol import choose_paramstyle
from rowgraph.core.connection import ConnectionConfig
from rowgraph.core.enums import ParamStyle
from rowgraph.core.exceptions import AdapterError, ConnectionError


def _build_conninfo(config: ConnectionConfig) -> str:
    fields = {
        "host": config.host,
        "port": config.port,
        "user": config.user,
        "password": config.password,
        "dbname": config.database,
    }
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


class PostgresqlSyncAdapter:
    """psycopg connections returning tuple rows.

    Tuple rows keep joined columns that share a label addressable by
    position. Server-side ``nextset()`` on the returned cursor exposes
    every result set of a multi-statement call.
    """

    SUPPORTED_PARAMSTYLES = (ParamStyle.FORMAT, ParamStyle.PYFORMAT)

    def __init__(self, paramstyle: ParamStyle | str | None = None) -> None:
        self._paramstyle = choose_paramstyle(paramstyle, self.SUPPORTED_PARAMSTYLES, "postgresql")

    @property
    def paramstyle(self) -> str:
        return self._paramstyle.value

    def create_pool(self, config: ConnectionConfig) -> list[Any]:
        try:
            import psycopg
            from psycopg.rows import tuple_row
        except ImportError as e:
            raise AdapterError("The postgresql driver needs psycopg: pip install rowgraph[postgresql]") from e

        conninfo = _build_conninfo(config)
        pool: list[Any] = []
        for _ in range(config.pool_size):
            try:
                conn = psycopg.connect(conninfo, row_factory=tuple_row, **config.extra)
            except psycopg.OperationalError as e:
                self.close_pool(pool)
                raise ConnectionError(f"Cannot connect to PostgreSQL database '{config.database}': {e}") from e
            pool.append(conn)
        return pool

    def acquire_connection(self, pool: list[Any]) -> Any:
        if not pool:
            raise ConnectionError("No connections available in pool")
        return pool.pop()

    def release_connection(self, connection: Any, pool: list[Any]) -> None:
        pool.append(connection)

    def close_pool(self, pool: list[Any]) -> None:
        while pool:
            pool.pop().close()

    def execute(
        self,
        connection: Any,
        sql: str,
        params: list[Any] | dict[str, Any] | None = None,
    ) -> Any:
        return connection.execute(sql, params or None)
