"""Unit tests for Engine."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from rowgraph.core.config import Configuration
from rowgraph.core.connection import ConnectionConfig, ConnectionManager
from rowgraph.core.engine import Engine
from rowgraph.core.exceptions import MultipleRowsError, StatementNotFoundError
from rowgraph.core.registry import TemplateRegistry
from rowgraph.core.session import Session
from rowgraph.mapping.result_context import RowBounds


@dataclass
class User:
    id: int | None = None
    name: str | None = None
    email: str | None = None


@pytest.fixture
def engine(tmp_sql_dir: Path, write_sql, configuration: Configuration) -> Engine:
    """Create an engine with test SQL files and SQLite in-memory DB."""
    write_sql("user/get_by_id.sql", "SELECT id, name, email FROM users WHERE id = #{user_id}")
    write_sql("user/list.sql", "SELECT id, name, email FROM users ORDER BY name")
    write_sql("user/insert.sql", "INSERT INTO users (name, email) VALUES (#{name}, #{email})")
    write_sql("user/count.sql", "SELECT COUNT(*) AS cnt FROM users")
    TemplateRegistry(tmp_sql_dir, configuration, statement_options={"user.list": {"result_type": User}})

    config = ConnectionConfig(driver="sqlite", database=":memory:")
    manager = ConnectionManager(config)
    eng = Engine(manager, configuration)

    # Create the users table using raw connection
    with manager.get_connection() as conn:
        conn.execute(
            "CREATE TABLE users (id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT, email TEXT)"
        )
        conn.execute("INSERT INTO users (name, email) VALUES ('Alice', 'alice@example.com')")
        conn.execute("INSERT INTO users (name, email) VALUES ('Bob', 'bob@example.com')")
        conn.commit()

    return eng


class TestEngine:
    def test_fetch_one_returns_dict(self, engine: Engine) -> None:
        result = engine.fetch_one("user.get_by_id", {"user_id": 1})
        assert result == {"id": 1, "name": "Alice", "email": "alice@example.com"}

    def test_fetch_one_returns_none_on_zero_rows(self, engine: Engine) -> None:
        assert engine.fetch_one("user.get_by_id", {"user_id": 999}) is None

    def test_fetch_one_raises_multiple_rows(self, engine: Engine) -> None:
        with pytest.raises(MultipleRowsError):
            engine.fetch_one("user.list")

    def test_fetch_all_maps_result_type(self, engine: Engine) -> None:
        results = engine.fetch_all("user.list")
        assert results == [
            User(id=1, name="Alice", email="alice@example.com"),
            User(id=2, name="Bob", email="bob@example.com"),
        ]

    def test_fetch_all_with_row_bounds(self, engine: Engine) -> None:
        results = engine.fetch_all("user.list", row_bounds=RowBounds(limit=1))
        assert [u.name for u in results] == ["Alice"]

    def test_scalar_column(self, engine: Engine) -> None:
        assert engine.fetch_one("user.count") == {"cnt": 2}

    def test_execute_returns_row_count(self, engine: Engine) -> None:
        affected = engine.execute("user.insert", {"name": "Charlie", "email": "c@ex.com"})
        assert affected == 1
        assert engine.fetch_one("user.count") == {"cnt": 3}

    def test_inline_sql(self, engine: Engine) -> None:
        result = engine.fetch_all("SELECT name FROM users WHERE id > #{id}", {"id": 1})
        assert result == [{"name": "Bob"}]
        assert engine.execute("DELETE FROM users WHERE name = #{name}", "Bob") == 1

    def test_statement_not_found_error(self, engine: Engine) -> None:
        with pytest.raises(StatementNotFoundError, match="nonexistent.query"):
            engine.fetch_all("nonexistent.query")

    def test_session_shares_configuration(self, engine: Engine) -> None:
        session = engine.session()
        assert isinstance(session, Session)
        assert session.configuration is engine.configuration

    def test_from_config(self, sqlite_config: ConnectionConfig) -> None:
        eng = Engine.from_config(sqlite_config)
        try:
            assert isinstance(eng.configuration, Configuration)
            assert eng.adapter.paramstyle == "qmark"
            assert eng.fetch_all("SELECT 1 AS one") == [{"one": 1}]
        finally:
            eng.close()

    def test_named_paramstyle(self) -> None:
        config = ConnectionConfig(driver="sqlite", database=":memory:", paramstyle="named")
        eng = Engine.from_config(config)
        try:
            assert eng.fetch_one("SELECT #{a} + #{b} AS total", {"a": 2, "b": 3}) == {"total": 5}
        finally:
            eng.close()
