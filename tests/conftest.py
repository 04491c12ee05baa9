"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest

from rowgraph.core.config import Configuration, Settings
from rowgraph.core.connection import ConnectionConfig, ConnectionManager
from rowgraph.core.engine import Engine


class FakeCursor:
    """DB-API cursor over in-memory result sets.

    Each result set is a ``(columns, rows)`` pair; ``nextset()`` moves to
    the next one the way multi-result-set drivers do.
    """

    def __init__(self, *result_sets: tuple[Sequence[str], Sequence[Sequence[Any]]]) -> None:
        self._result_sets = list(result_sets)
        self._set_index = 0
        self._row_index = 0
        self.rowcount = -1
        self.closed = False
        self.fetched = 0
        self.batches: list[int] = []

    @property
    def description(self) -> list[tuple[Any, ...]] | None:
        if self._set_index >= len(self._result_sets):
            return None
        columns = self._result_sets[self._set_index][0]
        return [(name, None, None, None, None, None, None) for name in columns]

    def fetchone(self) -> tuple[Any, ...] | None:
        rows = self._result_sets[self._set_index][1]
        if self._row_index >= len(rows):
            return None
        row = rows[self._row_index]
        self._row_index += 1
        self.fetched += 1
        return tuple(row)

    def fetchmany(self, size: int) -> list[tuple[Any, ...]]:
        self.batches.append(size)
        batch = []
        while len(batch) < size:
            row = self.fetchone()
            if row is None:
                break
            batch.append(row)
        return batch

    def nextset(self) -> bool | None:
        self._set_index += 1
        self._row_index = 0
        return True if self._set_index < len(self._result_sets) else None

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def configuration() -> Configuration:
    """Configuration with default settings."""
    return Configuration()


@pytest.fixture
def make_configuration():
    """Helper to build a Configuration with custom settings.

    Usage:
        configuration = make_configuration(auto_mapping_behavior=AutoMappingBehavior.FULL)
    """

    def _make(**settings: Any) -> Configuration:
        return Configuration(Settings(**settings))

    return _make


@pytest.fixture
def cursor():
    """Helper to build a FakeCursor.

    Usage:
        cursor(("id", "name"), [(1, "A"), (2, "B")])
        cursor((cols, rows), (cols2, rows2))    # several result sets
    """

    def _make(*args: Any) -> FakeCursor:
        if len(args) == 2 and isinstance(args[0], (tuple, list)) and args[0] and isinstance(args[0][0], str):
            return FakeCursor((args[0], args[1]))
        return FakeCursor(*args)

    return _make


@pytest.fixture
def sqlite_config() -> ConnectionConfig:
    """SQLite in-memory connection config."""
    return ConnectionConfig(driver="sqlite", database=":memory:")


@pytest.fixture
def sqlite_file_config(tmp_path: Path) -> ConnectionConfig:
    """SQLite file-backed connection config with a two-connection pool."""
    return ConnectionConfig(driver="sqlite", database=str(tmp_path / "test.db"), pool_size=2)


@pytest.fixture
def tmp_sql_dir(tmp_path: Path) -> Path:
    """Temporary directory for SQL files."""
    return tmp_path / "sql"


@pytest.fixture
def write_sql(tmp_sql_dir: Path):
    """Helper to write SQL files into the temp directory.

    Usage:
        write_sql("user/get_by_id.sql", "SELECT * FROM users WHERE id = #{user_id}")
    """

    def _write(relative_path: str, content: str) -> Path:
        file_path = tmp_sql_dir / relative_path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(content, encoding="utf-8")
        return file_path

    return _write


@pytest.fixture
def blog_manager(sqlite_file_config: ConnectionConfig) -> Iterator[ConnectionManager]:
    """Connection manager over a file-backed SQLite blog schema with sample data."""
    manager = ConnectionManager(sqlite_file_config)
    with manager.get_connection() as conn:
        conn.executescript(
            """
            CREATE TABLE author (id INTEGER PRIMARY KEY, username TEXT, email TEXT);
            CREATE TABLE blog (id INTEGER PRIMARY KEY, title TEXT, author_id INTEGER);
            CREATE TABLE post (
                id INTEGER PRIMARY KEY, blog_id INTEGER, subject TEXT, kind TEXT, draft INTEGER
            );
            INSERT INTO author VALUES (101, 'jim', 'jim@example.com');
            INSERT INTO author VALUES (102, 'sally', 'sally@example.com');
            INSERT INTO blog VALUES (1, 'Jim Business', 101);
            INSERT INTO blog VALUES (2, 'Bally Slog', 102);
            INSERT INTO post VALUES (1, 1, 'Corn nuts', 'text', 0);
            INSERT INTO post VALUES (2, 1, 'Paul Hogan on Toy Dogs', 'video', 0);
            INSERT INTO post VALUES (3, 2, 'Monster Trucks', 'text', 1);
            """
        )
        conn.commit()
    yield manager
    manager.close_pool()


@pytest.fixture
def blog_engine(blog_manager: ConnectionManager, configuration: Configuration) -> Engine:
    """Engine over the blog schema using the default configuration."""
    return Engine(blog_manager, configuration)
