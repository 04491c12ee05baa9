"""Unit tests for the Repository base class and statement decorators."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Annotated

import pytest

from rowgraph.core.engine import Engine
from rowgraph.core.exceptions import MappingConfigurationError, MultipleRowsError
from rowgraph.core.params import Param
from rowgraph.mapping.result_context import DefaultResultHandler, RowBounds
from rowgraph.repository.base import Repository, execute, select


@dataclass
class Blog:
    id: int | None = None
    title: str | None = None
    author_id: int | None = None


class BlogRepository(Repository):
    namespace = "blog"

    @select()
    def by_id(self, id: int) -> Blog | None: ...

    @select()
    def all(self) -> list[Blog]: ...

    @select("blog.all")
    def as_tuple(self) -> tuple[Blog, ...]: ...

    @select("blog.all")
    def stream(self) -> Iterator[Blog]: ...

    @select("blog.all")
    def first(self) -> Blog: ...

    @select("blog.search")
    def search(self, title: Annotated[str | None, Param("title")], bounds: RowBounds) -> list[Blog]: ...

    @select("blog.all")
    def each(self, handler: DefaultResultHandler) -> None: ...

    @select("blog.by_ids")
    def by_ids(self, ids: list[int]) -> list[Blog]: ...

    @execute()
    def rename(self, id: int, title: str) -> int: ...


class Anonymous(Repository):
    @select()
    def everything(self) -> list[Blog]: ...


@pytest.fixture
def repo(blog_engine: Engine) -> BlogRepository:
    configuration = blog_engine.configuration
    configuration.statement("blog.by_id", "SELECT * FROM blog WHERE id = #{id}", result_type=Blog)
    configuration.statement("blog.all", "SELECT * FROM blog ORDER BY id", result_type=Blog)
    configuration.statement(
        "blog.search",
        '<script>SELECT * FROM blog <where><if test="title != null">title LIKE #{title}</if></where>'
        " ORDER BY id</script>",
        result_type=Blog,
    )
    configuration.statement(
        "blog.by_ids",
        '<script>SELECT * FROM blog WHERE id IN <foreach collection="list" item="id" open="("'
        ' separator="," close=")">#{id}</foreach> ORDER BY id</script>',
        result_type=Blog,
    )
    configuration.statement("blog.rename", "UPDATE blog SET title = #{title} WHERE id = #{id}")
    return BlogRepository(blog_engine)


class TestRepository:
    def test_engine_attribute(self, repo: BlogRepository, blog_engine: Engine) -> None:
        assert repo.engine is blog_engine
        assert repo.session is None

    def test_single_result(self, repo: BlogRepository) -> None:
        assert repo.by_id(1) == Blog(id=1, title="Jim Business", author_id=101)
        assert repo.by_id(99) is None

    def test_single_result_with_many_rows(self, repo: BlogRepository) -> None:
        with pytest.raises(MultipleRowsError):
            repo.first()

    def test_list_and_tuple_results(self, repo: BlogRepository) -> None:
        assert [b.id for b in repo.all()] == [1, 2]
        result = repo.as_tuple()
        assert isinstance(result, tuple)
        assert len(result) == 2

    def test_iterator_result(self, repo: BlogRepository) -> None:
        stream = repo.stream()
        assert not isinstance(stream, list)
        assert [b.title for b in stream] == ["Jim Business", "Bally Slog"]

    def test_named_param_and_row_bounds(self, repo: BlogRepository) -> None:
        assert [b.id for b in repo.search("%g", RowBounds())] == [2]
        assert [b.id for b in repo.search(None, RowBounds(offset=1))] == [2]

    def test_collection_parameter(self, repo: BlogRepository) -> None:
        assert [b.id for b in repo.by_ids([2, 1])] == [1, 2]

    def test_result_handler(self, repo: BlogRepository) -> None:
        handler = DefaultResultHandler()
        assert repo.each(handler) is None
        assert [b.id for b in handler.results] == [1, 2]

    def test_execute_commits(self, repo: BlogRepository) -> None:
        assert repo.rename(1, "Renamed") == 1
        assert repo.by_id(1).title == "Renamed"

    def test_shared_session(self, repo: BlogRepository, blog_engine: Engine) -> None:
        with pytest.raises(RuntimeError):
            with blog_engine.session() as session:
                shared = BlogRepository(blog_engine, session)
                shared.rename(2, "Renamed")
                assert shared.by_id(2).title == "Renamed"
                raise RuntimeError("rollback")
        assert repo.by_id(2).title == "Bally Slog"

    def test_statement_id_needs_namespace(self, blog_engine: Engine) -> None:
        with pytest.raises(MappingConfigurationError, match="Anonymous.everything names no statement"):
            Anonymous(blog_engine).everything()
