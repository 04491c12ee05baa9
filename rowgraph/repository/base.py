"""Repository base class and statement-binding decorators.

Methods decorated with ``@select`` / ``@execute`` are bound to mapped
statements: their arguments become the statement parameter object (see
``ParamNameResolver``) and their return annotation picks the result shape.

Example::

    class BlogRepository(Repository):
        namespace = "blog"

        @select()
        def by_id(self, id: int) -> Blog | None: ...

        @select("blog.search")
        def search(self, title: Annotated[str, Param("title")], bounds: RowBounds) -> list[Blog]: ...

        @execute()
        def insert(self, blog: Blog) -> int: ...
"""

from __future__ import annotations

import collections.abc
import functools
import typing
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any

from rowgraph.core.exceptions import MappingConfigurationError
from rowgraph.core.params import ParamNameResolver
from rowgraph.mapping.reflection import is_collection_type, raw_type

if TYPE_CHECKING:
    from rowgraph.core.engine import Engine
    from rowgraph.core.session import Session

_BINDING_ATTR = "__rowgraph_binding__"
_ITERATOR_TYPES = (
    collections.abc.Iterator,
    collections.abc.Generator,
    typing.Iterator,
    typing.Generator,
)


class _Shape(Enum):
    ONE = "one"
    LIST = "list"
    CURSOR = "cursor"


class _Binding:
    def __init__(self, func: Callable[..., Any], statement_id: str | None, write: bool) -> None:
        self.func = func
        self.statement_id = statement_id
        self.write = write
        self._resolver: ParamNameResolver | None = None
        self._shape: tuple[_Shape, Any] | None = None

    def resolver(self, repository: Repository) -> ParamNameResolver:
        if self._resolver is None:
            self._resolver = ParamNameResolver(self.func, repository.engine.configuration.settings)
        return self._resolver

    def full_id(self, repository: Repository) -> str:
        if self.statement_id is not None:
            return self.statement_id
        if repository.namespace is None:
            raise MappingConfigurationError(
                f"{type(repository).__name__}.{self.func.__name__} names no statement "
                "and the repository has no namespace"
            )
        return f"{repository.namespace}.{self.func.__name__}"

    def shape(self) -> tuple[_Shape, Any]:
        if self._shape is None:
            try:
                hints = typing.get_type_hints(self.func)
            except (NameError, TypeError):
                hints = {}
            returns = hints.get("return", list)
            origin = raw_type(returns)
            if origin in _ITERATOR_TYPES:
                self._shape = (_Shape.CURSOR, origin)
            elif is_collection_type(returns):
                self._shape = (_Shape.LIST, origin)
            else:
                self._shape = (_Shape.ONE, origin)
        return self._shape


def select(statement_id: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Bind a method to a select statement (default id: ``<namespace>.<method name>``).

    Returns a list for collection return annotations (a tuple or set when
    annotated so), an iterator for ``Iterator[...]``, otherwise a single
    row or None. A ``ResultHandler`` argument receives the rows instead.
    """

    def decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        binding = _Binding(func, statement_id, write=False)

        @functools.wraps(func)
        def wrapper(self: Repository, *args: Any, **kwargs: Any) -> Any:
            return self._invoke(binding, args, kwargs)

        setattr(wrapper, _BINDING_ATTR, binding)
        return wrapper

    return decorate


def execute(statement_id: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Bind a method to an insert/update/delete statement; returns the row count."""

    def decorate(func: Callable[..., Any]) -> Callable[..., Any]:
        binding = _Binding(func, statement_id, write=True)

        @functools.wraps(func)
        def wrapper(self: Repository, *args: Any, **kwargs: Any) -> int:
            return self._invoke(binding, args, kwargs)

        setattr(wrapper, _BINDING_ATTR, binding)
        return wrapper

    return decorate


class Repository:
    """Base repository class.

    Calls run in ``session`` when one is given (the caller owns commit and
    close), otherwise each call opens and commits a session of its own.

    Args:
        engine: Engine whose configuration holds the bound statements.
        session: Optional session shared by every call.
    """

    namespace: str | None = None

    def __init__(self, engine: Engine, session: Session | None = None) -> None:
        self.engine = engine
        self.session = session

    @contextmanager
    def _session(self) -> Iterator[Session]:
        if self.session is not None:
            yield self.session
        else:
            with self.engine.session() as session:
                yield session

    def _invoke(self, binding: _Binding, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        resolver = binding.resolver(self)
        values = resolver.bind(args, kwargs)
        parameter = resolver.get_named_params(values)
        statement_id = binding.full_id(self)

        if binding.write:
            with self._session() as session:
                return session.execute(statement_id, parameter)

        row_bounds = resolver.row_bounds(values)
        result_handler = resolver.result_handler(values)
        shape, origin = binding.shape()
        if result_handler is not None:
            with self._session() as session:
                session.select(statement_id, parameter, result_handler, row_bounds)
            return None
        if shape is _Shape.CURSOR:
            return self._iterate(statement_id, parameter)
        with self._session() as session:
            if shape is _Shape.ONE:
                return session.select_one(statement_id, parameter)
            rows = session.select_list(statement_id, parameter, row_bounds)
        if origin is tuple:
            return tuple(rows)
        if origin in (set, frozenset, collections.abc.Set, collections.abc.MutableSet):
            return frozenset(rows) if origin is frozenset else set(rows)
        return rows

    def _iterate(self, statement_id: str, parameter: Any) -> Iterator[Any]:
        with self._session() as session:
            yield from session.select_cursor(statement_id, parameter)
