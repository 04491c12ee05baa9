"""Deferred loading of nested query results.

A ``LazyResult`` wraps a mapped object whose nested-query properties have
not been fetched yet. Reading such a property runs its ``ResultLoader``
once and stores the value on the wrapped object; writing a property
discards its pending loader.
"""

from __future__ import annotations

import collections.abc
import logging
from typing import TYPE_CHECKING, Any

from rowgraph.core.exceptions import LazyLoadError, MultipleRowsError
from rowgraph.mapping.reflection import MetaObject, raw_type
from rowgraph.mapping.result_context import DEFAULT_ROW_BOUNDS

if TYPE_CHECKING:
    from rowgraph.core.session import Session
    from rowgraph.core.statement import MappedStatement
    from rowgraph.mapping.row_key import RowKey
    from rowgraph.scripting.source import BoundSql

logger = logging.getLogger(__name__)

_LIST_TARGETS = (
    list,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Collection,
    collections.abc.Iterable,
)
_SET_TARGETS = (set, frozenset, collections.abc.Set, collections.abc.MutableSet)


class ResultExtractor:
    """Shapes a nested query's row list for the property it populates."""

    def extract(self, rows: list[Any], target_type: Any, statement_id: str) -> Any:
        target = raw_type(target_type) if target_type is not None else None
        if target in _LIST_TARGETS:
            return rows
        if target is tuple:
            return tuple(rows)
        if target in _SET_TARGETS:
            return frozenset(rows) if target is frozenset else set(rows)
        if len(rows) > 1:
            raise MultipleRowsError(statement_id, len(rows))
        return rows[0] if rows else None


class ResultLoader:
    """Runs one nested query and extracts the property value from its rows."""

    def __init__(
        self,
        session: Session,
        statement: MappedStatement,
        parameter_object: Any,
        target_type: Any,
        cache_key: RowKey,
        bound_sql: BoundSql,
    ) -> None:
        self.session = session
        self.statement = statement
        self.parameter_object = parameter_object
        self.target_type = target_type
        self.cache_key = cache_key
        self.bound_sql = bound_sql
        self.extractor = ResultExtractor()

    def load_result(self) -> Any:
        rows = self._select_list()
        return self.extractor.extract(rows, self.target_type, self.statement.id)

    def _select_list(self) -> list[Any]:
        session = self.session
        forked = False
        if session.closed:
            session = session.fork()
            forked = True
        try:
            return session.query(
                self.statement,
                self.parameter_object,
                DEFAULT_ROW_BOUNDS,
                None,
                self.cache_key,
                self.bound_sql,
            )
        finally:
            if forked:
                session.close()


class _LoadPair:
    def __init__(self, property_path: str, meta_result_object: MetaObject, loader: ResultLoader) -> None:
        self.property = property_path
        self.meta_result_object = meta_result_object
        self.loader = loader

    def load(self) -> None:
        logger.debug(
            "Lazy loading property '%s' with statement '%s'", self.property, self.loader.statement.id
        )
        self.meta_result_object.set_value(self.property, self.loader.load_result())


class ResultLoaderMap:
    """Pending loaders keyed by the upper-cased top-level property name."""

    def __init__(self) -> None:
        self._loaders: dict[str, _LoadPair] = {}

    def add_loader(self, property_path: str, meta_result_object: MetaObject, loader: ResultLoader) -> None:
        key = property_path.split(".", 1)[0].upper()
        if property_path.upper() != key and key in self._loaders:
            raise LazyLoadError(
                f"Nested lazy loaded result property '{property_path}' for query id "
                f"'{loader.statement.id}' cannot be mapped to the same key "
                f"'{key}' as '{self._loaders[key].property}'"
            )
        self._loaders[key] = _LoadPair(property_path, meta_result_object, loader)

    def __len__(self) -> int:
        return len(self._loaders)

    def has_loader(self, name: str) -> bool:
        return name.upper() in self._loaders

    @property
    def properties(self) -> list[str]:
        return [pair.property for pair in self._loaders.values()]

    def load(self, name: str) -> bool:
        pair = self._loaders.pop(name.upper(), None)
        if pair is None:
            return False
        pair.load()
        return True

    def remove(self, name: str) -> None:
        self._loaders.pop(name.upper(), None)

    def load_all(self) -> None:
        for key in list(self._loaders):
            self.load(key)


class LazyResult:
    """Stand-in for a mapped object with unloaded nested-query properties.

    Attribute reads and writes are forwarded to the wrapped object; the
    first read of a pending property triggers its loader. ``unwrap()``
    returns the wrapped object as-is, ``load_all()`` returns it fully
    loaded.
    """

    __slots__ = ("_target", "_loaders", "_constructor_args")

    def __init__(
        self,
        target: Any,
        loaders: ResultLoaderMap,
        constructor_args: tuple[tuple[Any, Any], ...] = (),
    ) -> None:
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_loaders", loaders)
        object.__setattr__(self, "_constructor_args", constructor_args)

    def __getattr__(self, name: str) -> Any:
        loaders: ResultLoaderMap = object.__getattribute__(self, "_loaders")
        target = object.__getattribute__(self, "_target")
        if loaders.has_loader(name):
            loaders.load(name)
        return getattr(target, name)

    def __setattr__(self, name: str, value: Any) -> None:
        loaders: ResultLoaderMap = object.__getattribute__(self, "_loaders")
        loaders.remove(name)
        setattr(object.__getattribute__(self, "_target"), name, value)

    def unwrap(self) -> Any:
        return object.__getattribute__(self, "_target")

    def load_all(self) -> Any:
        object.__getattribute__(self, "_loaders").load_all()
        return self.unwrap()

    @property
    def pending_properties(self) -> list[str]:
        return object.__getattribute__(self, "_loaders").properties

    @property
    def constructor_args(self) -> tuple[tuple[Any, Any], ...]:
        """``(type, value)`` pairs the wrapped object was constructed with."""
        return object.__getattribute__(self, "_constructor_args")

    def __eq__(self, other: object) -> bool:
        if isinstance(other, LazyResult):
            other = other.load_all()
        return self.load_all() == other

    def __hash__(self) -> int:
        return hash(self.load_all())

    def __repr__(self) -> str:
        return f"LazyResult({self.unwrap()!r}, pending={self.pending_properties})"
