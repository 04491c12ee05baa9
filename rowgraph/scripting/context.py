"""Per-execution evaluation context for template node trees."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from rowgraph.mapping.reflection import MetaObject

if TYPE_CHECKING:
    from rowgraph.core.config import Configuration

PARAMETER_OBJECT_KEY = "_parameter"
DATABASE_ID_KEY = "_databaseId"


class ContextMap(dict):
    """Binding table that falls back to the call's parameter object.

    Missing keys resolve to a property of the parameter object, to the
    parameter object itself when it is a scalar without such a property,
    or to an entry of the parameter when it is a mapping.
    """

    def __init__(self, parameter_meta: MetaObject | None, fallback_parameter_object: bool) -> None:
        super().__init__()
        self._parameter_meta = parameter_meta
        self._fallback_parameter_object = fallback_parameter_object

    def __getitem__(self, key: str) -> Any:
        if dict.__contains__(self, key):
            return dict.__getitem__(self, key)
        if self._parameter_meta is None:
            parameter = dict.get(self, PARAMETER_OBJECT_KEY)
            if isinstance(parameter, Mapping):
                return parameter.get(key)
            return None
        if self._fallback_parameter_object and not self._parameter_meta.has_getter(key):
            return self._parameter_meta.original_object
        return self._parameter_meta.get_value(key)

    def get(self, key: str, default: Any = None) -> Any:
        value = self[key]
        return default if value is None else value


class DynamicContext:
    """SQL fragment buffer plus bindings for one template evaluation.

    Fragments are joined with a single space. ``unique_number`` hands out
    the per-iteration suffixes used by ``foreach`` synthetic names.
    """

    def __init__(self, configuration: Configuration, parameter_object: Any) -> None:
        self.configuration = configuration
        if parameter_object is not None and not isinstance(parameter_object, Mapping):
            meta = configuration.new_meta_object(parameter_object)
            fallback = configuration.converters.has_converter(type(parameter_object))
            self.bindings = ContextMap(meta, fallback)
        else:
            self.bindings = ContextMap(None, False)
        self.bindings[PARAMETER_OBJECT_KEY] = parameter_object
        self.bindings[DATABASE_ID_KEY] = configuration.settings.database_id
        self._fragments: list[str] = []
        self._unique_number = 0

    def bind(self, name: str, value: Any) -> None:
        self.bindings[name] = value

    def append_sql(self, sql: str) -> None:
        if sql:
            self._fragments.append(sql)

    @property
    def sql(self) -> str:
        return " ".join(self._fragments).strip()

    def unique_number(self) -> int:
        number = self._unique_number
        self._unique_number += 1
        return number


class DelegatingContext:
    """Context wrapper that forwards everything except ``append_sql``."""

    def __init__(self, delegate: DynamicContext | DelegatingContext) -> None:
        self.delegate = delegate

    @property
    def configuration(self) -> Configuration:
        return self.delegate.configuration

    @property
    def bindings(self) -> ContextMap:
        return self.delegate.bindings

    def bind(self, name: str, value: Any) -> None:
        self.delegate.bind(name, value)

    def append_sql(self, sql: str) -> None:
        self.delegate.append_sql(sql)

    @property
    def sql(self) -> str:
        return self.delegate.sql

    def unique_number(self) -> int:
        return self.delegate.unique_number()
