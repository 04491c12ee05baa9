"""Mapping layer - turn cursor rows into object graphs."""

from __future__ import annotations

from rowgraph.mapping.handler import ResultSetHandler, materialize
from rowgraph.mapping.lazy import LazyResult
from rowgraph.mapping.reflection import MetaObject, ObjectFactory, automap_constructor
from rowgraph.mapping.result_context import (
    DefaultResultHandler,
    ResultContext,
    ResultHandler,
    RowBounds,
)
from rowgraph.mapping.result_map import (
    Discriminator,
    ResultMap,
    ResultMapBuilder,
    ResultMapping,
    result_map,
)
from rowgraph.mapping.row_key import RowKey
from rowgraph.mapping.types import TypeConverter, TypeConverterRegistry

__all__ = [
    "materialize",
    "ResultSetHandler",
    "result_map",
    "ResultMap",
    "ResultMapBuilder",
    "ResultMapping",
    "Discriminator",
    "RowBounds",
    "ResultContext",
    "ResultHandler",
    "DefaultResultHandler",
    "LazyResult",
    "RowKey",
    "MetaObject",
    "ObjectFactory",
    "automap_constructor",
    "TypeConverter",
    "TypeConverterRegistry",
]
