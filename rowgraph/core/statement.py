"""Mapped statements: a compiled template plus its result maps."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from rowgraph.core.enums import StatementKind
from rowgraph.mapping.result_map import ResultMap
from rowgraph.scripting.builder import compile_template

if TYPE_CHECKING:
    from rowgraph.core.config import Configuration
    from rowgraph.scripting.source import BoundSql, SqlSource

_TAG_PATTERN = re.compile(r"<[^>]*>")
_KEYWORD_PATTERN = re.compile(r"[A-Za-z]+")

_KIND_BY_KEYWORD = {
    "select": StatementKind.SELECT,
    "with": StatementKind.SELECT,
    "values": StatementKind.SELECT,
    "pragma": StatementKind.SELECT,
    "insert": StatementKind.INSERT,
    "replace": StatementKind.INSERT,
    "update": StatementKind.UPDATE,
    "delete": StatementKind.DELETE,
}


@dataclass(frozen=True, eq=False)
class MappedStatement:
    """A registered statement. Immutable and shared across sessions."""

    id: str
    sql_source: SqlSource
    configuration: Configuration = field(repr=False)
    kind: StatementKind = StatementKind.SELECT
    result_maps: tuple[ResultMap, ...] = ()
    result_sets: tuple[str, ...] = ()
    result_ordered: bool = False
    fetch_size: int | None = None
    flush_cache: bool = False

    def get_bound_sql(self, parameter_object: Any) -> BoundSql:
        return self.sql_source.get_bound_sql(parameter_object)


def detect_kind(template: str) -> StatementKind:
    """Kind from the first SQL keyword of *template* (tags ignored)."""
    match = _KEYWORD_PATTERN.search(_TAG_PATTERN.sub(" ", template))
    if match is None:
        return StatementKind.UNKNOWN
    return _KIND_BY_KEYWORD.get(match.group(0).lower(), StatementKind.UNKNOWN)


def _split_names(value: str | list[str] | tuple[str, ...] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(",") if part.strip())
    return tuple(value)


def build_statement(
    configuration: Configuration,
    statement_id: str,
    template: str,
    *,
    result_map: str | list[str] | tuple[str, ...] | None = None,
    result_type: Any = None,
    result_sets: str | list[str] | tuple[str, ...] | None = None,
    result_ordered: bool = False,
    kind: StatementKind | None = None,
    fetch_size: int | None = None,
    flush_cache: bool | None = None,
) -> MappedStatement:
    """Compile *template* into a MappedStatement (not registered).

    ``result_map`` names one or more registered result maps (one per result
    set). ``result_type`` instead builds an inline ``<id>-Inline`` result map
    that relies on auto-mapping. Selects with neither map rows to dicts.
    """
    kind = kind or detect_kind(template)
    result_maps: tuple[ResultMap, ...]
    map_ids = _split_names(result_map)
    if map_ids:
        result_maps = tuple(configuration.get_result_map(map_id) for map_id in map_ids)
    elif result_type is not None or kind is StatementKind.SELECT:
        inline = ResultMap.build(
            f"{statement_id}-Inline",
            dict if result_type is None else result_type,
            [],
            object_factory=configuration.object_factory,
        )
        result_maps = (inline,)
    else:
        result_maps = ()
    return MappedStatement(
        id=statement_id,
        sql_source=compile_template(template, configuration),
        configuration=configuration,
        kind=kind,
        result_maps=result_maps,
        result_sets=_split_names(result_sets),
        result_ordered=result_ordered,
        fetch_size=fetch_size,
        flush_cache=kind is not StatementKind.SELECT if flush_cache is None else flush_cache,
    )
