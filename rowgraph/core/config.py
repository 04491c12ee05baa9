"""Runtime settings and the definition registry.

``Settings`` is a Pydantic model of the behavior switches. ``Configuration``
holds the read-only definitions (result maps, statements, SQL fragments)
plus the shared converter registry and object factory. Definitions are
registered once at startup and shared afterwards.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from rowgraph.core.enums import AutoMappingBehavior, UnknownColumnBehavior
from rowgraph.core.exceptions import (
    MappingConfigurationError,
    ResultMapNotFoundError,
    StatementNotFoundError,
    UnknownFragmentError,
)
from rowgraph.mapping.reflection import MetaObject, ObjectFactory
from rowgraph.mapping.types import TypeConverterRegistry

if TYPE_CHECKING:
    from rowgraph.core.statement import MappedStatement
    from rowgraph.mapping.result_map import ResultMap


class Settings(BaseModel):
    """Behavior switches for templating and result mapping."""

    use_actual_param_name: bool = True
    map_underscore_to_camel_case: bool = False
    call_setters_on_nulls: bool = False
    return_instance_for_empty_row: bool = False
    auto_mapping_behavior: AutoMappingBehavior = AutoMappingBehavior.PARTIAL
    auto_mapping_unknown_column_behavior: UnknownColumnBehavior = UnknownColumnBehavior.NONE
    safe_row_bounds_enabled: bool = False
    safe_result_handler_enabled: bool = True
    nullable_on_foreach: bool = False
    lazy_loading_enabled: bool = False
    shrink_whitespaces_in_sql: bool = False
    multiple_result_sets_enabled: bool = True
    default_fetch_size: int | None = None
    database_id: str | None = None
    variables: dict[str, str] = {}


class Configuration:
    """Registry of result maps, mapped statements and SQL fragments.

    Args:
        settings: Behavior switches. Defaults to ``Settings()``.
        converters: Value converter registry shared by every statement.
        object_factory: Factory used to instantiate result objects.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        converters: TypeConverterRegistry | None = None,
        object_factory: ObjectFactory | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.converters = converters or TypeConverterRegistry()
        self.object_factory = object_factory or ObjectFactory()
        self._result_maps: dict[str, ResultMap] = {}
        self._statements: dict[str, MappedStatement] = {}
        self._fragments: dict[str, str] = {}

    # --- Result maps ---

    def add_result_map(self, result_map: ResultMap) -> None:
        if result_map.id in self._result_maps:
            raise MappingConfigurationError(f"Result map '{result_map.id}' is already registered")
        self._result_maps[result_map.id] = result_map

    def get_result_map(self, result_map_id: str) -> ResultMap:
        try:
            return self._result_maps[result_map_id]
        except KeyError:
            raise ResultMapNotFoundError(result_map_id) from None

    def has_result_map(self, result_map_id: str) -> bool:
        return result_map_id in self._result_maps

    @property
    def result_map_ids(self) -> list[str]:
        return sorted(self._result_maps)

    # --- Statements ---

    def add_statement(self, statement: MappedStatement) -> None:
        if statement.id in self._statements:
            raise MappingConfigurationError(f"Statement '{statement.id}' is already registered")
        self._statements[statement.id] = statement

    def get_statement(self, statement_id: str) -> MappedStatement:
        try:
            return self._statements[statement_id]
        except KeyError:
            raise StatementNotFoundError(statement_id) from None

    def has_statement(self, statement_id: str) -> bool:
        return statement_id in self._statements

    @property
    def statement_ids(self) -> list[str]:
        return sorted(self._statements)

    def statement(self, statement_id: str, template: str, **options: Any) -> MappedStatement:
        """Compile *template* and register it as *statement_id*.

        Keyword options are passed to ``build_statement`` (``result_map``,
        ``result_type``, ``result_sets``, ``result_ordered``, ...).
        """
        from rowgraph.core.statement import build_statement

        mapped = build_statement(self, statement_id, template, **options)
        self.add_statement(mapped)
        return mapped

    # --- SQL fragments ---

    def add_fragment(self, fragment_id: str, template: str) -> None:
        """Register a reusable SQL fragment for ``<include refid=...>``."""
        if fragment_id in self._fragments:
            raise MappingConfigurationError(f"SQL fragment '{fragment_id}' is already registered")
        self._fragments[fragment_id] = template

    def get_fragment(self, fragment_id: str) -> str:
        try:
            return self._fragments[fragment_id]
        except KeyError:
            raise UnknownFragmentError(fragment_id) from None

    def has_fragment(self, fragment_id: str) -> bool:
        return fragment_id in self._fragments

    # --- Reflection ---

    def new_meta_object(self, obj: Any) -> MetaObject:
        return MetaObject(obj, self.object_factory)
