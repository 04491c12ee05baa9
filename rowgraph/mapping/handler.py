"""Turns cursor rows into object graphs.

``ResultSetHandler`` walks one or more result sets of an executed cursor
and builds objects according to result maps: flat auto-mapped rows,
constructor mappings, discriminated subtypes, join-flattened parent/child
graphs de-duplicated by row key, nested queries (eager, cached or lazy),
and children delivered in later result sets.

``materialize`` is the standalone entry point for a cursor the caller
executed itself.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from rowgraph.core.enums import AutoMappingBehavior, UnknownColumnBehavior
from rowgraph.core.exceptions import (
    ConstructorResolutionError,
    ExecutionError,
    NestedMappingSafetyError,
    UnknownColumnError,
)
from rowgraph.mapping.lazy import LazyResult, ResultLoader, ResultLoaderMap
from rowgraph.mapping.reflection import MetaClass, MetaObject, is_mapping_type, is_primitive_like, raw_type
from rowgraph.mapping.result_context import (
    DEFAULT_ROW_BOUNDS,
    DefaultResultHandler,
    ResultContext,
    ResultHandler,
    RowBounds,
)
from rowgraph.mapping.result_map import ResultMap, ResultMapping
from rowgraph.mapping.row_key import NULL_ROW_KEY, RowKey
from rowgraph.mapping.types import TypeConverter
from rowgraph.mapping.wrapper import RowWrapper, prepend_prefix

if TYPE_CHECKING:
    from rowgraph.core.config import Configuration
    from rowgraph.core.session import Session
    from rowgraph.core.statement import MappedStatement

logger = logging.getLogger(__name__)

DEFERRED = object()
"""Marker for a property whose value is filled in later (lazy, cached or pending)."""


class _AutoMapping:
    __slots__ = ("column", "property", "converter", "primitive")

    def __init__(self, column: str, prop: str, converter: TypeConverter, primitive: bool) -> None:
        self.column = column
        self.property = prop
        self.converter = converter
        self.primitive = primitive


class _PendingRelation:
    __slots__ = ("meta_object", "property_mapping")

    def __init__(self, meta_object: MetaObject, property_mapping: ResultMapping) -> None:
        self.meta_object = meta_object
        self.property_mapping = property_mapping


class _SingleResultHandler:
    """Takes one result and stops the row loop; used to stream results."""

    def __init__(self) -> None:
        self.fetched = False
        self.result: Any = None

    def handle_result(self, context: ResultContext[Any]) -> None:
        self.result = context.result_object
        self.fetched = True
        context.stop()


class ResultSetHandler:
    """Maps the result sets of one statement execution.

    A handler holds per-execution state (partial objects, ancestors,
    pending cross-result-set relations) and must not be reused across
    executions.

    Args:
        configuration: Result maps, statements and settings.
        result_maps: One result map per leading result set.
        statement_id: Used in log and error messages.
        result_sets: Names of the result sets, in cursor order, for
            properties declared with ``result_set=``.
        result_ordered: Rows of one parent are contiguous; parents are
            emitted as soon as the next parent starts.
        session: Runs nested queries. Required only when a result map
            declares ``select=`` properties.
        row_bounds: Rows to skip and the maximum number of top-level
            objects.
        result_handler: Receives each top-level object instead of a list.
        fetch_size: Rows pulled per ``fetchmany`` call; defaults to
            ``Settings.default_fetch_size`` (one ``fetchone`` per row when unset).
    """

    def __init__(
        self,
        configuration: Configuration,
        result_maps: list[ResultMap] | tuple[ResultMap, ...],
        *,
        statement_id: str = "",
        result_sets: list[str] | tuple[str, ...] = (),
        result_ordered: bool = False,
        session: Session | None = None,
        row_bounds: RowBounds | None = None,
        result_handler: ResultHandler | None = None,
        fetch_size: int | None = None,
    ) -> None:
        self.configuration = configuration
        self.settings = configuration.settings
        self.converters = configuration.converters
        self.object_factory = configuration.object_factory
        self.result_maps = tuple(result_maps)
        self.statement_id = statement_id
        self.result_sets = tuple(result_sets)
        self.result_ordered = result_ordered
        self.session = session
        self.row_bounds = row_bounds or DEFAULT_ROW_BOUNDS
        self.result_handler = result_handler
        self.fetch_size = fetch_size or self.settings.default_fetch_size

        self.nested_result_objects: dict[RowKey, Any] = {}
        self.ancestor_objects: dict[str, Any] = {}
        self.previous_row_value: Any = None
        self.next_result_maps: dict[str, ResultMapping] = {}
        self.pending_relations: dict[RowKey, list[_PendingRelation]] = {}
        self.auto_mappings_cache: dict[str, list[_AutoMapping]] = {}
        self.constructor_auto_mapping_columns: dict[str, list[str]] = {}
        self.use_constructor_mappings = False

    @classmethod
    def for_statement(
        cls,
        session: Session | None,
        statement: MappedStatement,
        row_bounds: RowBounds | None = None,
        result_handler: ResultHandler | None = None,
    ) -> ResultSetHandler:
        return cls(
            statement.configuration,
            statement.result_maps,
            statement_id=statement.id,
            result_sets=statement.result_sets,
            result_ordered=statement.result_ordered,
            session=session,
            row_bounds=row_bounds,
            result_handler=result_handler,
            fetch_size=statement.fetch_size,
        )

    # --- Result sets ---

    def handle_result_sets(self, cursor: Any) -> list[Any]:
        """Map every result set of *cursor*.

        Returns the list of top-level objects of the first result set when
        there is exactly one, otherwise one list per mapped result set.
        With a ``result_handler`` the lists are empty.
        """
        multiple_results: list[Any] = []
        result_set_count = 0
        rsw = self._first_result_set(cursor)
        result_map_count = len(self.result_maps)
        if rsw is not None and result_map_count < 1:
            raise ExecutionError(
                f"A query was run and no result maps were found for statement '{self.statement_id}'. "
                "It's likely that neither a result type nor a result map was specified."
            )
        while rsw is not None and result_map_count > result_set_count:
            result_map = self.result_maps[result_set_count]
            self._handle_result_set(rsw, result_map, multiple_results, None)
            rsw = self._next_result_set(cursor)
            self._clean_up_after_result_set()
            result_set_count += 1

        while rsw is not None and result_set_count < len(self.result_sets):
            parent_mapping = self.next_result_maps.get(self.result_sets[result_set_count])
            if parent_mapping is not None:
                nested_map = self.configuration.get_result_map(parent_mapping.nested_result_map_id)
                self._handle_result_set(rsw, nested_map, None, parent_mapping)
            rsw = self._next_result_set(cursor)
            self._clean_up_after_result_set()
            result_set_count += 1

        return _collapse_single_result_list(multiple_results)

    def iter_results(self, cursor: Any) -> Iterator[Any]:
        """Yield top-level objects of the first result set one at a time."""
        rsw = self._first_result_set(cursor)
        if rsw is None:
            return
        if len(self.result_maps) != 1:
            raise ExecutionError(
                f"Streamed results cannot be mapped to multiple result maps (statement '{self.statement_id}')"
            )
        result_map = self.result_maps[0]
        handler = _SingleResultHandler()
        while True:
            handler.fetched = False
            self._handle_row_values(rsw, result_map, handler, DEFAULT_ROW_BOUNDS, None)
            if not handler.fetched:
                return
            yield handler.result

    def _first_result_set(self, cursor: Any) -> RowWrapper | None:
        while cursor.description is None:
            if not self._advance(cursor):
                return None
        return RowWrapper(cursor, self.converters, self.statement_id, self.fetch_size)

    def _next_result_set(self, cursor: Any) -> RowWrapper | None:
        if not self.settings.multiple_result_sets_enabled:
            return None
        if not self._advance(cursor):
            return None
        return self._first_result_set(cursor)

    @staticmethod
    def _advance(cursor: Any) -> bool:
        nextset = getattr(cursor, "nextset", None)
        if nextset is None:
            return False
        return bool(nextset())

    def _clean_up_after_result_set(self) -> None:
        self.nested_result_objects.clear()

    def _handle_result_set(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        multiple_results: list[Any] | None,
        parent_mapping: ResultMapping | None,
    ) -> None:
        if parent_mapping is not None:
            self._handle_row_values(rsw, result_map, None, DEFAULT_ROW_BOUNDS, parent_mapping)
        elif self.result_handler is None:
            collector = DefaultResultHandler()
            self._handle_row_values(rsw, result_map, collector, self.row_bounds, None)
            if multiple_results is not None:
                multiple_results.append(collector.results)
        else:
            self._handle_row_values(rsw, result_map, self.result_handler, self.row_bounds, None)

    # --- Row loops ---

    def _handle_row_values(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        handler: ResultHandler | None,
        row_bounds: RowBounds,
        parent_mapping: ResultMapping | None,
    ) -> None:
        if result_map.has_nested_result_maps:
            self._ensure_no_row_bounds()
            self._check_result_handler()
            self._handle_row_values_for_nested_result_map(rsw, result_map, handler, row_bounds, parent_mapping)
        else:
            self._handle_row_values_for_simple_result_map(rsw, result_map, handler, row_bounds, parent_mapping)

    def _ensure_no_row_bounds(self) -> None:
        if self.settings.safe_row_bounds_enabled and not self.row_bounds.is_default:
            raise NestedMappingSafetyError(
                "Mapped statements with nested result mappings cannot be safely constrained by "
                "row bounds. Use safe_row_bounds_enabled=False to bypass this check."
            )

    def _check_result_handler(self) -> None:
        if (
            self.result_handler is not None
            and self.settings.safe_result_handler_enabled
            and not self.result_ordered
        ):
            raise NestedMappingSafetyError(
                "Mapped statements with nested result mappings cannot be safely used with a custom "
                "result handler. Use safe_result_handler_enabled=False to bypass this check or "
                "ensure the statement returns ordered data and set result_ordered=True on it."
            )

    def _handle_row_values_for_simple_result_map(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        handler: ResultHandler | None,
        row_bounds: RowBounds,
        parent_mapping: ResultMapping | None,
    ) -> None:
        context: ResultContext[Any] = ResultContext()
        self._skip_rows(rsw, row_bounds)
        while self._should_process_more_rows(context, row_bounds) and rsw.next_row():
            discriminated = self.resolve_discriminated_result_map(rsw, result_map, None)
            row_value = self._get_row_value(rsw, discriminated, None)
            self._store_object(handler, context, row_value, parent_mapping, rsw)

    def _handle_row_values_for_nested_result_map(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        handler: ResultHandler | None,
        row_bounds: RowBounds,
        parent_mapping: ResultMapping | None,
    ) -> None:
        context: ResultContext[Any] = ResultContext()
        self._skip_rows(rsw, row_bounds)
        row_value = self.previous_row_value
        while self._should_process_more_rows(context, row_bounds) and rsw.next_row():
            discriminated = self.resolve_discriminated_result_map(rsw, result_map, None)
            row_key = self._create_row_key(discriminated, rsw, None)
            partial_object = self.nested_result_objects.get(row_key)
            if self.result_ordered:
                if partial_object is None and row_value is not None:
                    self.nested_result_objects.clear()
                    self._store_object(handler, context, row_value, parent_mapping, rsw)
                row_value = self._get_nested_row_value(rsw, discriminated, row_key, None, partial_object)
            else:
                row_value = self._get_nested_row_value(rsw, discriminated, row_key, None, partial_object)
                if partial_object is None:
                    self._store_object(handler, context, row_value, parent_mapping, rsw)
        if (
            row_value is not None
            and self.result_ordered
            and self._should_process_more_rows(context, row_bounds)
        ):
            self._store_object(handler, context, row_value, parent_mapping, rsw)
            self.previous_row_value = None
        elif row_value is not None:
            self.previous_row_value = row_value

    @staticmethod
    def _skip_rows(rsw: RowWrapper, row_bounds: RowBounds) -> None:
        for _ in range(row_bounds.offset):
            if not rsw.next_row():
                break

    @staticmethod
    def _should_process_more_rows(context: ResultContext[Any], row_bounds: RowBounds) -> bool:
        return not context.is_stopped and context.result_count < row_bounds.limit

    def _store_object(
        self,
        handler: ResultHandler | None,
        context: ResultContext[Any],
        row_value: Any,
        parent_mapping: ResultMapping | None,
        rsw: RowWrapper,
    ) -> None:
        if parent_mapping is not None:
            self._link_to_parents(rsw, parent_mapping, row_value)
        elif handler is not None:
            context.next_result_object(row_value)
            handler.handle_result(context)

    # --- Discriminators ---

    def resolve_discriminated_result_map(
        self, rsw: RowWrapper, result_map: ResultMap, column_prefix: str | None
    ) -> ResultMap:
        """Follow discriminators from *result_map* for the current row."""
        past_discriminators: set[str] = set()
        discriminator = result_map.discriminator
        while discriminator is not None:
            value = self._get_discriminator_value(rsw, discriminator.result_mapping, column_prefix)
            map_id = discriminator.map_id_for("null" if value is None else str(value))
            if map_id is None or not self.configuration.has_result_map(map_id):
                break
            result_map = self.configuration.get_result_map(map_id)
            last_discriminator = discriminator
            discriminator = result_map.discriminator
            if discriminator is last_discriminator or map_id in past_discriminators:
                break
            past_discriminators.add(map_id)
        return result_map

    def _get_discriminator_value(
        self, rsw: RowWrapper, mapping: ResultMapping, column_prefix: str | None
    ) -> Any:
        column = prepend_prefix(mapping.column, column_prefix)
        converter = _mapping_converter(rsw, mapping, column)
        return rsw.get_value(column, converter, mapping.python_type)

    # --- Row values ---

    def _get_row_value(self, rsw: RowWrapper, result_map: ResultMap, column_prefix: str | None) -> Any:
        lazy_loader = ResultLoaderMap()
        row_value = self._create_result_object(rsw, result_map, lazy_loader, column_prefix)
        if row_value is not None and not self._has_converter(result_map.type):
            meta = self.configuration.new_meta_object(row_value)
            found_values = self.use_constructor_mappings
            if self._should_apply_automatic_mappings(result_map, False):
                found_values = self._apply_automatic_mappings(rsw, result_map, meta, column_prefix) or found_values
            found_values = (
                self._apply_property_mappings(rsw, result_map, meta, lazy_loader, column_prefix) or found_values
            )
            found_values = len(lazy_loader) > 0 or found_values
            if not found_values and not self.settings.return_instance_for_empty_row:
                row_value = None
        return row_value

    def _get_nested_row_value(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        combined_key: RowKey,
        column_prefix: str | None,
        partial_object: Any,
    ) -> Any:
        result_map_id = result_map.id
        row_value = partial_object
        if row_value is not None:
            meta = self.configuration.new_meta_object(row_value)
            self.ancestor_objects[result_map_id] = row_value
            self._apply_nested_result_mappings(rsw, result_map, meta, column_prefix, combined_key, False)
            self.ancestor_objects.pop(result_map_id, None)
            return row_value

        lazy_loader = ResultLoaderMap()
        row_value = self._create_result_object(rsw, result_map, lazy_loader, column_prefix)
        if row_value is not None and not self._has_converter(result_map.type):
            meta = self.configuration.new_meta_object(row_value)
            found_values = self.use_constructor_mappings
            if self._should_apply_automatic_mappings(result_map, True):
                found_values = self._apply_automatic_mappings(rsw, result_map, meta, column_prefix) or found_values
            found_values = (
                self._apply_property_mappings(rsw, result_map, meta, lazy_loader, column_prefix) or found_values
            )
            self.ancestor_objects[result_map_id] = row_value
            found_values = (
                self._apply_nested_result_mappings(rsw, result_map, meta, column_prefix, combined_key, True)
                or found_values
            )
            self.ancestor_objects.pop(result_map_id, None)
            found_values = len(lazy_loader) > 0 or found_values
            if not found_values and not self.settings.return_instance_for_empty_row:
                row_value = None
        if combined_key is not NULL_ROW_KEY:
            self.nested_result_objects[combined_key] = row_value
        return row_value

    def _should_apply_automatic_mappings(self, result_map: ResultMap, is_nested: bool) -> bool:
        if result_map.auto_mapping is not None:
            return result_map.auto_mapping
        behavior = self.settings.auto_mapping_behavior
        if is_nested:
            return behavior is AutoMappingBehavior.FULL
        return behavior is not AutoMappingBehavior.NONE

    # --- Property mappings ---

    def _apply_property_mappings(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        lazy_loader: ResultLoaderMap,
        column_prefix: str | None,
    ) -> bool:
        mapped_columns = rsw.mapped_column_names(result_map, column_prefix)
        found_values = False
        for mapping in result_map.property_result_mappings:
            column = prepend_prefix(mapping.column, column_prefix)
            if mapping.nested_result_map_id is not None:
                # nested maps read their own columns
                column = None
            if not (
                mapping.is_composite
                or (column is not None and column.upper() in mapped_columns)
                or mapping.result_set is not None
            ):
                continue
            value = self._get_property_mapping_value(rsw, meta, mapping, lazy_loader, column_prefix)
            prop = mapping.property
            if prop is None:
                continue
            if value is DEFERRED:
                found_values = True
                continue
            if value is not None:
                found_values = True
            if value is not None or (
                self.settings.call_setters_on_nulls and not is_primitive_like(meta.get_setter_type(prop))
            ):
                meta.set_value(prop, value)
        return found_values

    def _get_property_mapping_value(
        self,
        rsw: RowWrapper,
        meta: MetaObject,
        mapping: ResultMapping,
        lazy_loader: ResultLoaderMap,
        column_prefix: str | None,
    ) -> Any:
        if mapping.nested_query_id is not None:
            return self._get_nested_query_mapping_value(rsw, meta, mapping, lazy_loader, column_prefix)
        if mapping.result_set is not None:
            self._add_pending_child_relation(rsw, meta, mapping)
            return DEFERRED
        column = prepend_prefix(mapping.column, column_prefix)
        converter = _mapping_converter(rsw, mapping, column)
        return rsw.get_value(column, converter, mapping.python_type)

    # --- Automatic mappings ---

    def _create_automatic_mappings(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        column_prefix: str | None,
    ) -> list[_AutoMapping]:
        map_key = f"{result_map.id}:{column_prefix or ''}"
        auto_mappings = self.auto_mappings_cache.get(map_key)
        if auto_mappings is not None:
            return auto_mappings

        auto_mappings = []
        unmapped = rsw.unmapped_column_names(result_map, column_prefix)
        constructor_columns = self.constructor_auto_mapping_columns.pop(map_key, None)
        if constructor_columns:
            taken = {c.upper() for c in constructor_columns}
            unmapped = [c for c in unmapped if c.upper() not in taken]
        for column_name in unmapped:
            property_name = column_name
            if column_prefix:
                if not column_name.upper().startswith(column_prefix.upper()):
                    continue
                property_name = column_name[len(column_prefix):]
            prop = meta.find_property(property_name, self.settings.map_underscore_to_camel_case)
            if prop is None or not meta.has_setter(prop):
                self._on_unknown_column(column_name, prop or property_name, None)
                continue
            if prop in result_map.mapped_properties:
                continue
            property_type = meta.get_setter_type(prop)
            if self.converters.has_converter(property_type, rsw.declared_type(column_name)):
                converter = rsw.get_converter(property_type, column_name)
                auto_mappings.append(
                    _AutoMapping(column_name, prop, converter, is_primitive_like(property_type))
                )
            else:
                self._on_unknown_column(column_name, prop, property_type)
        self.auto_mappings_cache[map_key] = auto_mappings
        return auto_mappings

    def _on_unknown_column(self, column: str, prop: str, property_type: Any) -> None:
        behavior = self.settings.auto_mapping_unknown_column_behavior
        if behavior is UnknownColumnBehavior.WARNING:
            logger.warning(
                "Unknown column is detected on '%s' auto-mapping. Mapping parameters are "
                "[columnName=%s,propertyName=%s,propertyType=%s]",
                self.statement_id,
                column,
                prop,
                property_type,
            )
        elif behavior is UnknownColumnBehavior.FAILING:
            raise UnknownColumnError(self.statement_id, column, prop)

    def _apply_automatic_mappings(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        column_prefix: str | None,
    ) -> bool:
        found_values = False
        for mapping in self._create_automatic_mappings(rsw, result_map, meta, column_prefix):
            value = rsw.get_value(mapping.column, mapping.converter)
            if value is not None:
                found_values = True
            if value is not None or (self.settings.call_setters_on_nulls and not mapping.primitive):
                meta.set_value(mapping.property, value)
        return found_values

    # --- Multiple result sets ---

    def _link_to_parents(self, rsw: RowWrapper, parent_mapping: ResultMapping, row_value: Any) -> None:
        key = self._create_key_for_multiple_results(
            rsw, parent_mapping, parent_mapping.column, parent_mapping.foreign_column
        )
        for parent in self.pending_relations.get(key, ()):
            if row_value is not None:
                self._link_objects(parent.meta_object, parent.property_mapping, row_value)

    def _add_pending_child_relation(self, rsw: RowWrapper, meta: MetaObject, mapping: ResultMapping) -> None:
        key = self._create_key_for_multiple_results(rsw, mapping, mapping.column, mapping.column)
        self.pending_relations.setdefault(key, []).append(_PendingRelation(meta, mapping))
        previous = self.next_result_maps.get(mapping.result_set)
        if previous is None:
            self.next_result_maps[mapping.result_set] = mapping
        elif previous != mapping:
            raise ExecutionError("Two different properties are mapped to the same result set")

    @staticmethod
    def _create_key_for_multiple_results(
        rsw: RowWrapper, mapping: ResultMapping, names: str | None, columns: str | None
    ) -> RowKey:
        key = RowKey()
        key.update(mapping)
        if names and columns:
            for name, column in zip(names.split(","), columns.split(",")):
                value = rsw.get_raw(column.strip())
                if value is not None:
                    key.update(name.strip())
                    key.update(value)
        return key

    # --- Result object instantiation ---

    def _has_converter(self, tp: Any) -> bool:
        if is_mapping_type(tp):
            return False
        return self.converters.has_converter(tp)

    def _create_result_object(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        lazy_loader: ResultLoaderMap,
        column_prefix: str | None,
    ) -> Any:
        self.use_constructor_mappings = False
        constructor_args: list[tuple[Any, Any]] = []
        result_object = self._instantiate(rsw, result_map, constructor_args, column_prefix)
        if result_object is not None and not self._has_converter(result_map.type):
            for mapping in result_map.property_result_mappings:
                if mapping.nested_query_id is not None and mapping.lazy:
                    result_object = LazyResult(result_object, lazy_loader, tuple(constructor_args))
                    break
        self.use_constructor_mappings = result_object is not None and bool(constructor_args)
        return result_object

    def _instantiate(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        constructor_args: list[tuple[Any, Any]],
        column_prefix: str | None,
    ) -> Any:
        result_type = result_map.type
        if self._has_converter(result_type):
            return self._create_primitive_result_object(rsw, result_map, column_prefix)
        if result_map.constructor_result_mappings:
            return self._create_parameterized_result_object(
                rsw, result_map, constructor_args, column_prefix
            )
        meta_type = MetaClass(result_type)
        if meta_type.has_default_constructor and (
            meta_type.has_setters or not self.object_factory.constructor_parameters(result_type)
        ):
            return self.object_factory.create(result_type)
        if self._should_apply_automatic_mappings(result_map, False):
            return self._create_by_constructor_signature(rsw, result_map, constructor_args, column_prefix)
        raise ConstructorResolutionError(
            result_type, "no default constructor and auto-mapping is disabled for this result map"
        )

    def _create_primitive_result_object(
        self, rsw: RowWrapper, result_map: ResultMap, column_prefix: str | None
    ) -> Any:
        if result_map.result_mappings:
            column = prepend_prefix(result_map.result_mappings[0].column, column_prefix)
        else:
            column = rsw.column_names[0]
        converter = rsw.get_converter(result_map.type, column)
        return rsw.get_value(column, converter, result_map.type)

    def _create_parameterized_result_object(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        constructor_args: list[tuple[Any, Any]],
        column_prefix: str | None,
    ) -> Any:
        mappings = result_map.constructor_result_mappings
        found_values = False
        for mapping in mappings:
            if mapping.nested_query_id is not None:
                value = self._get_nested_query_constructor_value(rsw, mapping, column_prefix)
            elif mapping.nested_result_map_id is not None:
                nested_prefix = self._column_prefix(column_prefix, mapping)
                nested_map = self.resolve_discriminated_result_map(
                    rsw, self.configuration.get_result_map(mapping.nested_result_map_id), nested_prefix
                )
                value = self._get_row_value(rsw, nested_map, nested_prefix)
            else:
                column = prepend_prefix(mapping.column, column_prefix)
                converter = _mapping_converter(rsw, mapping, column)
                value = rsw.get_value(column, converter, mapping.python_type)
            constructor_args.append((mapping.python_type, value))
            found_values = value is not None or found_values
        if not found_values:
            return None
        values = [value for _, value in constructor_args]
        names = [m.property for m in mappings]
        return self.object_factory.create(result_map.type, values, names if all(names) else None)

    def _create_by_constructor_signature(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        constructor_args: list[tuple[Any, Any]],
        column_prefix: str | None,
    ) -> Any:
        result_type = result_map.type
        factory, parameters = self.object_factory.automap_constructor(result_type)
        columns = self._constructor_columns_by_name(rsw, parameters, column_prefix)
        if columns is None:
            columns = self._constructor_columns_by_position(rsw, parameters)
        if columns is None:
            raise ConstructorResolutionError(
                result_type, f"no constructor found matching columns {rsw.column_names}"
            )

        kwargs: dict[str, Any] = {}
        found_values = False
        for name, annotation, _ in parameters:
            column = columns.get(name)
            if column is None:
                continue
            python_type = None if annotation is inspect.Parameter.empty else annotation
            value = rsw.get_value(column, rsw.get_converter(python_type, column), python_type)
            constructor_args.append((python_type, value))
            kwargs[name] = value
            found_values = value is not None or found_values
        self.constructor_auto_mapping_columns[f"{result_map.id}:{column_prefix or ''}"] = list(
            columns.values()
        )
        if not found_values:
            return None
        if factory is None:
            return self.object_factory.create(result_type, list(kwargs.values()), list(kwargs))
        try:
            return factory(**kwargs)
        except TypeError as e:
            raise ConstructorResolutionError(result_type, str(e)) from e

    def _constructor_columns_by_name(
        self,
        rsw: RowWrapper,
        parameters: list[tuple[str, Any, bool]],
        column_prefix: str | None,
    ) -> dict[str, str] | None:
        camel = self.settings.map_underscore_to_camel_case
        prefix = (column_prefix or "").upper()
        available: dict[str, str] = {}
        for column in rsw.column_names:
            upper = column.upper()
            if prefix and not upper.startswith(prefix):
                continue
            name = upper[len(prefix):]
            available.setdefault(name.replace("_", "") if camel else name, column)
        columns: dict[str, str] = {}
        for name, _, has_default in parameters:
            lookup = name.upper().replace("_", "") if camel else name.upper()
            column = available.get(lookup)
            if column is not None:
                columns[name] = column
            elif not has_default:
                return None
        return columns

    def _constructor_columns_by_position(
        self, rsw: RowWrapper, parameters: list[tuple[str, Any, bool]]
    ) -> dict[str, str] | None:
        required = [p for p in parameters if not p[2]]
        if len(required) > len(rsw.column_names):
            return None
        columns: dict[str, str] = {}
        for (name, annotation, _), column, declared in zip(parameters, rsw.column_names, rsw.declared_types):
            python_type = object if annotation is inspect.Parameter.empty else annotation
            if not self.converters.has_converter(python_type, declared):
                return None
            columns[name] = column
        return columns

    # --- Nested queries ---

    def _require_session(self, statement_id: str) -> Session:
        if self.session is None:
            raise ExecutionError(
                f"Nested query '{statement_id}' in statement '{self.statement_id}' requires a session"
            )
        return self.session

    def _get_nested_query_constructor_value(
        self, rsw: RowWrapper, mapping: ResultMapping, column_prefix: str | None
    ) -> Any:
        session = self._require_session(mapping.nested_query_id)
        nested_statement = self.configuration.get_statement(mapping.nested_query_id)
        parameter = self._prepare_parameter_for_nested_query(rsw, mapping, column_prefix)
        if parameter is None:
            return None
        bound_sql = nested_statement.get_bound_sql(parameter)
        key = session.create_cache_key(nested_statement, parameter, DEFAULT_ROW_BOUNDS, bound_sql)
        loader = ResultLoader(session, nested_statement, parameter, mapping.python_type, key, bound_sql)
        return loader.load_result()

    def _get_nested_query_mapping_value(
        self,
        rsw: RowWrapper,
        meta: MetaObject,
        mapping: ResultMapping,
        lazy_loader: ResultLoaderMap,
        column_prefix: str | None,
    ) -> Any:
        session = self._require_session(mapping.nested_query_id)
        nested_statement = self.configuration.get_statement(mapping.nested_query_id)
        parameter = self._prepare_parameter_for_nested_query(rsw, mapping, column_prefix)
        if parameter is None:
            return None
        bound_sql = nested_statement.get_bound_sql(parameter)
        key = session.create_cache_key(nested_statement, parameter, DEFAULT_ROW_BOUNDS, bound_sql)
        if session.is_cached(nested_statement, key):
            session.defer_load(nested_statement, meta, mapping.property, key, mapping.python_type)
            return DEFERRED
        loader = ResultLoader(session, nested_statement, parameter, mapping.python_type, key, bound_sql)
        if mapping.lazy:
            lazy_loader.add_loader(mapping.property, meta, loader)
            return DEFERRED
        return loader.load_result()

    def _prepare_parameter_for_nested_query(
        self, rsw: RowWrapper, mapping: ResultMapping, column_prefix: str | None
    ) -> Any:
        if mapping.is_composite:
            parameter: dict[str, Any] = {}
            found_values = False
            for composite in mapping.composites:
                column = prepend_prefix(composite.column, column_prefix)
                value = rsw.get_value(column, rsw.get_converter(None, column))
                parameter[composite.property] = value
                found_values = value is not None or found_values
            return parameter if found_values else None
        column = prepend_prefix(mapping.column, column_prefix)
        return rsw.get_value(column, rsw.get_converter(None, column))

    # --- Nested result maps ---

    def _apply_nested_result_mappings(
        self,
        rsw: RowWrapper,
        result_map: ResultMap,
        meta: MetaObject,
        parent_prefix: str | None,
        parent_row_key: RowKey,
        new_object: bool,
    ) -> bool:
        found_values = False
        for mapping in result_map.property_result_mappings:
            nested_id = mapping.nested_result_map_id
            if nested_id is None or mapping.result_set is not None:
                continue
            column_prefix = self._column_prefix(parent_prefix, mapping)
            nested_map = self.resolve_discriminated_result_map(
                rsw, self.configuration.get_result_map(nested_id), column_prefix
            )
            if mapping.column_prefix is None:
                ancestor = self.ancestor_objects.get(nested_id)
                if ancestor is not None:
                    if new_object:
                        self._link_objects(meta, mapping, ancestor)
                    continue
            row_key = self._create_row_key(nested_map, rsw, column_prefix)
            combined_key = _combine_keys(row_key, parent_row_key)
            row_value = self.nested_result_objects.get(combined_key)
            known_value = row_value is not None
            self._instantiate_collection_property_if_appropriate(mapping, meta)
            if self._any_not_null_column_has_value(mapping, column_prefix, rsw):
                row_value = self._get_nested_row_value(rsw, nested_map, combined_key, column_prefix, row_value)
                if row_value is not None and not known_value:
                    self._link_objects(meta, mapping, row_value)
                    found_values = True
        return found_values

    @staticmethod
    def _column_prefix(parent_prefix: str | None, mapping: ResultMapping) -> str | None:
        prefix = (parent_prefix or "") + (mapping.column_prefix or "")
        return prefix.upper() or None

    @staticmethod
    def _any_not_null_column_has_value(
        mapping: ResultMapping, column_prefix: str | None, rsw: RowWrapper
    ) -> bool:
        if mapping.not_null_columns:
            return any(
                rsw.get_raw(prepend_prefix(column, column_prefix)) is not None
                for column in mapping.not_null_columns
            )
        if column_prefix is not None:
            return any(name.upper().startswith(column_prefix.upper()) for name in rsw.column_names)
        return True

    def _instantiate_collection_property_if_appropriate(
        self, mapping: ResultMapping, meta: MetaObject
    ) -> Any:
        prop = mapping.property
        value = meta.get_value(prop)
        if value is None:
            property_type = mapping.python_type or meta.get_setter_type(prop)
            if self.object_factory.is_collection(property_type):
                value = self.object_factory.create(property_type)
                meta.set_value(prop, value)
                return value
            return None
        if self.object_factory.is_collection(type(value)):
            return value
        return None

    def _link_objects(self, meta: MetaObject, mapping: ResultMapping, row_value: Any) -> None:
        collection = self._instantiate_collection_property_if_appropriate(mapping, meta)
        if collection is not None:
            self.configuration.new_meta_object(collection).add(row_value)
        else:
            meta.set_value(mapping.property, row_value)

    # --- Row keys ---

    def _create_row_key(self, result_map: ResultMap, rsw: RowWrapper, column_prefix: str | None) -> RowKey:
        key = RowKey()
        key.update(result_map.id)
        mappings = result_map.id_result_mappings or result_map.property_result_mappings
        if not mappings:
            if is_mapping_type(result_map.type):
                self._create_row_key_for_map(rsw, key)
            else:
                self._create_row_key_for_unmapped_properties(result_map, rsw, key, column_prefix)
        else:
            self._create_row_key_for_mapped_properties(result_map, rsw, key, mappings, column_prefix)
        if key.update_count < 2:
            return NULL_ROW_KEY
        return key

    def _create_row_key_for_mapped_properties(
        self,
        result_map: ResultMap,
        rsw: RowWrapper,
        key: RowKey,
        mappings: tuple[ResultMapping, ...],
        column_prefix: str | None,
    ) -> None:
        for mapping in mappings:
            if mapping.nested_result_map_id is not None and mapping.result_set is None:
                nested_map = self.configuration.get_result_map(mapping.nested_result_map_id)
                self._create_row_key_for_mapped_properties(
                    nested_map,
                    rsw,
                    key,
                    nested_map.constructor_result_mappings,
                    prepend_prefix(mapping.column_prefix, column_prefix),
                )
            elif mapping.nested_query_id is None:
                column = prepend_prefix(mapping.column, column_prefix)
                if column is None:
                    continue
                if column.upper() not in rsw.mapped_column_names(result_map, column_prefix):
                    continue
                converter = _mapping_converter(rsw, mapping, column)
                value = rsw.get_value(column, converter, mapping.python_type)
                if value is not None or self.settings.return_instance_for_empty_row:
                    key.update(column)
                    key.update(value)

    def _create_row_key_for_unmapped_properties(
        self, result_map: ResultMap, rsw: RowWrapper, key: RowKey, column_prefix: str | None
    ) -> None:
        meta_type = MetaClass(result_map.type)
        for column in rsw.unmapped_column_names(result_map, column_prefix):
            property_name = column
            if column_prefix:
                if not column.upper().startswith(column_prefix.upper()):
                    continue
                property_name = column[len(column_prefix):]
            prop = meta_type.find_property(property_name, self.settings.map_underscore_to_camel_case)
            if prop is None or not meta_type.has_setter(prop):
                continue
            value = rsw.get_raw(column)
            if value is not None:
                key.update(column)
                key.update(value)

    @staticmethod
    def _create_row_key_for_map(rsw: RowWrapper, key: RowKey) -> None:
        for column in rsw.column_names:
            value = rsw.get_raw(column)
            if value is not None:
                key.update(column)
                key.update(value)


def _combine_keys(row_key: RowKey, parent_row_key: RowKey) -> RowKey:
    if row_key.update_count > 1 and parent_row_key.update_count > 1:
        combined = row_key.clone()
        combined.update(parent_row_key)
        return combined
    return NULL_ROW_KEY


def _collapse_single_result_list(multiple_results: list[Any]) -> list[Any]:
    return multiple_results[0] if len(multiple_results) == 1 else multiple_results


def _mapping_converter(rsw: RowWrapper, mapping: ResultMapping, column: str) -> TypeConverter:
    if mapping.converter is not None:
        return mapping.converter
    return rsw.get_converter(mapping.python_type, column, mapping.declared_type)


def materialize(
    cursor: Any,
    result_map: ResultMap | str | Any,
    configuration: Configuration | None = None,
    *,
    row_bounds: RowBounds | None = None,
    result_handler: ResultHandler | None = None,
    result_ordered: bool = False,
    statement_id: str = "materialize",
    fetch_size: int | None = None,
) -> list[Any]:
    """Map the rows of an executed DB-API *cursor*.

    *result_map* is a ``ResultMap``, the id of one registered on
    *configuration*, or a plain target type mapped by auto-mapping.
    Nested queries are not available here; use a ``Session``.

    Example::

        cursor = connection.execute(sql, params)
        blogs = materialize(cursor, "blogMap", configuration)
    """
    from rowgraph.core.config import Configuration

    configuration = configuration or Configuration()
    if isinstance(result_map, str):
        resolved = configuration.get_result_map(result_map)
    elif isinstance(result_map, ResultMap):
        resolved = result_map
    else:
        resolved = ResultMap.build(
            f"{statement_id}-Inline",
            raw_type(result_map) if result_map is not None else dict,
            [],
            object_factory=configuration.object_factory,
        )
    handler = ResultSetHandler(
        configuration,
        [resolved],
        statement_id=statement_id,
        result_ordered=result_ordered,
        row_bounds=row_bounds,
        result_handler=result_handler,
        fetch_size=fetch_size,
    )
    return handler.handle_result_sets(cursor)
