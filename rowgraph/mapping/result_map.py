"""Result map definitions.

Frozen dataclasses describing how cursor columns populate a target type,
plus the fluent ``result_map(...)`` builder used to declare them.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from rowgraph.core.exceptions import MappingConfigurationError
from rowgraph.mapping.reflection import MetaClass, ObjectFactory, is_collection_type, raw_type
from rowgraph.mapping.types import TypeConverter

if TYPE_CHECKING:
    from rowgraph.core.config import Configuration

_COMPOSITE_PATTERN = re.compile(r"^\{(.*)\}$", re.DOTALL)


class ResultFlag(Enum):
    ID = "id"
    CONSTRUCTOR = "constructor"


@dataclass(frozen=True)
class ResultMapping:
    """How one property (or constructor argument) is populated."""

    property: str | None
    column: str | None = None
    python_type: Any = None
    converter: TypeConverter | None = None
    declared_type: Any = None
    nested_result_map_id: str | None = None
    nested_query_id: str | None = None
    not_null_columns: frozenset[str] = frozenset()
    column_prefix: str | None = None
    flags: frozenset[ResultFlag] = frozenset()
    composites: tuple[ResultMapping, ...] = ()
    result_set: str | None = None
    foreign_column: str | None = None
    lazy: bool = False

    @property
    def is_composite(self) -> bool:
        return bool(self.composites)

    def has_flag(self, flag: ResultFlag) -> bool:
        return flag in self.flags


@dataclass(frozen=True)
class Discriminator:
    """Switch column plus a table of column value -> result map id."""

    result_mapping: ResultMapping
    cases: Mapping[str, str]

    def map_id_for(self, value: str) -> str | None:
        return self.cases.get(value)


@dataclass(frozen=True, eq=False)
class ResultMap:
    """Immutable mapping definition, referenced by id."""

    id: str
    type: Any
    result_mappings: tuple[ResultMapping, ...]
    id_result_mappings: tuple[ResultMapping, ...]
    constructor_result_mappings: tuple[ResultMapping, ...]
    property_result_mappings: tuple[ResultMapping, ...]
    mapped_columns: frozenset[str]
    mapped_properties: frozenset[str]
    discriminator: Discriminator | None = None
    has_nested_result_maps: bool = False
    auto_mapping: bool | None = None

    @classmethod
    def build(
        cls,
        result_map_id: str,
        target_type: Any,
        result_mappings: list[ResultMapping] | tuple[ResultMapping, ...],
        *,
        discriminator: Discriminator | None = None,
        auto_mapping: bool | None = None,
        object_factory: ObjectFactory | None = None,
    ) -> ResultMap:
        mapped_columns: set[str] = set()
        mapped_properties: set[str] = set()
        id_mappings: list[ResultMapping] = []
        constructor_mappings: list[ResultMapping] = []
        property_mappings: list[ResultMapping] = []
        has_nested_result_maps = False

        for mapping in result_mappings:
            has_nested_result_maps = has_nested_result_maps or (
                mapping.nested_result_map_id is not None and mapping.result_set is None
            )
            if mapping.column is not None:
                mapped_columns.add(mapping.column.upper())
            for composite in mapping.composites:
                if composite.column is not None:
                    mapped_columns.add(composite.column.upper())
            if mapping.property is not None:
                mapped_properties.add(mapping.property)
            if mapping.has_flag(ResultFlag.CONSTRUCTOR):
                constructor_mappings.append(mapping)
            else:
                property_mappings.append(mapping)
            if mapping.has_flag(ResultFlag.ID):
                id_mappings.append(mapping)

        if constructor_mappings and all(m.property for m in constructor_mappings):
            constructor_mappings = _sort_by_signature(
                result_map_id, target_type, constructor_mappings, object_factory or ObjectFactory()
            )

        all_mappings = tuple(result_mappings)
        return cls(
            id=result_map_id,
            type=target_type,
            result_mappings=all_mappings,
            id_result_mappings=tuple(id_mappings) or all_mappings,
            constructor_result_mappings=tuple(constructor_mappings),
            property_result_mappings=tuple(property_mappings),
            mapped_columns=frozenset(mapped_columns),
            mapped_properties=frozenset(mapped_properties),
            discriminator=discriminator,
            has_nested_result_maps=has_nested_result_maps,
            auto_mapping=auto_mapping,
        )


def _sort_by_signature(
    result_map_id: str,
    target_type: Any,
    mappings: list[ResultMapping],
    object_factory: ObjectFactory,
) -> list[ResultMapping]:
    parameters = [p.name for p in object_factory.constructor_parameters(target_type)]
    names = [m.property for m in mappings]
    missing = [name for name in names if name not in parameters]
    if missing:
        raise MappingConfigurationError(
            f"Error in result map '{result_map_id}'. Failed to find a constructor in "
            f"'{getattr(raw_type(target_type), '__name__', target_type)}' "
            f"with arg names {names}. Unknown names: {missing}"
        )
    return sorted(mappings, key=lambda m: parameters.index(m.property))


def parse_composite_column(column: str) -> list[tuple[str, str]] | None:
    """Parse ``{prop1=col1,prop2=col2}`` into ``[(prop1, col1), (prop2, col2)]``."""
    match = _COMPOSITE_PATTERN.match(column.strip())
    if match is None:
        return None
    pairs: list[tuple[str, str]] = []
    for part in match.group(1).split(","):
        prop, sep, col = part.partition("=")
        if not sep or not prop.strip() or not col.strip():
            raise MappingConfigurationError(f"Malformed composite column '{column}'")
        pairs.append((prop.strip(), col.strip()))
    return pairs


def result_map(
    result_map_id: str,
    target_type: Any,
    *,
    extends: str | None = None,
    auto_mapping: bool | None = None,
) -> ResultMapBuilder:
    """Entry point for the result map DSL.

    Example::

        result_map("blogMap", Blog)
            .id("id", "blog_id")
            .result("title", "blog_title")
            .association("author", result_map="authorMap", column_prefix="author_")
            .collection("posts", result_map="postMap")
            .build(configuration)
    """
    return ResultMapBuilder(result_map_id, target_type, extends=extends, auto_mapping=auto_mapping)


class ResultMapBuilder:
    """Fluent builder for result map definitions."""

    def __init__(
        self,
        result_map_id: str,
        target_type: Any,
        *,
        extends: str | None = None,
        auto_mapping: bool | None = None,
    ) -> None:
        self._id = result_map_id
        self._type = target_type
        self._extends = extends
        self._auto_mapping = auto_mapping
        self._entries: list[dict[str, Any]] = []
        self._discriminator: dict[str, Any] | None = None
        self._case_builders: list[ResultMapBuilder] = []

    def id(self, property: str, column: str, **options: Any) -> ResultMapBuilder:  # noqa: A002
        """Map an identifying property; id properties drive row de-duplication."""
        return self._add(property, column, {ResultFlag.ID}, options)

    def result(self, property: str, column: str | None = None, **options: Any) -> ResultMapBuilder:  # noqa: A002
        """Map a plain property. *column* defaults to the property name."""
        return self._add(property, column or property, set(), options)

    def id_arg(self, name: str, column: str, **options: Any) -> ResultMapBuilder:
        """Map an identifying constructor argument."""
        return self._add(name, column, {ResultFlag.ID, ResultFlag.CONSTRUCTOR}, options)

    def arg(self, name: str | None, column: str | None = None, **options: Any) -> ResultMapBuilder:
        """Map a constructor argument, by name or (when *name* is None) by position."""
        return self._add(name, column or name, {ResultFlag.CONSTRUCTOR}, options)

    def association(
        self,
        property: str,  # noqa: A002
        *,
        result_map: str | ResultMapBuilder | None = None,
        select: str | None = None,
        column: str | None = None,
        **options: Any,
    ) -> ResultMapBuilder:
        """Map a single nested object via a nested result map or a nested query."""
        return self._add(
            property, column, set(), {**options, "result_map": result_map, "select": select}
        )

    def collection(
        self,
        property: str,  # noqa: A002
        *,
        result_map: str | ResultMapBuilder | None = None,
        select: str | None = None,
        column: str | None = None,
        **options: Any,
    ) -> ResultMapBuilder:
        """Map a nested collection; children are appended as rows arrive."""
        return self._add(
            property,
            column,
            set(),
            {**options, "result_map": result_map, "select": select, "collection": True},
        )

    def discriminator(
        self,
        column: str,
        cases: Mapping[Any, str | ResultMapBuilder],
        *,
        python_type: Any = str,
        **options: Any,
    ) -> ResultMapBuilder:
        """Select a different result map per value of *column*.

        A case may be a result map id or an inline ``ResultMapBuilder``;
        inline cases extend this result map unless they name a parent.
        """
        case_ids: dict[str, str] = {}
        for value, case in cases.items():
            if isinstance(case, ResultMapBuilder):
                if case._extends is None:
                    case._extends = self._id
                self._case_builders.append(case)
                case_ids[str(value)] = case._id
            else:
                case_ids[str(value)] = case
        self._discriminator = {
            "column": column,
            "cases": case_ids,
            "python_type": python_type,
            **options,
        }
        return self

    def _add(
        self,
        prop: str | None,
        column: str | None,
        flags: set[ResultFlag],
        options: dict[str, Any],
    ) -> ResultMapBuilder:
        self._entries.append({"property": prop, "column": column, "flags": flags, **options})
        return self

    def build(self, configuration: Configuration) -> ResultMap:
        """Validate, build and register the result map on *configuration*."""
        mappings = [self._build_mapping(configuration, entry) for entry in self._entries]
        declares_constructor = any(m.has_flag(ResultFlag.CONSTRUCTOR) for m in mappings)

        if self._extends is not None:
            parent = configuration.get_result_map(self._extends)
            own_properties = {m.property for m in mappings if m.property is not None}
            inherited = [
                m
                for m in parent.result_mappings
                if m.property is None or m.property not in own_properties
            ]
            if declares_constructor:
                inherited = [m for m in inherited if not m.has_flag(ResultFlag.CONSTRUCTOR)]
            mappings.extend(inherited)

        discriminator = None
        if self._discriminator is not None:
            options = dict(self._discriminator)
            cases = options.pop("cases")
            column = options.pop("column")
            discriminator = Discriminator(
                result_mapping=self._build_mapping(
                    configuration, {"property": None, "column": column, "flags": set(), **options}
                ),
                cases=cases,
            )

        built = ResultMap.build(
            self._id,
            self._type,
            mappings,
            discriminator=discriminator,
            auto_mapping=self._auto_mapping,
            object_factory=configuration.object_factory,
        )
        configuration.add_result_map(built)
        for case in self._case_builders:
            case.build(configuration)
        return built

    def _build_mapping(self, configuration: Configuration, entry: dict[str, Any]) -> ResultMapping:
        entry = dict(entry)
        prop = entry.pop("property")
        column = entry.pop("column")
        flags = frozenset(entry.pop("flags"))
        nested = entry.pop("result_map", None)
        select = entry.pop("select", None)
        is_collection = entry.pop("collection", False)
        python_type = entry.pop("python_type", None)
        converter = entry.pop("converter", None)
        declared_type = entry.pop("declared_type", None)
        not_null = entry.pop("not_null_columns", None) or ()
        column_prefix = entry.pop("column_prefix", None)
        result_set = entry.pop("result_set", None)
        foreign_column = entry.pop("foreign_column", None)
        lazy = entry.pop("lazy", None)
        if entry:
            raise MappingConfigurationError(
                f"Unknown option(s) {sorted(entry)} for property '{prop}' in result map '{self._id}'"
            )

        if isinstance(nested, ResultMapBuilder):
            nested = nested.build(configuration).id
        if nested is not None and select is not None:
            raise MappingConfigurationError(
                f"Cannot define both a nested result map and a nested query for property "
                f"'{prop}' in result map '{self._id}'"
            )
        if (
            column is None
            and nested is None
            and result_set is None
            and ResultFlag.CONSTRUCTOR not in flags
        ):
            raise MappingConfigurationError(
                f"Mapping is missing column attribute for property '{prop}' in result map '{self._id}'"
            )
        if result_set is not None:
            columns = [c for c in (column or "").split(",") if c.strip()]
            foreign = [c for c in (foreign_column or "").split(",") if c.strip()]
            if len(columns) != len(foreign):
                raise MappingConfigurationError(
                    f"There should be the same number of columns and foreign columns in property "
                    f"'{prop}' of result map '{self._id}'"
                )

        if (
            prop is not None
            and ResultFlag.CONSTRUCTOR not in flags
            and not MetaClass(self._type).has_setter(prop)
        ):
            raise MappingConfigurationError(
                f"No setter for property '{prop}' of "
                f"'{getattr(raw_type(self._type), '__name__', self._type)}' in result map "
                f"'{self._id}'. Map it with arg() to pass it to the constructor"
            )
        if python_type is None and prop is not None:
            if ResultFlag.CONSTRUCTOR in flags:
                python_type = self._resolve_argument_type(configuration, prop)
            else:
                python_type = self._resolve_property_type(prop)
        if is_collection and python_type is not None and not is_collection_type(python_type):
            python_type = list

        composites: tuple[ResultMapping, ...] = ()
        if column is not None:
            pairs = parse_composite_column(column)
            if pairs is not None:
                composites = tuple(ResultMapping(property=p, column=c) for p, c in pairs)
                column = None

        if lazy is None:
            lazy = select is not None and configuration.settings.lazy_loading_enabled

        return ResultMapping(
            property=prop,
            column=column,
            python_type=python_type,
            converter=converter,
            declared_type=declared_type,
            nested_result_map_id=nested,
            nested_query_id=select,
            not_null_columns=frozenset(c.strip() for c in not_null),
            column_prefix=column_prefix,
            flags=flags,
            composites=composites,
            result_set=result_set,
            foreign_column=foreign_column,
            lazy=bool(lazy),
        )

    def _resolve_argument_type(self, configuration: Configuration, name: str) -> Any:
        factory = configuration.object_factory
        for param in factory.constructor_parameters(self._type):
            if param.name == name:
                annotation = factory.parameter_type(self._type, param)
                return None if annotation is param.empty else annotation
        return None

    def _resolve_property_type(self, prop: str) -> Any:
        meta = MetaClass(self._type)
        try:
            return meta.get_setter_type(prop) if meta.has_setter(prop) else None
        except MappingConfigurationError:
            return None
