"""SQL sources and bound statements.

A ``SqlSource`` turns a parameter object into a ``BoundSql``: final SQL text
split around its ``#{...}`` placeholders plus the ordered parameter
bindings. ``BoundSql.render`` emits the text in any DB-API paramstyle.
"""

from __future__ import annotations

import datetime
import re
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Protocol

from rowgraph.core.enums import ParamStyle
from rowgraph.core.exceptions import ConversionError, RowGraphError, TemplateError
from rowgraph.mapping.reflection import MetaObject, PropertyTokenizer
from rowgraph.scripting.context import DynamicContext
from rowgraph.scripting.nodes import SqlNode
from rowgraph.scripting.tokens import TokenParser

if TYPE_CHECKING:
    from rowgraph.core.config import Configuration

_WHITESPACE = re.compile(r"\s+")

_TYPE_ALIASES: dict[str, Any] = {
    "int": int,
    "integer": int,
    "float": float,
    "double": float,
    "decimal": Decimal,
    "str": str,
    "string": str,
    "bool": bool,
    "boolean": bool,
    "bytes": bytes,
    "date": datetime.date,
    "datetime": datetime.datetime,
    "time": datetime.time,
    "uuid": uuid.UUID,
    "object": object,
}

_BINDING_ATTRIBUTES = ("python_type", "declared_type", "numeric_scale")


def _convert_parameter(configuration: Configuration, binding: ParameterBinding, value: Any) -> Any:
    target = binding.python_type if binding.python_type is not None else type(value)
    try:
        if binding.python_type is not None and value is not None:
            converter = configuration.converters.get_converter(binding.python_type, binding.declared_type)
            if converter is not None:
                value = converter.to_db(converter.to_python(value))
        if binding.numeric_scale is not None and isinstance(value, (Decimal, float)):
            value = Decimal(str(value)).quantize(Decimal(1).scaleb(-binding.numeric_scale))
        return configuration.converters.to_db(value)
    except RowGraphError:
        raise
    except Exception as e:
        raise ConversionError(None, target, str(e), parameter=binding.property) from e


@dataclass(frozen=True)
class ParameterBinding:
    """One ``#{...}`` placeholder: the property path plus optional attributes."""

    property: str
    python_type: Any = None
    declared_type: str | None = None
    numeric_scale: int | None = None

    @classmethod
    def parse(cls, content: str) -> ParameterBinding:
        """Parse ``prop[:DECLARED][,attr=value...]``."""
        head, *attributes = [part.strip() for part in content.split(",")]
        declared_type = None
        if ":" in head:
            head, declared_type = (part.strip() for part in head.split(":", 1))
        if not head:
            raise TemplateError(f"Parameter mapping '#{{{content}}}' has no property")
        options: dict[str, Any] = {"declared_type": declared_type}
        for attribute in attributes:
            name, sep, value = attribute.partition("=")
            name = name.strip()
            value = value.strip()
            if not sep or name not in _BINDING_ATTRIBUTES:
                raise TemplateError(
                    f"An invalid property '{name}' was found in mapping #{{{content}}}. "
                    f"Valid properties are {', '.join(_BINDING_ATTRIBUTES)}"
                )
            if name == "python_type":
                if value.lower() not in _TYPE_ALIASES:
                    raise TemplateError(f"Unknown python_type '{value}' in mapping #{{{content}}}")
                options[name] = _TYPE_ALIASES[value.lower()]
            elif name == "numeric_scale":
                if not value.isdigit():
                    raise TemplateError(f"numeric_scale must be a non-negative integer in mapping #{{{content}}}")
                options[name] = int(value)
            else:
                options[name] = value
        return cls(property=head, **options)


@dataclass
class BoundSql:
    """Final SQL for one execution, split around its parameter placeholders."""

    segments: tuple[str, ...]
    bindings: tuple[ParameterBinding, ...]
    parameter_object: Any = None
    additional_parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def sql(self) -> str:
        """SQL text with ``?`` placeholders."""
        return "?".join(self.segments)

    def has_additional_parameter(self, name: str) -> bool:
        return PropertyTokenizer.parse(name).name in self.additional_parameters

    def get_additional_parameter(self, name: str) -> Any:
        return MetaObject(self.additional_parameters).get_value(name)

    def set_additional_parameter(self, name: str, value: Any) -> None:
        self.additional_parameters[name] = value

    def parameter_values(self, configuration: Configuration) -> list[Any]:
        """Resolve each binding: context bindings, then a scalar parameter, then properties."""
        values: list[Any] = []
        parameter = self.parameter_object
        meta: MetaObject | None = None
        for binding in self.bindings:
            name = binding.property
            if self.has_additional_parameter(name):
                value = self.get_additional_parameter(name)
            elif parameter is None:
                value = None
            elif configuration.converters.has_converter(type(parameter)):
                value = parameter
            else:
                if meta is None:
                    meta = configuration.new_meta_object(parameter)
                value = meta.get_value(name)
            values.append(_convert_parameter(configuration, binding, value))
        return values

    def render(
        self,
        configuration: Configuration,
        paramstyle: ParamStyle | str = ParamStyle.QMARK,
    ) -> tuple[str, list[Any] | dict[str, Any]]:
        """Return ``(sql, params)`` in the given DB-API paramstyle."""
        style = ParamStyle(paramstyle)
        values = self.parameter_values(configuration)
        if style is ParamStyle.QMARK:
            return "?".join(self.segments), values
        if style is ParamStyle.NUMERIC:
            return _join(self.segments, lambda i: f":{i + 1}"), values
        if style is ParamStyle.FORMAT:
            escaped = tuple(segment.replace("%", "%%") for segment in self.segments)
            return _join(escaped, lambda i: "%s"), values
        named = {f"p{i + 1}": value for i, value in enumerate(values)}
        if style is ParamStyle.NAMED:
            return _join(self.segments, lambda i: f":p{i + 1}"), named
        escaped = tuple(segment.replace("%", "%%") for segment in self.segments)
        return _join(escaped, lambda i: f"%(p{i + 1})s"), named


def _join(segments: tuple[str, ...], placeholder: Any) -> str:
    parts = [segments[0]]
    for i, segment in enumerate(segments[1:]):
        parts.append(placeholder(i))
        parts.append(segment)
    return "".join(parts)


class SqlSource(Protocol):
    def get_bound_sql(self, parameter_object: Any) -> BoundSql: ...


class StaticSqlSource:
    """Pre-split SQL with a fixed list of parameter bindings."""

    def __init__(
        self,
        segments: tuple[str, ...],
        bindings: tuple[ParameterBinding, ...],
    ) -> None:
        self.segments = segments
        self.bindings = bindings

    def get_bound_sql(self, parameter_object: Any) -> BoundSql:
        return BoundSql(self.segments, self.bindings, parameter_object)


def parse_placeholders(configuration: Configuration, sql: str) -> StaticSqlSource:
    """Split *sql* on ``#{...}`` placeholders into a StaticSqlSource."""
    if configuration.settings.shrink_whitespaces_in_sql:
        sql = _WHITESPACE.sub(" ", sql).strip()
    bindings: list[ParameterBinding] = []
    marker = "\x00"

    def _handle(content: str) -> str:
        bindings.append(ParameterBinding.parse(content))
        return marker

    text = TokenParser("#{", "}", _handle).parse(sql)
    segments = text.split(marker)
    return StaticSqlSource(tuple(segments), tuple(bindings))


class RawSqlSource:
    """Template without dynamic nodes: evaluated and parsed once at build time."""

    def __init__(self, configuration: Configuration, root: SqlNode | str) -> None:
        if isinstance(root, str):
            sql = root
        else:
            context = DynamicContext(configuration, None)
            root.apply(context)
            sql = context.sql
        self._source = parse_placeholders(configuration, sql)

    def get_bound_sql(self, parameter_object: Any) -> BoundSql:
        return self._source.get_bound_sql(parameter_object)


class DynamicSqlSource:
    """Template re-evaluated against every parameter object."""

    def __init__(self, configuration: Configuration, root: SqlNode) -> None:
        self.configuration = configuration
        self.root = root

    def get_bound_sql(self, parameter_object: Any) -> BoundSql:
        context = DynamicContext(self.configuration, parameter_object)
        self.root.apply(context)
        source = parse_placeholders(self.configuration, context.sql)
        bound = source.get_bound_sql(parameter_object)
        for name, value in context.bindings.items():
            bound.set_additional_parameter(name, value)
        return bound


def evaluate(
    source: SqlSource | SqlNode,
    parameter_object: Any = None,
    configuration: Configuration | None = None,
    *,
    paramstyle: ParamStyle | str = ParamStyle.QMARK,
) -> tuple[str, list[Any] | dict[str, Any]]:
    """Evaluate a compiled template into ``(sql, params)``.

    Args:
        source: A compiled template (see ``compile_template``) or a bare node tree.
        parameter_object: The call's parameter object (scalar, mapping or object).
        configuration: Settings and converters; defaults to a fresh Configuration.
        paramstyle: Placeholder style of the returned SQL.
    """
    if configuration is None:
        from rowgraph.core.config import Configuration

        configuration = Configuration()
    if isinstance(source, SqlNode):
        source = DynamicSqlSource(configuration, source)
    return source.get_bound_sql(parameter_object).render(configuration, paramstyle)
