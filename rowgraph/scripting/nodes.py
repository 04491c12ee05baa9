"""Template node tree.

Each node appends to a context when applied. Trees are built once per
statement and are immutable; all per-execution state lives in the context.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from rowgraph.core.exceptions import TemplateError
from rowgraph.scripting.context import DelegatingContext, DynamicContext
from rowgraph.scripting.expression import ExpressionEvaluator
from rowgraph.scripting.tokens import TokenParser, has_placeholder

if TYPE_CHECKING:
    from rowgraph.core.config import Configuration

Context = DynamicContext | DelegatingContext

_evaluator = ExpressionEvaluator()

WHERE_PREFIX_OVERRIDES = ("AND ", "OR ", "AND\n", "OR\n", "AND\r", "OR\r", "AND\t", "OR\t")
SET_OVERRIDES = (",",)
ITEM_PREFIX = "__frch_"


def parse_overrides(overrides: str | None) -> tuple[str, ...]:
    """Split a ``|``-separated override list into upper-case tokens."""
    if not overrides:
        return ()
    return tuple(token.upper() for token in overrides.split("|") if token)


def itemize(name: str, number: int) -> str:
    return f"{ITEM_PREFIX}{name}_{number}"


class SqlNode(ABC):
    """A node of a compiled template."""

    @abstractmethod
    def apply(self, context: Context) -> bool:
        """Append this node's SQL to *context*; return whether it applied."""


@dataclass(frozen=True)
class StaticTextSqlNode(SqlNode):
    text: str

    def apply(self, context: Context) -> bool:
        context.append_sql(self.text)
        return True


@dataclass(frozen=True)
class TextSqlNode(SqlNode):
    """Text with ``${expr}`` placeholders substituted at apply time."""

    text: str
    injection_filter: re.Pattern[str] | None = None

    def is_dynamic(self) -> bool:
        return has_placeholder(self.text)

    def apply(self, context: Context) -> bool:
        parser = TokenParser("${", "}", lambda content: self._substitute(content, context))
        context.append_sql(parser.parse(self.text))
        return True

    def _substitute(self, content: str, context: Context) -> str:
        bindings = context.bindings
        parameter = bindings.get("_parameter")
        if parameter is None:
            bindings["value"] = None
        elif context.configuration.converters.has_converter(type(parameter)):
            bindings["value"] = parameter
        value = _evaluator.value(content, bindings)
        text = "" if value is None else str(value)
        if self.injection_filter is not None and not self.injection_filter.fullmatch(text):
            raise TemplateError(
                f"Invalid input. Please conform to regex {self.injection_filter.pattern}"
            )
        return text


@dataclass(frozen=True)
class MixedSqlNode(SqlNode):
    contents: tuple[SqlNode, ...]

    def apply(self, context: Context) -> bool:
        for node in self.contents:
            node.apply(context)
        return True


@dataclass(frozen=True)
class IfSqlNode(SqlNode):
    test: str
    contents: SqlNode

    def apply(self, context: Context) -> bool:
        if _evaluator.evaluate_boolean(self.test, context.bindings):
            self.contents.apply(context)
            return True
        return False


@dataclass(frozen=True)
class ChooseSqlNode(SqlNode):
    when_nodes: tuple[SqlNode, ...]
    default_node: SqlNode | None = None

    def apply(self, context: Context) -> bool:
        for node in self.when_nodes:
            if node.apply(context):
                return True
        if self.default_node is not None:
            self.default_node.apply(context)
            return True
        return False


@dataclass(frozen=True)
class VarDeclSqlNode(SqlNode):
    """``<bind name="..." value="..."/>``."""

    name: str
    expression: str

    def apply(self, context: Context) -> bool:
        context.bind(self.name, _evaluator.value(self.expression, context.bindings))
        return True


class _TrimmedContext(DelegatingContext):
    """Buffers child SQL so prefix/suffix handling runs once at the end."""

    def __init__(self, delegate: Context, node: TrimSqlNode) -> None:
        super().__init__(delegate)
        self._node = node
        self._buffer: list[str] = []

    def append_sql(self, sql: str) -> None:
        if sql:
            self._buffer.append(sql)

    def apply_all(self) -> None:
        text = " ".join(self._buffer).strip()
        if text:
            upper = text.upper()
            for override in self._node.prefix_overrides:
                if upper.startswith(override):
                    text = text[len(override) :].lstrip()
                    break
            upper = text.upper()
            for override in self._node.suffix_overrides:
                token = override.strip()
                if token and upper.endswith(token):
                    text = text[: len(text) - len(token)].rstrip()
                    break
            if self._node.prefix:
                text = f"{self._node.prefix} {text}"
            if self._node.suffix:
                text = f"{text} {self._node.suffix}"
        self.delegate.append_sql(text)


@dataclass(frozen=True)
class TrimSqlNode(SqlNode):
    """Strips override tokens and adds prefix/suffix around non-empty content."""

    contents: SqlNode
    prefix: str | None = None
    prefix_overrides: tuple[str, ...] = ()
    suffix: str | None = None
    suffix_overrides: tuple[str, ...] = ()

    def apply(self, context: Context) -> bool:
        trimmed = _TrimmedContext(context, self)
        result = self.contents.apply(trimmed)
        trimmed.apply_all()
        return result


@dataclass(frozen=True)
class WhereSqlNode(TrimSqlNode):
    prefix: str | None = "WHERE"
    prefix_overrides: tuple[str, ...] = WHERE_PREFIX_OVERRIDES


@dataclass(frozen=True)
class SetSqlNode(TrimSqlNode):
    prefix: str | None = "SET"
    prefix_overrides: tuple[str, ...] = SET_OVERRIDES
    suffix_overrides: tuple[str, ...] = SET_OVERRIDES


class _PrefixedContext(DelegatingContext):
    """Emits *prefix* once, before the first non-blank fragment."""

    def __init__(self, delegate: Context, prefix: str) -> None:
        super().__init__(delegate)
        self.prefix = prefix
        self.prefix_applied = False

    def append_sql(self, sql: str) -> None:
        if not self.prefix_applied and sql and sql.strip():
            self.delegate.append_sql(self.prefix)
            self.prefix_applied = True
        self.delegate.append_sql(sql)


class _IterationContext(DelegatingContext):
    """Rewrites ``#{item...}``/``#{index...}`` to this iteration's synthetic names."""

    def __init__(
        self,
        delegate: Context,
        item: str | None,
        index: str | None,
        number: int,
    ) -> None:
        super().__init__(delegate)
        self._number = number
        self._item_pattern = _reference_pattern(item)
        self._item_name = None if item is None else itemize(item, number)
        self._index_pattern = _reference_pattern(index)
        self._index_name = None if index is None else itemize(index, number)

    def append_sql(self, sql: str) -> None:
        self.delegate.append_sql(TokenParser("#{", "}", self._rewrite).parse(sql))

    def _rewrite(self, content: str) -> str:
        rewritten = content
        if self._item_pattern is not None:
            rewritten = self._item_pattern.sub(self._item_name, content, count=1)
        if self._index_pattern is not None and rewritten == content:
            rewritten = self._index_pattern.sub(self._index_name, content, count=1)
        return "#{" + rewritten + "}"


def _reference_pattern(name: str | None) -> re.Pattern[str] | None:
    if name is None:
        return None
    return re.compile(r"^\s*" + re.escape(name) + r"(?![^.,:\s])")


@dataclass(frozen=True)
class ForEachSqlNode(SqlNode):
    """Repeats its contents for each element of a collection expression.

    Each iteration binds ``item``/``index`` plus ``__frch_<name>_<n>``
    synthetic names, and ``#{item}`` references inside the body are
    rewritten to the synthetic name so every iteration keeps its own value.
    Mapping collections iterate entries: the key binds to ``index`` and
    the value to ``item``.
    """

    configuration: Configuration = field(repr=False, compare=False)
    contents: SqlNode
    collection_expression: str
    item: str | None = None
    index: str | None = None
    open: str | None = None
    close: str | None = None
    separator: str | None = None
    nullable: bool | None = None

    def apply(self, context: Context) -> bool:
        nullable = self.nullable
        if nullable is None:
            nullable = self.configuration.settings.nullable_on_foreach
        iterable = _evaluator.evaluate_iterable(
            self.collection_expression, context.bindings, nullable
        )
        if iterable is None:
            return True
        if isinstance(iterable, Mapping):
            entries: Any = iterable.items()
            is_mapping = True
        else:
            entries = iterable
            is_mapping = False

        iterator = iter(entries)
        try:
            first_entry = next(iterator)
        except StopIteration:
            return True

        if self.open:
            context.append_sql(self.open)
        first = True
        position = 0
        entry = first_entry
        while True:
            if first or self.separator is None:
                scoped = _PrefixedContext(context, "")
            else:
                scoped = _PrefixedContext(context, self.separator)
            number = scoped.unique_number()
            if is_mapping:
                key, value = entry
                self._bind_index(scoped, key, number)
                self._bind_item(scoped, value, number)
            else:
                self._bind_index(scoped, position, number)
                self._bind_item(scoped, entry, number)
            self.contents.apply(_IterationContext(scoped, self.item, self.index, number))
            if first:
                first = not scoped.prefix_applied
            position += 1
            try:
                entry = next(iterator)
            except StopIteration:
                break
        if self.close:
            context.append_sql(self.close)
        if self.item is not None:
            context.bindings.pop(self.item, None)
        if self.index is not None:
            context.bindings.pop(self.index, None)
        return True

    def _bind_index(self, context: Context, value: Any, number: int) -> None:
        if self.index is not None:
            context.bind(self.index, value)
            context.bind(itemize(self.index, number), value)

    def _bind_item(self, context: Context, value: Any, number: int) -> None:
        if self.item is not None:
            context.bind(self.item, value)
            context.bind(itemize(self.item, number), value)
