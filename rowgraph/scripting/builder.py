"""Template compiler.

Templates starting with ``<script>`` are XML parsed with lxml into a node
tree; anything else is plain SQL text. Includes and ``${var}`` variables
from the configuration are resolved here, at build time.

Example::

    <script>
      SELECT * FROM blog
      <where>
        <if test="title != null">AND title LIKE #{title}</if>
        <if test="ids != null">
          AND id IN
          <foreach collection="ids" item="id" open="(" separator="," close=")">#{id}</foreach>
        </if>
      </where>
    </script>
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from lxml import etree

from rowgraph.core.config import Configuration
from rowgraph.core.exceptions import DuplicateIncludePropertyError, TemplateError
from rowgraph.scripting.nodes import (
    ChooseSqlNode,
    ForEachSqlNode,
    IfSqlNode,
    MixedSqlNode,
    SetSqlNode,
    SqlNode,
    StaticTextSqlNode,
    TextSqlNode,
    TrimSqlNode,
    VarDeclSqlNode,
    WhereSqlNode,
    parse_overrides,
)
from rowgraph.scripting.source import DynamicSqlSource, RawSqlSource, SqlSource
from rowgraph.scripting.tokens import substitute_variables

logger = logging.getLogger(__name__)

_SCRIPT_TAG = "<script>"


def _parse_xml(text: str, what: str) -> etree._Element:
    parser = etree.XMLParser(remove_comments=True, resolve_entities=False)
    try:
        return etree.fromstring(text.strip().encode("utf-8"), parser)
    except etree.XMLSyntaxError as e:
        raise TemplateError(f"Malformed {what}: {e}") from e


def _add_text(parent: etree._Element, index: int, text: str) -> None:
    """Append *text* at child position *index* of *parent*."""
    if not text:
        return
    if index == 0:
        parent.text = (parent.text or "") + text
    else:
        previous = parent[index - 1]
        previous.tail = (previous.tail or "") + text


class _IncludeResolver:
    """Splices ``<include refid>`` fragments into a parsed template."""

    def __init__(self, configuration: Configuration) -> None:
        self.configuration = configuration

    def apply(self, root: etree._Element) -> None:
        variables = dict(self.configuration.settings.variables)
        self._apply(root, variables, included=bool(variables))

    def _apply(self, element: etree._Element, variables: Mapping[str, str], included: bool) -> None:
        if included and variables:
            for name, value in element.attrib.items():
                element.set(name, substitute_variables(value, variables))
            element.text = substitute_variables(element.text, variables) or None
            for child in element:
                child.tail = substitute_variables(child.tail, variables) or None
        for child in list(element):
            if child.tag == "include":
                self._include(child, variables)
            else:
                self._apply(child, variables, included)

    def _include(self, include: etree._Element, variables: Mapping[str, str]) -> None:
        refid = substitute_variables(include.get("refid"), variables)
        if not refid:
            raise TemplateError("<include> requires a refid attribute")
        context = self._include_variables(include, variables)
        fragment = self._fragment(refid)
        self._apply(fragment, context, included=True)

        parent = include.getparent()
        index = parent.index(include)
        tail = include.tail or ""
        include.tail = None
        parent.remove(include)
        children = list(fragment)
        _add_text(parent, index, fragment.text or "")
        for offset, child in enumerate(children):
            parent.insert(index + offset, child)
        _add_text(parent, index + len(children), tail)

    def _fragment(self, refid: str) -> etree._Element:
        text = self.configuration.get_fragment(refid)
        if text.lstrip().startswith(_SCRIPT_TAG):
            return _parse_xml(text, f"SQL fragment '{refid}'")
        return _parse_xml(f"<sql>{text}</sql>", f"SQL fragment '{refid}'")

    @staticmethod
    def _include_variables(
        include: etree._Element, inherited: Mapping[str, str]
    ) -> dict[str, str]:
        declared: dict[str, str] = {}
        for prop in include:
            if prop.tag != "property":
                continue
            name = prop.get("name")
            if name in declared:
                raise DuplicateIncludePropertyError(name)
            declared[name] = substitute_variables(prop.get("value"), inherited)
        return {**inherited, **declared}


class XmlScriptBuilder:
    """Builds a node tree from a parsed ``<script>`` element."""

    def __init__(self, configuration: Configuration, root: etree._Element) -> None:
        self.configuration = configuration
        self.root = root
        self.is_dynamic = False
        self._handlers: dict[str, Callable[[etree._Element, list[SqlNode]], None]] = {
            "trim": self._handle_trim,
            "where": self._handle_where,
            "set": self._handle_set,
            "foreach": self._handle_foreach,
            "if": self._handle_if,
            "when": self._handle_if,
            "choose": self._handle_choose,
            "otherwise": self._handle_otherwise,
            "bind": self._handle_bind,
        }

    def parse_script_node(self) -> SqlSource:
        _IncludeResolver(self.configuration).apply(self.root)
        root_node = self.parse_dynamic_tags(self.root)
        if self.is_dynamic:
            return DynamicSqlSource(self.configuration, root_node)
        return RawSqlSource(self.configuration, root_node)

    def parse_dynamic_tags(self, element: etree._Element) -> MixedSqlNode:
        contents: list[SqlNode] = []
        self._add_text(contents, element.text)
        for child in element:
            if not isinstance(child.tag, str):
                self._add_text(contents, child.tail)
                continue
            handler = self._handlers.get(child.tag)
            if handler is None:
                raise TemplateError(f"Unknown element <{child.tag}> in SQL statement.")
            handler(child, contents)
            self.is_dynamic = True
            self._add_text(contents, child.tail)
        return MixedSqlNode(tuple(contents))

    def _add_text(self, contents: list[SqlNode], text: str | None) -> None:
        if not text or not text.strip():
            return
        node = TextSqlNode(text)
        if node.is_dynamic():
            contents.append(node)
            self.is_dynamic = True
        else:
            contents.append(StaticTextSqlNode(text))

    @staticmethod
    def _required(element: etree._Element, name: str) -> str:
        value = element.get(name)
        if value is None:
            raise TemplateError(f"<{element.tag}> requires a '{name}' attribute")
        return value

    def _handle_trim(self, element: etree._Element, contents: list[SqlNode]) -> None:
        contents.append(
            TrimSqlNode(
                self.parse_dynamic_tags(element),
                prefix=element.get("prefix"),
                prefix_overrides=parse_overrides(element.get("prefixOverrides")),
                suffix=element.get("suffix"),
                suffix_overrides=parse_overrides(element.get("suffixOverrides")),
            )
        )

    def _handle_where(self, element: etree._Element, contents: list[SqlNode]) -> None:
        contents.append(WhereSqlNode(self.parse_dynamic_tags(element)))

    def _handle_set(self, element: etree._Element, contents: list[SqlNode]) -> None:
        contents.append(SetSqlNode(self.parse_dynamic_tags(element)))

    def _handle_foreach(self, element: etree._Element, contents: list[SqlNode]) -> None:
        nullable = element.get("nullable")
        contents.append(
            ForEachSqlNode(
                self.configuration,
                self.parse_dynamic_tags(element),
                self._required(element, "collection"),
                item=element.get("item"),
                index=element.get("index"),
                open=element.get("open"),
                close=element.get("close"),
                separator=element.get("separator"),
                nullable=None if nullable is None else nullable.strip().lower() == "true",
            )
        )

    def _handle_if(self, element: etree._Element, contents: list[SqlNode]) -> None:
        contents.append(IfSqlNode(self._required(element, "test"), self.parse_dynamic_tags(element)))

    def _handle_otherwise(self, element: etree._Element, contents: list[SqlNode]) -> None:
        contents.append(self.parse_dynamic_tags(element))

    def _handle_choose(self, element: etree._Element, contents: list[SqlNode]) -> None:
        when_nodes: list[SqlNode] = []
        defaults: list[SqlNode] = []
        for child in element:
            if child.tag == "when":
                self._handle_if(child, when_nodes)
            elif child.tag == "otherwise":
                self._handle_otherwise(child, defaults)
            elif isinstance(child.tag, str):
                raise TemplateError(f"Unexpected <{child.tag}> inside <choose>")
        if len(defaults) > 1:
            raise TemplateError("Too many default (otherwise) elements in choose statement.")
        contents.append(ChooseSqlNode(tuple(when_nodes), defaults[0] if defaults else None))

    def _handle_bind(self, element: etree._Element, contents: list[SqlNode]) -> None:
        contents.append(
            VarDeclSqlNode(self._required(element, "name"), self._required(element, "value"))
        )


def compile_template(
    template: str,
    configuration: Configuration | None = None,
) -> SqlSource:
    """Compile a statement template into a reusable SqlSource.

    Args:
        template: ``<script>``-wrapped XML or plain SQL text.
        configuration: Settings, variables and SQL fragments; defaults to a
            fresh Configuration.

    Returns:
        A RawSqlSource when nothing depends on the parameter object,
        otherwise a DynamicSqlSource.
    """
    configuration = configuration or Configuration()
    if template.lstrip().startswith(_SCRIPT_TAG):
        root = _parse_xml(template, "statement template")
        source = XmlScriptBuilder(configuration, root).parse_script_node()
    else:
        text = substitute_variables(template, configuration.settings.variables)
        node = TextSqlNode(text)
        if node.is_dynamic():
            source = DynamicSqlSource(configuration, node)
        else:
            source = RawSqlSource(configuration, text)
    logger.debug("Compiled template into %s", type(source).__name__)
    return source


def compile_node(template: str, configuration: Configuration | None = None) -> SqlNode:
    """Compile a ``<script>`` template into its root node without wrapping it."""
    configuration = configuration or Configuration()
    root = _parse_xml(template, "statement template")
    builder = XmlScriptBuilder(configuration, root)
    _IncludeResolver(configuration).apply(root)
    return builder.parse_dynamic_tags(root)
