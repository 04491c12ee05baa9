"""Scripting layer - dynamic SQL templates compiled to node trees."""

from __future__ import annotations

from rowgraph.scripting.builder import compile_node, compile_template
from rowgraph.scripting.context import DynamicContext
from rowgraph.scripting.expression import ExpressionEvaluator
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
)
from rowgraph.scripting.source import BoundSql, DynamicSqlSource, RawSqlSource, SqlSource, evaluate

__all__ = [
    "compile_template",
    "compile_node",
    "evaluate",
    "BoundSql",
    "SqlSource",
    "RawSqlSource",
    "DynamicSqlSource",
    "DynamicContext",
    "ExpressionEvaluator",
    "SqlNode",
    "StaticTextSqlNode",
    "TextSqlNode",
    "MixedSqlNode",
    "IfSqlNode",
    "ChooseSqlNode",
    "VarDeclSqlNode",
    "TrimSqlNode",
    "WhereSqlNode",
    "SetSqlNode",
    "ForEachSqlNode",
]
