"""RowGraph - dynamic SQL templates and result-to-object-graph mapping."""

from __future__ import annotations

from rowgraph.core.config import Configuration, Settings
from rowgraph.core.connection import ConnectionConfig, ConnectionManager
from rowgraph.core.engine import Engine
from rowgraph.core.enums import (
    AutoMappingBehavior,
    DatabaseBackend,
    ParamStyle,
    StatementKind,
    UnknownColumnBehavior,
)
from rowgraph.core.exceptions import (
    AdapterError,
    ConnectionError,  # noqa: A004
    ConstructorResolutionError,
    ConversionError,
    DuplicateIncludePropertyError,
    DuplicateStatementError,
    ExecutionError,
    ExpressionError,
    IterableBindingError,
    LazyLoadError,
    MappingConfigurationError,
    MultipleRowsError,
    NestedMappingSafetyError,
    ParameterBindingError,
    RegistryError,
    ResultMapNotFoundError,
    RowGraphError,
    SessionClosedError,
    StatementNotFoundError,
    TemplateError,
    TransactionError,
    TransactionStateError,
    UnknownColumnError,
    UnknownFragmentError,
    UnknownParameterError,
)
from rowgraph.core.params import Param
from rowgraph.core.registry import TemplateRegistry
from rowgraph.core.session import Session
from rowgraph.core.statement import MappedStatement
from rowgraph.mapping import (
    DefaultResultHandler,
    LazyResult,
    ResultContext,
    ResultHandler,
    RowBounds,
    automap_constructor,
    materialize,
    result_map,
)
from rowgraph.repository import Repository, execute, select
from rowgraph.scripting import compile_template, evaluate

compile = compile_template  # noqa: A001

__all__ = [
    # Templates
    "compile",
    "compile_template",
    "evaluate",
    # Mapping
    "materialize",
    "result_map",
    "automap_constructor",
    "RowBounds",
    "ResultContext",
    "ResultHandler",
    "DefaultResultHandler",
    "LazyResult",
    # Configuration
    "Configuration",
    "Settings",
    "MappedStatement",
    "TemplateRegistry",
    # Connection
    "ConnectionConfig",
    "ConnectionManager",
    # Engine
    "Engine",
    "Session",
    # Repository
    "Repository",
    "select",
    "execute",
    "Param",
    # Enums
    "AutoMappingBehavior",
    "DatabaseBackend",
    "ParamStyle",
    "StatementKind",
    "UnknownColumnBehavior",
    # Exceptions
    "RowGraphError",
    "TemplateError",
    "ExpressionError",
    "UnknownFragmentError",
    "UnknownParameterError",
    "IterableBindingError",
    "DuplicateIncludePropertyError",
    "MappingConfigurationError",
    "ResultMapNotFoundError",
    "ConstructorResolutionError",
    "ConversionError",
    "UnknownColumnError",
    "ExecutionError",
    "MultipleRowsError",
    "ParameterBindingError",
    "NestedMappingSafetyError",
    "LazyLoadError",
    "SessionClosedError",
    "RegistryError",
    "StatementNotFoundError",
    "DuplicateStatementError",
    "TransactionError",
    "TransactionStateError",
    "AdapterError",
    "ConnectionError",
]
