"""Enumerations shared across the engine and the mapping layer."""

from __future__ import annotations

from enum import Enum


class DatabaseBackend(Enum):
    """Supported database backends."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class AutoMappingBehavior(Enum):
    """Which result maps get unmapped columns auto-mapped.

    NONE disables auto-mapping, PARTIAL auto-maps only result maps without
    nested result maps, FULL auto-maps every result map.
    """

    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


class UnknownColumnBehavior(Enum):
    """What auto-mapping does with a column that matches no settable property."""

    NONE = "none"
    WARNING = "warning"
    FAILING = "failing"


class ParamStyle(Enum):
    """DB-API placeholder styles a bound statement can be rendered in."""

    QMARK = "qmark"
    FORMAT = "format"
    PYFORMAT = "pyformat"
    NAMED = "named"
    NUMERIC = "numeric"


class StatementKind(Enum):
    """Kind of mapped statement, derived from its leading keyword when not given."""

    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNKNOWN = "unknown"
