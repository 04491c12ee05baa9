"""RowGraph exception hierarchy.

All exceptions are RowGraph-specific. Raw driver exceptions are wrapped at
the engine boundary and chained with ``raise ... from``.
"""

from __future__ import annotations

from typing import Any


class RowGraphError(Exception):
    """Base exception for all RowGraph errors."""


# --- Templates ---


class TemplateError(RowGraphError):
    """Base for statement template errors. Always fatal."""


class ExpressionError(TemplateError):
    """Raised when a test/collection expression cannot be parsed or evaluated."""

    def __init__(self, expression: str, detail: str) -> None:
        self.expression = expression
        super().__init__(f"Error evaluating expression '{expression}': {detail}")


class UnknownFragmentError(TemplateError):
    """Raised when an include references a fragment id that is not registered."""

    def __init__(self, refid: str) -> None:
        self.refid = refid
        super().__init__(f"Could not find SQL fragment to include with refid '{refid}'")


class IterableBindingError(TemplateError):
    """Raised when a foreach collection expression is null or not iterable."""


class UnknownParameterError(TemplateError):
    """Raised when a template references a name the call did not supply."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(f"Parameter '{name}' not found. Available parameters are {available}")


class DuplicateIncludePropertyError(TemplateError):
    """Raised when an include declares the same property twice."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Variable '{name}' defined twice in the same include definition")


# --- Mapping ---


class MappingConfigurationError(RowGraphError):
    """Raised for malformed result map definitions."""


class ResultMapNotFoundError(MappingConfigurationError):
    """Raised when a result map id is not registered."""

    def __init__(self, result_map_id: str) -> None:
        self.result_map_id = result_map_id
        super().__init__(f"Result map not found: '{result_map_id}'")


class ConstructorResolutionError(MappingConfigurationError):
    """Raised when no constructor of the target type can be used for a row."""

    def __init__(self, target_type: type, detail: str) -> None:
        self.target_type = target_type
        super().__init__(f"Cannot create an instance of {target_type.__name__}: {detail}")


class ConversionError(RowGraphError):
    """Raised when a value converter fails for a result column or a statement parameter."""

    def __init__(
        self,
        column: str | None,
        target_type: Any,
        detail: str,
        statement_id: str | None = None,
        *,
        parameter: str | None = None,
    ) -> None:
        self.column = column
        self.parameter = parameter
        self.target_type = target_type
        self.detail = detail
        self.statement_id = statement_id
        type_name = getattr(target_type, "__name__", repr(target_type))
        subject = f"parameter '{parameter}'" if parameter is not None else f"column '{column}'"
        where = f" in statement '{statement_id}'" if statement_id else ""
        super().__init__(f"Could not convert {subject} to {type_name}{where}: {detail}")


class UnknownColumnError(RowGraphError):
    """Raised by the FAILING unknown-column policy during auto-mapping."""

    def __init__(self, statement_id: str | None, column: str, prop: str | None) -> None:
        self.statement_id = statement_id
        self.column = column
        self.property = prop
        super().__init__(
            f"Unknown column is detected on '{statement_id}' auto-mapping. "
            f"Mapping parameters are [columnName={column},propertyName={prop}]"
        )


# --- Execution ---


class ExecutionError(RowGraphError):
    """Base for statement execution errors."""


class MultipleRowsError(ExecutionError):
    """Raised when a single-row fetch encounters more than one row."""

    def __init__(self, statement_id: str, row_count: int) -> None:
        self.statement_id = statement_id
        self.row_count = row_count
        super().__init__(
            f"select_one for '{statement_id}' returned {row_count} rows (expected 0 or 1)"
        )


class ParameterBindingError(ExecutionError):
    """Raised on parameter binding or driver execution failures."""

    def __init__(self, statement_id: str, detail: str) -> None:
        self.statement_id = statement_id
        super().__init__(f"Parameter binding error for '{statement_id}': {detail}")


class NestedMappingSafetyError(ExecutionError):
    """Raised when row bounds or a custom handler meet an unordered nested result map."""


class LazyLoadError(ExecutionError):
    """Raised when a deferred nested query cannot be loaded."""


class SessionClosedError(ExecutionError):
    """Raised when a closed session is used."""


# --- Registry ---


class RegistryError(RowGraphError):
    """Base for statement registry errors."""


class StatementNotFoundError(RegistryError):
    """Raised when a statement id cannot be found."""

    def __init__(self, statement_id: str) -> None:
        self.statement_id = statement_id
        super().__init__(f"Statement not found: '{statement_id}'")


class DuplicateStatementError(RegistryError):
    """Raised when two templates resolve to the same statement id."""

    def __init__(self, statement_id: str, path_a: str, path_b: str) -> None:
        self.statement_id = statement_id
        super().__init__(f"Duplicate statement id '{statement_id}': {path_a} and {path_b}")


# --- Transaction ---


class TransactionError(RowGraphError):
    """Base for transaction errors."""


class TransactionStateError(TransactionError):
    """Raised on invalid session state transitions."""

    def __init__(self, current_state: str, attempted_action: str) -> None:
        self.current_state = current_state
        self.attempted_action = attempted_action
        super().__init__(f"Cannot {attempted_action} session in state '{current_state}'")


# --- Adapter ---


class AdapterError(RowGraphError):
    """Base for adapter errors."""


class ConnectionError(AdapterError):  # noqa: A001
    """Raised on connection failures."""
