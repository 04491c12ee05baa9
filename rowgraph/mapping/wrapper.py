"""Row access over a DB-API cursor.

``RowWrapper`` captures column labels and declared types once per cursor,
reads one row at a time, and memoizes which columns a result map claims.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from rowgraph.core.exceptions import ConversionError, RowGraphError
from rowgraph.mapping.types import TypeConverter, TypeConverterRegistry

if TYPE_CHECKING:
    from rowgraph.mapping.result_map import ResultMap


def prepend_prefix(column: str | None, prefix: str | None) -> str | None:
    if column is None or not prefix:
        return column
    return prefix + column


class RowWrapper:
    """Column metadata and the current row of one cursor.

    Args:
        cursor: An executed DB-API cursor (``description`` + ``fetchone``).
        converters: Registry used to resolve per-column value converters.
        statement_id: Used in conversion error messages.
        fetch_size: When set, rows are pulled ``fetchmany(fetch_size)`` at a
            time instead of one ``fetchone`` per row.
    """

    def __init__(
        self,
        cursor: Any,
        converters: TypeConverterRegistry,
        statement_id: str | None = None,
        fetch_size: int | None = None,
    ) -> None:
        self.cursor = cursor
        self.fetch_size = fetch_size
        self.converters = converters
        self.statement_id = statement_id
        description = cursor.description or ()
        self.column_names: list[str] = [desc[0] for desc in description]
        self.declared_types: list[Any] = [
            desc[1] if len(desc) > 1 else None for desc in description
        ]
        self._index = {name.upper(): i for i, name in reversed(list(enumerate(self.column_names)))}
        self._converter_cache: dict[tuple[str, Any, Any], TypeConverter] = {}
        self._mapped_columns: dict[str, list[str]] = {}
        self._unmapped_columns: dict[str, list[str]] = {}
        self._row: Sequence[Any] | None = None
        self._buffer: deque[Any] = deque()

    # --- row cursor ---

    def next_row(self) -> bool:
        """Advance to the next row; False when the cursor is exhausted."""
        row = self._fetch()
        if row is None:
            self._row = None
            return False
        if isinstance(row, Mapping):
            self._row = [row.get(name) for name in self.column_names]
        else:
            self._row = row
        return True

    def _fetch(self) -> Any:
        if not self.fetch_size:
            return self.cursor.fetchone()
        if not self._buffer:
            self._buffer.extend(self.cursor.fetchmany(self.fetch_size))
        return self._buffer.popleft() if self._buffer else None

    def has_column(self, column: str | None) -> bool:
        return column is not None and column.upper() in self._index

    def get_raw(self, column: str) -> Any:
        """Value of *column* in the current row, or None when it is not in the cursor."""
        index = self._index.get(column.upper())
        if index is None or self._row is None:
            return None
        return self._row[index]

    def get_value(self, column: str, converter: TypeConverter, target_type: Any = None) -> Any:
        """Converted value of *column*; converter failures carry the column name."""
        raw = self.get_raw(column)
        try:
            return converter.to_python(raw)
        except RowGraphError:
            raise
        except Exception as e:
            raise ConversionError(
                column, target_type or converter.python_type, str(e), self.statement_id
            ) from e

    def declared_type(self, column: str) -> Any:
        index = self._index.get(column.upper())
        return None if index is None else self.declared_types[index]

    # --- converters ---

    def get_converter(
        self, python_type: Any, column: str, declared_type: Any = None
    ) -> TypeConverter:
        """Best converter for reading *column* into *python_type*.

        *declared_type* overrides the type the cursor reports for the
        column. Prefers (python type, declared type), then python type
        alone, then declared type alone, then the passthrough converter.
        """
        declared = declared_type if declared_type is not None else self.declared_type(column)
        key = (column.upper(), python_type, declared)
        cached = self._converter_cache.get(key)
        if cached is not None:
            return cached
        converter = None
        if python_type is not None and python_type is not object:
            converter = self.converters.get_converter(python_type, declared)
        if converter is None:
            converter = self.converters.get_converter_for_declared(declared)
        if converter is None:
            converter = self.converters.object_converter
        self._converter_cache[key] = converter
        return converter

    # --- mapped / unmapped classification ---

    def mapped_column_names(self, result_map: ResultMap, column_prefix: str | None) -> list[str]:
        key = self._map_key(result_map, column_prefix)
        if key not in self._mapped_columns:
            self._classify(result_map, column_prefix, key)
        return self._mapped_columns[key]

    def unmapped_column_names(self, result_map: ResultMap, column_prefix: str | None) -> list[str]:
        key = self._map_key(result_map, column_prefix)
        if key not in self._unmapped_columns:
            self._classify(result_map, column_prefix, key)
        return self._unmapped_columns[key]

    def _classify(self, result_map: ResultMap, column_prefix: str | None, key: str) -> None:
        mapped_columns = {
            prepend_prefix(column, column_prefix).upper() for column in result_map.mapped_columns
        }
        mapped: list[str] = []
        unmapped: list[str] = []
        for name in self.column_names:
            if name.upper() in mapped_columns:
                mapped.append(name.upper())
            else:
                unmapped.append(name)
        self._mapped_columns[key] = mapped
        self._unmapped_columns[key] = unmapped

    @staticmethod
    def _map_key(result_map: ResultMap, column_prefix: str | None) -> str:
        return f"{result_map.id}:{column_prefix or ''}"
