"""Unit tests for value converters and cursor row access."""

from __future__ import annotations

import datetime
import enum
import uuid
from decimal import Decimal
from typing import Optional

import pytest

from rowgraph.core.exceptions import ConversionError
from rowgraph.mapping.types import (
    BoolConverter,
    EnumConverter,
    IntConverter,
    ObjectConverter,
    TypeConverter,
    TypeConverterRegistry,
)
from rowgraph.mapping.wrapper import RowWrapper, prepend_prefix


class Kind(enum.Enum):
    TEXT = "text"
    VIDEO = "video"


class UpperConverter(TypeConverter):
    python_type = str

    def to_python(self, value):
        return None if value is None else str(value).upper()


class CurrencyCodeConverter(TypeConverter):
    python_type = int

    def to_python(self, value):
        return {"USD": 1}[value]


@pytest.fixture
def registry() -> TypeConverterRegistry:
    return TypeConverterRegistry()


class TestConverters:
    def test_int_from_text_and_bytes(self) -> None:
        assert IntConverter().to_python("12") == 12
        assert IntConverter().to_python(b"7") == 7
        assert IntConverter().to_python(None) is None

    def test_bool_literals(self) -> None:
        converter = BoolConverter()
        assert converter.to_python("yes") is True
        assert converter.to_python("0") is False
        assert converter.to_python(1) is True
        with pytest.raises(ValueError, match="invalid boolean literal"):
            converter.to_python("maybe")

    def test_temporal(self, registry: TypeConverterRegistry) -> None:
        assert registry.get_converter(datetime.date).to_python("2024-01-02 10:00:00") == datetime.date(2024, 1, 2)
        assert registry.get_converter(datetime.datetime).to_python("2024-01-02T10:00:00") == datetime.datetime(
            2024, 1, 2, 10
        )
        assert registry.get_converter(datetime.time).to_python("10:30") == datetime.time(10, 30)

    def test_decimal_and_uuid(self, registry: TypeConverterRegistry) -> None:
        assert registry.get_converter(Decimal).to_python(1.5) == Decimal("1.5")
        value = "12345678-1234-5678-1234-567812345678"
        converter = registry.get_converter(uuid.UUID)
        assert converter.to_python(value) == uuid.UUID(value)
        assert converter.to_db(uuid.UUID(value)) == value

    def test_enum_by_value_then_name(self) -> None:
        converter = EnumConverter(Kind)
        assert converter.to_python("video") is Kind.VIDEO
        assert converter.to_python("TEXT") is Kind.TEXT
        assert converter.to_db(Kind.TEXT) == "text"
        with pytest.raises(ValueError):
            converter.to_python("audio")


class TestTypeConverterRegistry:
    def test_builtin_types(self, registry: TypeConverterRegistry) -> None:
        for tp in (int, float, Decimal, str, bool, bytes, datetime.datetime, datetime.date, uuid.UUID):
            assert registry.has_converter(tp)

    def test_optional_annotation_unwrapped(self, registry: TypeConverterRegistry) -> None:
        assert isinstance(registry.get_converter(Optional[int]), IntConverter)

    def test_unknown_type(self, registry: TypeConverterRegistry) -> None:
        assert registry.get_converter(dict) is None
        assert registry.get_converter(None) is None

    def test_object_falls_back_to_passthrough(self, registry: TypeConverterRegistry) -> None:
        assert isinstance(registry.get_converter(object), ObjectConverter)

    def test_enum_registered_on_demand(self, registry: TypeConverterRegistry) -> None:
        first = registry.get_converter(Kind)
        assert isinstance(first, EnumConverter)
        assert registry.get_converter(Kind) is first

    def test_declared_type_preferred(self, registry: TypeConverterRegistry) -> None:
        upper = UpperConverter()
        registry.register(upper, python_type=str, declared_type="CITEXT")
        assert registry.get_converter(str, "CITEXT") is upper
        assert registry.get_converter(str, "TEXT") is not upper

    def test_declared_only_converter(self, registry: TypeConverterRegistry) -> None:
        upper = UpperConverter()
        registry.register(upper, declared_type="CITEXT")
        assert registry.get_converter_for_declared("CITEXT") is upper
        assert registry.get_converter_for_declared(None) is None

    def test_to_db(self, registry: TypeConverterRegistry) -> None:
        assert registry.to_db(Kind.VIDEO) == "video"
        assert registry.to_db(None) is None
        assert registry.to_db([1]) == [1]


class TestRowWrapper:
    def test_columns_and_rows(self, cursor, registry: TypeConverterRegistry) -> None:
        rows = RowWrapper(cursor(("id", "Title"), [(1, "a"), (2, "b")]), registry)
        assert rows.column_names == ["id", "Title"]
        assert rows.next_row()
        assert rows.get_raw("TITLE") == "a"
        assert rows.has_column("title")
        assert not rows.has_column("missing")
        assert rows.get_raw("missing") is None
        assert rows.next_row()
        assert rows.get_raw("id") == 2
        assert not rows.next_row()

    def test_first_duplicate_label_wins(self, cursor, registry: TypeConverterRegistry) -> None:
        rows = RowWrapper(cursor(("id", "id"), [(1, 2)]), registry)
        rows.next_row()
        assert rows.get_raw("id") == 1

    def test_conversion_error_names_column(self, cursor, registry: TypeConverterRegistry) -> None:
        rows = RowWrapper(cursor(("id",), [("x",)]), registry, statement_id="blog.get")
        rows.next_row()
        with pytest.raises(ConversionError, match="Could not convert column 'id' to int in statement 'blog.get'"):
            rows.get_value("id", rows.get_converter(int, "id"))

    def test_any_converter_failure_is_wrapped(self, cursor, registry: TypeConverterRegistry) -> None:
        rows = RowWrapper(cursor(("currency",), [("EUR",)]), registry, statement_id="order.get")
        rows.next_row()
        with pytest.raises(ConversionError, match="column 'currency' to int in statement 'order.get': 'EUR'") as info:
            rows.get_value("currency", CurrencyCodeConverter())
        assert isinstance(info.value.__cause__, KeyError)

    def test_converter_falls_back_to_passthrough(self, cursor, registry: TypeConverterRegistry) -> None:
        rows = RowWrapper(cursor(("meta",), [({"a": 1},)]), registry)
        assert rows.get_converter(dict, "meta") is registry.object_converter
        assert rows.get_converter(None, "meta") is registry.object_converter

    def test_fetch_size_reads_in_batches(self, cursor, registry: TypeConverterRegistry) -> None:
        source = cursor(("id",), [(i,) for i in range(5)])
        rows = RowWrapper(source, registry, fetch_size=2)
        seen = []
        while rows.next_row():
            seen.append(rows.get_raw("id"))
        assert seen == [0, 1, 2, 3, 4]
        assert source.batches == [2, 2, 2, 2]

    def test_mapping_rows(self, registry: TypeConverterRegistry) -> None:
        class DictCursor:
            description = [("id",), ("name",)]

            def __init__(self) -> None:
                self.rows = [{"name": "n", "id": 1}]

            def fetchone(self):
                return self.rows.pop() if self.rows else None

        rows = RowWrapper(DictCursor(), registry)
        rows.next_row()
        assert rows.get_raw("id") == 1
        assert rows.declared_type("id") is None

    def test_prepend_prefix(self) -> None:
        assert prepend_prefix("id", "author_") == "author_id"
        assert prepend_prefix("id", None) == "id"
        assert prepend_prefix(None, "author_") is None
