"""Value converters between database column values and Python types.

The registry resolves a converter by ``(python type, declared column type)``,
then by python type alone, then by declared type alone. ``ObjectConverter``
passes values through unchanged and is the fallback for unknown types.
"""

from __future__ import annotations

import datetime
import enum
import uuid
from decimal import Decimal
from typing import Any

from rowgraph.mapping.reflection import raw_type

_TRUE_STRINGS = frozenset({"1", "t", "true", "y", "yes", "on"})
_FALSE_STRINGS = frozenset({"0", "f", "false", "n", "no", "off"})


class TypeConverter:
    """Base converter. Subclasses override ``to_python`` and optionally ``to_db``."""

    python_type: Any = object

    def to_python(self, value: Any) -> Any:
        return value

    def to_db(self, value: Any) -> Any:
        return value

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class ObjectConverter(TypeConverter):
    """Passthrough converter for values of unknown type."""


class IntConverter(TypeConverter):
    python_type = int

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (bytes, bytearray)):
            value = value.decode()
        return int(value)


class FloatConverter(TypeConverter):
    python_type = float

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        return float(value)


class DecimalConverter(TypeConverter):
    python_type = Decimal

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, Decimal):
            return value
        return Decimal(str(value))


class StrConverter(TypeConverter):
    python_type = str

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode("utf-8")
        return str(value)


class BoolConverter(TypeConverter):
    python_type = bool

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
            raise ValueError(f"invalid boolean literal {value!r}")
        return bool(value)


class BytesConverter(TypeConverter):
    python_type = bytes

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, bytes):
            return value
        if isinstance(value, str):
            return value.encode("utf-8")
        return bytes(value)


class DateConverter(TypeConverter):
    python_type = datetime.date

    def to_python(self, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, datetime.date):
            return value
        return datetime.date.fromisoformat(str(value)[:10])


class DateTimeConverter(TypeConverter):
    python_type = datetime.datetime

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, datetime.datetime):
            return value
        if isinstance(value, datetime.date):
            return datetime.datetime(value.year, value.month, value.day)
        if isinstance(value, (int, float)):
            return datetime.datetime.fromtimestamp(value, tz=datetime.timezone.utc)
        return datetime.datetime.fromisoformat(str(value))


class TimeConverter(TypeConverter):
    python_type = datetime.time

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, datetime.time):
            return value
        if isinstance(value, datetime.datetime):
            return value.time()
        return datetime.time.fromisoformat(str(value))


class UUIDConverter(TypeConverter):
    python_type = uuid.UUID

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, uuid.UUID):
            return value
        if isinstance(value, (bytes, bytearray)) and len(value) == 16:
            return uuid.UUID(bytes=bytes(value))
        return uuid.UUID(str(value))

    def to_db(self, value: Any) -> Any:
        return None if value is None else str(value)


class EnumConverter(TypeConverter):
    """Converts by enum value first, then by member name."""

    def __init__(self, enum_type: type[enum.Enum]) -> None:
        self.python_type = enum_type

    def to_python(self, value: Any) -> Any:
        if value is None or isinstance(value, self.python_type):
            return value
        try:
            return self.python_type(value)
        except ValueError:
            if isinstance(value, str) and value in self.python_type.__members__:
                return self.python_type[value]
            raise

    def to_db(self, value: Any) -> Any:
        return value.value if isinstance(value, enum.Enum) else value

    def __repr__(self) -> str:
        return f"EnumConverter({self.python_type.__name__})"


class TypeConverterRegistry:
    """Registry of value converters keyed by python type and declared column type."""

    def __init__(self) -> None:
        self._by_type: dict[Any, dict[Any, TypeConverter]] = {}
        self._by_declared: dict[Any, TypeConverter] = {}
        self._object_converter = ObjectConverter()
        for converter in (
            IntConverter(),
            FloatConverter(),
            DecimalConverter(),
            StrConverter(),
            BoolConverter(),
            BytesConverter(),
            DateTimeConverter(),
            DateConverter(),
            TimeConverter(),
            UUIDConverter(),
        ):
            self.register(converter)
        self.register(self._object_converter, python_type=object)

    @property
    def object_converter(self) -> TypeConverter:
        return self._object_converter

    def register(
        self,
        converter: TypeConverter,
        python_type: Any = None,
        declared_type: Any = None,
    ) -> None:
        """Register *converter* for a python type, a declared type, or both."""
        if python_type is None and declared_type is not None:
            self._by_declared[declared_type] = converter
            return
        target = python_type if python_type is not None else converter.python_type
        self._by_type.setdefault(target, {})[declared_type] = converter

    def has_converter(self, python_type: Any, declared_type: Any = None) -> bool:
        return self.get_converter(python_type, declared_type) is not None

    def get_converter(self, python_type: Any, declared_type: Any = None) -> TypeConverter | None:
        """Converter for *python_type*, preferring one registered for *declared_type*."""
        if python_type is None:
            return None
        target = raw_type(python_type)
        if target is Any:
            target = object
        by_declared = self._by_type.get(target)
        if by_declared is None and isinstance(target, type) and issubclass(target, enum.Enum):
            converter = EnumConverter(target)
            self.register(converter)
            return converter
        if by_declared is None:
            return None
        if declared_type is not None and declared_type in by_declared:
            return by_declared[declared_type]
        if None in by_declared:
            return by_declared[None]
        return next(iter(by_declared.values()))

    def get_converter_for_declared(self, declared_type: Any) -> TypeConverter | None:
        if declared_type is None:
            return None
        return self._by_declared.get(declared_type)

    def to_db(self, value: Any) -> Any:
        """Convert a parameter value to what the driver accepts."""
        if value is None:
            return None
        converter = self.get_converter(type(value))
        return value if converter is None else converter.to_db(value)
