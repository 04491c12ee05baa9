"""Structural row identity used to de-duplicate join-flattened rows."""

from __future__ import annotations

from typing import Any

from rowgraph.core.exceptions import RowGraphError

_MULTIPLIER = 37
_INITIAL_HASH = 17
_HASH_MASK = (1 << 64) - 1


def _value_hash(value: Any) -> int:
    if value is None:
        return 1
    try:
        return hash(value)
    except TypeError:
        return hash(repr(value))


class RowKey:
    """Order-sensitive accumulator of the values identifying a row.

    Two keys are equal when they accumulated equal values in the same
    order. A key holding fewer than two values does not identify a row;
    callers replace it with ``NULL_ROW_KEY``.
    """

    __slots__ = ("_hash", "_checksum", "_count", "_values")

    def __init__(self, values: list[Any] | tuple[Any, ...] = ()) -> None:
        self._hash = _INITIAL_HASH
        self._checksum = 0
        self._count = 0
        self._values: list[Any] = []
        for value in values:
            self.update(value)

    @property
    def update_count(self) -> int:
        return self._count

    def update(self, value: Any) -> None:
        base = _value_hash(value)
        self._count += 1
        self._checksum += base
        base *= self._count
        self._hash = (_MULTIPLIER * self._hash + base) & _HASH_MASK
        self._values.append(value)

    def update_all(self, values: list[Any] | tuple[Any, ...]) -> None:
        for value in values:
            self.update(value)

    def clone(self) -> RowKey:
        copy = RowKey()
        copy._hash = self._hash
        copy._checksum = self._checksum
        copy._count = self._count
        copy._values = list(self._values)
        return copy

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, RowKey) or isinstance(other, _NullRowKey):
            return False
        return (
            self._hash == other._hash
            and self._checksum == other._checksum
            and self._count == other._count
            and self._values == other._values
        )

    def __hash__(self) -> int:
        return hash(self._hash)

    def __repr__(self) -> str:
        return f"RowKey({self._hash}:{self._checksum}:{':'.join(map(repr, self._values))})"


class _NullRowKey(RowKey):
    """Sentinel for rows without a stable identity; equal only to itself."""

    __slots__ = ()

    def update(self, value: Any) -> None:
        raise RowGraphError("Not allowed to update a null row key instance.")

    def update_all(self, values: list[Any] | tuple[Any, ...]) -> None:
        raise RowGraphError("Not allowed to update a null row key instance.")

    def clone(self) -> RowKey:
        return self

    def __eq__(self, other: object) -> bool:
        return self is other

    def __hash__(self) -> int:
        return id(self)

    def __repr__(self) -> str:
        return "NULL_ROW_KEY"


NULL_ROW_KEY: RowKey = _NullRowKey()
