"""Unit tests for row identity keys."""

from __future__ import annotations

import pytest

from rowgraph.core.exceptions import RowGraphError
from rowgraph.mapping.row_key import NULL_ROW_KEY, RowKey


class TestRowKey:
    def test_equal_values_equal_keys(self) -> None:
        assert RowKey(["blog", 1]) == RowKey(["blog", 1])
        assert hash(RowKey(["blog", 1])) == hash(RowKey(["blog", 1]))

    def test_order_matters(self) -> None:
        assert RowKey([1, 2]) != RowKey([2, 1])

    def test_none_is_a_value(self) -> None:
        assert RowKey([None, 1]) != RowKey([1])
        assert RowKey([None]) == RowKey([None])

    def test_update_count(self) -> None:
        key = RowKey()
        key.update("a")
        key.update_all(["b", "c"])
        assert key.update_count == 3

    def test_unhashable_values(self) -> None:
        assert RowKey([[1, 2]]) == RowKey([[1, 2]])

    def test_clone_is_independent(self) -> None:
        key = RowKey(["a"])
        copy = key.clone()
        copy.update("b")
        assert key == RowKey(["a"])
        assert copy == RowKey(["a", "b"])

    def test_usable_as_dict_key(self) -> None:
        objects = {RowKey(["post", 1]): "first"}
        assert objects[RowKey(["post", 1])] == "first"


class TestNullRowKey:
    def test_equal_only_to_itself(self) -> None:
        assert NULL_ROW_KEY == NULL_ROW_KEY
        assert NULL_ROW_KEY != RowKey()
        assert RowKey() != NULL_ROW_KEY

    def test_cannot_be_updated(self) -> None:
        with pytest.raises(RowGraphError, match="null row key"):
            NULL_ROW_KEY.update(1)
        with pytest.raises(RowGraphError, match="null row key"):
            NULL_ROW_KEY.update_all([1])

    def test_clone_returns_itself(self) -> None:
        assert NULL_ROW_KEY.clone() is NULL_ROW_KEY
