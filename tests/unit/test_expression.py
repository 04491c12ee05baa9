"""Unit tests for the template expression language."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from rowgraph.core.exceptions import ExpressionError, IterableBindingError
from rowgraph.scripting.expression import ExpressionEvaluator, to_boolean


@dataclass
class User:
    name: str | None = None
    age: int = 0


@pytest.fixture
def evaluator() -> ExpressionEvaluator:
    return ExpressionEvaluator()


class TestBooleanEvaluation:
    def test_null_checks(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate_boolean("title != null", {"title": "x"})
        assert not evaluator.evaluate_boolean("title != null", {"title": None})
        assert evaluator.evaluate_boolean("title == null", {})

    def test_keyword_and_symbol_operators(self, evaluator: ExpressionEvaluator) -> None:
        bindings = {"a": 1, "b": 0}
        assert evaluator.evaluate_boolean("a == 1 and b == 0", bindings)
        assert evaluator.evaluate_boolean("a == 1 && b == 0", bindings)
        assert evaluator.evaluate_boolean("a == 2 or b == 0", bindings)
        assert evaluator.evaluate_boolean("a == 2 || b == 0", bindings)
        assert evaluator.evaluate_boolean("not b", bindings)
        assert evaluator.evaluate_boolean("!b", bindings)

    def test_word_comparators(self, evaluator: ExpressionEvaluator) -> None:
        bindings = {"price": 12}
        assert evaluator.evaluate_boolean("price gte 10", bindings)
        assert evaluator.evaluate_boolean("price gt 11", bindings)
        assert evaluator.evaluate_boolean("price lte 12", bindings)
        assert not evaluator.evaluate_boolean("price lt 12", bindings)
        assert evaluator.evaluate_boolean("price eq 12", bindings)
        assert evaluator.evaluate_boolean("price neq 13", bindings)

    def test_numeric_string_comparison(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate_boolean("limit > 5", {"limit": "10"})

    def test_membership(self, evaluator: ExpressionEvaluator) -> None:
        bindings = {"status": "open", "statuses": ["open", "closed"]}
        assert evaluator.evaluate_boolean("status in statuses", bindings)
        assert not evaluator.evaluate_boolean("status not in statuses", bindings)
        assert not evaluator.evaluate_boolean("status in missing", bindings)

    def test_boolean_coercion(self, evaluator: ExpressionEvaluator) -> None:
        assert not evaluator.evaluate_boolean("count", {"count": 0})
        assert evaluator.evaluate_boolean("count", {"count": 3})
        assert evaluator.evaluate_boolean("name", {"name": ""})
        assert not evaluator.evaluate_boolean("name", {"name": None})

    def test_to_boolean(self) -> None:
        assert to_boolean(True) is True
        assert to_boolean(0.0) is False
        assert to_boolean([]) is True
        assert to_boolean(None) is False


class TestValueEvaluation:
    def test_property_paths(self, evaluator: ExpressionEvaluator) -> None:
        bindings = {"user": User(name="ann", age=31), "tags": ["sale", "new"], "meta": {"k": "v"}}
        assert evaluator.value("user.name", bindings) == "ann"
        assert evaluator.value("tags[0]", bindings) == "sale"
        assert evaluator.value("meta.k", bindings) == "v"
        assert evaluator.value("meta['k']", bindings) == "v"

    def test_null_safe_navigation(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.value("user.name", {"user": None}) is None

    def test_methods(self, evaluator: ExpressionEvaluator) -> None:
        bindings = {"ids": [1, 2, 3], "name": "  bob  ", "empty": []}
        assert evaluator.value("ids.size()", bindings) == 3
        assert evaluator.value("name.trim()", bindings) == "bob"
        assert evaluator.value("name.trim().length()", bindings) == 3
        assert evaluator.evaluate_boolean("empty.isEmpty()", bindings)
        assert evaluator.evaluate_boolean("ids.contains(2)", bindings)

    def test_arithmetic_and_concatenation(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.value("a * 2 + 1", {"a": 4}) == 9
        assert evaluator.value("-a", {"a": 4}) == -4
        assert evaluator.value("'%' + name + '%'", {"name": "bob"}) == "%bob%"

    def test_literals(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.value("1.5", {}) == 1.5
        assert evaluator.value("'it\\'s'", {}) == "it's"
        assert evaluator.value('"double"', {}) == "double"
        assert evaluator.value("true", {}) is True
        assert evaluator.value("null", {}) is None

    def test_keyword_prefixed_names(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.value("nullable", {"nullable": 1}) == 1
        assert evaluator.value("order_by", {"order_by": "id"}) == "id"


class TestErrors:
    def test_unparseable_expression(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError, match="a =="):
            evaluator.value("a ==", {})

    def test_missing_attribute(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError, match="no property 'missing'"):
            evaluator.value("user.missing", {"user": User()})

    def test_method_on_null(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError, match="called on null"):
            evaluator.value("ids.size()", {"ids": None})

    def test_incomparable_values(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(ExpressionError):
            evaluator.evaluate_boolean("a > b", {"a": User(), "b": 1})


class TestIterableEvaluation:
    def test_returns_iterable(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate_iterable("ids", {"ids": (1, 2)}) == (1, 2)

    def test_mapping_returned_as_is(self, evaluator: ExpressionEvaluator) -> None:
        value = {"a": 1}
        assert evaluator.evaluate_iterable("m", {"m": value}) is value

    def test_null_rejected(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(IterableBindingError, match="null value"):
            evaluator.evaluate_iterable("ids", {"ids": None})

    def test_null_allowed_when_nullable(self, evaluator: ExpressionEvaluator) -> None:
        assert evaluator.evaluate_iterable("ids", {"ids": None}, nullable=True) is None

    def test_string_is_not_iterable(self, evaluator: ExpressionEvaluator) -> None:
        with pytest.raises(IterableBindingError, match="was not iterable"):
            evaluator.evaluate_iterable("name", {"name": "abc"})
