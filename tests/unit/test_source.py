"""Unit tests for bound SQL and parameter rendering."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from decimal import Decimal

import pytest

from rowgraph.core.config import Configuration
from rowgraph.core.enums import ParamStyle
from rowgraph.core.exceptions import ConversionError, TemplateError, UnknownParameterError
from rowgraph.core.params import ParamMap
from rowgraph.mapping.types import TypeConverter
from rowgraph.scripting.builder import compile_template
from rowgraph.scripting.source import ParameterBinding, evaluate, parse_placeholders
from rowgraph.scripting.tokens import TokenParser, has_placeholder, substitute_variables


class Status(enum.Enum):
    ACTIVE = "active"
    RETIRED = "retired"


@dataclass
class Author:
    id: int
    username: str
    status: Status = Status.ACTIVE


@dataclass
class Money:
    amount: int
    currency: str


class MoneyConverter(TypeConverter):
    python_type = Money

    def to_db(self, value):
        return value.amount * {"USD": 100}[value.currency]


SQL = "SELECT * FROM author WHERE id = #{id} AND username LIKE '%' || #{username}"


class TestParamStyles:
    @pytest.fixture
    def bound(self, configuration: Configuration):
        return compile_template(SQL, configuration).get_bound_sql(Author(7, "jim"))

    def test_qmark(self, bound, configuration: Configuration) -> None:
        sql, params = bound.render(configuration, ParamStyle.QMARK)
        assert sql == "SELECT * FROM author WHERE id = ? AND username LIKE '%' || ?"
        assert params == [7, "jim"]

    def test_numeric(self, bound, configuration: Configuration) -> None:
        sql, _ = bound.render(configuration, "numeric")
        assert sql == "SELECT * FROM author WHERE id = :1 AND username LIKE '%' || :2"

    def test_format_escapes_percent(self, bound, configuration: Configuration) -> None:
        sql, params = bound.render(configuration, ParamStyle.FORMAT)
        assert sql == "SELECT * FROM author WHERE id = %s AND username LIKE '%%' || %s"
        assert params == [7, "jim"]

    def test_named(self, bound, configuration: Configuration) -> None:
        sql, params = bound.render(configuration, ParamStyle.NAMED)
        assert sql == "SELECT * FROM author WHERE id = :p1 AND username LIKE '%' || :p2"
        assert params == {"p1": 7, "p2": "jim"}

    def test_pyformat(self, bound, configuration: Configuration) -> None:
        sql, params = bound.render(configuration, ParamStyle.PYFORMAT)
        assert sql == "SELECT * FROM author WHERE id = %(p1)s AND username LIKE '%%' || %(p2)s"
        assert params == {"p1": 7, "p2": "jim"}

    def test_unknown_style(self, bound, configuration: Configuration) -> None:
        with pytest.raises(ValueError):
            bound.render(configuration, "dollar")


class TestParameterValues:
    def test_scalar_parameter_fills_every_placeholder(self, configuration: Configuration) -> None:
        sql, params = evaluate(compile_template("SELECT #{a}, #{b}", configuration), 3, configuration)
        assert sql == "SELECT ?, ?"
        assert params == [3, 3]

    def test_mapping_parameter(self, configuration: Configuration) -> None:
        source = compile_template("SELECT * FROM t WHERE a = #{a} AND b = #{nested.b}", configuration)
        assert evaluate(source, {"a": 1, "nested": {"b": 2}}, configuration)[1] == [1, 2]

    def test_null_parameter(self, configuration: Configuration) -> None:
        assert evaluate(compile_template("SELECT #{a}", configuration), None, configuration)[1] == [None]

    def test_values_converted_for_driver(self, configuration: Configuration) -> None:
        key = uuid.UUID("12345678-1234-5678-1234-567812345678")
        source = compile_template("SELECT #{status}, #{key}", configuration)
        params = evaluate(source, {"status": Status.RETIRED, "key": key}, configuration)[1]
        assert params == ["retired", "12345678-1234-5678-1234-567812345678"]

    def test_declared_python_type_coerces(self, configuration: Configuration) -> None:
        source = compile_template("SELECT #{id,python_type=int}", configuration)
        assert evaluate(source, {"id": "42"}, configuration)[1] == [42]

    def test_numeric_scale_rounds_decimals(self, configuration: Configuration) -> None:
        source = compile_template("SELECT #{price,numeric_scale=2}, #{rate,python_type=decimal,numeric_scale=1}", configuration)
        params = evaluate(source, {"price": Decimal("3.14159"), "rate": "0.25"}, configuration)[1]
        assert params == [Decimal("3.14"), Decimal("0.2")]

    def test_object_properties(self, configuration: Configuration) -> None:
        source = compile_template("SELECT #{username}, #{status}", configuration)
        assert evaluate(source, Author(1, "sally"), configuration)[1] == ["sally", "active"]

    def test_unknown_name_in_named_parameters(self, configuration: Configuration) -> None:
        source = compile_template("SELECT * FROM blog WHERE author_id = #{authr_id}", configuration)
        with pytest.raises(UnknownParameterError, match="Parameter 'authr_id' not found"):
            evaluate(source, ParamMap(author_id=101, title="x"), configuration)

    def test_unknown_name_in_test_expression(self, configuration: Configuration) -> None:
        source = compile_template(
            '<script>UPDATE blog SET draft = 1 <where><if test="titel != null">title = #{title}</if></where></script>',
            configuration,
        )
        with pytest.raises(UnknownParameterError, match=r"Available parameters are \['author_id', 'title'\]"):
            evaluate(source, ParamMap(author_id=101, title="x"), configuration)

    def test_plain_mapping_reads_missing_names_as_null(self, configuration: Configuration) -> None:
        source = compile_template("SELECT #{a}, #{missing}", configuration)
        assert evaluate(source, {"a": 1}, configuration)[1] == [1, None]

    def test_parameter_converter_failure_is_wrapped(self, configuration: Configuration) -> None:
        configuration.converters.register(MoneyConverter())
        source = compile_template("UPDATE account SET balance = #{balance}", configuration)
        assert evaluate(source, {"balance": Money(2, "USD")}, configuration)[1] == [200]
        with pytest.raises(ConversionError, match="Could not convert parameter 'balance' to Money: 'EUR'"):
            evaluate(source, {"balance": Money(2, "EUR")}, configuration)


class TestParameterBinding:
    def test_plain_property(self) -> None:
        binding = ParameterBinding.parse("user.id")
        assert binding.property == "user.id"
        assert binding.python_type is None
        assert binding.numeric_scale is None

    def test_declared_type_and_attributes(self) -> None:
        binding = ParameterBinding.parse("price:NUMERIC, python_type=decimal, numeric_scale=2")
        assert binding.property == "price"
        assert binding.declared_type == "NUMERIC"
        assert binding.numeric_scale == 2

    def test_invalid_attribute(self) -> None:
        with pytest.raises(TemplateError, match="An invalid property 'size'"):
            ParameterBinding.parse("id,size=3")

    def test_invalid_numeric_scale(self) -> None:
        with pytest.raises(TemplateError, match="numeric_scale must be a non-negative integer"):
            ParameterBinding.parse("price,numeric_scale=two")

    def test_mode_is_not_a_binding_attribute(self) -> None:
        with pytest.raises(TemplateError, match="An invalid property 'mode'"):
            ParameterBinding.parse("id,mode=OUT")

    def test_unknown_python_type(self) -> None:
        with pytest.raises(TemplateError, match="Unknown python_type"):
            ParameterBinding.parse("id,python_type=widget")

    def test_empty_property(self) -> None:
        with pytest.raises(TemplateError, match="has no property"):
            ParameterBinding.parse(" ")

    def test_placeholders_split_segments(self, configuration: Configuration) -> None:
        source = parse_placeholders(configuration, "a = #{a} AND b = #{b}")
        assert source.segments == ("a = ", " AND b = ", "")
        assert [b.property for b in source.bindings] == ["a", "b"]


class TestTokens:
    def test_escaped_open_token(self) -> None:
        parser = TokenParser("${", "}", lambda content: content.upper())
        assert parser.parse("\\${x} ${y}") == "${x} Y"

    def test_unclosed_token_kept(self) -> None:
        parser = TokenParser("${", "}", lambda content: "X")
        assert parser.parse("a ${b") == "a ${b"

    def test_substitute_variables_keeps_unknown(self) -> None:
        assert substitute_variables("${a}.${b}", {"a": "x"}) == "x.${b}"

    def test_has_placeholder(self) -> None:
        assert has_placeholder("ORDER BY ${col}")
        assert not has_placeholder("ORDER BY \\${col}")
        assert not has_placeholder("WHERE id = #{id}")
