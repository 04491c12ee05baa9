"""Expression language for template tests, collections and bindings.

Expressions are parsed once with a Lark LALR grammar and cached by source
text; each evaluation walks the cached tree with an ``Interpreter`` bound to
the current context bindings.

Supported syntax::

    user != null and user.name != ''
    ids != null && ids.size() > 0
    not archived
    status in statuses
    price gte 10 or (tags[0] == 'sale')
"""

from __future__ import annotations

import operator
import re
from collections.abc import Iterable, Mapping
from decimal import Decimal
from functools import lru_cache
from typing import Any

from lark import Lark, Token, Tree
from lark.exceptions import LarkError
from lark.visitors import Interpreter

from rowgraph.core.exceptions import ExpressionError, IterableBindingError


_GRAMMAR = r"""
?start: or_test

?or_test: and_test
        | or_test "or" and_test         -> or_
        | or_test "||" and_test         -> or_

?and_test: not_test
         | and_test "and" not_test      -> and_
         | and_test "&&" not_test       -> and_

?not_test: "not" not_test               -> not_
         | "!" not_test                 -> not_
         | comparison

?comparison: sum
           | sum comp_op sum            -> compare
           | sum "in" sum               -> in_
           | sum "not" "in" sum         -> not_in

!comp_op: "==" | "!=" | "<" | "<=" | ">" | ">="
        | "eq" | "neq" | "lt" | "lte" | "gt" | "gte"

?sum: product
    | sum add_op product                -> arith

!add_op: "+" | "-"

?product: unary
        | product mul_op unary          -> arith

!mul_op: "*" | "/" | "%"

?unary: "-" unary                       -> neg
      | postfix

?postfix: atom
        | postfix "." NAME              -> attr
        | postfix "." NAME "(" [arguments] ")"  -> method
        | postfix "[" or_test "]"       -> item

arguments: or_test ("," or_test)*

?atom: NAME                             -> var
     | NUMBER                           -> number
     | STRING                           -> string
     | "true"                           -> true
     | "false"                          -> false
     | "null"                           -> null
     | "(" or_test ")"

NAME: /[A-Za-z_$][A-Za-z0-9_$]*/
NUMBER: /\d+(\.\d+)?([eE][+-]?\d+)?/
STRING: /'(?:[^'\\]|\\.)*'/ | /"(?:[^"\\]|\\.)*"/

%ignore /\s+/
"""

_parser = Lark(_GRAMMAR, parser="lalr", start="start")

_ESCAPE = re.compile(r"\\(.)")

_COMPARATORS = {
    "==": operator.eq,
    "eq": operator.eq,
    "!=": operator.ne,
    "neq": operator.ne,
    "<": operator.lt,
    "lt": operator.lt,
    "<=": operator.le,
    "lte": operator.le,
    ">": operator.gt,
    "gt": operator.gt,
    ">=": operator.ge,
    "gte": operator.ge,
}

_ARITHMETIC = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
}


@lru_cache(maxsize=1024)
def parse_expression(expression: str) -> Tree | Token:
    """Parse *expression* into a cached syntax tree."""
    try:
        return _parser.parse(expression)
    except LarkError as e:
        raise ExpressionError(expression, str(e)) from e


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _as_number(text: str) -> Any:
    try:
        return float(text)
    except ValueError:
        return text


def _coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Compare strings against numbers numerically when the string parses."""
    if _is_number(left) and isinstance(right, str):
        return left, _as_number(right)
    if isinstance(left, str) and _is_number(right):
        return _as_number(left), right
    return left, right


def to_boolean(value: Any) -> bool:
    """Bool stays bool, numbers are true when non-zero, anything else when not None."""
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return value != 0
    return value is not None


class _Evaluator(Interpreter):
    """Evaluates one parsed expression against a bindings mapping."""

    def __init__(self, expression: str, bindings: Mapping[str, Any]) -> None:
        self._expression = expression
        self._bindings = bindings

    def evaluate(self, tree: Tree | Token) -> Any:
        if isinstance(tree, Token):
            return self._token_value(tree)
        return self.visit(tree)

    def _value(self, node: Tree | Token) -> Any:
        if isinstance(node, Token):
            return self._token_value(node)
        return self.visit(node)

    def _lookup(self, name: str) -> Any:
        try:
            return self._bindings[name]
        except KeyError:
            return None

    def _token_value(self, token: Token) -> Any:
        if token.type == "NAME":
            return self._lookup(str(token))
        if token.type == "NUMBER":
            return self._number(str(token))
        if token.type == "STRING":
            return self._string(str(token))
        raise ExpressionError(self._expression, f"unexpected token {token!r}")

    # --- boolean logic ---

    def or_(self, tree: Tree) -> bool:
        left, right = tree.children
        return to_boolean(self._value(left)) or to_boolean(self._value(right))

    def and_(self, tree: Tree) -> bool:
        left, right = tree.children
        return to_boolean(self._value(left)) and to_boolean(self._value(right))

    def not_(self, tree: Tree) -> bool:
        return not to_boolean(self._value(tree.children[0]))

    # --- comparisons ---

    def compare(self, tree: Tree) -> bool:
        left_node, op_node, right_node = tree.children
        op = str(op_node.children[0])
        left, right = _coerce_pair(self._value(left_node), self._value(right_node))
        try:
            return bool(_COMPARATORS[op](left, right))
        except TypeError as e:
            raise ExpressionError(self._expression, str(e)) from e

    def in_(self, tree: Tree) -> bool:
        needle, haystack = (self._value(child) for child in tree.children)
        if haystack is None:
            return False
        try:
            return needle in haystack
        except TypeError as e:
            raise ExpressionError(self._expression, str(e)) from e

    def not_in(self, tree: Tree) -> bool:
        return not self.in_(tree)

    # --- arithmetic ---

    def arith(self, tree: Tree) -> Any:
        left_node, op_node, right_node = tree.children
        op = str(op_node.children[0])
        left = self._value(left_node)
        right = self._value(right_node)
        if op == "+" and (isinstance(left, str) or isinstance(right, str)):
            return f"{'' if left is None else left}{'' if right is None else right}"
        try:
            return _ARITHMETIC[op](left, right)
        except (TypeError, ArithmeticError) as e:
            raise ExpressionError(self._expression, str(e)) from e

    def neg(self, tree: Tree) -> Any:
        value = self._value(tree.children[0])
        try:
            return -value
        except TypeError as e:
            raise ExpressionError(self._expression, str(e)) from e

    # --- navigation ---

    def attr(self, tree: Tree) -> Any:
        target_node, name = tree.children
        target = self._value(target_node)
        return self._property(target, str(name))

    def item(self, tree: Tree) -> Any:
        target_node, key_node = tree.children
        target = self._value(target_node)
        key = self._value(key_node)
        if target is None:
            return None
        if isinstance(target, Mapping):
            return target.get(key)
        try:
            return target[int(key)]
        except (IndexError, TypeError, ValueError) as e:
            raise ExpressionError(self._expression, f"cannot index with {key!r}: {e}") from e

    def method(self, tree: Tree) -> Any:
        target_node, name, arguments = tree.children
        target = self._value(target_node)
        args = [] if arguments is None else [self._value(arg) for arg in arguments.children]
        return self._call(target, str(name), args)

    def var(self, tree: Tree) -> Any:
        return self._lookup(str(tree.children[0]))

    # --- literals ---

    def number(self, tree: Tree) -> Any:
        return self._number(str(tree.children[0]))

    def string(self, tree: Tree) -> str:
        return self._string(str(tree.children[0]))

    def true(self, tree: Tree) -> bool:
        return True

    def false(self, tree: Tree) -> bool:
        return False

    def null(self, tree: Tree) -> None:
        return None

    @staticmethod
    def _number(text: str) -> Any:
        if "." in text or "e" in text or "E" in text:
            return float(text)
        return int(text)

    @staticmethod
    def _string(text: str) -> str:
        return _ESCAPE.sub(r"\1", text[1:-1])

    def _property(self, target: Any, name: str) -> Any:
        if target is None:
            return None
        if isinstance(target, Mapping):
            return target.get(name)
        try:
            return getattr(target, name)
        except AttributeError as e:
            raise ExpressionError(
                self._expression, f"no property '{name}' on {type(target).__name__}"
            ) from e

    def _call(self, target: Any, name: str, args: list[Any]) -> Any:
        if target is None:
            raise ExpressionError(self._expression, f"method '{name}' called on null")
        if name in ("size", "length") and not args:
            return len(target)
        if name == "isEmpty" and not args:
            return len(target) == 0
        if isinstance(target, str):
            if name == "trim":
                return target.strip()
            if name == "toUpperCase":
                return target.upper()
            if name == "toLowerCase":
                return target.lower()
            if name == "startsWith":
                return target.startswith(*args)
            if name == "endsWith":
                return target.endswith(*args)
        if name == "contains" and len(args) == 1:
            return args[0] in target
        if name == "containsKey" and len(args) == 1 and isinstance(target, Mapping):
            return args[0] in target
        if name == "equals" and len(args) == 1:
            return target == args[0]
        if name == "toString" and not args:
            return str(target)
        func = getattr(target, name, None)
        if not callable(func):
            raise ExpressionError(
                self._expression, f"no method '{name}' on {type(target).__name__}"
            )
        try:
            return func(*args)
        except Exception as e:
            raise ExpressionError(self._expression, str(e)) from e


class ExpressionEvaluator:
    """Boolean, iterable and value evaluation over context bindings."""

    def value(self, expression: str, bindings: Mapping[str, Any]) -> Any:
        tree = parse_expression(expression.strip())
        return _Evaluator(expression, bindings).evaluate(tree)

    def evaluate_boolean(self, expression: str, bindings: Mapping[str, Any]) -> bool:
        return to_boolean(self.value(expression, bindings))

    def evaluate_iterable(
        self,
        expression: str,
        bindings: Mapping[str, Any],
        nullable: bool = False,
    ) -> Iterable[Any] | None:
        """Evaluate a collection expression.

        Mappings are returned as-is so callers can iterate entries. A null
        result returns None when *nullable*, otherwise raises.
        """
        value = self.value(expression, bindings)
        if value is None:
            if nullable:
                return None
            raise IterableBindingError(f"The expression '{expression}' evaluated to a null value.")
        if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
            raise IterableBindingError(
                f"Error evaluating expression '{expression}'. "
                f"Return value ({value!r}) was not iterable."
            )
        return value
