"""Formula parsing for calculated score columns.

Formulas are arithmetic over number literals and column references written
as ``{col_id}``, e.g. ``"{col_1} * 2 + {col_2}"``. Supported operators are
``+ - * /`` with the usual precedence, unary minus and parentheses.
Overlong or deeply nested formulas are rejected as syntax errors.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Union


class FormulaError(ValueError):
    """A calculated column could not be given a well-defined value."""

    def __init__(self, message: str, *, column_id: str | None = None) -> None:
        super().__init__(message)
        self.column_id = column_id


class FormulaSyntaxError(FormulaError):
    pass


class UnknownColumnError(FormulaError):
    def __init__(self, reference: str, *, column_id: str | None = None) -> None:
        super().__init__(f"formula references unknown column '{reference}'", column_id=column_id)
        self.reference = reference


class CyclicFormulaError(FormulaError):
    def __init__(self, cycle: tuple[str, ...]) -> None:
        super().__init__(
            "cyclic column reference: " + " -> ".join(cycle),
            column_id=cycle[0] if cycle else None,
        )
        self.cycle = cycle


class FormulaArithmeticError(FormulaError):
    pass


@dataclass(frozen=True)
class Number:
    value: float

    def references(self) -> frozenset[str]:
        return frozenset()

    def evaluate(self, resolve: Callable[[str], float]) -> float:
        return self.value


@dataclass(frozen=True)
class ColumnRef:
    column_id: str

    def references(self) -> frozenset[str]:
        return frozenset((self.column_id,))

    def evaluate(self, resolve: Callable[[str], float]) -> float:
        return resolve(self.column_id)


@dataclass(frozen=True)
class Negate:
    operand: Expression

    def references(self) -> frozenset[str]:
        return self.operand.references()

    def evaluate(self, resolve: Callable[[str], float]) -> float:
        return -self.operand.evaluate(resolve)


@dataclass(frozen=True)
class BinaryOp:
    operator: str
    left: Expression
    right: Expression

    def references(self) -> frozenset[str]:
        return self.left.references() | self.right.references()

    def evaluate(self, resolve: Callable[[str], float]) -> float:
        left = self.left.evaluate(resolve)
        right = self.right.evaluate(resolve)
        if self.operator == "+":
            result = left + right
        elif self.operator == "-":
            result = left - right
        elif self.operator == "*":
            result = left * right
        else:
            if right == 0.0:
                raise FormulaArithmeticError("division by zero")
            result = left / right

        if not math.isfinite(result):
            raise FormulaArithmeticError(f"non-finite result for '{self.operator}'")
        return result


Expression = Union[Number, ColumnRef, Negate, BinaryOp]

MAX_FORMULA_TOKENS = 256
MAX_NESTING_DEPTH = 32

_TOKEN_PATTERN = re.compile(
    r"\s*(?:\{(?P<ref>[^{}]*)\}|(?P<number>\d+(?:\.\d*)?|\.\d+)|(?P<op>[-+*/()]))"
)


def tokenize(text: str) -> list[tuple[str, str]]:
    """Split a formula into ``(kind, value)`` tokens."""
    tokens: list[tuple[str, str]] = []
    position = 0
    stripped_end = len(text.rstrip())
    while position < stripped_end:
        match = _TOKEN_PATTERN.match(text, position)
        if match is None:
            raise FormulaSyntaxError(f"unexpected character {text[position]!r} at position {position}")
        kind = match.lastgroup
        value = match.group(kind) if kind else ""
        if kind == "ref":
            value = value.strip()
            if not value:
                raise FormulaSyntaxError(f"empty column reference at position {position}")
        tokens.append((kind or "", value))
        position = match.end()
    return tokens


class _Parser:
    def __init__(self, tokens: list[tuple[str, str]]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    def parse(self) -> Expression:
        if not self._tokens:
            raise FormulaSyntaxError("formula is empty")
        if len(self._tokens) > MAX_FORMULA_TOKENS:
            raise FormulaSyntaxError(f"formula is too long (more than {MAX_FORMULA_TOKENS} tokens)")
        expression = self._expression()
        if self._index != len(self._tokens):
            _, value = self._tokens[self._index]
            raise FormulaSyntaxError(f"unexpected token {value!r}")
        return expression

    def _peek(self) -> tuple[str, str] | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _advance(self) -> tuple[str, str]:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _expression(self) -> Expression:
        node = self._term()
        while (token := self._peek()) is not None and token in (("op", "+"), ("op", "-")):
            self._advance()
            node = BinaryOp(token[1], node, self._term())
        return node

    def _term(self) -> Expression:
        node = self._unary()
        while (token := self._peek()) is not None and token in (("op", "*"), ("op", "/")):
            self._advance()
            node = BinaryOp(token[1], node, self._unary())
        return node

    def _nested(self, parse: Callable[[], Expression]) -> Expression:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise FormulaSyntaxError(f"formula is nested more than {MAX_NESTING_DEPTH} levels deep")
        try:
            return parse()
        finally:
            self._depth -= 1

    def _unary(self) -> Expression:
        token = self._peek()
        if token == ("op", "-"):
            self._advance()
            return Negate(self._nested(self._unary))
        if token == ("op", "+"):
            self._advance()
            return self._nested(self._unary)
        return self._primary()

    def _primary(self) -> Expression:
        token = self._peek()
        if token is None:
            raise FormulaSyntaxError("formula ends unexpectedly")

        kind, value = self._advance()
        if kind == "number":
            return Number(float(value))
        if kind == "ref":
            return ColumnRef(value)
        if (kind, value) == ("op", "("):
            node = self._nested(self._expression)
            if self._peek() != ("op", ")"):
                raise FormulaSyntaxError("missing closing parenthesis")
            self._advance()
            return node
        raise FormulaSyntaxError(f"unexpected token {value!r}")


@lru_cache(maxsize=512)
def parse_formula(text: str) -> Expression:
    """Parse formula text into an expression tree."""
    return _Parser(tokenize(text)).parse()


def formula_references(text: str) -> tuple[str, ...]:
    """Column ids referenced in ``text`` in order of first appearance."""
    seen: dict[str, None] = {}
    for kind, value in tokenize(text):
        if kind == "ref":
            seen.setdefault(value, None)
    return tuple(seen)


__all__ = [
    "BinaryOp",
    "ColumnRef",
    "CyclicFormulaError",
    "Expression",
    "FormulaArithmeticError",
    "FormulaError",
    "FormulaSyntaxError",
    "MAX_FORMULA_TOKENS",
    "MAX_NESTING_DEPTH",
    "Negate",
    "Number",
    "UnknownColumnError",
    "formula_references",
    "parse_formula",
    "tokenize",
]
