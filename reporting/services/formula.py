"""
Aggregation formula parser and evaluator.

Formulas combine metric values of microgrid components into one scalar.
Two styles are supported and may be mixed:

- Aggregate functions: ``sum(#1, #2)``, ``avg(#3, #4)``, ``min(...)``,
  ``max(...)``. Names are case-insensitive and take one or more arguments.
- Arithmetic over component references: ``#1 + #2 - #3``,
  ``(#3 * #2) / #1``. Numeric constants are allowed; ``*`` and ``/`` bind
  tighter than ``+`` and ``-``; operators are left-associative; unary
  ``-`` and ``+`` are supported.

A component reference is ``#`` followed by the component ID (whitespace in
between is tolerated). Values are used exactly as stored, following the
passive sign convention; the evaluator never changes a sign on its own.

Evaluation yields None when a referenced component has no value, a
division by zero occurs or a value overflows to infinity; callers skip such
timestamps.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Union

from reporting.errors import FormulaSyntaxError

_TOKEN_RE = re.compile(
    r"""
    (?P<number>\d+(?:\.\d*)?(?:[eE][-+]?\d+)?|\.\d+(?:[eE][-+]?\d+)?)
  | \#\s*(?P<component>\d+)
  | (?P<name>[A-Za-z_][A-Za-z_0-9]*)
  | (?P<op>[-+*/(),])
    """,
    re.VERBOSE,
)


def _mean(values: list[float]) -> float:
    return sum(values) / len(values)


FUNCTIONS: dict[str, Callable[[list[float]], float]] = {
    "sum": sum,
    "avg": _mean,
    "min": min,
    "max": max,
}

# Parentheses and function calls nest at most this deep.
MAX_NESTING_DEPTH = 32
MAX_FORMULA_LENGTH = 65_536


def _finite(value: float | None) -> float | None:
    """Return *value*, or None if it overflowed to inf or is nan."""
    if value is None or not math.isfinite(value):
        return None
    return value


# ---------------------------------------------------------------------------
# Expression tree
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Constant:
    """A numeric literal."""

    value: float

    def evaluate(self, values: Mapping[int, float]) -> float | None:
        return self.value

    def component_ids(self) -> frozenset[int]:
        return frozenset()


@dataclass(frozen=True)
class ComponentRef:
    """The metric value of one component."""

    component_id: int

    def evaluate(self, values: Mapping[int, float]) -> float | None:
        return _finite(values.get(self.component_id))

    def component_ids(self) -> frozenset[int]:
        return frozenset({self.component_id})


@dataclass(frozen=True)
class Negate:
    """Unary minus."""

    operand: Expression

    def evaluate(self, values: Mapping[int, float]) -> float | None:
        result = self.operand.evaluate(values)
        return None if result is None else -result

    def component_ids(self) -> frozenset[int]:
        return self.operand.component_ids()


@dataclass(frozen=True)
class Chain:
    """Operands joined left to right by operators of one precedence level.

    ``#1 - #2 + #3`` is ``Chain(#1, (("-", #2), ("+", #3)))``. Long sums
    stay a single flat node.
    """

    first: Expression
    rest: tuple[tuple[str, Expression], ...]

    def evaluate(self, values: Mapping[int, float]) -> float | None:
        result = self.first.evaluate(values)
        for op, operand in self.rest:
            right = operand.evaluate(values)
            if result is None or right is None:
                return None
            if op == "+":
                result = result + right
            elif op == "-":
                result = result - right
            elif op == "*":
                result = result * right
            elif right == 0:
                return None
            else:
                result = result / right
            result = _finite(result)
        return result

    def component_ids(self) -> frozenset[int]:
        ids = set(self.first.component_ids())
        for _, operand in self.rest:
            ids |= operand.component_ids()
        return frozenset(ids)


@dataclass(frozen=True)
class FunctionCall:
    """An aggregate function over one or more sub-expressions."""

    name: str
    args: tuple[Expression, ...]

    def evaluate(self, values: Mapping[int, float]) -> float | None:
        results = [arg.evaluate(values) for arg in self.args]
        if any(result is None for result in results):
            return None
        return _finite(FUNCTIONS[self.name]([r for r in results if r is not None]))

    def component_ids(self) -> frozenset[int]:
        ids: set[int] = set()
        for arg in self.args:
            ids |= arg.component_ids()
        return frozenset(ids)


Expression = Union[Constant, ComponentRef, Negate, Chain, FunctionCall]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int


def _tokenize(formula: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(formula):
        if formula[pos].isspace():
            pos += 1
            continue
        match = _TOKEN_RE.match(formula, pos)
        if match is None:
            raise FormulaSyntaxError(
                formula, pos, f"unexpected character {formula[pos]!r}"
            )
        kind = match.lastgroup
        assert kind is not None
        tokens.append(_Token(kind=kind, text=match.group(kind), pos=pos))
        pos = match.end()
    return tokens


class _Parser:
    """Recursive-descent parser over a token list.

    Recursion only deepens with parentheses and function calls, which are
    limited to MAX_NESTING_DEPTH levels.
    """

    def __init__(self, formula: str, tokens: list[_Token]) -> None:
        self._formula = formula
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    def parse(self) -> Expression:
        if not self._tokens:
            raise FormulaSyntaxError(self._formula, 0, "formula is empty")
        expression = self._expression()
        token = self._peek()
        if token is not None:
            raise self._error(token.pos, f"unexpected {token.text!r}")
        return expression

    # expression := term (("+" | "-") term)*
    def _expression(self) -> Expression:
        return self._chain(self._term, "+", "-")

    # term := unary (("*" | "/") unary)*
    def _term(self) -> Expression:
        return self._chain(self._unary, "*", "/")

    def _chain(self, operand: Callable[[], Expression], *ops: str) -> Expression:
        first = operand()
        rest: list[tuple[str, Expression]] = []
        while self._peek_op(*ops):
            op = self._advance().text
            rest.append((op, operand()))
        return Chain(first, tuple(rest)) if rest else first

    # unary := ("-" | "+")* primary
    def _unary(self) -> Expression:
        negate = False
        while self._peek_op("-", "+"):
            if self._advance().text == "-":
                negate = not negate
        operand = self._primary()
        return Negate(operand) if negate else operand

    # primary := number | component | name "(" args ")" | "(" expression ")"
    def _primary(self) -> Expression:
        token = self._peek()
        if token is None:
            raise self._error(len(self._formula), "unexpected end of formula")
        self._advance()

        if token.kind == "number":
            value = float(token.text)
            if not math.isfinite(value):
                raise self._error(token.pos, f"number {token.text!r} is out of range")
            return Constant(value)
        if token.kind == "component":
            return ComponentRef(int(token.text))
        if token.kind == "name":
            name = token.text.lower()
            if name not in FUNCTIONS:
                raise self._error(token.pos, f"unknown function {token.text!r}")
            self._expect("(")
            self._enter(token)
            args = [self._expression()]
            while self._peek_op(","):
                self._advance()
                args.append(self._expression())
            self._expect(")")
            self._depth -= 1
            return FunctionCall(name, tuple(args))
        if token.text == "(":
            self._enter(token)
            expression = self._expression()
            self._expect(")")
            self._depth -= 1
            return expression
        raise self._error(token.pos, f"unexpected {token.text!r}")

    def _enter(self, token: _Token) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise self._error(
                token.pos, f"nesting deeper than {MAX_NESTING_DEPTH} levels"
            )

    def _peek(self) -> _Token | None:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _peek_op(self, *ops: str) -> bool:
        token = self._peek()
        return token is not None and token.kind == "op" and token.text in ops

    def _advance(self) -> _Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _expect(self, op: str) -> None:
        if not self._peek_op(op):
            token = self._peek()
            pos = len(self._formula) if token is None else token.pos
            raise self._error(pos, f"expected {op!r}")
        self._advance()

    def _error(self, pos: int, reason: str) -> FormulaSyntaxError:
        return FormulaSyntaxError(self._formula, pos, reason)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Formula:
    """A parsed aggregation formula.

    Attributes:
        text: The formula as written.
        expression: Root of the expression tree.
    """

    text: str
    expression: Expression

    @property
    def component_ids(self) -> frozenset[int]:
        """IDs of every component the formula references."""
        return self.expression.component_ids()

    def evaluate(self, values: Mapping[int, float]) -> float | None:
        """Evaluate the formula over per-component values.

        Args:
            values: Metric value of each component at one timestamp.

        Returns:
            float | None: The result, or None if a referenced component has
                no value, a division by zero occurred or the result is not
                a finite number.
        """
        return _finite(self.expression.evaluate(values))


def parse_formula(text: str) -> Formula:
    """Parse an aggregation formula.

    Args:
        text: Formula source, e.g. ``"#1 + #2 - #3"`` or ``"avg(#3, #4)"``.

    Returns:
        Formula: The parsed formula.

    Raises:
        FormulaSyntaxError: If the formula is empty, malformed, longer than
            MAX_FORMULA_LENGTH characters or nested too deeply.
    """
    if len(text) > MAX_FORMULA_LENGTH:
        raise FormulaSyntaxError(
            text, MAX_FORMULA_LENGTH, f"longer than {MAX_FORMULA_LENGTH} characters"
        )
    return Formula(text=text, expression=_Parser(text, _tokenize(text)).parse())
