"""
Restricted arithmetic expressions for pricing rules.

Rule expressions are small formulas such as ``basePrice * 0.20`` or
``[DE-VAT-STD] + 25``. This module tokenizes and parses them into an
immutable AST and evaluates that AST over Decimal bindings. Nothing is ever
handed to ``eval`` or to Python's own parser.

Grammar::

    expression := sum (COMPARE_OP sum)?          # comparisons do not chain
    sum        := product (("+" | "-") product)*
    product    := unary (("*" | "/") unary)*
    unary      := "-" unary | "+" unary | primary
    primary    := NUMBER | NAME | "[" REF "]" | "(" expression ")"
    NAME       := [A-Za-z_][A-Za-z0-9_.]*
    REF        := any characters except "]"

Allowed:
  - Arithmetic: + - * / and unary minus/plus
  - Comparisons: == != < <= > >=, yielding 1 or 0
  - Decimal literals (parsed from their source text, never via float)
  - Names, and bracketed references for names containing other characters

Rejected:
  - function calls, attribute access, strings, exponentiation, anything else
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Context, Decimal, DivisionByZero, InvalidOperation, Overflow, localcontext
from enum import Enum
from functools import lru_cache
from typing import Any, Union

from pricing_kernel.exceptions import (
    DivisionByZeroError,
    ExpressionSyntaxError,
    ExpressionTypeError,
    UnboundParameterError,
)

MAX_EXPRESSION_LENGTH = 1000
MAX_NESTING_DEPTH = 64

# Arithmetic context shared by every evaluation, independent of the
# calling thread's decimal context.
_CONTEXT = Context(prec=34, rounding=ROUND_HALF_EVEN, traps=[InvalidOperation, DivisionByZero, Overflow])

_ONE = Decimal(1)
_ZERO = Decimal(0)


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------


class TokenKind(str, Enum):
    NUMBER = "number"
    NAME = "name"
    REF = "ref"
    OP = "op"
    COMPARE = "compare"
    LPAREN = "("
    RPAREN = ")"
    END = "end"


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    position: int


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>\d+(?:\.\d*)?|\.\d+)
  | (?P<name>[A-Za-z_][A-Za-z0-9_.]*)
  | (?P<ref>\[[^\]]*\])
  | (?P<compare>==|!=|<=|>=|<|>)
  | (?P<op>[-+*/])
  | (?P<lparen>\()
  | (?P<rparen>\))
    """,
    re.VERBOSE,
)

_GROUP_KINDS = {
    "number": TokenKind.NUMBER,
    "name": TokenKind.NAME,
    "ref": TokenKind.REF,
    "compare": TokenKind.COMPARE,
    "op": TokenKind.OP,
    "lparen": TokenKind.LPAREN,
    "rparen": TokenKind.RPAREN,
}


def tokenize(text: str) -> list[Token]:
    """Split expression text into tokens, ending with an END token."""
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            if text[pos] == "[":
                raise ExpressionSyntaxError(text, "Unterminated reference", pos)
            raise ExpressionSyntaxError(text, f"Unexpected character {text[pos]!r}", pos)
        group = match.lastgroup
        if group != "ws":
            tokens.append(Token(_GROUP_KINDS[group], match.group(), pos))
        pos = match.end()
    tokens.append(Token(TokenKind.END, "", len(text)))
    return tokens


# ---------------------------------------------------------------------------
# AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Number:
    value: Decimal


@dataclass(frozen=True, slots=True)
class Name:
    name: str
    position: int = 0


@dataclass(frozen=True, slots=True)
class UnaryOp:
    op: str
    operand: Node


@dataclass(frozen=True, slots=True)
class BinaryOp:
    op: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Compare:
    op: str
    left: Node
    right: Node


Node = Union[Number, Name, UnaryOp, BinaryOp, Compare]


def referenced_names(node: Node) -> frozenset[str]:
    """All parameter names an AST reads."""
    if isinstance(node, Name):
        return frozenset({node.name})
    if isinstance(node, UnaryOp):
        return referenced_names(node.operand)
    if isinstance(node, (BinaryOp, Compare)):
        return referenced_names(node.left) | referenced_names(node.right)
    return frozenset()


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class _Parser:
    """Recursive-descent parser over the token list."""

    def __init__(self, text: str):
        self._text = text
        self._tokens = tokenize(text)
        self._index = 0
        self._depth = 0

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _error(self, message: str, token: Token | None = None) -> ExpressionSyntaxError:
        token = token or self._peek()
        return ExpressionSyntaxError(self._text, message, token.position)

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise self._error(f"Expression nested deeper than {MAX_NESTING_DEPTH} levels")

    def parse(self) -> Node:
        if self._peek().kind is TokenKind.END:
            raise self._error("Empty expression")
        node = self._expression()
        token = self._peek()
        if token.kind is not TokenKind.END:
            raise self._error(f"Unexpected token {token.text!r}", token)
        return node

    def _expression(self) -> Node:
        left = self._sum()
        if self._peek().kind is TokenKind.COMPARE:
            op = self._advance().text
            right = self._sum()
            if self._peek().kind is TokenKind.COMPARE:
                raise self._error("Comparisons cannot be chained")
            return Compare(op, left, right)
        return left

    def _sum(self) -> Node:
        node = self._product()
        while self._peek().kind is TokenKind.OP and self._peek().text in "+-":
            op = self._advance().text
            node = BinaryOp(op, node, self._product())
        return node

    def _product(self) -> Node:
        node = self._unary()
        while self._peek().kind is TokenKind.OP and self._peek().text in "*/":
            op = self._advance().text
            node = BinaryOp(op, node, self._unary())
        return node

    def _unary(self) -> Node:
        token = self._peek()
        if token.kind is TokenKind.OP and token.text in "+-":
            self._advance()
            self._enter()
            operand = self._unary()
            self._depth -= 1
            return UnaryOp(token.text, operand)
        return self._primary()

    def _primary(self) -> Node:
        token = self._advance()
        if token.kind is TokenKind.NUMBER:
            return Number(Decimal(token.text))
        if token.kind is TokenKind.NAME:
            return Name(token.text, token.position)
        if token.kind is TokenKind.REF:
            ref = token.text[1:-1].strip()
            if not ref:
                raise self._error("Empty reference", token)
            return Name(ref, token.position)
        if token.kind is TokenKind.LPAREN:
            self._enter()
            node = self._expression()
            closing = self._advance()
            if closing.kind is not TokenKind.RPAREN:
                raise self._error("Expected ')'", closing)
            self._depth -= 1
            return node
        if token.kind is TokenKind.END:
            raise self._error("Unexpected end of expression", token)
        raise self._error(f"Unexpected token {token.text!r}", token)


@dataclass(frozen=True)
class Expression:
    """A parsed, immutable expression; safe to share between threads."""

    text: str
    root: Node
    names: frozenset[str]

    def evaluate(self, bindings: Mapping[str, Any]) -> Decimal:
        with localcontext(_CONTEXT):
            return _evaluate(self.root, bindings, self.text)


@lru_cache(maxsize=2048)
def parse_expression(text: str) -> Expression:
    """
    Parse expression text into an ``Expression``.

    Results are cached per text; a failing parse is not cached.

    Raises:
        ExpressionSyntaxError: If the text does not match the grammar.
    """
    if not isinstance(text, str):
        raise ExpressionSyntaxError(repr(text), "Expression must be a string", 0)
    if len(text) > MAX_EXPRESSION_LENGTH:
        raise ExpressionSyntaxError(
            text[:40] + "...", f"Expression longer than {MAX_EXPRESSION_LENGTH} characters", 0
        )
    root = _Parser(text).parse()
    return Expression(text=text, root=root, names=referenced_names(root))


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _lookup(node: Name, bindings: Mapping[str, Any]) -> Decimal:
    if node.name not in bindings:
        raise UnboundParameterError(node.name)
    value = bindings[node.name]
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ExpressionTypeError(node.name, "non-finite Decimal")
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    raise ExpressionTypeError(node.name, type(value).__name__)


def _compare(op: str, left: Decimal, right: Decimal) -> bool:
    if op == "==":
        return left == right
    if op == "!=":
        return left != right
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _evaluate(node: Node, bindings: Mapping[str, Any], text: str) -> Decimal:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Name):
        return _lookup(node, bindings)
    if isinstance(node, UnaryOp):
        operand = _evaluate(node.operand, bindings, text)
        return -operand if node.op == "-" else +operand
    if isinstance(node, Compare):
        left = _evaluate(node.left, bindings, text)
        right = _evaluate(node.right, bindings, text)
        return _ONE if _compare(node.op, left, right) else _ZERO

    left = _evaluate(node.left, bindings, text)
    right = _evaluate(node.right, bindings, text)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    if right == 0:
        raise DivisionByZeroError(text)
    return left / right


def evaluate_expression(text: str, bindings: Mapping[str, Any]) -> Decimal:
    """Parse (cached) and evaluate ``text`` over ``bindings``."""
    return parse_expression(text).evaluate(bindings)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpressionIssue:
    """A validation problem found in an expression."""

    expression: str
    message: str
    position: int = 0


def validate_expression(
    text: str,
    allowed_names: frozenset[str] | None = None,
) -> list[ExpressionIssue]:
    """Validate an expression without evaluating it.

    Returns a list of issues. An empty list means the expression is valid.
    When ``allowed_names`` is given, names outside it are reported too.
    """
    try:
        expression = parse_expression(text)
    except ExpressionSyntaxError as e:
        return [ExpressionIssue(expression=str(text), message=e.reason, position=e.position)]

    issues: list[ExpressionIssue] = []
    if allowed_names is not None:
        for name in sorted(expression.names - allowed_names):
            issues.append(ExpressionIssue(expression=text, message=f"Unknown parameter: {name}"))
    return issues


class ExpressionEvaluator:
    """
    Evaluates rule expressions against a declared parameter list.

    When ``declared`` is non-empty the expression sees only those names;
    a declared name with no binding raises UnboundParameterError.
    """

    def evaluate(
        self,
        text: str,
        bindings: Mapping[str, Any],
        declared: tuple[str, ...] = (),
    ) -> Decimal:
        expression = parse_expression(text)
        if declared:
            missing = [name for name in declared if name not in bindings]
            if missing:
                raise UnboundParameterError(missing[0])
            bindings = {name: bindings[name] for name in declared}
        return expression.evaluate(bindings)

    def parse(self, text: str) -> Expression:
        return parse_expression(text)

    def validate(self, text: str, allowed_names: frozenset[str] | None = None) -> list[ExpressionIssue]:
        return validate_expression(text, allowed_names)
