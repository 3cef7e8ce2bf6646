"""Arithmetic formula parser and evaluator for shop-authored pricing formulas.

Formulas cross a trust boundary, so they are never handed to ``eval`` or the
``ast`` module.  A small tokenizer feeds a recursive-descent parser that builds
an immutable tree of nodes; evaluation walks that tree over plain floats.

Grammar (lowest to highest precedence)::

    expression  := comparison ( "?" expression ":" expression )?
    comparison  := additive ( ( "<" | "<=" | ">" | ">=" | "==" | "!=" ) additive )*
    additive    := term ( ( "+" | "-" ) term )*
    term        := unary ( ( "*" | "/" ) unary )*
    unary       := ( "+" | "-" ) unary | power
    power       := primary ( "^" unary )?
    primary     := NUMBER | NAME | NAME "(" arguments ")" | "(" expression ")"

Comparisons yield ``1.0`` or ``0.0``.  Only the functions in
:data:`FUNCTION_ARITY` may be called.  ``if(c, a, b)`` and the ternary operator
evaluate only the branch that is taken.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .errors import DivisionByZero, FormulaSyntaxError, UnknownVariable

LOGGER = logging.getLogger(__name__)

MAX_FORMULA_LENGTH = 2000
MAX_TOKENS = 500
MAX_DEPTH = 32

# name -> (min args, max args or None for variadic)
FUNCTION_ARITY: Dict[str, Tuple[int, Optional[int]]] = {
    "floor": (1, 1),
    "ceil": (1, 1),
    "round": (1, 2),
    "min": (1, None),
    "max": (1, None),
    "abs": (1, 1),
    "pow": (2, 2),
    "sqrt": (1, 1),
    "if": (3, 3),
}

_NUMBER_RE = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)
_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_OPERATORS = ("<=", ">=", "==", "!=", "+", "-", "*", "/", "^", "(", ")", ",", "?", ":", "<", ">")
_COMPARISONS = frozenset({"<", "<=", ">", ">=", "==", "!="})


@dataclass(frozen=True)
class Token:
    kind: str  # "number", "name", "op", "end"
    text: str
    position: int


# --- syntax tree -------------------------------------------------------------


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Name:
    name: str
    position: int


@dataclass(frozen=True)
class Unary:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class Binary:
    op: str
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class Conditional:
    test: "Node"
    then: "Node"
    otherwise: "Node"


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple["Node", ...]


Node = Union[Number, Name, Unary, Binary, Conditional, Call]


# --- tokenizer ---------------------------------------------------------------


def tokenize(formula: str, *, max_tokens: int = MAX_TOKENS) -> List[Token]:
    """Split ``formula`` into tokens, ending with an ``end`` token."""
    tokens: List[Token] = []
    pos = 0
    length = len(formula)
    while pos < length:
        char = formula[pos]
        if char.isspace():
            pos += 1
            continue
        number = _NUMBER_RE.match(formula, pos)
        name = None if number else _NAME_RE.match(formula, pos)
        if number:
            tokens.append(Token("number", number.group(0), pos))
            pos = number.end()
        elif name:
            tokens.append(Token("name", name.group(0), pos))
            pos = name.end()
        else:
            for op in _OPERATORS:
                if formula.startswith(op, pos):
                    tokens.append(Token("op", op, pos))
                    pos += len(op)
                    break
            else:
                raise FormulaSyntaxError(f"Unexpected character {char!r} at position {pos}", position=pos)
        if len(tokens) > max_tokens:
            raise FormulaSyntaxError(f"Formula exceeds {max_tokens} tokens", position=pos)
    tokens.append(Token("end", "", length))
    return tokens


# --- parser ------------------------------------------------------------------


class _Parser:
    def __init__(self, tokens: List[Token], max_depth: int) -> None:
        self.tokens = tokens
        self.index = 0
        self.depth = 0
        self.max_depth = max_depth

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _accept(self, text: str) -> bool:
        token = self.current
        if token.kind == "op" and token.text == text:
            self.index += 1
            return True
        return False

    def _expect(self, text: str) -> Token:
        token = self.current
        if token.kind == "op" and token.text == text:
            self.index += 1
            return token
        found = token.text or "end of formula"
        raise FormulaSyntaxError(f"Expected {text!r} but found {found!r}", position=token.position)

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > self.max_depth:
            raise FormulaSyntaxError(
                f"Formula nesting exceeds {self.max_depth} levels", position=self.current.position
            )

    def _leave(self) -> None:
        self.depth -= 1

    def parse(self) -> Node:
        node = self.expression()
        token = self.current
        if token.kind != "end":
            if token.text == ")":
                raise FormulaSyntaxError("Closing parenthesis without opening", position=token.position)
            raise FormulaSyntaxError(f"Unexpected {token.text!r}", position=token.position)
        return node

    def expression(self) -> Node:
        self._enter()
        try:
            test = self.comparison()
            if self._accept("?"):
                then = self.expression()
                self._expect(":")
                otherwise = self.expression()
                return Conditional(test, then, otherwise)
            return test
        finally:
            self._leave()

    def comparison(self) -> Node:
        node = self.additive()
        while self.current.kind == "op" and self.current.text in _COMPARISONS:
            op = self._advance().text
            node = Binary(op, node, self.additive())
        return node

    def additive(self) -> Node:
        node = self.term()
        while self.current.kind == "op" and self.current.text in ("+", "-"):
            op = self._advance().text
            node = Binary(op, node, self.term())
        return node

    def term(self) -> Node:
        node = self.unary()
        while self.current.kind == "op" and self.current.text in ("*", "/"):
            op = self._advance().text
            node = Binary(op, node, self.unary())
        return node

    def unary(self) -> Node:
        if self.current.kind == "op" and self.current.text in ("+", "-"):
            op = self._advance().text
            self._enter()
            try:
                return Unary(op, self.unary())
            finally:
                self._leave()
        return self.power()

    def power(self) -> Node:
        base = self.primary()
        if self._accept("^"):
            self._enter()
            try:
                return Binary("^", base, self.unary())
            finally:
                self._leave()
        return base

    def primary(self) -> Node:
        token = self.current
        if token.kind == "number":
            self._advance()
            value = float(token.text)
            if not math.isfinite(value):
                raise FormulaSyntaxError(f"Number out of range at position {token.position}", position=token.position)
            return Number(value)
        if token.kind == "name":
            self._advance()
            if self.current.kind == "op" and self.current.text == "(":
                return self._call(token)
            return Name(token.text, token.position)
        if self._accept("("):
            node = self.expression()
            if self.current.kind == "end":
                raise FormulaSyntaxError("Unclosed parenthesis", position=self.current.position)
            self._expect(")")
            return node
        if token.kind == "end":
            raise FormulaSyntaxError("Unexpected end of formula", position=token.position)
        raise FormulaSyntaxError(f"Unexpected {token.text!r}", position=token.position)

    def _call(self, name_token: Token) -> Node:
        name = name_token.text
        if name not in FUNCTION_ARITY:
            raise FormulaSyntaxError(
                f"Unknown or forbidden function: {name}()", position=name_token.position
            )
        self._expect("(")
        args: List[Node] = []
        if not self._accept(")"):
            args.append(self.expression())
            while self._accept(","):
                args.append(self.expression())
            if self.current.kind == "end":
                raise FormulaSyntaxError("Unclosed parenthesis", position=self.current.position)
            self._expect(")")
        low, high = FUNCTION_ARITY[name]
        if len(args) < low or (high is not None and len(args) > high):
            expected = str(low) if low == high else (f"{low}-{high}" if high else f"at least {low}")
            raise FormulaSyntaxError(
                f"{name}() takes {expected} argument(s), got {len(args)}", position=name_token.position
            )
        return Call(name, tuple(args))


# --- evaluation --------------------------------------------------------------


def _finite(value: float) -> float:
    if math.isnan(value) or math.isinf(value):
        raise DivisionByZero("Formula produced a non-finite result (possible division by zero)")
    return value


def _round_half_away(value: float, digits: float = 0.0) -> float:
    places = max(-15, min(15, int(digits)))
    number = Decimal(repr(value))
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, number.adjusted() + places + 2)
        return float(number.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP))


def _power(base: float, exponent: float) -> float:
    try:
        return math.pow(base, exponent)
    except (OverflowError, ValueError) as exc:
        raise DivisionByZero(f"Invalid power {base!r} ^ {exponent!r}: {exc}") from exc


def _sqrt(value: float) -> float:
    if value < 0:
        raise DivisionByZero(f"Square root of negative number {value!r}")
    return math.sqrt(value)


_SIMPLE_FUNCTIONS = {
    "floor": lambda x: float(math.floor(x)),
    "ceil": lambda x: float(math.ceil(x)),
    "round": _round_half_away,
    "min": lambda *xs: min(xs),
    "max": lambda *xs: max(xs),
    "abs": abs,
    "pow": _power,
    "sqrt": _sqrt,
}


def _binary(op: str, left: float, right: float) -> float:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if op == "/":
        if right == 0:
            raise DivisionByZero("Division by zero")
        return left / right
    if op == "^":
        return _power(left, right)
    if op == "<":
        return 1.0 if left < right else 0.0
    if op == "<=":
        return 1.0 if left <= right else 0.0
    if op == ">":
        return 1.0 if left > right else 0.0
    if op == ">=":
        return 1.0 if left >= right else 0.0
    if op == "==":
        return 1.0 if left == right else 0.0
    if op == "!=":
        return 1.0 if left != right else 0.0
    raise FormulaSyntaxError(f"Unsupported operator {op!r}")  # pragma: no cover - parser guards


def _eval(node: Node, variables: Mapping[str, float]) -> float:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Name):
        if node.name not in variables:
            raise UnknownVariable(node.name)
        return _finite(float(variables[node.name]))
    if isinstance(node, Unary):
        value = _eval(node.operand, variables)
        return -value if node.op == "-" else value
    if isinstance(node, Binary):
        left = _eval(node.left, variables)
        right = _eval(node.right, variables)
        return _finite(_binary(node.op, left, right))
    if isinstance(node, Conditional):
        branch = node.then if _eval(node.test, variables) != 0 else node.otherwise
        return _eval(branch, variables)
    if isinstance(node, Call):
        if node.name == "if":
            test, then, otherwise = node.args
            return _eval(then if _eval(test, variables) != 0 else otherwise, variables)
        args = [_eval(arg, variables) for arg in node.args]
        return _finite(_SIMPLE_FUNCTIONS[node.name](*args))
    raise FormulaSyntaxError(f"Unsupported node {node!r}")  # pragma: no cover - parser guards


def _collect_names(node: Node, seen: Dict[str, None]) -> None:
    if isinstance(node, Name):
        seen.setdefault(node.name, None)
    elif isinstance(node, Unary):
        _collect_names(node.operand, seen)
    elif isinstance(node, Binary):
        _collect_names(node.left, seen)
        _collect_names(node.right, seen)
    elif isinstance(node, Conditional):
        _collect_names(node.test, seen)
        _collect_names(node.then, seen)
        _collect_names(node.otherwise, seen)
    elif isinstance(node, Call):
        for arg in node.args:
            _collect_names(arg, seen)


@dataclass(frozen=True)
class Formula:
    """A parsed formula that can be evaluated repeatedly."""

    source: str
    root: Node
    variables: Tuple[str, ...]

    def evaluate(self, variables: Mapping[str, float]) -> float:
        return _finite(_eval(self.root, variables))


def parse(
    formula: str,
    *,
    max_length: int = MAX_FORMULA_LENGTH,
    max_tokens: int = MAX_TOKENS,
    max_depth: int = MAX_DEPTH,
) -> Formula:
    """Parse ``formula`` into a :class:`Formula` without evaluating it."""
    if formula is None or not str(formula).strip():
        raise FormulaSyntaxError("Formula cannot be empty", position=0)
    source = str(formula)
    if len(source) > max_length:
        raise FormulaSyntaxError(f"Formula exceeds {max_length} characters", position=max_length)
    root = _Parser(tokenize(source, max_tokens=max_tokens), max_depth).parse()
    seen: Dict[str, None] = {}
    _collect_names(root, seen)
    return Formula(source=source, root=root, variables=tuple(seen))


def evaluate(formula: str, variables: Mapping[str, float], **limits: int) -> float:
    """Evaluate ``formula`` over ``variables``.

    Raises :class:`FormulaSyntaxError`, :class:`UnknownVariable` or
    :class:`DivisionByZero`.
    """
    result = parse(formula, **limits).evaluate(variables)
    LOGGER.debug("Evaluated %r -> %r", formula, result)
    return result


def extract_variables(formula: str, **limits: int) -> List[str]:
    """Return the free identifiers of ``formula`` in order of first appearance."""
    return list(parse(formula, **limits).variables)


def try_formula(formula: str, sample_values: Mapping[str, Any]) -> Dict[str, Any]:
    """Evaluate ``formula`` against sample values for an editor preview.

    Never raises; failures are reported in the ``error`` entry.
    """
    try:
        parsed = parse(formula)
        values = {key: float(value) for key, value in sample_values.items()}
        result = parsed.evaluate(values)
    except (FormulaSyntaxError, UnknownVariable, DivisionByZero) as exc:
        return {"success": False, "error": exc.message, "kind": exc.kind}
    except (TypeError, ValueError, OverflowError) as exc:
        return {"success": False, "error": f"Invalid sample value: {exc}", "kind": "invalid_input"}
    return {
        "success": True,
        "result": _round_half_away(result, 2),
        "usedVariables": list(parsed.variables),
    }


__all__ = [
    "FUNCTION_ARITY",
    "MAX_FORMULA_LENGTH",
    "MAX_TOKENS",
    "MAX_DEPTH",
    "Formula",
    "Token",
    "tokenize",
    "parse",
    "evaluate",
    "extract_variables",
    "try_formula",
]
