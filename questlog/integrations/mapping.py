"""Field mapping for external records.

Two small, deterministic evaluators used by the sync engine:

- ``resolve_path`` walks a dot path (``start.dateTime``, ``items.0.name``)
  through mappings and lists. Missing segments yield ``None``.
- ``compile_formula`` / ``evaluate_formula`` evaluate XP formulas written in a
  restricted expression grammar: numbers, quoted strings, dot-path
  identifiers, ``+ - * / %``, unary ``- + !``, parentheses, comparisons,
  ``&& ||``, the ternary ``c ? a : b``, and the functions
  ``floor ceil round min max abs`` (``Math.floor`` etc. are accepted too).

Nothing here ever calls ``eval``; a formula can only read the record.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from questlog.errors import ValidationError
from questlog.models.constants import DEFAULT_EXTERNAL_XP, MAX_ESTIMATED_XP, MAX_FORMULA_LENGTH

logger = logging.getLogger(__name__)


class FormulaError(ValidationError):
    """Formula could not be parsed or evaluated."""


def resolve_path(record: Any, path: Optional[str]) -> Any:
    """Value at ``path`` inside ``record``, or None if any segment is missing."""
    if not path or not isinstance(path, str):
        return None
    current = record
    for segment in path.split("."):
        if isinstance(current, Mapping):
            if segment not in current:
                return None
            current = current[segment]
        elif isinstance(current, (list, tuple)) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<number>\d+(?:\.\d*)?|\.\d+)
      | (?P<string>'[^']*'|"[^"]*")
      | (?P<ident>[A-Za-z_$][\w$]*(?:\.[\w$]+)*)
      | (?P<op>===|!==|==|!=|<=|>=|&&|\|\||[-+*/%<>!?:(),])
    )
    """,
    re.X,
)


@dataclass(frozen=True)
class Token:
    kind: str  # "number" | "string" | "ident" | "op" | "end"
    value: str
    pos: int


def tokenize(formula: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    text = formula.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m or m.end() == pos:
            raise FormulaError(f"Unexpected character at position {pos}: {text[pos]!r}", field="estimated_xp_formula")
        kind = m.lastgroup
        tokens.append(Token(kind, m.group(kind), m.start(kind)))
        pos = m.end()
    tokens.append(Token("end", "", len(text)))
    return tokens


def _as_number(value: Any) -> Union[int, float]:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value) if any(c in value for c in ".eE") else int(value)
        except ValueError:
            pass
    raise FormulaError(f"Not a number: {value!r}", field="estimated_xp_formula")


def _comparable(value: Any) -> Any:
    try:
        return _as_number(value)
    except FormulaError:
        return value


def _divide(a, b):
    if b == 0:
        raise FormulaError("Division by zero", field="estimated_xp_formula")
    return a / b


def _modulo(a, b):
    if b == 0:
        raise FormulaError("Modulo by zero", field="estimated_xp_formula")
    return math.fmod(a, b)


def _round_half_up(x):
    return math.floor(x + 0.5)


_BINARY_OPS: Dict[str, Callable[[Any, Any], Any]] = {
    "+": lambda a, b: _as_number(a) + _as_number(b),
    "-": lambda a, b: _as_number(a) - _as_number(b),
    "*": lambda a, b: _as_number(a) * _as_number(b),
    "/": lambda a, b: _divide(_as_number(a), _as_number(b)),
    "%": lambda a, b: _modulo(_as_number(a), _as_number(b)),
    "<": lambda a, b: _as_number(a) < _as_number(b),
    "<=": lambda a, b: _as_number(a) <= _as_number(b),
    ">": lambda a, b: _as_number(a) > _as_number(b),
    ">=": lambda a, b: _as_number(a) >= _as_number(b),
    "==": lambda a, b: _comparable(a) == _comparable(b),
    "!=": lambda a, b: _comparable(a) != _comparable(b),
}
_BINARY_OPS["==="] = _BINARY_OPS["=="]
_BINARY_OPS["!=="] = _BINARY_OPS["!="]

_FUNCTIONS: Dict[str, Tuple[Callable[..., Any], int, Optional[int]]] = {
    # name: (impl, min args, max args)
    "floor": (lambda x: math.floor(_as_number(x)), 1, 1),
    "ceil": (lambda x: math.ceil(_as_number(x)), 1, 1),
    "round": (lambda x: _round_half_up(_as_number(x)), 1, 1),
    "abs": (lambda x: abs(_as_number(x)), 1, 1),
    "min": (lambda *xs: min(_as_number(x) for x in xs), 1, None),
    "max": (lambda *xs: max(_as_number(x) for x in xs), 1, None),
}

# AST nodes are plain tuples: ("num", v) ("str", v) ("var", path) ("neg", n)
# ("pos", n) ("not", n) ("bin", op, l, r) ("and", l, r) ("or", l, r)
# ("cond", c, a, b) ("call", name, [args])
Node = Tuple


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.i = 0

    def peek(self) -> Token:
        return self.tokens[self.i]

    def take(self) -> Token:
        tok = self.tokens[self.i]
        self.i += 1
        return tok

    def accept(self, *ops: str) -> Optional[str]:
        tok = self.peek()
        if tok.kind == "op" and tok.value in ops:
            self.i += 1
            return tok.value
        return None

    def expect(self, op: str) -> None:
        if not self.accept(op):
            tok = self.peek()
            raise FormulaError(f"Expected {op!r} at position {tok.pos}", field="estimated_xp_formula")

    def parse(self) -> Node:
        node = self.ternary()
        tok = self.peek()
        if tok.kind != "end":
            raise FormulaError(f"Unexpected {tok.value!r} at position {tok.pos}", field="estimated_xp_formula")
        return node

    def ternary(self) -> Node:
        cond = self.logical_or()
        if self.accept("?"):
            then = self.ternary()
            self.expect(":")
            otherwise = self.ternary()
            return ("cond", cond, then, otherwise)
        return cond

    def logical_or(self) -> Node:
        node = self.logical_and()
        while self.accept("||"):
            node = ("or", node, self.logical_and())
        return node

    def logical_and(self) -> Node:
        node = self.equality()
        while self.accept("&&"):
            node = ("and", node, self.equality())
        return node

    def equality(self) -> Node:
        node = self.comparison()
        while True:
            op = self.accept("==", "!=", "===", "!==")
            if not op:
                return node
            node = ("bin", op, node, self.comparison())

    def comparison(self) -> Node:
        node = self.additive()
        while True:
            op = self.accept("<", "<=", ">", ">=")
            if not op:
                return node
            node = ("bin", op, node, self.additive())

    def additive(self) -> Node:
        node = self.multiplicative()
        while True:
            op = self.accept("+", "-")
            if not op:
                return node
            node = ("bin", op, node, self.multiplicative())

    def multiplicative(self) -> Node:
        node = self.unary()
        while True:
            op = self.accept("*", "/", "%")
            if not op:
                return node
            node = ("bin", op, node, self.unary())

    def unary(self) -> Node:
        op = self.accept("-", "+", "!")
        if op == "-":
            return ("neg", self.unary())
        if op == "+":
            return ("pos", self.unary())
        if op == "!":
            return ("not", self.unary())
        return self.primary()

    def primary(self) -> Node:
        tok = self.take()
        if tok.kind == "number":
            return ("num", float(tok.value) if "." in tok.value else int(tok.value))
        if tok.kind == "string":
            return ("str", tok.value[1:-1])
        if tok.kind == "ident":
            if self.accept("("):
                return self.call(tok)
            if tok.value in ("true", "false"):
                return ("num", 1 if tok.value == "true" else 0)
            return ("var", tok.value)
        if tok.kind == "op" and tok.value == "(":
            node = self.ternary()
            self.expect(")")
            return node
        shown = tok.value or "end of formula"
        raise FormulaError(f"Unexpected {shown!r} at position {tok.pos}", field="estimated_xp_formula")

    def call(self, tok: Token) -> Node:
        name = tok.value[len("Math."):] if tok.value.startswith("Math.") else tok.value
        if name not in _FUNCTIONS:
            raise FormulaError(f"Unknown function: {tok.value}", field="estimated_xp_formula")
        args: List[Node] = []
        if not self.accept(")"):
            args.append(self.ternary())
            while self.accept(","):
                args.append(self.ternary())
            self.expect(")")
        _, min_args, max_args = _FUNCTIONS[name]
        if len(args) < min_args or (max_args is not None and len(args) > max_args):
            raise FormulaError(f"Wrong number of arguments for {name}()", field="estimated_xp_formula")
        return ("call", name, args)


def _evaluate(node: Node, record: Any) -> Any:
    kind = node[0]
    if kind in ("num", "str"):
        return node[1]
    if kind == "var":
        value = resolve_path(record, node[1])
        if value is None:
            raise FormulaError(f"Field {node[1]!r} is missing", field="estimated_xp_formula")
        return value
    if kind == "neg":
        return -_as_number(_evaluate(node[1], record))
    if kind == "pos":
        return _as_number(_evaluate(node[1], record))
    if kind == "not":
        return not _evaluate(node[1], record)
    if kind == "and":
        left = _evaluate(node[1], record)
        return _evaluate(node[2], record) if left else left
    if kind == "or":
        left = _evaluate(node[1], record)
        return left if left else _evaluate(node[2], record)
    if kind == "cond":
        return _evaluate(node[2], record) if _evaluate(node[1], record) else _evaluate(node[3], record)
    if kind == "bin":
        return _BINARY_OPS[node[1]](_evaluate(node[2], record), _evaluate(node[3], record))
    if kind == "call":
        impl = _FUNCTIONS[node[1]][0]
        return impl(*[_evaluate(arg, record) for arg in node[2]])
    raise FormulaError(f"Unknown node {kind}", field="estimated_xp_formula")


class CompiledFormula:
    """A parsed formula that can be evaluated against many records."""

    def __init__(self, source: str, tree: Node):
        self.source = source
        self.tree = tree

    def __call__(self, record: Any) -> float:
        value = _evaluate(self.tree, record)
        number = _as_number(value)
        if isinstance(number, float) and not math.isfinite(number):
            raise FormulaError("Formula result is not finite", field="estimated_xp_formula")
        return number

    def __repr__(self) -> str:
        return f"CompiledFormula({self.source!r})"


def compile_formula(formula: str) -> CompiledFormula:
    """Parse ``formula`` once, raising FormulaError on any syntax problem."""
    if not isinstance(formula, str) or not formula.strip():
        raise FormulaError("Formula must be a non-empty string", field="estimated_xp_formula")
    if len(formula) > MAX_FORMULA_LENGTH:
        raise FormulaError(f"Formula is longer than {MAX_FORMULA_LENGTH} characters", field="estimated_xp_formula")
    return CompiledFormula(formula, _Parser(tokenize(formula)).parse())


def evaluate_formula(formula: str, record: Any) -> float:
    """Evaluate ``formula`` against ``record`` (see module docstring for the grammar)."""
    return compile_formula(formula)(record)


def estimate_xp(formula: Union[int, float, str, None], record: Any, default: int = DEFAULT_EXTERNAL_XP) -> int:
    """Estimated XP for a record: a constant, or a formula over its fields.

    Any evaluation failure, or a value too large to round, falls back to
    ``default``. The result is rounded half-up and clamped to
    ``0..MAX_ESTIMATED_XP``.
    """
    if formula is None or (isinstance(formula, str) and not formula.strip()):
        value = default
    elif isinstance(formula, bool):
        value = default
    elif isinstance(formula, (int, float)):
        value = formula
    else:
        try:
            value = evaluate_formula(formula, record)
        except (FormulaError, ArithmeticError) as e:
            logger.warning(f"XP formula {formula!r} failed, using default {default}: {str(e)}")
            value = default
    try:
        xp = int(_round_half_up(value))
    except (OverflowError, ValueError):
        logger.warning(f"XP value {value!r} is not representable, using default {default}")
        xp = default
    return min(max(0, xp), MAX_ESTIMATED_XP)
