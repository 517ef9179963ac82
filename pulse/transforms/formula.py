"""
Sandboxed arithmetic formulas for derived fields.

Expressions are tokenized and parsed into a small typed tree (literal, field
reference, binary operation) and evaluated by walking that tree. Only
`+ - * / ( )`, numeric literals and field names are accepted; nothing is ever
handed to Python's `eval`.

Evaluation policy: a field that is missing or not numeric counts as 0, and a
division by zero (or any non-finite intermediate) yields 0.
"""

import math
import re
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

from ..core.exceptions import FormulaSyntaxError
from ..models.series_models import Record, to_number


@dataclass(frozen=True)
class Literal:
    value: float


@dataclass(frozen=True)
class FieldRef:
    name: str


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Literal, FieldRef, BinaryOp]

_TOKEN_PATTERN = re.compile(
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<ident>[A-Za-z_][A-Za-z0-9_.]*)"
    r"|(?P<op>[-+*/()])"
)


def tokenize(expression: str) -> List[Tuple[str, str, int]]:
    """Split an expression into (kind, text, position) tokens."""
    tokens = []
    position = 0

    while position < len(expression):
        if expression[position].isspace():
            position += 1
            continue
        match = _TOKEN_PATTERN.match(expression, position)
        if not match:
            raise FormulaSyntaxError(
                f"Unexpected character {expression[position]!r}",
                position=position
            )
        tokens.append((match.lastgroup, match.group(), position))
        position = match.end()

    return tokens


class _Parser:
    """Recursive descent parser over the token list."""

    def __init__(self, tokens: Sequence[Tuple[str, str, int]]):
        self.tokens = tokens
        self.index = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise FormulaSyntaxError("Empty expression")
        node = self._expression()
        if self.index < len(self.tokens):
            _, text, pos = self.tokens[self.index]
            raise FormulaSyntaxError(f"Unexpected token {text!r}", position=pos)
        return node

    def _peek(self):
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _take(self):
        token = self._peek()
        if token is None:
            raise FormulaSyntaxError("Unexpected end of expression")
        self.index += 1
        return token

    def _expression(self) -> Node:
        node = self._term()
        while self._peek() and self._peek()[1] in ('+', '-'):
            _, op, _ = self._take()
            node = BinaryOp(op, node, self._term())
        return node

    def _term(self) -> Node:
        node = self._factor()
        while self._peek() and self._peek()[1] in ('*', '/'):
            _, op, _ = self._take()
            node = BinaryOp(op, node, self._factor())
        return node

    def _factor(self) -> Node:
        kind, text, pos = self._take()

        if kind == 'op' and text in ('+', '-'):
            # Unary sign: 0 +/- operand
            return BinaryOp(text, Literal(0.0), self._factor())
        if kind == 'number':
            return Literal(float(text))
        if kind == 'ident':
            return FieldRef(text)
        if text == '(':
            node = self._expression()
            closing = self._take()
            if closing[1] != ')':
                raise FormulaSyntaxError("Expected ')'", position=closing[2])
            return node

        raise FormulaSyntaxError(f"Unexpected token {text!r}", position=pos)


def parse_formula(expression: str) -> Node:
    """
    Parse an arithmetic expression into a tree.

    Raises:
        FormulaSyntaxError: if the expression is structurally invalid
    """
    if expression is None:
        raise FormulaSyntaxError("Empty expression")
    return _Parser(tokenize(expression)).parse()


def evaluate(node: Node, record: Record) -> float:
    """Evaluate a parsed formula against one record."""
    if isinstance(node, Literal):
        return node.value

    if isinstance(node, FieldRef):
        number = to_number(record.get(node.name))
        return number if number is not None else 0.0

    left = evaluate(node.left, record)
    right = evaluate(node.right, record)

    if node.op == '+':
        result = left + right
    elif node.op == '-':
        result = left - right
    elif node.op == '*':
        result = left * right
    else:
        result = left / right if right != 0 else 0.0

    return result if math.isfinite(result) else 0.0


def field_references(node: Node) -> List[str]:
    """List field names referenced by a formula, in order of appearance."""
    if isinstance(node, FieldRef):
        return [node.name]
    if isinstance(node, BinaryOp):
        names = field_references(node.left)
        names.extend(n for n in field_references(node.right) if n not in names)
        return names
    return []


def apply_formula(
    records: Sequence[Record],
    name: str,
    expression: str
) -> List[Record]:
    """
    Add a derived field to every record.

    Args:
        records: Input rows (not modified)
        name: Name of the new field
        expression: Arithmetic over existing field names

    Returns:
        New rows with the derived field; the input rows unchanged when the
        name is blank or the expression does not parse
    """
    if not name or not name.strip() or not expression or not expression.strip():
        return list(records)

    try:
        tree = parse_formula(expression)
    except FormulaSyntaxError:
        return list(records)

    return [{**row, name: evaluate(tree, row)} for row in records]
