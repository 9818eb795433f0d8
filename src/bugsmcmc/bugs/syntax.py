"""
Syntax tree for the BUGS model language.

The parser produces these frozen dataclasses; the graph builder walks them to
unroll loops and the evaluator walks expressions to compute values.

Node kinds:
- Number: numeric literal
- Var: variable reference, optionally indexed (x, x[i], x[i, 1:K], x[])
- Range: a:b inside an index list
- Blank: empty index slot (x[] or x[i,])
- UnaryOp / BinaryOp: arithmetic
- Call: function call
- Relation: stochastic (~) or deterministic (<-) statement
- ForLoop: for (i in a:b) { ... }
- ModelProgram: the whole model block
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class Number:
    value: float
    line: int = 0


@dataclass(frozen=True)
class Blank:
    line: int = 0


@dataclass(frozen=True)
class Range:
    start: 'Expr'
    stop: 'Expr'
    line: int = 0


@dataclass(frozen=True)
class Var:
    name: str
    indices: Optional[Tuple['Index', ...]] = None
    line: int = 0

    def describe(self) -> str:
        """Render the reference roughly as it appeared in the model."""
        if self.indices is None:
            return self.name
        parts = []
        for idx in self.indices:
            if isinstance(idx, Blank):
                parts.append('')
            elif isinstance(idx, Range):
                parts.append(f"{render(idx.start)}:{render(idx.stop)}")
            else:
                parts.append(render(idx))
        return f"{self.name}[{','.join(parts)}]"


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: 'Expr'
    line: int = 0


@dataclass(frozen=True)
class BinaryOp:
    op: str
    left: 'Expr'
    right: 'Expr'
    line: int = 0


@dataclass(frozen=True)
class Call:
    name: str
    args: Tuple['Expr', ...]
    line: int = 0


Expr = Union[Number, Var, UnaryOp, BinaryOp, Call]
Index = Union[Expr, Range, Blank]


@dataclass(frozen=True)
class Truncation:
    lower: Optional[Expr]
    upper: Optional[Expr]


@dataclass(frozen=True)
class Relation:
    """A single model statement; kind is 'stochastic' or 'deterministic'."""
    kind: str
    target: Var
    expr: Optional[Expr] = None              # deterministic right-hand side
    dist: Optional[str] = None               # stochastic distribution name
    args: Tuple[Expr, ...] = ()              # stochastic distribution arguments
    truncation: Optional[Truncation] = None
    line: int = 0


@dataclass(frozen=True)
class ForLoop:
    counter: str
    start: Expr
    stop: Expr
    body: Tuple['Statement', ...]
    line: int = 0


Statement = Union[Relation, ForLoop]


@dataclass(frozen=True)
class ModelProgram:
    statements: Tuple[Statement, ...] = field(default_factory=tuple)

    def relations(self):
        """Yield every Relation in source order, descending into loops."""
        stack = list(reversed(self.statements))
        while stack:
            stmt = stack.pop()
            if isinstance(stmt, ForLoop):
                stack.extend(reversed(stmt.body))
            else:
                yield stmt


_PRECEDENCE = {'+': 1, '-': 1, '*': 2, '/': 2, '^': 4}


def render(expr, parent_prec: int = 0) -> str:
    """Pretty-print an expression back to BUGS syntax."""
    if isinstance(expr, Number):
        value = expr.value
        return str(int(value)) if float(value).is_integer() else repr(value)
    if isinstance(expr, Var):
        return expr.describe()
    if isinstance(expr, UnaryOp):
        return f"-{render(expr.operand, 3)}"
    if isinstance(expr, BinaryOp):
        prec = _PRECEDENCE[expr.op]
        text = f"{render(expr.left, prec)} {expr.op} {render(expr.right, prec + 1)}"
        return f"({text})" if prec < parent_prec else text
    if isinstance(expr, Call):
        return f"{expr.name}({', '.join(render(a) for a in expr.args)})"
    raise TypeError(f"Cannot render {type(expr).__name__}")


def referenced_names(expr) -> set:
    """Collect every variable name referenced by an expression or index."""
    names = set()
    stack = [expr]
    while stack:
        node = stack.pop()
        if node is None or isinstance(node, (Number, Blank)):
            continue
        if isinstance(node, Var):
            names.add(node.name)
            if node.indices:
                stack.extend(node.indices)
        elif isinstance(node, Range):
            stack.extend([node.start, node.stop])
        elif isinstance(node, UnaryOp):
            stack.append(node.operand)
        elif isinstance(node, BinaryOp):
            stack.extend([node.left, node.right])
        elif isinstance(node, Call):
            stack.extend(node.args)
    return names
