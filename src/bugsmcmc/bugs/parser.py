"""
Recursive-descent parser for the BUGS model language.

Grammar (JAGS subset):
    program   := 'model' '{' stmt* '}'
    stmt      := for | relation [';']
    for       := 'for' '(' NAME 'in' expr ':' expr ')' ( '{' stmt* '}' | stmt )
    relation  := lhs '~' NAME '(' args ')' [ 'T' '(' [expr] ',' [expr] ')' ]
               | lhs ('<-' | '=') expr
    lhs       := node | LINK '(' node ')'      (deterministic only)
    node      := NAME [ '[' index (',' index)* ']' ]
    index     := expr | expr ':' expr | <empty>

Link functions on the left of `<-` (logit, log, probit, cloglog) are rewritten
to their inverse on the right-hand side, so `logit(p[i]) <- eta` becomes
`p[i] <- ilogit(eta)`.
"""

from .lexer import tokenize
from .syntax import (
    Number, Var, Range, Blank, UnaryOp, BinaryOp, Call,
    Truncation, Relation, ForLoop, ModelProgram,
)
from ..error_handling import ModelSyntaxError


LINK_INVERSES = {
    'logit': 'ilogit',
    'log': 'exp',
    'probit': 'phi',
    'cloglog': 'icloglog',
}


class _Parser:
    def __init__(self, tokens):
        self.tokens = tokens
        self.pos = 0

    # --- token helpers ---

    @property
    def current(self):
        return self.tokens[self.pos]

    def peek(self, offset=1):
        idx = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[idx]

    def at_op(self, value):
        tok = self.current
        return tok.kind == 'OP' and tok.value == value

    def at_name(self, value=None):
        tok = self.current
        return tok.kind == 'NAME' and (value is None or tok.value == value)

    def advance(self):
        tok = self.current
        if tok.kind != 'EOF':
            self.pos += 1
        return tok

    def error(self, message, tok=None):
        tok = tok or self.current
        found = 'end of input' if tok.kind == 'EOF' else repr(tok.value)
        return ModelSyntaxError(f"{message}, found {found}", tok.line, tok.column)

    def expect_op(self, value):
        if not self.at_op(value):
            raise self.error(f"Expected '{value}'")
        return self.advance()

    def expect_name(self, value=None):
        if not self.at_name(value):
            raise self.error(f"Expected '{value}'" if value else "Expected a name")
        return self.advance()

    # --- program structure ---

    def parse_program(self):
        self.expect_name('model')
        self.expect_op('{')
        statements = self.parse_statements()
        self.expect_op('}')
        if self.current.kind != 'EOF':
            raise self.error("Unexpected text after model block")
        return ModelProgram(statements=tuple(statements))

    def parse_statements(self):
        statements = []
        while not self.at_op('}') and self.current.kind != 'EOF':
            if self.at_op(';'):
                self.advance()
                continue
            statements.append(self.parse_statement())
        return statements

    def parse_statement(self):
        if self.at_name('for') and self.peek().kind == 'OP' and self.peek().value == '(':
            return self.parse_for()
        return self.parse_relation()

    def parse_for(self):
        line = self.expect_name('for').line
        self.expect_op('(')
        counter = self.expect_name().value
        self.expect_name('in')
        start = self.parse_expr()
        self.expect_op(':')
        stop = self.parse_expr()
        self.expect_op(')')
        if self.at_op('{'):
            self.advance()
            body = self.parse_statements()
            self.expect_op('}')
        else:
            body = [self.parse_statement()]
        return ForLoop(counter=counter, start=start, stop=stop, body=tuple(body), line=line)

    def parse_relation(self):
        tok = self.current
        if tok.kind != 'NAME':
            raise self.error("Expected a relation")

        link = None
        if tok.value in LINK_INVERSES and self.peek().kind == 'OP' and self.peek().value == '(':
            link = self.advance().value
            self.expect_op('(')
            target = self.parse_node()
            self.expect_op(')')
        else:
            target = self.parse_node()

        if self.at_op('~'):
            if link is not None:
                raise ModelSyntaxError(
                    f"Link function '{link}' is only allowed on deterministic relations",
                    tok.line, tok.column,
                )
            self.advance()
            dist_tok = self.expect_name()
            self.expect_op('(')
            args = self.parse_args()
            self.expect_op(')')
            truncation = None
            if self.at_name('T') and self.peek().kind == 'OP' and self.peek().value == '(':
                truncation = self.parse_truncation()
            return Relation(kind='stochastic', target=target, dist=dist_tok.value,
                            args=tuple(args), truncation=truncation, line=tok.line)

        if self.at_op('<-') or self.at_op('='):
            self.advance()
            expr = self.parse_expr()
            if link is not None:
                expr = Call(name=LINK_INVERSES[link], args=(expr,), line=tok.line)
            return Relation(kind='deterministic', target=target, expr=expr, line=tok.line)

        raise self.error("Expected '~' or '<-'")

    def parse_truncation(self):
        self.expect_name('T')
        self.expect_op('(')
        lower = None if self.at_op(',') else self.parse_expr()
        self.expect_op(',')
        upper = None if self.at_op(')') else self.parse_expr()
        self.expect_op(')')
        return Truncation(lower=lower, upper=upper)

    def parse_node(self):
        tok = self.expect_name()
        indices = None
        if self.at_op('['):
            indices = self.parse_indices()
        return Var(name=tok.value, indices=indices, line=tok.line)

    def parse_indices(self):
        self.expect_op('[')
        indices = []
        while True:
            if self.at_op(',') or self.at_op(']'):
                indices.append(Blank(line=self.current.line))
            else:
                start = self.parse_expr()
                if self.at_op(':'):
                    self.advance()
                    stop = self.parse_expr()
                    indices.append(Range(start=start, stop=stop, line=self.current.line))
                else:
                    indices.append(start)
            if self.at_op(','):
                self.advance()
                continue
            self.expect_op(']')
            return tuple(indices)

    def parse_args(self):
        args = []
        if self.at_op(')'):
            return args
        while True:
            args.append(self.parse_expr())
            if self.at_op(','):
                self.advance()
                continue
            return args

    # --- expressions ---

    def parse_expr(self):
        left = self.parse_term()
        while self.at_op('+') or self.at_op('-'):
            op = self.advance()
            right = self.parse_term()
            left = BinaryOp(op=op.value, left=left, right=right, line=op.line)
        return left

    def parse_term(self):
        left = self.parse_unary()
        while self.at_op('*') or self.at_op('/'):
            op = self.advance()
            right = self.parse_unary()
            left = BinaryOp(op=op.value, left=left, right=right, line=op.line)
        return left

    def parse_unary(self):
        if self.at_op('-'):
            op = self.advance()
            return UnaryOp(op='-', operand=self.parse_unary(), line=op.line)
        if self.at_op('+'):
            self.advance()
            return self.parse_unary()
        return self.parse_power()

    def parse_power(self):
        base = self.parse_primary()
        if self.at_op('^'):
            op = self.advance()
            exponent = self.parse_unary()  # right associative, allows 2^-1
            return BinaryOp(op='^', left=base, right=exponent, line=op.line)
        return base

    def parse_primary(self):
        tok = self.current
        if tok.kind == 'NUMBER':
            self.advance()
            return Number(value=tok.value, line=tok.line)
        if tok.kind == 'NAME':
            if self.peek().kind == 'OP' and self.peek().value == '(':
                self.advance()
                self.expect_op('(')
                args = self.parse_args()
                self.expect_op(')')
                return Call(name=tok.value, args=tuple(args), line=tok.line)
            return self.parse_node()
        if self.at_op('('):
            self.advance()
            expr = self.parse_expr()
            self.expect_op(')')
            return expr
        raise self.error("Expected an expression")


def parse_model(text: str) -> ModelProgram:
    """
    Parse BUGS model text into a ModelProgram.

    Args:
        text: Model source, e.g. "model { y ~ dnorm(mu, 1) mu ~ dnorm(0, 0.01) }"

    Returns:
        ModelProgram syntax tree

    Raises:
        ModelSyntaxError: If the text does not follow the grammar
    """
    return _Parser(tokenize(text)).parse_program()


def parse_expression(text: str):
    """Parse a standalone expression (used by tests and the CLI)."""
    parser = _Parser(tokenize(text))
    expr = parser.parse_expr()
    if parser.current.kind != 'EOF':
        raise parser.error("Unexpected text after expression")
    return expr
