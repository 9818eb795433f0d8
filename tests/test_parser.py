"""
Parser Tests - BUGS Model Text to Syntax Tree

Run with: pytest tests/test_parser.py -v
"""

import pytest

from bugsmcmc.bugs import parse_model, parse_expression, render
from bugsmcmc.bugs.lexer import tokenize
from bugsmcmc.bugs.syntax import (
    Number, Var, Blank, Range, UnaryOp, BinaryOp, Call, Relation, ForLoop,
)
from bugsmcmc.error_handling import ModelSyntaxError


class TestTokenizer:
    """Tokens, names with dots and comments."""

    def test_dotted_names_and_numbers(self):
        tokens = tokenize("tau.y <- 1.5e-2")
        kinds = [t.kind for t in tokens]
        assert kinds == ['NAME', 'OP', 'NUMBER', 'EOF']
        assert tokens[0].value == 'tau.y'
        assert tokens[2].value == pytest.approx(0.015)

    def test_comments_are_skipped(self):
        tokens = tokenize("mu ~ dnorm(0, 1) # prior\n")
        assert all(t.value != '#' for t in tokens)
        assert tokens[-1].kind == 'EOF'

    def test_line_numbers(self):
        tokens = tokenize("a\n\nb")
        assert tokens[0].line == 1
        assert tokens[1].line == 3

    def test_bad_character(self):
        with pytest.raises(ModelSyntaxError) as exc:
            tokenize("mu ~ dnorm(0, $)")
        assert exc.value.line == 1


class TestParseModel:
    """Model structure."""

    def test_simple_model(self):
        program = parse_model("""
        model {
            for (i in 1:N) {
                y[i] ~ dnorm(mu, tau)
            }
            mu ~ dnorm(0, 0.001)
            tau <- 1 / (sigma * sigma)
            sigma ~ dunif(0, 10)
        }
        """)
        assert len(program.statements) == 4
        loop = program.statements[0]
        assert isinstance(loop, ForLoop)
        assert loop.counter == 'i'
        assert len(loop.body) == 1

        relations = list(program.relations())
        assert [r.target.name for r in relations] == ['y', 'mu', 'tau', 'sigma']
        assert [r.kind for r in relations] == ['stochastic', 'stochastic', 'deterministic', 'stochastic']
        assert relations[0].dist == 'dnorm'
        assert len(relations[0].args) == 2

    def test_single_statement_loop_and_semicolons(self):
        program = parse_model("model { for (i in 1:3) x[i] ~ dnorm(0, 1); mu ~ dnorm(0, 1); }")
        assert isinstance(program.statements[0], ForLoop)
        assert len(program.statements) == 2

    def test_equals_as_assignment(self):
        program = parse_model("model { a = 2 * b }")
        rel = program.statements[0]
        assert rel.kind == 'deterministic'
        assert isinstance(rel.expr, BinaryOp)

    def test_link_function_is_inverted(self):
        program = parse_model("model { for (i in 1:N) { logit(p[i]) <- b0 + b1 * x[i] } }")
        rel = program.statements[0].body[0]
        assert rel.target.name == 'p'
        assert isinstance(rel.expr, Call)
        assert rel.expr.name == 'ilogit'

    def test_log_link(self):
        rel = parse_model("model { log(lambda) <- eta }").statements[0]
        assert rel.expr.name == 'exp'

    def test_link_on_stochastic_relation_rejected(self):
        with pytest.raises(ModelSyntaxError, match="only allowed on deterministic"):
            parse_model("model { logit(p) ~ dbeta(1, 1) }")

    def test_truncation(self):
        rel = parse_model("model { x ~ dnorm(0, 1) T(0, ) }").statements[0]
        assert rel.truncation is not None
        assert isinstance(rel.truncation.lower, Number)
        assert rel.truncation.upper is None

        rel = parse_model("model { x ~ dnorm(0, 1) T(, 3) }").statements[0]
        assert rel.truncation.lower is None
        assert rel.truncation.upper.value == 3

    def test_index_forms(self):
        rel = parse_model("model { m <- sum(x[]) + inprod(b[1:K], z[i, ]) }").statements[0]
        left, right = rel.expr.left, rel.expr.right
        assert left.args[0].indices == (Blank(line=1),)
        b, z = right.args
        assert isinstance(b.indices[0], Range)
        assert isinstance(z.indices[0], Var)
        assert isinstance(z.indices[1], Blank)

    def test_missing_model_keyword(self):
        with pytest.raises(ModelSyntaxError, match="Expected 'model'"):
            parse_model("{ mu ~ dnorm(0, 1) }")

    def test_unclosed_block_reports_line(self):
        with pytest.raises(ModelSyntaxError) as exc:
            parse_model("model {\n  mu ~ dnorm(0, 1\n}")
        assert exc.value.line == 3

    def test_text_after_model(self):
        with pytest.raises(ModelSyntaxError, match="Unexpected text"):
            parse_model("model { mu ~ dnorm(0, 1) } extra")

    def test_relation_without_operator(self):
        with pytest.raises(ModelSyntaxError, match="Expected '~' or '<-'"):
            parse_model("model { mu dnorm(0, 1) }")


class TestParseExpression:
    """Operator precedence and rendering."""

    def test_precedence(self):
        expr = parse_expression("1 + 2 * 3")
        assert isinstance(expr, BinaryOp) and expr.op == '+'
        assert isinstance(expr.right, BinaryOp) and expr.right.op == '*'

    def test_power_binds_tighter_than_unary_minus(self):
        expr = parse_expression("-2^2")
        assert isinstance(expr, UnaryOp)
        assert isinstance(expr.operand, BinaryOp) and expr.operand.op == '^'

    def test_power_is_right_associative(self):
        expr = parse_expression("2^3^2")
        assert expr.op == '^'
        assert isinstance(expr.right, BinaryOp) and expr.right.op == '^'

    def test_left_associative_subtraction(self):
        expr = parse_expression("a - b - c")
        assert isinstance(expr.left, BinaryOp)
        assert expr.left.op == '-'
        assert expr.right == Var(name='c', line=1)

    def test_render_round_trip(self):
        text = "(a + b) * c[i,2] - exp(x)"
        assert render(parse_expression(text)) == text

    def test_trailing_text(self):
        with pytest.raises(ModelSyntaxError):
            parse_expression("a + b )")


class TestRelations:
    """Relation records carry source lines."""

    def test_line_numbers(self):
        program = parse_model("model {\n  a ~ dnorm(0, 1)\n  b <- a\n}")
        assert [r.line for r in program.relations()] == [2, 3]

    def test_relation_is_frozen(self):
        rel = parse_model("model { a ~ dnorm(0, 1) }").statements[0]
        assert isinstance(rel, Relation)
        with pytest.raises(AttributeError):
            rel.dist = 'dgamma'
