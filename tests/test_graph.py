"""
Graph Tests - Loop Unrolling, Parameter Layout and Compile-Time Checks

Run with: pytest tests/test_graph.py -v
"""

import logging

import numpy as np
import pytest

from bugsmcmc.bugs import parse_model, build_graph
from bugsmcmc.error_handling import ModelCompileError
from bugsmcmc.mcmc.config import prepare_data


def make_graph(text, data=None):
    return build_graph(parse_model(text), prepare_data(data))


# ============================================================================
# UNROLLING AND LAYOUT
# ============================================================================

class TestLayout:
    """Parameters, shapes and evaluation order."""

    def test_observed_nodes_are_not_parameters(self):
        graph = make_graph("""
        model {
            for (i in 1:N) { y[i] ~ dnorm(mu, tau) }
            mu ~ dnorm(0, 0.01)
            tau ~ dgamma(1, 1)
        }""", {'y': [0.1, 0.5, -0.2], 'N': 3})
        assert graph.param_names == ['mu', 'tau']
        assert graph.param_var == ['mu', 'tau']
        np.testing.assert_array_equal(graph.param_lower, [-np.inf, 0.0])
        np.testing.assert_array_equal(graph.param_upper, [np.inf, np.inf])
        assert not np.any(graph.param_discrete)

    def test_missing_data_become_parameters(self):
        graph = make_graph("""
        model {
            for (i in 1:3) { y[i] ~ dnorm(mu, 1) }
            mu ~ dnorm(0, 0.01)
        }""", {'y': [1.0, None, 3.0]})
        assert graph.param_names == ['y[2]', 'mu']
        np.testing.assert_array_equal(graph.is_observed('y'), [True, False, True])

    def test_shape_from_largest_index(self):
        graph = make_graph("model { for (i in 1:3) { x[i] ~ dnorm(0, 1) } }")
        assert graph.shapes['x'] == (3,)
        assert graph.param_names == ['x[1]', 'x[2]', 'x[3]']

    def test_two_dimensional_labels(self):
        graph = make_graph("""
        model {
            for (i in 1:2) { for (j in 1:3) { x[i, j] ~ dnorm(0, 1) } }
        }""")
        assert graph.shapes['x'] == (2, 3)
        assert graph.n_params == 6
        assert graph.param_names[3] == 'x[2,1]'

    def test_loop_bounds_from_data(self):
        graph = make_graph("""
        model {
            for (g in 1:G) { for (i in start[g]:stop[g]) { x[i] ~ dnorm(0, 1) } }
        }""", {'G': 2, 'start': [1, 3], 'stop': [2, 5]})
        assert graph.shapes['x'] == (5,)
        assert graph.n_params == 5

    def test_empty_loop(self):
        graph = make_graph("model { for (i in 1:0) { x[i] ~ dnorm(0, 1) } mu ~ dnorm(0, 1) }")
        assert graph.param_names == ['mu']

    def test_truncation_bounds_support(self):
        graph = make_graph("model { x ~ dnorm(0, 1) T(0, ) }")
        assert graph.param_lower[0] == 0.0
        assert graph.param_upper[0] == np.inf

    def test_discrete_support(self):
        graph = make_graph("model { k ~ dbin(0.5, 10) }")
        assert graph.param_discrete[0]
        assert graph.param_lower[0] == 0.0
        assert graph.param_upper[0] == 10.0

    def test_deterministic_stages_in_dependency_order(self):
        graph = make_graph("model { a <- b * 2\n b <- c + 1\n c ~ dnorm(0, 1) }")
        order = [graph.blocks[s.block].name for s in graph.stages]
        assert order == ['b', 'a']

    def test_unused_data_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger='bugsmcmc'):
            make_graph("model { mu ~ dnorm(0, 1) }", {'extra': 1.0})
        assert 'Unused variable "extra"' in caplog.text


# ============================================================================
# COMPILE ERRORS
# ============================================================================

class TestCompileErrors:
    """Structural problems are reported with the offending node."""

    def test_unknown_variable(self):
        with pytest.raises(ModelCompileError, match="Unknown variable m0") as exc:
            make_graph("model { mu ~ dnorm(m0, 1) }")
        assert exc.value.node == 'm0'

    def test_redefined_node(self):
        with pytest.raises(ModelCompileError, match="Attempt to redefine node mu"):
            make_graph("model { mu ~ dnorm(0, 1)\n mu ~ dnorm(1, 1) }")

    def test_redefined_inside_loop(self):
        with pytest.raises(ModelCompileError, match=r"Attempt to redefine node x\[1\]"):
            make_graph("model { for (i in 1:3) { x[1] ~ dnorm(0, 1) } }")

    def test_unknown_distribution(self):
        with pytest.raises(ModelCompileError, match="Unknown distribution dfoo"):
            make_graph("model { mu ~ dfoo(0, 1) }")

    def test_wrong_parameter_count(self):
        with pytest.raises(ModelCompileError, match=r"expects 2 parameter\(s\), got 1"):
            make_graph("model { mu ~ dnorm(0) }")

    def test_loop_bound_not_in_data(self):
        with pytest.raises(ModelCompileError, match="Cannot evaluate upper index of counter i"):
            make_graph("model { for (i in 1:N) { x[i] ~ dnorm(0, 1) } }")

    def test_index_beyond_data(self):
        with pytest.raises(ModelCompileError, match=r"Index out of range for node y\[4\]"):
            make_graph("model { for (i in 1:N) { y[i] ~ dnorm(0, 1) } }",
                       {'y': [1.0, 2.0, 3.0], 'N': 4})

    def test_unresolved_element(self):
        with pytest.raises(ModelCompileError, match=r"Unable to resolve node x\[2\]"):
            make_graph("model { x[1] ~ dnorm(0, 1)\n x[3] ~ dnorm(0, 1)\n y ~ dnorm(x[2], 1) }")

    def test_deterministic_cycle(self):
        with pytest.raises(ModelCompileError, match="Directed cycle"):
            make_graph("model { a <- b + 1\n b <- a + 1 }")

    def test_data_for_deterministic_node(self):
        with pytest.raises(ModelCompileError, match="Cannot supply data for deterministic node a"):
            make_graph("model { a <- 2 * b\n b ~ dnorm(0, 1) }", {'a': 1.0})

    def test_dimension_mismatch(self):
        with pytest.raises(ModelCompileError, match="Dimension mismatch between data and model for y"):
            make_graph("model { for (i in 1:2) { y[i] ~ dnorm(0, 1) } }", {'y': np.ones((2, 2))})

    def test_untruncatable_distribution(self):
        with pytest.raises(ModelCompileError, match="cannot be truncated"):
            make_graph("model { k ~ dpois(2) T(1, ) }")

    def test_unknown_function(self):
        with pytest.raises(ModelCompileError, match="Unknown function foo"):
            make_graph("model { a <- foo(b)\n b ~ dnorm(0, 1) }")

    def test_support_depending_on_parameter(self):
        with pytest.raises(ModelCompileError, match="depends on unknown parameters"):
            make_graph("model { x ~ dunif(0, b)\n b ~ dgamma(1, 1) }")

    def test_compile_error_is_value_error(self):
        with pytest.raises(ValueError):
            make_graph("model { mu ~ dnorm(m0, 1) }")
