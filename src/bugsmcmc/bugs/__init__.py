"""
BUGS Model Language Subpackage.

- lexer / parser / syntax: model text -> syntax tree
- distributions / functions: distribution and function tables (NumPy + JAX)
- evaluator: vectorised expression evaluation
- graph: loop unrolling, shape resolution and static checks
- compiler: JAX log density, deviance, monitors and initial values
"""

from .parser import parse_model, parse_expression
from .syntax import ModelProgram, Relation, ForLoop, render
from .distributions import DISTRIBUTIONS, get_distribution
from .graph import build_graph, ModelGraph
from .compiler import CompiledModel, DEVIANCE

__all__ = [
    'parse_model',
    'parse_expression',
    'ModelProgram',
    'Relation',
    'ForLoop',
    'render',
    'DISTRIBUTIONS',
    'get_distribution',
    'build_graph',
    'ModelGraph',
    'CompiledModel',
    'DEVIANCE',
]
