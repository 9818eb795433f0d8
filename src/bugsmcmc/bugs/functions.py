"""
Scalar and aggregate functions available inside model expressions.

Expression values are always 2-D arrays of shape (rows, width): one row per
unrolled loop iteration, width 1 for scalars and K for a slice such as
`x[1:K]`. Elementwise functions keep that shape; aggregates (sum, mean, ...)
reduce the width axis back to 1.

The same table is built twice: once over NumPy/SciPy for compile-time
evaluation (loop bounds, constant indices, inits) and once over JAX for the
log density.
"""

import numpy as np
import scipy.special
import jax.numpy as jnp
import jax.scipy.special


def _build(xp, special):
    def agg(fn):
        return lambda x: fn(x, axis=-1, keepdims=True)

    def extreme(reducer, pairwise):
        def fn(*args):
            if len(args) == 1:
                return reducer(args[0], axis=-1, keepdims=True)
            out = args[0]
            for other in args[1:]:
                out = pairwise(out, other)
            return out
        return fn

    return {
        'abs': (xp.abs, 1),
        'sqrt': (xp.sqrt, 1),
        'exp': (xp.exp, 1),
        'log': (xp.log, 1),
        'pow': (lambda a, b: a ** b, 2),
        'sin': (xp.sin, 1),
        'cos': (xp.cos, 1),
        'tan': (xp.tan, 1),
        'logit': (special.logit, 1),
        'ilogit': (special.expit, 1),
        'probit': (special.ndtri, 1),
        'phi': (special.ndtr, 1),
        'cloglog': (lambda p: xp.log(-xp.log1p(-p)), 1),
        'icloglog': (lambda x: -xp.expm1(-xp.exp(x)), 1),
        'step': (lambda x: xp.where(x >= 0, 1.0, 0.0), 1),
        'equals': (lambda a, b: xp.where(a == b, 1.0, 0.0), 2),
        'ifelse': (lambda c, a, b: xp.where(c != 0, a, b), 3),
        'round': (lambda x: xp.sign(x) * xp.floor(xp.abs(x) + 0.5), 1),
        'trunc': (xp.trunc, 1),
        'loggam': (special.gammaln, 1),
        'logfact': (lambda x: special.gammaln(x + 1.0), 1),
        'sum': (agg(xp.sum), 1),
        'mean': (agg(xp.mean), 1),
        'prod': (agg(xp.prod), 1),
        'sd': (lambda x: xp.std(x, axis=-1, ddof=1, keepdims=True), 1),
        'inprod': (lambda a, b: xp.sum(a * b, axis=-1, keepdims=True), 2),
        'length': (lambda x: xp.full(x.shape[:-1] + (1,), float(x.shape[-1])), 1),
        'max': (extreme(xp.max, xp.maximum), None),
        'min': (extreme(xp.min, xp.minimum), None),
    }


NUMPY_FUNCTIONS = _build(np, scipy.special)
JAX_FUNCTIONS = _build(jnp, jax.scipy.special)

# Functions whose result width is 1 regardless of their arguments
AGGREGATES = frozenset({'sum', 'mean', 'prod', 'sd', 'inprod', 'length'})

