"""
Vectorised expression evaluation.

An unrolled relation is a table of loop-counter values, one row per iteration.
Expressions are evaluated for all rows at once and always return a 2-D array
(rows, width). Width is 1 for scalars and K for slices such as `x[1:K]`.

The evaluator runs in two modes sharing the same code:
- NumPy (compile time): unknown values are NaN and propagate; out-of-range
  constant indices raise ModelCompileError when `strict` is set.
- JAX (run time): indices are clipped, so the log density stays traceable
  when an index is itself a parameter.

Variable environments map name -> full array (shape () for scalars). Loop
counters are always concrete NumPy integer arrays of length n_rows.
"""

import numpy as np
import jax.numpy as jnp

from .syntax import Number, Var, Range, Blank, UnaryOp, BinaryOp, Call
from .functions import NUMPY_FUNCTIONS, JAX_FUNCTIONS
from ..error_handling import ModelCompileError


def element_label(name, shape, flat_index) -> str:
    """Format a flat element index as a BUGS node name, e.g. x[2,3]."""
    if len(shape) == 0:
        return name
    idx = np.unravel_index(int(flat_index), shape)
    return f"{name}[{','.join(str(i + 1) for i in idx)}]"


class Evaluator:
    """
    Evaluate expressions over a block of rows.

    Args:
        xp: numpy or jax.numpy
        env: Mapping of variable name to full array
        loops: Mapping of loop counter to int array (n_rows,)
        n_rows: Number of rows in this block
        const_env: NumPy environment used to resolve range bounds
        strict: Raise on out-of-range constant indices (NumPy mode only)
    """

    def __init__(self, xp, env, loops, n_rows, const_env=None, strict=False):
        self.xp = xp
        self.env = env
        self.loops = loops
        self.n_rows = n_rows
        self.const_env = const_env if const_env is not None else env
        self.strict = strict
        self.functions = NUMPY_FUNCTIONS if xp is np else JAX_FUNCTIONS

    # --- public ---

    def evaluate(self, expr):
        value = self._eval(expr)
        width = value.shape[-1]
        return self.xp.broadcast_to(value, (self.n_rows, width))

    def flat_indices(self, var: Var):
        """
        Flat element indices referenced by `var` for every row.

        Returns:
            (n_rows, width) array of 0-based flat indices (float in NumPy mode,
            so unknown indices can be NaN; int32 in JAX mode)
        """
        shape = self._shape_of(var.name)
        xp = self.xp
        if var.indices is None:
            size = int(np.prod(shape)) if shape else 1
            flat = np.arange(size, dtype=float)[None, :]
            return xp.broadcast_to(xp.asarray(flat), (self.n_rows, size))

        if len(var.indices) != len(shape):
            raise ModelCompileError(
                f"Dimension mismatch when referencing {var.describe()}: "
                f"{var.name} has {len(shape)} dimension(s)", node=var.name)

        strides = _strides(shape)
        flat = None
        n_slices = 0
        for dim, (index, extent, stride) in enumerate(zip(var.indices, shape, strides)):
            if isinstance(index, (Range, Blank)):
                n_slices += 1
                if n_slices > 1:
                    raise ModelCompileError(
                        f"Only one-dimensional slices are supported: {var.describe()}", node=var.name)
                positions = self._slice_positions(index, extent, var)
                part = xp.asarray(positions[None, :] * stride)
            else:
                raw = self._eval(index)
                if raw.shape[-1] != 1:
                    raise ModelCompileError(f"Index in {var.describe()} must be scalar", node=var.name)
                part = self._checked_position(raw, extent, var) * stride
            flat = part if flat is None else flat + part
        width = flat.shape[-1]
        return xp.broadcast_to(flat, (self.n_rows, width))

    # --- internals ---

    def _shape_of(self, name):
        if name not in self.env:
            raise ModelCompileError(f"Unknown variable {name}", node=name)
        return tuple(np.shape(self.env[name]))

    def _checked_position(self, raw, extent, var):
        xp = self.xp
        if xp is np:
            pos = np.round(raw) - 1.0
            known = np.isfinite(pos)
            if self.strict:
                bad = known & ((pos < 0) | (pos >= extent))
                if np.any(bad):
                    value = int(pos[bad][0]) + 1
                    raise ModelCompileError(
                        f"Index out of range: {var.describe()} evaluates to index {value}, "
                        f"but {var.name} has extent {extent}", node=var.name)
            return np.where(known, np.clip(pos, 0, extent - 1), np.nan)
        pos = jnp.round(raw).astype(jnp.int32) - 1
        return jnp.clip(pos, 0, extent - 1)

    def _slice_positions(self, index, extent, var):
        if isinstance(index, Blank):
            return np.arange(extent)
        bounds = Evaluator(np, self.const_env, self.loops, self.n_rows)
        start = bounds.evaluate(index.start)[:, 0]
        stop = bounds.evaluate(index.stop)[:, 0]
        if not (np.all(np.isfinite(start)) and np.all(np.isfinite(stop))):
            raise ModelCompileError(
                f"Cannot evaluate range bounds in {var.describe()}", node=var.name)
        if np.any(start != start[0]) or np.any(stop != stop[0]):
            raise ModelCompileError(
                f"Range bounds in {var.describe()} must not vary across loop iterations", node=var.name)
        lo, hi = int(start[0]), int(stop[0])
        if lo < 1 or hi > extent or hi < lo:
            raise ModelCompileError(
                f"Index out of range: {var.describe()} covers {lo}:{hi}, "
                f"but {var.name} has extent {extent}", node=var.name)
        return np.arange(lo - 1, hi)

    def _gather(self, var: Var):
        xp = self.xp
        array = self.env[var.name]
        flat = self.flat_indices(var)
        values = xp.ravel(xp.asarray(array))
        if xp is np:
            known = np.isfinite(flat)
            safe = np.where(known, flat, 0).astype(int)
            return np.where(known, values[safe], np.nan)
        return jnp.take(values, flat.astype(jnp.int32), mode='clip')

    def _eval(self, expr):
        xp = self.xp
        if isinstance(expr, Number):
            return xp.full((1, 1), expr.value)
        if isinstance(expr, Var):
            if expr.indices is None and expr.name in self.loops:
                return xp.asarray(np.asarray(self.loops[expr.name], dtype=float)[:, None])
            if expr.name not in self.env:
                raise ModelCompileError(f"Unknown variable {expr.name}", node=expr.name)
            if expr.indices is None and np.ndim(self.env[expr.name]) > 1:
                raise ModelCompileError(
                    f"Multi-dimensional variable {expr.name} must be indexed", node=expr.name)
            return self._gather(expr)
        if isinstance(expr, UnaryOp):
            return -self._eval(expr.operand)
        if isinstance(expr, BinaryOp):
            left = self._eval(expr.left)
            right = self._eval(expr.right)
            _check_widths(left, right, expr)
            if expr.op == '+':
                return left + right
            if expr.op == '-':
                return left - right
            if expr.op == '*':
                return left * right
            if expr.op == '/':
                return left / right
            return left ** right
        if isinstance(expr, Call):
            if expr.name not in self.functions:
                raise ModelCompileError(f"Unknown function {expr.name}", node=expr.name)
            fn, arity = self.functions[expr.name]
            if arity is not None and len(expr.args) != arity:
                raise ModelCompileError(
                    f"Function {expr.name} expects {arity} argument(s), got {len(expr.args)}",
                    node=expr.name)
            args = [self._eval(a) for a in expr.args]
            return fn(*args)
        raise ModelCompileError(f"Cannot evaluate {type(expr).__name__}")


def _strides(shape):
    strides = []
    acc = 1
    for extent in reversed(shape):
        strides.append(acc)
        acc *= extent
    return tuple(reversed(strides))


def _check_widths(left, right, expr):
    lw, rw = left.shape[-1], right.shape[-1]
    if lw != rw and lw != 1 and rw != 1:
        raise ModelCompileError(
            f"Non-conforming slice lengths ({lw} and {rw}) in expression on line {expr.line}")
