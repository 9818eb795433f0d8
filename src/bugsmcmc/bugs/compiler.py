"""
Compile a model graph into JAX functions over the parameter vector.

The parameter vector `z` holds one entry per unobserved stochastic element,
in graph order. Continuous entries live on an unconstrained scale:

    support (-inf, inf)  x = z
    support (a, inf)     x = a + exp(z)
    support (-inf, b)    x = b - exp(z)
    support (a, b)       x = a + (b - a) * sigmoid(z)

Discrete entries hold their integer value directly. `log_density(z)` is the
joint log density of all stochastic relations at x(z) plus the log-Jacobian
of the transform, so a sampler working on z targets the posterior of x.
"""

import re
from typing import Dict, List, Mapping, Sequence

import numpy as np
import jax
import jax.numpy as jnp

from .evaluator import Evaluator
from .graph import ModelGraph, MAX_DISCRETE_SUPPORT
from ..error_handling import ModelCompileError, ModelRuntimeError


# Transform kinds
IDENTITY = 0
LOWER = 1
UPPER = 2
INTERVAL = 3
DISCRETE = 4

DEVIANCE = 'deviance'

_LABEL_RE = re.compile(r'^([A-Za-z][A-Za-z0-9._]*)\[\s*(\d+(?:\s*,\s*\d+)*)\s*\]$')


class CompiledModel:
    """
    Log density, deviance and monitors for a checked model graph.

    Args:
        graph: ModelGraph from build_graph
        dtype: JAX float dtype for constants and parameters
    """

    def __init__(self, graph: ModelGraph, dtype=jnp.float64):
        self.graph = graph
        self.dtype = dtype
        self.n_params = graph.n_params
        self.param_names = list(graph.param_names)

        self._base = {name: jnp.asarray(value, dtype=dtype)
                      for name, value in graph.const_env.items()}

        self._slots = {}
        for pos, (name, flat) in enumerate(zip(graph.param_var, graph.param_flat)):
            self._slots.setdefault(name, ([], []))
            self._slots[name][0].append(flat)
            self._slots[name][1].append(pos)
        self._slots = {name: (np.array(flat), np.array(pos))
                       for name, (flat, pos) in self._slots.items()}

        lower, upper = graph.param_lower, graph.param_upper
        kinds = np.full(self.n_params, IDENTITY, dtype=np.int32)
        kinds[np.isfinite(lower) & ~np.isfinite(upper)] = LOWER
        kinds[~np.isfinite(lower) & np.isfinite(upper)] = UPPER
        kinds[np.isfinite(lower) & np.isfinite(upper)] = INTERVAL
        kinds[graph.param_discrete] = DISCRETE
        self.kinds = kinds
        self._kinds = jnp.asarray(kinds)
        self._lower = jnp.asarray(np.where(np.isfinite(lower), lower, 0.0), dtype=dtype)
        self._upper = jnp.asarray(np.where(np.isfinite(upper), upper, 0.0), dtype=dtype)

    # -------------------------------------------------------------------------
    # Parameter layout
    # -------------------------------------------------------------------------

    def discrete_support(self):
        """
        Finite support of each discrete parameter.

        Returns:
            (lower, size) arrays; size is 0 for continuous parameters and for
            discrete ones whose support is unbounded or larger than
            MAX_DISCRETE_SUPPORT.
        """
        lower = np.where(np.isfinite(self.graph.param_lower), self.graph.param_lower, 0.0)
        size = np.zeros(self.n_params, dtype=int)
        finite = (self.kinds == DISCRETE) & np.isfinite(self.graph.param_upper)
        span = np.where(finite, self.graph.param_upper - lower + 1, 0)
        ok = finite & (span <= MAX_DISCRETE_SUPPORT)
        size[ok] = span[ok].astype(int)
        return lower, size

    def constrain(self, z):
        """Map unconstrained z to model-scale x (JAX)."""
        lo, hi = self._lower, self._upper
        return jnp.select(
            [self._kinds == LOWER, self._kinds == UPPER, self._kinds == INTERVAL],
            [lo + jnp.exp(z), hi - jnp.exp(z), lo + (hi - lo) * jax.nn.sigmoid(z)],
            default=z)

    def log_jacobian(self, z):
        width = jnp.where(self._kinds == INTERVAL, self._upper - self._lower, 1.0)
        interval = jnp.log(width) + jax.nn.log_sigmoid(z) + jax.nn.log_sigmoid(-z)
        terms = jnp.select(
            [(self._kinds == LOWER) | (self._kinds == UPPER), self._kinds == INTERVAL],
            [z, interval], default=0.0)
        return jnp.sum(terms)

    def unconstrain(self, x) -> np.ndarray:
        """Map model-scale x to unconstrained z (NumPy)."""
        x = np.asarray(x, dtype=float)
        lo = np.asarray(self._lower)
        hi = np.asarray(self._upper)
        z = x.copy()
        with np.errstate(all='ignore'):
            sel = self.kinds == LOWER
            z[sel] = np.log(x[sel] - lo[sel])
            sel = self.kinds == UPPER
            z[sel] = np.log(hi[sel] - x[sel])
            sel = self.kinds == INTERVAL
            p = (x[sel] - lo[sel]) / (hi[sel] - lo[sel])
            z[sel] = np.log(p) - np.log1p(-p)
        return z

    # -------------------------------------------------------------------------
    # Densities
    # -------------------------------------------------------------------------

    def environment(self, x) -> Dict[str, jnp.ndarray]:
        """Full variable arrays with parameters and deterministic nodes filled in."""
        env = dict(self._base)
        for name, (flat, pos) in self._slots.items():
            arr = env[name]
            env[name] = arr.reshape(-1).at[flat].set(x[pos]).reshape(arr.shape)
        for stage in self.graph.stages:
            block = self.graph.blocks[stage.block]
            rows = stage.rows
            ev = Evaluator(jnp, env, block.loops_for(rows), len(rows), const_env=self.graph.const_env)
            values = ev.evaluate(block.relation.expr)[:, 0]
            arr = env[block.name]
            env[block.name] = arr.reshape(-1).at[block.target_flat[rows]].set(values).reshape(arr.shape)
        return env

    def _block_logpdf(self, env, block):
        ev = Evaluator(jnp, env, block.loops, block.n_rows, const_env=self.graph.const_env)
        args = []
        for pos, arg in enumerate(block.relation.args):
            value = ev.evaluate(arg)
            args.append(value if pos in block.dist.vector_params else value[:, 0])
        x = jnp.take(env[block.name].reshape(-1), block.target_flat)
        lp = block.dist.logpdf(x, *args)
        if block.truncated:
            lo = jnp.asarray(block.trunc_lower, dtype=self.dtype)
            hi = jnp.asarray(block.trunc_upper, dtype=self.dtype)
            mass = block.dist.cdf(hi, *args) - block.dist.cdf(lo, *args)
            lp = jnp.where((x >= lo) & (x <= hi), lp, -jnp.inf) - jnp.log(mass)
        return lp

    def log_density_terms(self, z) -> List[jnp.ndarray]:
        """Per-relation log densities (one (n_rows,) array per stochastic block)."""
        env = self.environment(self.constrain(z))
        return [self._block_logpdf(env, b) for b in self.graph.blocks if b.is_stochastic]

    def log_density(self, z):
        env = self.environment(self.constrain(z))
        total = self.log_jacobian(z)
        for block in self.graph.blocks:
            if block.is_stochastic:
                total = total + jnp.sum(self._block_logpdf(env, block))
        return total

    def deviance(self, z):
        """-2 times the log likelihood of the observed stochastic nodes."""
        env = self.environment(self.constrain(z))
        total = jnp.zeros((), dtype=self.dtype)
        for block in self.graph.blocks:
            if block.is_stochastic and np.any(block.observed):
                lp = self._block_logpdf(env, block)
                total = total + jnp.sum(jnp.where(jnp.asarray(block.observed), lp, 0.0))
        return -2.0 * total

    # -------------------------------------------------------------------------
    # Monitors
    # -------------------------------------------------------------------------

    def resolve_monitors(self, names: Sequence[str]):
        """
        Expand monitor names into node labels and (variable, flat index) pairs.

        A base name (`theta`) expands to every element; an element label
        (`theta[2]`, `x[1,3]`) selects one; `deviance` is the model deviance.

        Raises:
            ModelCompileError: For a name that is not a node of the model
        """
        labels, targets = [], []
        for name in names:
            if name == DEVIANCE and DEVIANCE not in self.graph.shapes:
                labels.append(DEVIANCE)
                targets.append((DEVIANCE, 0))
                continue
            if name in self.graph.shapes:
                shape = self.graph.shapes[name]
                size = int(np.prod(shape)) if shape else 1
                for flat in range(size):
                    labels.append(self.graph.label(name, flat))
                    targets.append((name, flat))
                continue
            match = _LABEL_RE.match(name)
            if match and match.group(1) in self.graph.shapes:
                base = match.group(1)
                shape = self.graph.shapes[base]
                idx = tuple(int(v) - 1 for v in match.group(2).split(','))
                if len(idx) == len(shape) and all(0 <= i < n for i, n in zip(idx, shape)):
                    flat = int(np.ravel_multi_index(idx, shape))
                    labels.append(self.graph.label(base, flat))
                    targets.append((base, flat))
                    continue
            raise ModelCompileError(f"Failed to set trace monitor for node {name}", node=name)
        return labels, targets

    def monitor_fn(self, targets):
        """Build fn(z) -> (n_monitors,) values for resolved monitor targets."""
        def fn(z):
            env = self.environment(self.constrain(z))
            values = []
            for name, flat in targets:
                if name == DEVIANCE:
                    values.append(self.deviance(z))
                else:
                    values.append(env[name].reshape(-1)[flat].astype(self.dtype))
            if not values:
                return jnp.zeros(0, dtype=self.dtype)
            return jnp.stack(values)

        return fn

    # -------------------------------------------------------------------------
    # Initial values
    # -------------------------------------------------------------------------

    def initial_values(self, inits: Mapping = None) -> np.ndarray:
        """
        Model-scale starting values for every parameter.

        User inits are applied first; every remaining parameter takes the
        typical value of its distribution given its (already initialised)
        parents.

        Raises:
            ModelCompileError: For inits naming unknown, constant, observed or
                deterministic nodes, or values outside the support
        """
        graph = self.graph
        env = {name: np.array(value, dtype=float) for name, value in graph.const_env.items()}
        param_mask = {name: np.zeros(env[name].size, dtype=bool) for name in self._slots}
        for name, (flat, _) in self._slots.items():
            param_mask[name][flat] = True
            env[name].reshape(-1)[flat] = np.nan

        for name, value in (inits or {}).items():
            if name.startswith('.RNG.'):
                continue
            self._apply_init(env, param_mask, name, value)

        for _ in range(len(graph.blocks) + 1):
            if not self._fill_typical(env, param_mask):
                break
        self._evaluate_stages(env)

        x = np.empty(self.n_params)
        for name, (flat, pos) in self._slots.items():
            x[pos] = env[name].reshape(-1)[flat]
        missing = np.nonzero(~np.isfinite(x))[0]
        if len(missing):
            raise ModelCompileError(
                f"Unable to generate initial value for node {self.param_names[missing[0]]}; "
                f"supply it in inits", node=self.param_names[missing[0]])
        return x

    def _apply_init(self, env, param_mask, name, value):
        graph = self.graph
        if name not in graph.shapes:
            raise ModelCompileError(f"Unknown variable {name} in initial values", node=name)
        if name not in graph.owner:
            raise ModelCompileError(f"Cannot set initial value for constant node {name}", node=name)
        value = np.asarray(value, dtype=float)
        shape = graph.shapes[name]
        if value.shape != shape:
            raise ModelCompileError(
                f"Dimension mismatch in initial values for {name}: expected shape {shape}, "
                f"got {value.shape}", node=name)
        flat_values = value.reshape(-1)
        given = np.nonzero(np.isfinite(flat_values))[0]
        owner = graph.owner[name]
        for flat in given:
            label = graph.label(name, flat)
            if name not in param_mask or not param_mask[name][flat]:
                block = graph.blocks[owner[flat]] if owner[flat] >= 0 else None
                kind = 'deterministic' if block is not None and not block.is_stochastic else 'observed'
                raise ModelCompileError(f"Cannot set initial value for {kind} node {label}", node=label)
        if name in self._slots and len(given):
            flat, pos = self._slots[name]
            chosen = np.isin(flat, given)
            self._check_support(pos[chosen], flat_values[flat[chosen]])
            env[name].reshape(-1)[flat[chosen]] = flat_values[flat[chosen]]

    def _check_support(self, positions, values):
        lower = self.graph.param_lower[positions]
        upper = self.graph.param_upper[positions]
        discrete = self.graph.param_discrete[positions]
        inside = np.where(discrete,
                          (values >= lower) & (values <= upper) & (values == np.round(values)),
                          (values > lower) & (values < upper))
        if not np.all(inside):
            bad = positions[~inside][0]
            raise ModelCompileError(
                f"Initial value for node {self.param_names[bad]} is outside its support "
                f"[{self.graph.param_lower[bad]}, {self.graph.param_upper[bad]}]",
                node=self.param_names[bad])

    def _evaluate_stages(self, env):
        for stage in self.graph.stages:
            block = self.graph.blocks[stage.block]
            rows = stage.rows
            ev = Evaluator(np, env, block.loops_for(rows), len(rows), const_env=self.graph.const_env)
            with np.errstate(all='ignore'):
                values = ev.evaluate(block.relation.expr)[:, 0]
            env[block.name].reshape(-1)[block.target_flat[rows]] = values

    def _fill_typical(self, env, param_mask) -> bool:
        """One pass of typical-value filling; returns True if anything changed."""
        changed = False
        self._evaluate_stages(env)
        for block in self.graph.blocks:
            if not block.is_stochastic or len(block.param_rows) == 0:
                continue
            rows = block.param_rows
            current = env[block.name].reshape(-1)[block.target_flat[rows]]
            todo = ~np.isfinite(current)
            if not np.any(todo):
                continue
            rows = rows[todo]
            ev = Evaluator(np, env, block.loops_for(rows), len(rows), const_env=self.graph.const_env)
            with np.errstate(all='ignore'):
                args = []
                known = np.ones(len(rows), dtype=bool)
                for pos, arg in enumerate(block.relation.args):
                    value = ev.evaluate(arg)
                    known &= np.all(np.isfinite(value), axis=1)
                    args.append(value if pos in block.dist.vector_params else value[:, 0])
                typical = np.broadcast_to(block.dist.typical(*args), (len(rows),)).astype(float)
            typical = np.where(known, typical, np.nan)
            typical = _move_inside(typical, block.lower[rows], block.upper[rows], block.dist.discrete)
            ok = np.isfinite(typical)
            if np.any(ok):
                env[block.name].reshape(-1)[block.target_flat[rows[ok]]] = typical[ok]
                changed = True
        return changed

    # -------------------------------------------------------------------------
    # Checks
    # -------------------------------------------------------------------------

    def check_initial_state(self, z, chain: int = 0):
        """
        Raise ModelRuntimeError if the log density at z is not finite.

        The message names the first relation contributing a non-finite term.
        """
        terms = self.log_density_terms(jnp.asarray(z, dtype=self.dtype))
        stochastic = [b for b in self.graph.blocks if b.is_stochastic]
        for block, lp in zip(stochastic, terms):
            lp = np.asarray(lp)
            bad = np.nonzero(~np.isfinite(lp))[0]
            if len(bad):
                label = self.graph.label(block.name, block.target_flat[bad[0]])
                raise ModelRuntimeError(
                    f"Invalid initial state for chain {chain + 1}: log density of node {label} "
                    f"is {lp[bad[0]]}", node=label)


def _move_inside(values, lower, upper, discrete):
    """Nudge typical values into the (open, for continuous) support."""
    if discrete:
        out = np.round(values)
        out = np.where(np.isfinite(lower), np.maximum(out, lower), out)
        return np.where(np.isfinite(upper), np.minimum(out, upper), out)
    out = values.copy()
    both = np.isfinite(lower) & np.isfinite(upper)
    below = np.isfinite(lower) & ~(values > lower)
    above = np.isfinite(upper) & ~(values < upper)
    bad = np.isfinite(values) & (below | above)
    with np.errstate(invalid='ignore'):
        midpoint = np.where(both, (lower + upper) / 2.0, 0.0)
    out = np.where(bad & both, midpoint, out)
    out = np.where(bad & ~both & below, lower + 1.0, out)
    out = np.where(bad & ~both & above, upper - 1.0, out)
    return out
