"""
Compiled Model Object and Sampling Entry Points.

- Model: Compiled model holding chain states between calls
- compile_model: Parse, compile and adapt a model
- update: Run iterations without recording
- coda_samples: Run iterations and record monitored nodes

A Model keeps the sampler carry (chain states, keys, step scales and the
iteration counter) so that `update` and `coda_samples` continue from where
the previous call stopped.
"""

import math
import time
from typing import Any, Dict, List, Sequence

import numpy as np
import pandas as pd
import jax
import jax.numpy as jnp

from ..bugs import parse_model, build_graph, CompiledModel
from ..samples import Samples
from .config import (
    configure_mcmc_system, resolve_proposal, build_model_blocks, load_model_text,
    prepare_data, normalize_inits, gen_rng_keys, initialize_chains,
)
from .types import RunParams
from .compile import compile_mcmc_kernel
from .diagnostics import acceptance_rates, print_acceptance_summary, ACCEPT_LOW, ACCEPT_HIGH
from ..batch_specs import summarize_blocks

import logging
logger = logging.getLogger('bugsmcmc')


# Adaptation batch length and acceptance target for scalar Metropolis blocks
ADAPT_BATCH = 50
TARGET_ACCEPT = 0.44


class Model:
    """
    A compiled model with its chains.

    Args:
        model: Model text or path to a model file
        data: Mapping of variable name -> value; None/NaN marks missing values
        inits: None, a mapping, a list of mappings (one per chain) or a
            callable taking the 0-based chain index
        n_chains: Number of chains
        n_adapt: Adaptation iterations run on construction
        rng_seed: Seed for chains whose inits carry no '.RNG.seed'
        quiet: Suppress printed progress
        **config: Further sampler settings (use_double, proposal, chunk_size)

    Raises:
        ModelSyntaxError, ModelCompileError, ModelRuntimeError, ValueError
    """

    def __init__(self, model, data=None, inits=None, n_chains: int = 1, n_adapt: int = 1000,
                 rng_seed: int = 42, quiet: bool = False, **config):
        mcmc_config = dict(config, n_chains=n_chains, n_adapt=n_adapt, rng_seed=rng_seed)
        self.config, runtime_ctx = configure_mcmc_system(mcmc_config)
        self.dtype = runtime_ctx['jnp_float_dtype']
        self.quiet = quiet
        self.n_chains = self.config['n_chains']
        self.n_a = math.ceil(self.n_chains / 2)

        self.model_text = load_model_text(model)
        self.program = parse_model(self.model_text)
        self.data = prepare_data(data)
        self.graph = build_graph(self.program, self.data)
        self.compiled = CompiledModel(self.graph, dtype=self.dtype)

        self.inits = normalize_inits(inits, self.n_chains)
        states = initialize_chains(self.compiled, self.inits)
        keys = gen_rng_keys(self.config['rng_seed'], self.inits)

        self.proposal_type = resolve_proposal(self.config['proposal'], self.n_chains)
        if self.compiled.n_params > 0:
            self.block_specs, self.block_arrays = build_model_blocks(
                self.compiled, self.proposal_type, self.dtype)
            logger.info(summarize_blocks(self.block_specs))
        else:
            self.block_specs, self.block_arrays = [], None
        n_blocks = len(self.block_specs)

        states = jnp.asarray(states, dtype=self.dtype)
        lps = jax.jit(jax.vmap(self.compiled.log_density))(states)
        self._carry = (
            states,
            keys,
            lps,
            jnp.zeros((self.n_chains, n_blocks), dtype=self.dtype),
            jnp.zeros((self.n_chains, n_blocks), dtype=self.dtype),
            jnp.asarray(0, dtype=jnp.int32),
        )
        self._kernels: Dict = {}
        self._last_rates = np.full(n_blocks, np.nan)

        if not quiet:
            print(f"Compiled model: {len(self.data)} data variable(s), "
                  f"{self.compiled.n_params} unobserved stochastic node(s), "
                  f"{self.n_chains} chain(s)")

        self.adapted = self.adapt(self.config['n_adapt'])

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def iteration(self) -> int:
        """Iterations run so far, adaptation included."""
        return int(self._carry[5])

    @property
    def n_params(self) -> int:
        return self.compiled.n_params

    @property
    def variable_names(self) -> List[str]:
        return list(self.graph.shapes)

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    def _kernel(self, run_params: RunParams, monitor_targets=()):
        kernel, compile_time = compile_mcmc_kernel(
            self._kernels, self.compiled, self.block_arrays, run_params, self._carry,
            monitor_targets=monitor_targets, n_a=self.n_a, quiet=self.quiet,
        )
        if compile_time > 0:
            logger.debug(f"Compiled kernel for {run_params} in {compile_time:.2f}s")
        return kernel

    def _reset_counts(self):
        carry = list(self._carry)
        carry[4] = jnp.zeros_like(carry[4])
        self._carry = tuple(carry)

    def _run(self, n_steps: int, thin: int = 1, monitor_targets=None):
        """Advance every chain n_steps iterations; returns recorded draws or None."""
        record = monitor_targets is not None
        if self.block_arrays is None:
            return self._run_static(n_steps, thin, monitor_targets)
        run_params = RunParams(N_STEPS=n_steps, THIN=thin, RECORD=record)
        self._carry, draws = self._kernel(run_params, tuple(monitor_targets or ()))(self._carry)
        return np.asarray(draws) if record else None

    def _run_static(self, n_steps, thin, monitor_targets):
        """Models with no unobserved stochastic nodes: nothing to sample."""
        carry = list(self._carry)
        carry[5] = carry[5] + n_steps
        self._carry = tuple(carry)
        if monitor_targets is None:
            return None
        values = np.asarray(jax.vmap(self.compiled.monitor_fn(list(monitor_targets)))(self._carry[0]))
        return np.broadcast_to(values, (n_steps // thin,) + values.shape).copy()

    def _run_chunked(self, n_iter: int, thin: int = 1, monitor_targets=None, label: str = "MCMC RUN"):
        chunk_size = self.config['chunk_size']
        chunk_steps = max(thin, (chunk_size // thin) * thin)
        n_saved = n_iter // thin if monitor_targets is not None else 0
        recorded_steps = n_saved * thin

        self._reset_counts()
        start_time = time.perf_counter()
        if not self.quiet:
            print(f"\n--- {label} ({n_iter} iterations, {self.n_chains} chains) ---", flush=True)

        draws = []
        done = 0
        while done < n_iter:
            if monitor_targets is not None and done < recorded_steps:
                steps = min(chunk_steps, recorded_steps - done)
                draws.append(self._run(steps, thin, monitor_targets))
            else:
                steps = min(chunk_size, n_iter - done)
                self._run(steps)
            done += steps
            if not self.quiet and n_iter > chunk_size:
                print(f"  Iteration {self.iteration} ({done}/{n_iter})", flush=True)

        self._last_rates = acceptance_rates(np.asarray(self._carry[4]), n_iter)
        logger.info(f"{label}: {n_iter} iterations in {time.perf_counter() - start_time:.2f}s")
        if monitor_targets is None:
            return None
        return np.concatenate(draws, axis=0)

    def adapt(self, n_iter: int = None) -> bool:
        """
        Tune Metropolis step scales for n_iter iterations (default: n_adapt).

        The log step scale of every Metropolis block moves by
        (acceptance - 0.44) / sqrt(batch) after each batch of 50 iterations.

        Returns:
            True if every Metropolis block's acceptance over the second half
            of the batches lies in [0.15, 0.70]
        """
        n_iter = self.config['n_adapt'] if n_iter is None else n_iter
        if n_iter <= 0:
            return True
        if self.block_arrays is None:
            self._run_chunked(n_iter, label="ADAPTATION")
            return True

        is_mh = np.asarray(self.block_arrays.is_mh)
        n_batches = math.ceil(n_iter / ADAPT_BATCH)
        batch_rates = []

        if not self.quiet:
            print(f"\n--- ADAPTATION ({n_iter} iterations, {self.n_chains} chains) ---", flush=True)

        done = 0
        for batch in range(1, n_batches + 1):
            steps = min(ADAPT_BATCH, n_iter - done)
            self._reset_counts()
            self._run(steps)
            done += steps

            rates = np.asarray(self._carry[4]) / steps
            batch_rates.append(rates.mean(axis=0))
            log_scales = np.asarray(self._carry[3])
            log_scales = log_scales + np.where(is_mh, (rates - TARGET_ACCEPT) / np.sqrt(batch), 0.0)

            carry = list(self._carry)
            carry[3] = jnp.asarray(log_scales, dtype=self.dtype)
            self._carry = tuple(carry)

        self._reset_counts()
        final = np.mean(batch_rates[n_batches // 2:], axis=0)
        self._last_rates = final

        in_band = (final >= ACCEPT_LOW) & (final <= ACCEPT_HIGH)
        ok = bool(np.all(in_band[is_mh]))
        if not ok:
            bad = [spec.label for spec, good, mh in zip(self.block_specs, in_band, is_mh) if mh and not good]
            logger.warning(
                f"Adaptation incomplete: {len(bad)} node(s) with acceptance outside "
                f"[{ACCEPT_LOW}, {ACCEPT_HIGH}]: {', '.join(bad[:10])}")
        return ok

    def update(self, n_iter: int) -> None:
        """Run n_iter iterations without recording."""
        if n_iter < 0:
            raise ValueError(f"n_iter must be >= 0, got {n_iter}")
        if n_iter:
            self._run_chunked(n_iter, label="UPDATE")

    def coda_samples(self, variable_names: Sequence[str], n_iter: int, thin: int = 1) -> Samples:
        """
        Run n_iter iterations, recording the named nodes every thin iterations.

        Args:
            variable_names: Base names ("theta"), element labels ("theta[2]")
                or "deviance"
            n_iter: Iterations to run
            thin: Recording interval

        Returns:
            Samples with n_iter // thin rows, the first at iteration
            current + thin

        Raises:
            ModelCompileError: For a name that is not a node of the model
            ValueError: If n_iter < thin or thin < 1
        """
        if isinstance(variable_names, str):
            variable_names = [variable_names]
        if thin < 1:
            raise ValueError(f"thin must be >= 1, got {thin}")
        if n_iter < thin:
            raise ValueError(f"n_iter ({n_iter}) must be >= thin ({thin})")

        labels, targets = self.compiled.resolve_monitors(variable_names)
        start = self.iteration + thin
        draws = self._run_chunked(n_iter, thin, tuple(targets), label="SAMPLING")
        return Samples(draws, labels, start=start, thin=thin)

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def state(self) -> List[Dict[str, np.ndarray]]:
        """
        Current values of the unobserved stochastic nodes, one dict per chain.

        Elements that are not parameters (observed or deterministic) are NaN.
        """
        z = np.asarray(self._carry[0])
        x = np.asarray(jax.vmap(self.compiled.constrain)(jnp.asarray(z, dtype=self.dtype)))
        out = []
        for chain in range(self.n_chains):
            values = {}
            for name, (flat, pos) in self.compiled._slots.items():
                shape = self.graph.shapes[name]
                arr = np.full(int(np.prod(shape)) if shape else 1, np.nan)
                arr[flat] = x[chain, pos]
                values[name] = arr.reshape(shape)
            out.append(values)
        return out

    def list_samplers(self) -> pd.DataFrame:
        """Sampler assigned to every unobserved stochastic node."""
        return pd.DataFrame({
            'node': [spec.label for spec in self.block_specs],
            'sampler': [spec.sampler_name() for spec in self.block_specs],
        })

    def acceptance_rates(self) -> pd.Series:
        """Mean acceptance per node over chains in the last run."""
        return pd.Series(self._last_rates, index=[spec.label for spec in self.block_specs])

    def print_acceptance_summary(self) -> None:
        print_acceptance_summary(self.block_specs, self._last_rates)

    def get_sampler_state(self) -> Dict[str, Any]:
        """Host copy of the sampler carry (for checkpoints)."""
        states, keys, lps, log_scales, _, iteration = self._carry
        return {
            'states': np.asarray(states),
            'keys': np.asarray(keys),
            'log_scales': np.asarray(log_scales),
            'iteration': int(iteration),
        }

    def set_sampler_state(self, sampler_state: Dict[str, Any]) -> None:
        """
        Restore a carry saved by get_sampler_state.

        Raises:
            ValueError: If the shapes do not match this model
        """
        states = np.asarray(sampler_state['states'])
        if states.shape != tuple(self._carry[0].shape):
            raise ValueError(f"State shape {states.shape} does not match model shape "
                             f"{tuple(self._carry[0].shape)}")
        states = jnp.asarray(states, dtype=self.dtype)
        for chain in range(self.n_chains):
            self.compiled.check_initial_state(states[chain], chain)
        self._carry = (
            states,
            jnp.asarray(sampler_state['keys'], dtype=self._carry[1].dtype),
            jax.jit(jax.vmap(self.compiled.log_density))(states),
            jnp.asarray(sampler_state['log_scales'], dtype=self.dtype),
            jnp.zeros_like(self._carry[4]),
            jnp.asarray(int(sampler_state['iteration']), dtype=jnp.int32),
        )

    def __repr__(self):
        return (f"Model({self.compiled.n_params} parameters, {self.n_chains} chains, "
                f"iteration {self.iteration})")


def compile_model(model, data=None, inits=None, n_chains: int = 1, n_adapt: int = 1000,
                  rng_seed: int = 42, quiet: bool = False, **config) -> Model:
    """Parse, compile and adapt a model; see Model."""
    return Model(model, data=data, inits=inits, n_chains=n_chains, n_adapt=n_adapt,
                 rng_seed=rng_seed, quiet=quiet, **config)


def update(model: Model, n_iter: int) -> None:
    """Run n_iter iterations of model without recording."""
    model.update(n_iter)


def coda_samples(model: Model, variable_names: Sequence[str], n_iter: int, thin: int = 1) -> Samples:
    """Run n_iter iterations of model and record the named nodes."""
    return model.coda_samples(variable_names, n_iter, thin)
