"""
MCMC Kernel Compilation and Caching.

This module handles JAX compilation of the sampling kernel:
- _run_chunk: Module-level chunk runner for cache-stable tracing
- _compute_cache_key: Cache key for compiled kernels
- compile_mcmc_kernel: Compile (or fetch) the kernel for one RunParams
"""

import time
from typing import Any, Dict, Tuple

import jax
import jax.numpy as jnp
import jax.lax

from .types import BlockArrays, RunParams
from .scan import gibbs_sweep


def _run_chunk(carry, block_arrays, model, monitor_targets, run_params, n_a):
    """
    Run N_STEPS sweeps from carry.

    With RECORD set, monitors are evaluated on every chain after each THIN-th
    sweep and returned as (n_saved, n_chains, n_monitors); otherwise the
    returned draws array is empty.
    """
    def sweep(_, c):
        return gibbs_sweep(c, block_arrays, model.log_density, n_a)

    n_chains = carry[0].shape[0]
    if not run_params.RECORD:
        carry = jax.lax.fori_loop(0, run_params.N_STEPS, sweep, carry)
        return carry, jnp.zeros((0, n_chains, 0), dtype=carry[0].dtype)

    monitor = model.monitor_fn(list(monitor_targets))

    def record_step(c, _):
        c = jax.lax.fori_loop(0, run_params.THIN, sweep, c)
        return c, jax.vmap(monitor)(c[0])

    return jax.lax.scan(record_step, carry, None, length=run_params.n_saved)


def _compute_cache_key(run_params: RunParams, monitor_targets: Tuple, n_chains: int, n_a: int) -> Tuple:
    """
    Compute a cache key for a compiled kernel.

    Kernels are cached per model, so the key only covers what changes the
    traced function for that model: run parameters, monitored nodes and the
    chain layout.
    """
    return (
        run_params.N_STEPS,
        run_params.THIN,
        run_params.RECORD,
        tuple(monitor_targets) if run_params.RECORD else (),
        n_chains,
        n_a,
    )


def compile_mcmc_kernel(
    cache: Dict,
    model,
    block_arrays: BlockArrays,
    run_params: RunParams,
    initial_carry: Tuple,
    monitor_targets: Tuple = (),
    n_a: int = 1,
    quiet: bool = False,
) -> Tuple[Any, float]:
    """
    Compile the sampling kernel, using the cache if available.

    Args:
        cache: Kernel cache dict owned by the model
        model: CompiledModel providing log_density and monitor_fn
        block_arrays: BlockArrays with block configuration
        run_params: RunParams with run configuration
        initial_carry: Sampler carry used for tracing
        monitor_targets: Resolved (variable, flat index) monitor pairs
        n_a: Number of chains in group A
        quiet: Suppress compile messages

    Returns:
        Tuple of (compiled_chunk_fn, compile_time)
    """
    monitor_targets = tuple(monitor_targets)
    cache_key = _compute_cache_key(run_params, monitor_targets, initial_carry[0].shape[0], n_a)
    compiled_chunk = cache.get(cache_key)
    if compiled_chunk is not None:
        return compiled_chunk, 0.0

    run_chunk_jit = jax.jit(
        _run_chunk,
        static_argnames=('model', 'monitor_targets', 'run_params', 'n_a')
    )

    if not quiet:
        print("Compiling kernel... ", end="", flush=True)
    compile_start = time.perf_counter()

    compiled_fn = run_chunk_jit.lower(
        initial_carry, block_arrays,
        model=model, monitor_targets=monitor_targets, run_params=run_params, n_a=n_a
    ).compile()

    compile_time = time.perf_counter() - compile_start
    if not quiet:
        print(f"Done ({compile_time:.4f}s)")

    _cf, _ba = compiled_fn, block_arrays

    def compiled_chunk(carry):
        return _cf(carry, _ba)

    cache[cache_key] = compiled_chunk
    return compiled_chunk, compile_time
