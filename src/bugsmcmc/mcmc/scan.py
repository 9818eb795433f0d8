"""
MCMC Sweep and Block Statistics.

- compute_block_statistics: Per-block spread of a chain group
- gibbs_sweep: One red/black iteration over both chain groups

Chains are split into group A (the first n_a chains) and group B (the rest).
Group A is updated using the spread of group B, then group B is updated using
the spread of the freshly updated group A.
"""

import jax.numpy as jnp

from .types import BlockArrays
from .sampling import parallel_gibbs_iteration


# Floor on the coupled-group spread; noisy when a group holds few chains
NUGGET = 1e-5


def compute_block_statistics(coupled_states: jnp.ndarray, block_indices: jnp.ndarray) -> jnp.ndarray:
    """
    Standard deviation of each block's parameter across the coupled chains.

    Args:
        coupled_states: States from the opposite group (n_chains, n_params)
        block_indices: Parameter index per block (n_blocks,)

    Returns:
        (n_blocks,) spreads, floored at NUGGET
    """
    block_data = jnp.take(coupled_states, block_indices, axis=1)
    return jnp.maximum(jnp.std(block_data, axis=0), NUGGET)


def gibbs_sweep(carry, block_arrays: BlockArrays, log_density_fn, n_a: int):
    """
    One iteration of the sampler for every chain.

    Carry tuple structure (6 elements):
        0: states - Chain states (n_chains, n_params)
        1: keys - RNG keys (n_chains, 2)
        2: lps - Log density at each state (n_chains,)
        3: log_scales - Per-chain, per-block log step scales (n_chains, n_blocks)
        4: accept_counts - Per-chain, per-block acceptance counts (n_chains, n_blocks)
        5: iteration - Completed iterations
    """
    states, keys, lps, log_scales, accept_counts, iteration = carry
    n_b = states.shape[0] - n_a

    if n_b > 0:
        sd_A = compute_block_statistics(states[n_a:], block_arrays.indices)
    else:
        sd_A = jnp.full((block_arrays.num_blocks,), NUGGET, dtype=states.dtype)

    states_A, keys_A, lps_A, accepts_A = parallel_gibbs_iteration(
        keys[:n_a], states[:n_a], lps[:n_a], log_scales[:n_a], sd_A,
        block_arrays, log_density_fn
    )

    if n_b > 0:
        sd_B = compute_block_statistics(states_A, block_arrays.indices)
        states_B, keys_B, lps_B, accepts_B = parallel_gibbs_iteration(
            keys[n_a:], states[n_a:], lps[n_a:], log_scales[n_a:], sd_B,
            block_arrays, log_density_fn
        )
        states_A = jnp.concatenate([states_A, states_B], axis=0)
        keys_A = jnp.concatenate([keys_A, keys_B], axis=0)
        lps_A = jnp.concatenate([lps_A, lps_B], axis=0)
        accepts_A = jnp.concatenate([accepts_A, accepts_B], axis=0)

    return (states_A, keys_A, lps_A, log_scales,
            accept_counts + accepts_A.astype(accept_counts.dtype), iteration + 1)
