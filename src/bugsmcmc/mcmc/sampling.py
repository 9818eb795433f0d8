"""
MCMC Sampling Functions.

Core sampling functions for the sampling kernel:
- metropolis_block_step: Metropolis-Hastings step for a continuous node
- integer_walk_step: Metropolis-Hastings step for an unbounded discrete node
- discrete_gibbs_step: Exact draw from a finite discrete full conditional
- full_chain_iteration: One Gibbs sweep over all blocks of one chain
- parallel_gibbs_iteration: Vmapped sweep over a group of chains

Every block step takes the operand
    (key, chain_state, current_lp, param_index, log_scale, coupled_sd,
     proposal_type, settings)
and returns (next_state, new_key, next_lp, accepted).
"""

import jax
import jax.numpy as jnp
import jax.random as random
from functools import partial

from ..batch_specs import SamplerType, ProposalType
from ..settings import SettingSlot
from ..proposals import rand_walk_proposal, self_mean_proposal, integer_walk_proposal
from .types import BlockArrays


# Map from ProposalType enum value to proposal function
PROPOSAL_REGISTRY = {
    int(ProposalType.RAND_WALK): rand_walk_proposal,
    int(ProposalType.SELF_MEAN): self_mean_proposal,
}


def _safe_lp(lp):
    return jnp.nan_to_num(lp, nan=-jnp.inf, posinf=-jnp.inf, neginf=-jnp.inf)


def accept_reject(key, chain_state, lp_current, idx, proposal, log_den_ratio, log_density_fn):
    """
    Metropolis accept/reject of a single-coordinate proposal.

    Non-finite proposals and NaN log densities are always rejected.
    """
    proposed_state = chain_state.at[idx].set(proposal)
    lp_proposed = _safe_lp(log_density_fn(proposed_state))

    raw_ratio = log_den_ratio + lp_proposed - lp_current
    safe_ratio = jnp.where(jnp.isfinite(proposal), jnp.nan_to_num(raw_ratio, nan=-jnp.inf), -jnp.inf)

    new_key, accept_key = random.split(key)
    log_uniform = jnp.log(random.uniform(accept_key, shape=(), dtype=chain_state.dtype))

    accept = log_uniform < safe_ratio
    next_state = jnp.where(accept, proposed_state, chain_state)
    chosen_lp = jnp.where(accept, lp_proposed, lp_current)
    return next_state, new_key, chosen_lp, accept.astype(chain_state.dtype)


def metropolis_block_step(operand, log_density_fn, used_proposal_types):
    """
    Gaussian random-walk MH step on the unconstrained scale.

    Args:
        operand: Block step operand (see module docstring)
        log_density_fn: fn(chain_state) -> scalar log density
        used_proposal_types: ProposalType values in compact dispatch order
    """
    key, chain_state, lp, idx, log_scale, coupled_sd, proposal_type, settings = operand
    prop_operand = (key, chain_state[idx], log_scale, coupled_sd, settings)

    # Compact dispatch: only proposals the model uses are traced
    table = [PROPOSAL_REGISTRY[ptype] for ptype in used_proposal_types]
    if len(table) == 1:
        proposal, log_ratio, key = table[0](prop_operand)
    else:
        proposal, log_ratio, key = jax.lax.switch(proposal_type, table, prop_operand)

    return accept_reject(key, chain_state, lp, idx, proposal, log_ratio, log_density_fn)


def integer_walk_step(operand, log_density_fn):
    """Integer random-walk MH step for discrete nodes without a small finite support."""
    key, chain_state, lp, idx, log_scale, coupled_sd, _, settings = operand
    proposal, log_ratio, key = integer_walk_proposal((key, chain_state[idx], log_scale, coupled_sd, settings))
    return accept_reject(key, chain_state, lp, idx, proposal, log_ratio, log_density_fn)


def discrete_gibbs_step(operand, log_density_fn, max_support):
    """
    Draw a discrete node from its full conditional.

    The log density is evaluated at every support point (padded to the static
    max_support, padding masked to -inf) and one value is drawn from the
    normalised weights. If no support point has finite density the state is
    kept unchanged.
    """
    key, chain_state, lp, idx, _, _, _, settings = operand
    lower = settings[SettingSlot.SUPPORT_LOWER]
    size = settings[SettingSlot.SUPPORT_SIZE]

    offsets = jnp.arange(max_support, dtype=chain_state.dtype)
    values = lower + offsets
    lps = jax.vmap(lambda v: log_density_fn(chain_state.at[idx].set(v)))(values)
    lps = jnp.where(offsets < size, _safe_lp(lps), -jnp.inf)

    new_key, draw_key = random.split(key)
    choice = random.categorical(draw_key, lps)
    any_finite = jnp.any(jnp.isfinite(lps))

    next_state = jnp.where(any_finite, chain_state.at[idx].set(values[choice]), chain_state)
    next_lp = jnp.where(any_finite, lps[choice], lp)
    return next_state, new_key, next_lp, jnp.ones((), dtype=chain_state.dtype)


def full_chain_iteration(key, chain_state, lp, log_scales, coupled_sds,
                         block_arrays: BlockArrays, log_density_fn):
    """
    Run one full Gibbs sweep over all blocks of a single chain.

    Args:
        key: JAX random key
        chain_state: Current state of this chain (n_params,)
        lp: Log density at chain_state
        log_scales: Per-block log step scales of this chain (n_blocks,)
        coupled_sds: Per-block spread of the coupled chain group (n_blocks,)
        block_arrays: BlockArrays with block configuration
        log_density_fn: fn(chain_state) -> scalar

    Returns:
        final_state, final_key, final_lp, block_accepts (n_blocks,)
    """
    step_fns = {
        int(SamplerType.METROPOLIS_HASTINGS): partial(
            metropolis_block_step, log_density_fn=log_density_fn,
            used_proposal_types=block_arrays.used_proposal_types),
        int(SamplerType.DISCRETE_GIBBS): partial(
            discrete_gibbs_step, log_density_fn=log_density_fn,
            max_support=block_arrays.max_support),
        int(SamplerType.INTEGER_WALK): partial(integer_walk_step, log_density_fn=log_density_fn),
    }
    table = [step_fns[stype] for stype in block_arrays.used_sampler_types]

    def scan_body(carry, block_i):
        current_state, current_key, current_lp = carry
        operand = (
            current_key, current_state, current_lp,
            block_arrays.indices[block_i],
            log_scales[block_i],
            coupled_sds[block_i],
            block_arrays.proposal_types[block_i],
            block_arrays.settings_matrix[block_i],
        )
        if len(table) == 1:
            updated_state, new_key, new_lp, accepted = table[0](operand)
        else:
            updated_state, new_key, new_lp, accepted = jax.lax.switch(
                block_arrays.sampler_types[block_i], table, operand)
        return (updated_state, new_key, new_lp), accepted

    (final_state, final_key, final_lp), block_accepts = jax.lax.scan(
        scan_body,
        (chain_state, key, lp),
        jnp.arange(block_arrays.num_blocks)
    )
    return final_state, final_key, final_lp, block_accepts


def parallel_gibbs_iteration(keys, chain_states, lps, log_scales, coupled_sds,
                             block_arrays: BlockArrays, log_density_fn):
    """
    Run a Gibbs sweep for a group of chains in parallel.

    Args:
        keys: Random keys (n_chains, 2)
        chain_states: States (n_chains, n_params)
        lps: Log densities (n_chains,)
        log_scales: Log step scales (n_chains, n_blocks)
        coupled_sds: Coupled-group spreads (n_blocks,) - shared across chains
        block_arrays: Block configuration - shared across chains
        log_density_fn: fn(chain_state) -> scalar
    """
    def one_chain(key, state, lp, scales):
        return full_chain_iteration(key, state, lp, scales, coupled_sds, block_arrays, log_density_fn)

    return jax.vmap(one_chain)(keys, chain_states, lps, log_scales)
