"""
Random Walk Proposal

Gaussian random walk on the unconstrained scale with a per-chain step size:

    x' ~ N(x, (init_scale * exp(log_scale))^2)

log_scale is tuned during adaptation toward 0.44 acceptance and then frozen.
Does not use any coupled chain statistics, so it works with a single chain.

Hastings ratio: 0 (symmetric proposal)
"""

import jax.numpy as jnp

from ..settings import SettingSlot
from .common import unpack_operand, gaussian_step


def rand_walk_proposal(operand):
    """
    Args:
        operand: (key, current_value, log_scale, coupled_sd, settings);
            coupled_sd is ignored

    Returns:
        proposal, log_hastings_ratio (0.0), new_key
    """
    op = unpack_operand(operand)
    sd = op.settings[SettingSlot.INIT_SCALE] * jnp.exp(op.log_scale)
    proposal, new_key = gaussian_step(op.key, op.current_value, sd)
    return proposal, 0.0, new_key
