"""
Self-Mean Proposal

Symmetric random walk centered on the current state whose step size comes
from the spread of the coupled chain group:

    x' ~ N(x, cov_mult * exp(2 * log_scale) * sd_coupled^2)

where sd_coupled is the standard deviation of this node across the chains of
the other group (red/black update: group A proposes with group B's spread and
vice versa, so a chain never sees its own state in its proposal).

Settings used:
    COV_MULT - Proposal variance multiplier (default 2.38^2)

Hastings ratio: 0 (symmetric proposal)
"""

import jax.numpy as jnp

from ..settings import SettingSlot
from .common import unpack_operand, gaussian_step, SD_NUGGET


def self_mean_proposal(operand):
    """
    Args:
        operand: (key, current_value, log_scale, coupled_sd, settings)

    Returns:
        proposal, log_hastings_ratio (0.0), new_key
    """
    op = unpack_operand(operand)
    sd = jnp.sqrt(op.settings[SettingSlot.COV_MULT]) * jnp.exp(op.log_scale) * (op.coupled_sd + SD_NUGGET)
    proposal, new_key = gaussian_step(op.key, op.current_value, sd)
    return proposal, 0.0, new_key
