"""
Integer Walk Proposal

Symmetric random walk over the integers for discrete nodes whose support is
unbounded or too large to enumerate:

    d = round(N(0, (init_scale * exp(log_scale))^2)), with d = 0 replaced by +1 or -1
    x' = x + d

The step distribution is symmetric around 0, so the Hastings ratio is 0.
"""

import jax.numpy as jnp
import jax.random as random

from ..settings import SettingSlot
from .common import unpack_operand


def integer_walk_proposal(operand):
    """
    Args:
        operand: (key, current_value, log_scale, coupled_sd, settings);
            coupled_sd is ignored

    Returns:
        proposal, log_hastings_ratio (0.0), new_key
    """
    op = unpack_operand(operand)
    new_key, step_key, sign_key = random.split(op.key, 3)
    sd = op.settings[SettingSlot.INIT_SCALE] * jnp.exp(op.log_scale)
    step = jnp.round(sd * random.normal(step_key, dtype=jnp.result_type(op.current_value)))
    sign = jnp.where(random.bernoulli(sign_key), 1.0, -1.0)
    step = jnp.where(step == 0, sign, step)
    return op.current_value + step, 0.0, new_key
