"""
Common utilities for proposal distributions.

Every proposal receives the same operand tuple

    (key, current_value, log_scale, coupled_sd, settings)

and returns (proposal, log_hastings_ratio, new_key). All proposals here are
symmetric, so the Hastings ratio is always 0.

Constants:
    SD_NUGGET: Floor added to coupled-chain spreads
"""

from collections import namedtuple

import jax.numpy as jnp
import jax.random as random


# Keeps the SELF_MEAN step size positive when the coupled group has collapsed
SD_NUGGET = 1e-5


Operand = namedtuple('Operand', [
    'key', 'current_value', 'log_scale', 'coupled_sd', 'settings',
])


def unpack_operand(operand):
    """Unpack the 5-element operand tuple into a named struct."""
    return Operand(*operand)


def gaussian_step(key, current_value, sd):
    """Draw current_value + sd * N(0, 1) and split the key."""
    new_key, proposal_key = random.split(key)
    noise = random.normal(proposal_key, shape=jnp.shape(current_value), dtype=jnp.result_type(current_value))
    return current_value + sd * noise, new_key
