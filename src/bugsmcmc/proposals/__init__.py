"""
Proposal distributions for Metropolis blocks.

All proposals share the operand (key, current_value, log_scale, coupled_sd,
settings) and return (proposal, log_hastings_ratio, new_key).
"""

from .rand_walk import rand_walk_proposal
from .self_mean import self_mean_proposal
from .integer_walk import integer_walk_proposal

__all__ = [
    'rand_walk_proposal',
    'self_mean_proposal',
    'integer_walk_proposal',
]
