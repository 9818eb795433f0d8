"""
MCMC Data Structures and Type Definitions.

- BlockArrays: Pre-parsed block specification arrays (JAX pytree)
- RunParams: Immutable kernel parameters used as JIT static arguments
- build_block_arrays: Factory function for BlockArrays
"""

import jax
import jax.numpy as jnp
import numpy as np
from dataclasses import dataclass
from typing import List

from ..batch_specs import BlockSpec, SamplerType
from ..settings import build_settings_matrix, SettingSlot


@dataclass(frozen=True)
class BlockArrays:
    """
    Pre-parsed block specification arrays for the sampling kernel.

    sampler_types and proposal_types are REMAPPED indices into compact
    dispatch tables holding only the samplers/proposals this model uses, so
    JAX never traces code paths the model does not need. The original enum
    values are kept, in dispatch order, in used_sampler_types and
    used_proposal_types.
    """
    indices: jnp.ndarray          # (n_blocks,) - parameter index per block
    sampler_types: jnp.ndarray    # (n_blocks,) - remapped sampler index
    proposal_types: jnp.ndarray   # (n_blocks,) - remapped proposal index (0 if unused)
    settings_matrix: jnp.ndarray  # (n_blocks, MAX_SETTINGS)
    is_mh: jnp.ndarray            # (n_blocks,) - True for accept/reject blocks

    num_blocks: int
    total_params: int
    used_sampler_types: tuple
    used_proposal_types: tuple
    max_support: int              # largest DISCRETE_GIBBS support (static enumeration size)


def _block_arrays_flatten(ba):
    children = (ba.indices, ba.sampler_types, ba.proposal_types, ba.settings_matrix, ba.is_mh)
    aux_data = (ba.num_blocks, ba.total_params, ba.used_sampler_types,
                ba.used_proposal_types, ba.max_support)
    return children, aux_data


def _block_arrays_unflatten(aux_data, children):
    indices, sampler_types, proposal_types, settings_matrix, is_mh = children
    num_blocks, total_params, used_sampler_types, used_proposal_types, max_support = aux_data
    return BlockArrays(
        indices=indices,
        sampler_types=sampler_types,
        proposal_types=proposal_types,
        settings_matrix=settings_matrix,
        is_mh=is_mh,
        num_blocks=num_blocks,
        total_params=total_params,
        used_sampler_types=used_sampler_types,
        used_proposal_types=used_proposal_types,
        max_support=max_support,
    )


jax.tree_util.register_pytree_node(
    BlockArrays,
    _block_arrays_flatten,
    _block_arrays_unflatten
)


@dataclass(frozen=True)
class RunParams:
    """
    Immutable kernel parameters for JAX static argument compatibility.

    N_STEPS iterations are run per kernel call; when RECORD is set the
    monitors are evaluated after every THIN-th iteration.
    """
    N_STEPS: int
    THIN: int
    RECORD: bool

    @property
    def n_saved(self) -> int:
        return self.N_STEPS // self.THIN if self.RECORD else 0


def build_block_arrays(specs: List[BlockSpec], dtype=jnp.float32) -> BlockArrays:
    """
    Build BlockArrays from a list of scalar BlockSpec objects.

    Args:
        specs: One BlockSpec per parameter, in parameter order
        dtype: Float dtype for the settings matrix

    Returns:
        BlockArrays ready for the sampling kernel

    Raises:
        ValueError: If specs is empty
    """
    if not specs:
        raise ValueError("Empty block specifications")

    num_blocks = len(specs)
    indices = np.arange(num_blocks, dtype=np.int32)

    used_samplers = tuple(sorted({int(spec.sampler_type) for spec in specs}))
    sampler_to_compact = {t: i for i, t in enumerate(used_samplers)}

    used_proposals = tuple(sorted({
        int(spec.proposal_type) for spec in specs
        if spec.sampler_type == SamplerType.METROPOLIS_HASTINGS
    }))
    proposal_to_compact = {t: i for i, t in enumerate(used_proposals)}

    sampler_types = np.array([sampler_to_compact[int(s.sampler_type)] for s in specs], dtype=np.int32)
    proposal_types = np.array([
        proposal_to_compact[int(s.proposal_type)] if s.sampler_type == SamplerType.METROPOLIS_HASTINGS else 0
        for s in specs
    ], dtype=np.int32)
    is_mh = np.array([s.is_mh_sampler() for s in specs])

    settings_matrix = build_settings_matrix(specs, dtype=dtype)
    sizes = np.asarray(settings_matrix[:, SettingSlot.SUPPORT_SIZE])
    gibbs = np.array([s.sampler_type == SamplerType.DISCRETE_GIBBS for s in specs])
    max_support = int(sizes[gibbs].max()) if np.any(gibbs) else 0

    return BlockArrays(
        indices=jnp.asarray(indices),
        sampler_types=jnp.asarray(sampler_types),
        proposal_types=jnp.asarray(proposal_types),
        settings_matrix=settings_matrix,
        is_mh=jnp.asarray(is_mh),
        num_blocks=num_blocks,
        total_params=num_blocks,
        used_sampler_types=used_samplers,
        used_proposal_types=used_proposals,
        max_support=max_support,
    )
