"""
Batch Specification System

Each unobserved scalar node of a compiled model is updated by its own block.
A BlockSpec records which sampler updates the block and, for Metropolis
blocks, which proposal builds the candidate.

Samplers:
    METROPOLIS_HASTINGS - continuous node, Gaussian proposal on the
                          unconstrained scale
    DISCRETE_GIBBS      - discrete node with small finite support; draws
                          exactly from the full conditional by enumeration
    INTEGER_WALK        - discrete node with unbounded (or large) support;
                          symmetric integer random-walk Metropolis
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from enum import IntEnum
import numpy as np


# ============================================================================
# SAMPLER TYPE ENUMERATION
# ============================================================================

class SamplerType(IntEnum):
    """Enumeration of available sampler types."""
    METROPOLIS_HASTINGS = 0  # Gaussian random walk on the unconstrained scale
    DISCRETE_GIBBS = 1       # Enumerate a finite support, sample the full conditional
    INTEGER_WALK = 2         # Integer random-walk Metropolis

    def __str__(self):
        return self.name.replace('_', ' ').title()


# ============================================================================
# PROPOSAL TYPE ENUMERATION
# ============================================================================

class ProposalType(IntEnum):
    """
    Proposal strategies for METROPOLIS_HASTINGS blocks.

    To add a new proposal:
    1. Add enum value here
    2. Implement it in proposals/
    3. Add it to PROPOSAL_REGISTRY in mcmc/sampling.py
    """
    RAND_WALK = 0  # Per-chain adaptive step size
    SELF_MEAN = 1  # Step size from the spread of the coupled chain group

    def __str__(self):
        return self.name.replace('_', ' ').title()


PROPOSAL_NAMES = {
    'rand_walk': ProposalType.RAND_WALK,
    'self_mean': ProposalType.SELF_MEAN,
}


# ============================================================================
# BLOCK SPECIFICATION
# ============================================================================

@dataclass
class BlockSpec:
    """
    Specification for a single parameter block.

    Fields:
        size: Number of parameters in the block (always 1 for model nodes)
        sampler_type: How to sample this block
        proposal_type: Proposal for METROPOLIS_HASTINGS blocks
        label: Node name, e.g. "theta[3]"
        settings: Sampler settings by SettingSlot name (cov_mult, init_scale,
                  support_lower, support_size)
        metadata: Additional info, not used by the sampler

    Examples:
        BlockSpec(size=1, sampler_type=SamplerType.METROPOLIS_HASTINGS, label="mu")

        BlockSpec(size=1, sampler_type=SamplerType.DISCRETE_GIBBS, label="z[2]",
                  settings={'support_lower': 1, 'support_size': 3})
    """
    size: int
    sampler_type: SamplerType
    proposal_type: Optional[ProposalType] = ProposalType.RAND_WALK
    label: str = ""
    settings: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.size < 1:
            raise ValueError(f"Block size must be >= 1, got {self.size}")

        if not isinstance(self.sampler_type, (SamplerType, int)):
            raise ValueError(f"sampler_type must be SamplerType or int, got {type(self.sampler_type)}")
        if isinstance(self.sampler_type, int):
            object.__setattr__(self, 'sampler_type', SamplerType(self.sampler_type))

        if self.proposal_type is not None and isinstance(self.proposal_type, int):
            object.__setattr__(self, 'proposal_type', ProposalType(self.proposal_type))

        if self.sampler_type == SamplerType.DISCRETE_GIBBS:
            if self.settings.get('support_size', 0) < 1:
                raise ValueError(
                    f"DISCRETE_GIBBS block {self.label!r} requires a positive 'support_size' setting"
                )

    def is_mh_sampler(self):
        """Check if this block uses a Metropolis-Hastings accept/reject step."""
        return self.sampler_type in (SamplerType.METROPOLIS_HASTINGS, SamplerType.INTEGER_WALK)

    def sampler_name(self) -> str:
        """Name reported by list_samplers."""
        if self.sampler_type == SamplerType.METROPOLIS_HASTINGS:
            return f"{self.sampler_type!s} ({self.proposal_type!s})"
        return str(self.sampler_type)

    def __repr__(self):
        parts = [f"BlockSpec(size={self.size}, sampler={self.sampler_type!s}"]
        if self.sampler_type == SamplerType.METROPOLIS_HASTINGS and self.proposal_type is not None:
            parts.append(f"proposal={self.proposal_type!s}")
        if self.label:
            parts.append(f'label="{self.label}"')
        if self.settings:
            parts.append(f"settings={self.settings}")
        return ", ".join(parts) + ")"


# ============================================================================
# VALIDATION
# ============================================================================

def validate_block_specs(specs: List[BlockSpec], model_name: str = "") -> None:
    """
    Validate a list of block specifications.

    Raises:
        ValueError: If specs are invalid
    """
    if not isinstance(specs, list):
        raise ValueError(f"Block specs must be a list, got {type(specs)}")

    errors = []
    for i, spec in enumerate(specs):
        if not isinstance(spec, BlockSpec):
            errors.append(f"Block {i}: Expected BlockSpec object, got {type(spec)}")
            continue
        if spec.size != 1:
            errors.append(f"Block {i} ({spec.label or 'unlabeled'}): only scalar blocks are supported")
        if spec.sampler_type == SamplerType.METROPOLIS_HASTINGS and spec.proposal_type is None:
            errors.append(f"Block {i} ({spec.label or 'unlabeled'}): METROPOLIS_HASTINGS needs a proposal_type")

    if errors:
        prefix = f"Invalid block specs for '{model_name}'" if model_name else "Invalid block specs"
        raise ValueError(f"{prefix}:\n  " + "\n  ".join(errors))


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def create_node_blocks(param_names: List[str],
                       support_lower: np.ndarray,
                       support_size: np.ndarray,
                       discrete: np.ndarray,
                       proposal_type: ProposalType = ProposalType.RAND_WALK) -> List[BlockSpec]:
    """
    Create one block per model parameter.

    Args:
        param_names: Node label of each parameter
        support_lower: Lowest support value of each discrete parameter
        support_size: Finite support size (0 when unbounded or too large)
        discrete: Boolean mask of discrete parameters
        proposal_type: Proposal for continuous parameters

    Returns:
        List of BlockSpec objects, one per parameter
    """
    specs = []
    for name, lower, size, is_discrete in zip(param_names, support_lower, support_size, discrete):
        if is_discrete and size > 0:
            specs.append(BlockSpec(
                size=1,
                sampler_type=SamplerType.DISCRETE_GIBBS,
                proposal_type=None,
                label=name,
                settings={'support_lower': float(lower), 'support_size': int(size)},
            ))
        elif is_discrete:
            specs.append(BlockSpec(
                size=1,
                sampler_type=SamplerType.INTEGER_WALK,
                proposal_type=None,
                label=name,
            ))
        else:
            specs.append(BlockSpec(
                size=1,
                sampler_type=SamplerType.METROPOLIS_HASTINGS,
                proposal_type=proposal_type,
                label=name,
            ))
    return specs


# ============================================================================
# SUMMARY UTILITIES
# ============================================================================

def summarize_blocks(specs: List[BlockSpec]) -> str:
    """Create a human-readable summary of block specifications."""
    sampler_counts = {}
    for spec in specs:
        name = spec.sampler_name()
        sampler_counts[name] = sampler_counts.get(name, 0) + 1

    lines = [
        "Block Specification Summary:",
        f"  Total blocks: {len(specs)}",
        f"  Total parameters: {sum(spec.size for spec in specs)}",
        "",
        "Sampler breakdown:",
    ]
    for name, count in sorted(sampler_counts.items()):
        lines.append(f"  {name}: {count} block(s)")
    return "\n".join(lines)
