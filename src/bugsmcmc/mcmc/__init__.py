"""
MCMC Subpackage - Sampling engine for compiled models.

- model: Model object and the compile_model / update / coda_samples entry points
- compile: Kernel compilation and caching
- config: Configuration, data/inits preparation and chain initialization
- diagnostics: Acceptance-rate summaries
- sampling: Block steps (Metropolis, discrete Gibbs, integer walk)
- scan: Red/black sweep over the two chain groups
- types: Core data structures (BlockArrays, RunParams)
- utils: Config defaults
"""

# Import types first (needed by other modules)
from .types import BlockArrays, RunParams, build_block_arrays

from .model import Model, compile_model, update, coda_samples
from .config import (
    configure_mcmc_system,
    load_model_text,
    prepare_data,
    normalize_inits,
    gen_rng_keys,
)
from .diagnostics import print_acceptance_summary
from .compile import compile_mcmc_kernel

__all__ = [
    # Main entry points
    'Model',
    'compile_model',
    'update',
    'coda_samples',
    # Types
    'BlockArrays',
    'RunParams',
    'build_block_arrays',
    # Config
    'configure_mcmc_system',
    'load_model_text',
    'prepare_data',
    'normalize_inits',
    'gen_rng_keys',
    # Diagnostics
    'print_acceptance_summary',
    # Compilation
    'compile_mcmc_kernel',
]
