"""
MCMC Configuration and Initialization.

This module handles turning user inputs into sampler-ready structures:
- configure_mcmc_system: Validate config, set precision, build block arrays
- load_model_text: Model text from a string or a file
- prepare_data: Data mapping -> float arrays (NaN marks missing values)
- normalize_inits: Per-chain initial value mappings
- gen_rng_keys: Per-chain JAX random keys
- initialize_chains: Unconstrained starting states for every chain

All config keys use lowercase with underscores (e.g., 'n_chains', 'rng_seed').
"""

import os
from typing import Any, Callable, Dict, List, Mapping, Tuple, Union

import numpy as np
import jax
import jax.numpy as jnp
import jax.random as random

from .utils import clean_config
from .types import build_block_arrays
from ..batch_specs import (
    ProposalType, PROPOSAL_NAMES, create_node_blocks, validate_block_specs,
)
from ..error_handling import validate_mcmc_config

import logging
logger = logging.getLogger('bugsmcmc')


def configure_mcmc_system(mcmc_config: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Configure the sampler from a config dict.

    Returns:
        user_config: Config dict with defaults filled in (no JAX types)
        runtime_ctx: Dict with the JAX float dtype

    Raises:
        ValueError: If the configuration is invalid
    """
    user_config = clean_config(dict(mcmc_config))
    validate_mcmc_config(user_config)

    if user_config['use_double']:
        jax.config.update("jax_enable_x64", True)
        jnp_float_dtype = jnp.float64
    else:
        jax.config.update("jax_enable_x64", False)
        jnp_float_dtype = jnp.float32

    runtime_ctx = {'jnp_float_dtype': jnp_float_dtype}
    return user_config, runtime_ctx


def resolve_proposal(proposal: str, n_chains: int) -> ProposalType:
    """Proposal for continuous blocks; 'auto' picks SELF_MEAN when both groups hold two or more chains."""
    if proposal == 'auto':
        return ProposalType.SELF_MEAN if n_chains >= 4 else ProposalType.RAND_WALK
    return PROPOSAL_NAMES[proposal]


def build_model_blocks(compiled, proposal_type: ProposalType, dtype):
    """BlockSpecs and BlockArrays for every parameter of a compiled model."""
    lower, size = compiled.discrete_support()
    specs = create_node_blocks(
        compiled.param_names, lower, size, compiled.graph.param_discrete, proposal_type
    )
    validate_block_specs(specs)
    return specs, build_block_arrays(specs, dtype=dtype)


def load_model_text(model: Union[str, os.PathLike]) -> str:
    """
    Model text from a string, or from a file when `model` names one.

    Raises:
        FileNotFoundError: For a path-like object that does not exist
    """
    if isinstance(model, os.PathLike):
        with open(model) as f:
            return f.read()
    if '{' not in model and os.path.isfile(model):
        with open(model) as f:
            return f.read()
    return model


def prepare_data(data: Mapping[str, Any] = None) -> Dict[str, np.ndarray]:
    """
    Convert data values to float arrays.

    None entries become NaN (missing). Names starting with '.' are dropped.

    Raises:
        ValueError: For values that cannot be read as numbers
    """
    prepared = {}
    for name, value in (data or {}).items():
        if name.startswith('.'):
            continue
        try:
            prepared[name] = np.array(value, dtype=float)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Data for {name} is not numeric: {e}") from e
    return prepared


def normalize_inits(inits: Union[None, Mapping, List[Mapping], Callable], n_chains: int) -> List[Dict]:
    """
    One init mapping per chain.

    Args:
        inits: None, one mapping used by every chain, a list with one mapping
            per chain, or a callable taking the 0-based chain index
        n_chains: Number of chains

    Raises:
        ValueError: On a list of the wrong length or an unsupported type
    """
    if inits is None:
        if n_chains > 1:
            logger.warning(
                "No initial values supplied for %d chains: every chain starts from the same point",
                n_chains)
        return [{} for _ in range(n_chains)]
    if callable(inits):
        return [dict(inits(c)) for c in range(n_chains)]
    if isinstance(inits, Mapping):
        return [dict(inits) for _ in range(n_chains)]
    if isinstance(inits, (list, tuple)):
        if len(inits) != n_chains:
            raise ValueError(f"Length of inits ({len(inits)}) does not match n_chains ({n_chains})")
        return [dict(init) for init in inits]
    raise ValueError(f"inits must be a mapping, a list of mappings or a callable, got {type(inits)}")


def gen_rng_keys(rng_seed: int, inits_list: List[Mapping]) -> jnp.ndarray:
    """
    Per-chain JAX random keys.

    A chain whose inits carry '.RNG.seed' is seeded from it; the others use
    fold_in(PRNGKey(rng_seed), chain).

    Returns:
        (n_chains, 2) key array
    """
    master_key = random.PRNGKey(rng_seed)
    keys = []
    for chain, init in enumerate(inits_list):
        if '.RNG.seed' in init:
            keys.append(random.PRNGKey(int(init['.RNG.seed'])))
        else:
            keys.append(random.fold_in(master_key, chain))
    return jnp.stack(keys)


def initialize_chains(compiled, inits_list: List[Mapping]) -> np.ndarray:
    """
    Unconstrained starting state of every chain.

    Raises:
        ModelCompileError: For invalid inits
        ModelRuntimeError: If a starting state has non-finite log density
    """
    states = np.empty((len(inits_list), compiled.n_params))
    for chain, init in enumerate(inits_list):
        x = compiled.initial_values(init)
        states[chain] = compiled.unconstrain(x)
        compiled.check_initial_state(states[chain], chain)
    return states
