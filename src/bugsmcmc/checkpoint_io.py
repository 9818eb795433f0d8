"""
Checkpoint I/O utilities for samples and sampler state.

This module provides functions for:
- Saving and loading Samples as .npz files
- Saving a model's sampler state to continue a run later
- Restoring a saved sampler state into a model compiled from the same inputs
"""

from typing import Any, Dict, Optional

import numpy as np
from pathlib import Path

from .samples import Samples

import logging
logger = logging.getLogger('bugsmcmc')


def save_samples(filepath, samples: Samples, metadata: Optional[Dict[str, Any]] = None) -> Path:
    """
    Save samples to a compressed .npz file.

    Saves:
        - draws (n_iter, n_chains, n_vars)
        - variable names
        - start iteration and thin
        - optional metadata dict
    """
    payload = {
        'draws': samples.draws,
        'varnames': np.array(samples.varnames, dtype=str),
        'start': samples.start,
        'thin': samples.thin,
    }
    if metadata:
        payload['metadata'] = np.array(metadata, dtype=object)

    filepath = Path(filepath)
    np.savez_compressed(filepath, **payload)
    logger.info(f"Samples saved to {filepath}")
    return filepath


def load_samples(filepath) -> Samples:
    """
    Load samples saved by save_samples.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Samples file not found: {filepath}")

    # Copy arrays so nothing keeps the file open
    with np.load(filepath, allow_pickle=False) as data:
        return Samples(
            data['draws'].copy(),
            [str(v) for v in data['varnames']],
            start=int(data['start']),
            thin=int(data['thin']),
        )


def load_samples_metadata(filepath) -> Dict[str, Any]:
    """Metadata dict stored with save_samples (empty if none)."""
    with np.load(Path(filepath), allow_pickle=True) as data:
        if 'metadata' not in data:
            return {}
        return data['metadata'].item()


def save_model_state(filepath, model) -> Path:
    """
    Save a model's sampler state (chain states, keys, step scales, iteration).

    The model text and data are not saved; restore into a model compiled
    from the same inputs with load_model_state.
    """
    state = model.get_sampler_state()
    checkpoint = {
        'states': state['states'],
        'keys': state['keys'],
        'log_scales': state['log_scales'],
        'iteration': state['iteration'],
        # Validation metadata
        'param_names': np.array(model.compiled.param_names, dtype=str),
        'n_chains': model.n_chains,
    }
    filepath = Path(filepath)
    np.savez_compressed(filepath, **checkpoint)
    logger.info(f"Checkpoint saved to {filepath}")
    return filepath


def load_model_state(filepath, model) -> int:
    """
    Restore a saved sampler state into model.

    Returns:
        The restored iteration number

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the checkpoint was saved from a different model
    """
    filepath = Path(filepath)
    if not filepath.exists():
        raise FileNotFoundError(f"Checkpoint not found: {filepath}")

    with np.load(filepath, allow_pickle=False) as data:
        param_names = [str(v) for v in data['param_names']]
        n_chains = int(data['n_chains'])
        state = {
            'states': data['states'].copy(),
            'keys': data['keys'].copy(),
            'log_scales': data['log_scales'].copy(),
            'iteration': int(data['iteration']),
        }

    if param_names != model.compiled.param_names:
        raise ValueError("Checkpoint parameters do not match the model's unobserved nodes")
    if n_chains != model.n_chains:
        raise ValueError(f"Checkpoint has {n_chains} chains, model has {model.n_chains}")

    model.set_sampler_state(state)
    logger.info(f"Resumed from {filepath} at iteration {state['iteration']}")
    return state['iteration']
