"""
Proposal settings configuration.

Settings are stored in an array of shape (n_blocks, MAX_SETTINGS) so each
sampler step reads its block's row by position using the SettingSlot enum.

To add a new setting:
1. Add it to SettingSlot enum
2. Add default value to SETTING_DEFAULTS
3. Use it in a proposal: settings[SettingSlot.NEW_SETTING]
4. Specify in BlockSpec: settings={'new_setting': value}
"""

from enum import IntEnum
import numpy as np
import jax.numpy as jnp


class SettingSlot(IntEnum):
    """Canonical slot indices for per-block sampler settings."""
    COV_MULT = 0        # Multiplier on the coupled-chain spread (SELF_MEAN)
    INIT_SCALE = 1      # Starting proposal sd on the unconstrained scale
    SUPPORT_LOWER = 2   # Smallest value of a finite discrete support
    SUPPORT_SIZE = 3    # Number of values in a finite discrete support


SETTING_DEFAULTS = {
    SettingSlot.COV_MULT: 2.38 ** 2,  # optimal 1-d random walk variance factor
    SettingSlot.INIT_SCALE: 1.0,
    SettingSlot.SUPPORT_LOWER: 0.0,
    SettingSlot.SUPPORT_SIZE: 0.0,
}

MAX_SETTINGS = len(SettingSlot)


def build_settings_matrix(specs, dtype=jnp.float32):
    """
    Convert BlockSpec settings dicts into a JAX matrix.

    Args:
        specs: List of BlockSpec objects
        dtype: Float dtype of the result

    Returns:
        JAX array of shape (n_blocks, MAX_SETTINGS)

    Raises:
        ValueError: On a setting name with no slot
    """
    matrix = np.zeros((len(specs), MAX_SETTINGS), dtype=np.float64)
    for slot, default in SETTING_DEFAULTS.items():
        matrix[:, slot] = default

    for i, spec in enumerate(specs):
        for key, value in spec.settings.items():
            if not hasattr(SettingSlot, key.upper()):
                raise ValueError(f"Unknown setting '{key}' for block {spec.label!r}")
            matrix[i, getattr(SettingSlot, key.upper())] = float(value)

    return jnp.asarray(matrix, dtype=dtype)
