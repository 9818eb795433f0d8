"""
Sampler Diagnostics.

- acceptance_rates: Per-block acceptance from counts
- print_acceptance_summary: Summary of Metropolis acceptance rates
"""

from typing import List

import numpy as np


# Acceptance band considered adapted for scalar Metropolis blocks
ACCEPT_LOW = 0.15
ACCEPT_HIGH = 0.70


def acceptance_rates(accept_counts: np.ndarray, n_iter: int) -> np.ndarray:
    """Mean acceptance per block over chains; accept_counts is (n_chains, n_blocks)."""
    if n_iter <= 0:
        return np.full(accept_counts.shape[1], np.nan)
    return np.asarray(accept_counts).mean(axis=0) / n_iter


def print_acceptance_summary(block_specs: List, acceptance_rates_host: np.ndarray) -> None:
    """
    Print summary statistics for MH acceptance rates.

    Args:
        block_specs: List of BlockSpec objects
        acceptance_rates_host: Acceptance rates array (numpy, on host)
    """
    mh_rates = []
    mh_labels = []
    for i, (spec, rate) in enumerate(zip(block_specs, acceptance_rates_host)):
        if spec.is_mh_sampler():
            mh_rates.append(rate)
            mh_labels.append(spec.label if spec.label else f"Block {i}")

    if not mh_rates:
        return

    mh_rates = np.array(mh_rates)
    print(f"\n--- MH Acceptance Rates ({len(mh_rates)} blocks) ---")
    print(f"  Mean: {np.mean(mh_rates):.1%}  Median: {np.median(mh_rates):.1%}  "
          f"Min: {np.min(mh_rates):.1%}  Max: {np.max(mh_rates):.1%}")

    outside = (mh_rates < ACCEPT_LOW) | (mh_rates > ACCEPT_HIGH)
    if np.any(outside):
        n_out = int(np.sum(outside))
        labels = [lbl for lbl, bad in zip(mh_labels, outside) if bad]
        print(f"  WARNING: {n_out} block(s) outside [{ACCEPT_LOW:.0%}, {ACCEPT_HIGH:.0%}]")
        if n_out <= 10:
            print(f"    Blocks: {', '.join(labels)}")
