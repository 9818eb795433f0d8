"""
Error Handling and Validation Utilities

This module defines the exceptions raised while reading, compiling and running
a model, plus validation and post-run diagnostic helpers.

Exceptions:
    ModelSyntaxError  - the model text cannot be parsed
    ModelCompileError - the model parses but cannot be built with the given
                        data/inits (missing constants, redefined nodes, ...)
    ModelRuntimeError - the compiled model hits an invalid state (non-finite
                        log density at the initial values, ...)
"""

from typing import Any, Dict, Optional

import numpy as np

import logging
logger = logging.getLogger('bugsmcmc')

# Effective draws per variable below which a warning is reported
MIN_ESS = 100


class ModelSyntaxError(ValueError):
    """Raised when model text does not follow the BUGS grammar."""

    def __init__(self, message: str, line: Optional[int] = None, column: Optional[int] = None):
        self.line = line
        self.column = column
        if line is not None:
            where = f"line {line}" + (f", column {column}" if column is not None else "")
            message = f"{message} ({where})"
        super().__init__(message)


class ModelCompileError(ValueError):
    """Raised when a parsed model cannot be compiled against its data."""

    def __init__(self, message: str, node: Optional[str] = None):
        self.node = node
        super().__init__(message)


class ModelRuntimeError(RuntimeError):
    """Raised when a compiled model reaches an invalid state."""

    def __init__(self, message: str, node: Optional[str] = None):
        self.node = node
        super().__init__(message)


def validate_mcmc_config(mcmc_config: Dict[str, Any]) -> None:
    """
    Validates that MCMC configuration is sensible.

    Args:
        mcmc_config: Configuration dictionary

    Raises:
        ValueError: If configuration is invalid
    """
    errors = []

    if 'n_chains' in mcmc_config:
        if mcmc_config['n_chains'] < 1:
            errors.append("n_chains must be >= 1")

    if 'n_adapt' in mcmc_config:
        if mcmc_config['n_adapt'] < 0:
            errors.append("n_adapt must be >= 0")

    if 'n_iter' in mcmc_config:
        if mcmc_config['n_iter'] < 0:
            errors.append("n_iter must be >= 0")

    if 'n_burnin' in mcmc_config:
        if mcmc_config['n_burnin'] < 0:
            errors.append("n_burnin must be >= 0")

    if 'thin' in mcmc_config:
        if mcmc_config['thin'] < 1:
            errors.append("thin must be >= 1")

    if 'chunk_size' in mcmc_config:
        if mcmc_config['chunk_size'] < 1:
            errors.append("chunk_size must be >= 1")

    if 'proposal' in mcmc_config:
        if mcmc_config['proposal'] not in ('auto', 'rand_walk', 'self_mean'):
            errors.append(
                f"proposal must be 'auto', 'rand_walk' or 'self_mean', got {mcmc_config['proposal']!r}"
            )
        elif mcmc_config['proposal'] == 'self_mean':
            n_chains = mcmc_config.get('n_chains', 1)
            if n_chains < 4:
                errors.append(
                    f"proposal 'self_mean' needs at least 4 chains (two per group), got {n_chains}"
                )

    if errors:
        raise ValueError("Invalid MCMC configuration:\n  " + "\n  ".join(errors))


def diagnose_sampler_issues(history: np.ndarray, varnames, diagnostics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyzes a sample array to identify common issues.

    Args:
        history: Sample array (n_iter, n_chains, n_vars)
        varnames: Variable names for the last axis
        diagnostics: Existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = diagnostics | {
        'issues': [],
        'warnings': [],
        'info': []
    }

    if history.size == 0:
        diagnostics['warnings'].append("No samples were recorded")
        return diagnostics

    if not np.all(np.isfinite(history)):
        bad = [name for name, ok in zip(varnames, np.all(np.isfinite(history), axis=(0, 1))) if not ok]
        diagnostics['issues'].append(
            f"Samples contain NaN or Inf values for: {', '.join(bad)}"
        )

    # A chain that never moves for a variable usually means a stuck sampler,
    # unless the variable is a constant for every chain.
    if history.shape[0] > 1:
        chain_vars = np.var(history, axis=0)  # (n_chains, n_vars)
        all_constant = np.all(chain_vars < 1e-12, axis=0)
        stuck = (chain_vars < 1e-12) & ~all_constant[None, :]
        if np.any(stuck):
            chains, cols = np.nonzero(stuck)
            pairs = [f"{varnames[c]} (chain {ch + 1})" for ch, c in zip(chains, cols)]
            diagnostics['warnings'].append(
                f"{len(pairs)} chain/variable pair(s) appear stuck: {', '.join(pairs[:10])}"
            )

    ess = diagnostics.get('ess')
    if ess is not None:
        low = [name for name, n in zip(varnames, np.asarray(ess)) if n < MIN_ESS]
        if low:
            diagnostics['warnings'].append(
                f"Effective sample size below {MIN_ESS} for: {', '.join(low[:10])}"
            )

    rhat = diagnostics.get('rhat')
    if rhat is not None:
        threshold = diagnostics.get('rhat_threshold', 1.1)
        high = [name for name, r in zip(varnames, np.asarray(rhat)) if r > threshold]
        if high:
            diagnostics['warnings'].append(
                f"Shrink factor above {threshold} for: {', '.join(high[:10])}"
            )

    diagnostics['info'].append(f"Total draws: {history.shape[0] * history.shape[1]}")
    diagnostics['info'].append(f"Number of chains: {history.shape[1]}")
    diagnostics['info'].append(f"Number of monitored variables: {history.shape[2]}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Pretty-print diagnostics from diagnose_sampler_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.info("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.info(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.info("[OK] No issues detected")
