"""
Posterior sample collections.

A Samples object holds the monitored draws of several chains:

    draws       (n_iter, n_chains, n_vars) array
    varnames    node label of each column ("mu", "theta[2]", "x[1,3]")
    start/thin  iteration number of the first row and the spacing between rows

Functions:
- apply_burnin: Drop rows recorded before an iteration
- concatenate_samples: Join consecutive sample runs
"""

import re
from typing import List, Sequence

import numpy as np
import pandas as pd

import logging
logger = logging.getLogger('bugsmcmc')

_BASE_RE = re.compile(r'^([^\[]+)(\[.*\])?$')


class Samples:
    """
    Draws from several chains of monitored nodes.

    Args:
        draws: Array (n_iter, n_chains, n_vars)
        varnames: Column labels
        start: Iteration number of the first row
        thin: Iterations between rows
    """

    def __init__(self, draws, varnames: Sequence[str], start: int = 1, thin: int = 1):
        draws = np.asarray(draws, dtype=float)
        if draws.ndim != 3:
            raise ValueError(f"draws must have shape (n_iter, n_chains, n_vars), got {draws.shape}")
        if draws.shape[2] != len(varnames):
            raise ValueError(f"{draws.shape[2]} columns but {len(varnames)} variable names")
        if thin < 1:
            raise ValueError(f"thin must be >= 1, got {thin}")
        self.draws = draws
        self.varnames = list(varnames)
        self.start = int(start)
        self.thin = int(thin)

    @property
    def niter(self) -> int:
        return self.draws.shape[0]

    @property
    def nchain(self) -> int:
        return self.draws.shape[1]

    @property
    def nvar(self) -> int:
        return self.draws.shape[2]

    @property
    def end(self) -> int:
        return self.start + self.thin * (self.niter - 1)

    @property
    def iterations(self) -> np.ndarray:
        """Iteration number of every row."""
        return self.start + self.thin * np.arange(self.niter)

    def __repr__(self):
        return (f"Samples(niter={self.niter}, nchain={self.nchain}, nvar={self.nvar}, "
                f"iterations={self.start}:{self.end}, thin={self.thin})")

    def _columns(self, names) -> List[int]:
        if isinstance(names, str):
            names = [names]
        cols = []
        for name in names:
            if name in self.varnames:
                cols.append(self.varnames.index(name))
                continue
            matched = [i for i, v in enumerate(self.varnames) if _BASE_RE.match(v).group(1) == name]
            if not matched:
                raise KeyError(f"No variable {name!r} in samples")
            cols.extend(matched)
        return cols

    def select(self, names) -> 'Samples':
        """Keep the named columns; a base name ("theta") selects every element."""
        cols = self._columns(names)
        return Samples(self.draws[:, :, cols], [self.varnames[i] for i in cols], self.start, self.thin)

    def __getitem__(self, name) -> np.ndarray:
        """Draws of one variable: (n_iter, n_chains) for a scalar, (n_iter, n_chains, k) for a base name."""
        cols = self._columns(name)
        if isinstance(name, str) and name in self.varnames:
            return self.draws[:, :, cols[0]]
        return self.draws[:, :, cols]

    def window(self, start: int = None, end: int = None, thin: int = None) -> 'Samples':
        """
        Rows with start <= iteration <= end, thinned to a multiple of the current thin.

        Raises:
            ValueError: If thin is not a multiple of the current thin or the
                window holds no rows
        """
        start = self.start if start is None else start
        end = self.end if end is None else end
        thin = self.thin if thin is None else thin
        if thin % self.thin != 0:
            raise ValueError(f"thin ({thin}) must be a multiple of the current thin ({self.thin})")

        iters = self.iterations
        keep = np.nonzero((iters >= start) & (iters <= end))[0]
        if len(keep) == 0:
            raise ValueError(f"No iterations in window [{start}, {end}]")
        keep = keep[::thin // self.thin]
        return Samples(self.draws[keep], self.varnames, int(iters[keep[0]]), thin)

    def chain(self, i: int) -> np.ndarray:
        """Draws of chain i (0-based) as (n_iter, n_vars)."""
        return self.draws[:, i, :]

    def as_matrix(self) -> np.ndarray:
        """All chains stacked chain by chain: (n_chains * n_iter, n_vars)."""
        return np.concatenate([self.chain(i) for i in range(self.nchain)], axis=0)

    def to_dataframe(self) -> pd.DataFrame:
        """Long-form table with columns chain (1-based), iteration and one column per variable."""
        frames = []
        for i in range(self.nchain):
            df = pd.DataFrame(self.chain(i), columns=self.varnames)
            df.insert(0, 'iteration', self.iterations)
            df.insert(0, 'chain', i + 1)
            frames.append(df)
        return pd.concat(frames, ignore_index=True)


def apply_burnin(samples: Samples, min_iteration: int) -> Samples:
    """
    Drop draws recorded before min_iteration.

    Raises:
        ValueError: If no draws remain
    """
    iters = samples.iterations
    keep = iters >= min_iteration
    if not np.any(keep):
        raise ValueError(f"No draws at or after iteration {min_iteration} (last is {samples.end})")
    logger.info(f"Burn-in filter (min_iteration={min_iteration}): dropped {int(np.sum(~keep))}, "
                f"kept {int(np.sum(keep))} draws")
    first = int(np.argmax(keep))
    return Samples(samples.draws[first:], samples.varnames, int(iters[first]), samples.thin)


def concatenate_samples(samples_list: Sequence[Samples]) -> Samples:
    """
    Join sample runs recorded one after the other.

    Raises:
        ValueError: If the runs disagree on variables, chains or thin, or
            are not consecutive
    """
    if not samples_list:
        raise ValueError("No samples provided")
    first = samples_list[0]
    for prev, nxt in zip(samples_list[:-1], samples_list[1:]):
        if nxt.varnames != first.varnames or nxt.nchain != first.nchain or nxt.thin != first.thin:
            raise ValueError("Samples must share variables, number of chains and thin")
        if nxt.start != prev.end + prev.thin:
            raise ValueError(f"Samples are not consecutive: {prev.end} then {nxt.start}")
    draws = np.concatenate([s.draws for s in samples_list], axis=0)
    return Samples(draws, first.varnames, first.start, first.thin)
