"""
Diagnostic plots for Samples.

All functions return matplotlib Figure objects:

- traceplot: Draws against iteration, one line per chain
- densplot: Gaussian kernel density of the pooled draws
- plot_samples: Trace and density side by side
- autocorr_plot: Autocorrelation bars per chain
- gelman_plot: Shrink factor against last iteration
- save_diagnostics_pdf: Multi-page PDF with all of the above
"""

from pathlib import Path
from typing import Optional

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages
from matplotlib.figure import Figure
from scipy.stats import gaussian_kde

from .samples import Samples
from .diagnostics import GelmanPreplot, gelman_preplot, autocorr

import logging
logger = logging.getLogger('bugsmcmc')


def _grid(n_panels: int, n_cols: int, width: float = 5.0, height: float = 3.0):
    n_cols = max(1, min(n_cols, n_panels))
    n_rows = int(np.ceil(n_panels / n_cols))
    fig, axes = plt.subplots(n_rows, n_cols, figsize=(width * n_cols, height * n_rows), squeeze=False)
    axes = axes.flatten()
    for ax in axes[n_panels:]:
        ax.set_visible(False)
    return fig, axes


def _chain_colors(n_chains: int):
    color_map = plt.get_cmap("tab10")
    return [color_map(i % 10) for i in range(n_chains)]


def _draw_trace(ax, samples: Samples, j: int, burnin: Optional[int] = None):
    iters = samples.iterations
    for c, color in enumerate(_chain_colors(samples.nchain)):
        ax.plot(iters, samples.draws[:, c, j], color=color, alpha=0.7, linewidth=0.6,
                label=f"Chain {c + 1}")
    if burnin is not None:
        ax.axvline(burnin, color="red", linestyle="--", alpha=0.5, linewidth=1)
    ax.set_title(f"Trace of {samples.varnames[j]}", fontsize=10)
    ax.set_xlabel("Iterations", fontsize=9)
    ax.tick_params(labelsize=8)


def _draw_density(ax, samples: Samples, j: int):
    x = samples.draws[:, :, j].ravel()
    ax.set_title(f"Density of {samples.varnames[j]}", fontsize=10)
    ax.tick_params(labelsize=8)
    if np.ptp(x) == 0:
        ax.axvline(x[0], color="C0")
        return
    grid = np.linspace(x.min(), x.max(), 256)
    ax.plot(grid, gaussian_kde(x)(grid), color="C0")
    ax.plot(x, np.zeros_like(x), '|', color="black", alpha=0.2, markersize=6)
    ax.set_xlabel(f"N = {samples.niter}", fontsize=9)


def traceplot(samples: Samples, burnin: Optional[int] = None, n_cols: int = 2) -> Figure:
    """Trace of every variable; burnin, when given, is marked with a dashed line."""
    fig, axes = _grid(samples.nvar, n_cols)
    for j in range(samples.nvar):
        _draw_trace(axes[j], samples, j, burnin)
    if samples.nchain <= 10:
        axes[0].legend(fontsize=8, loc="best")
    fig.tight_layout()
    return fig


def densplot(samples: Samples, n_cols: int = 2) -> Figure:
    """Kernel density estimate of every variable from the pooled chains."""
    fig, axes = _grid(samples.nvar, n_cols)
    for j in range(samples.nvar):
        _draw_density(axes[j], samples, j)
    fig.tight_layout()
    return fig


def plot_samples(samples: Samples, burnin: Optional[int] = None) -> Figure:
    """Trace (left) and density (right) for every variable."""
    fig, axes = plt.subplots(samples.nvar, 2, figsize=(10, 2.8 * samples.nvar), squeeze=False)
    for j in range(samples.nvar):
        _draw_trace(axes[j, 0], samples, j, burnin)
        _draw_density(axes[j, 1], samples, j)
    fig.tight_layout()
    return fig


def autocorr_plot(samples: Samples, lag_max: int = 50) -> Figure:
    """Autocorrelation up to lag_max draws, one row of panels per chain."""
    lags = list(range(min(lag_max, samples.niter - 1) + 1))
    acf = autocorr(samples, lags)
    fig, axes = plt.subplots(samples.nchain, samples.nvar,
                             figsize=(3.5 * samples.nvar, 2.5 * samples.nchain), squeeze=False)
    x = np.array(lags) * samples.thin
    for c in range(samples.nchain):
        for j in range(samples.nvar):
            ax = axes[c, j]
            ax.vlines(x, 0, acf[c, :, j], color="C0")
            ax.axhline(0, color="black", linewidth=0.5)
            ax.set_ylim(-1, 1)
            ax.set_title(f"{samples.varnames[j]} (chain {c + 1})", fontsize=9)
            ax.set_xlabel("Lag", fontsize=8)
            ax.tick_params(labelsize=7)
    fig.tight_layout()
    return fig


def gelman_plot(samples_or_preplot, threshold: Optional[float] = 1.1, n_cols: int = 2, **kwargs) -> Figure:
    """
    Shrink factor against the last iteration of each window.

    Accepts Samples (passed to gelman_preplot with **kwargs) or a
    GelmanPreplot result.
    """
    if isinstance(samples_or_preplot, GelmanPreplot):
        pre = samples_or_preplot
    else:
        pre = gelman_preplot(samples_or_preplot, **kwargs)

    fig, axes = _grid(len(pre.varnames), n_cols)
    for j, name in enumerate(pre.varnames):
        ax = axes[j]
        ax.plot(pre.last_iter, pre.shrink[:, j, 0], color="black", label="median")
        ax.plot(pre.last_iter, pre.shrink[:, j, 1], color="red", linestyle="--", label="97.5%")
        if threshold is not None:
            ax.axhline(threshold, color="gray", linestyle=":", linewidth=1)
        ax.set_title(name, fontsize=10)
        ax.set_xlabel("last iteration in chain", fontsize=9)
        ax.set_ylabel("shrink factor", fontsize=9)
        ax.tick_params(labelsize=8)
    axes[0].legend(fontsize=8, loc="best")
    fig.tight_layout()
    return fig


def save_diagnostics_pdf(samples: Samples, path, burnin: Optional[int] = None,
                         preplot: Optional[GelmanPreplot] = None) -> Path:
    """
    Write trace/density, autocorrelation and (with two or more chains and
    enough draws) Gelman plots to a multi-page PDF.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with PdfPages(path) as pdf:
        for fig in _diagnostic_figures(samples, burnin, preplot):
            pdf.savefig(fig)
            plt.close(fig)
    logger.info(f"Diagnostic plots saved to {path}")
    return path


def _diagnostic_figures(samples, burnin, preplot):
    yield plot_samples(samples, burnin)
    yield autocorr_plot(samples)
    if preplot is None and samples.nchain >= 2 and (samples.niter - 50) // samples.thin >= 1:
        preplot = gelman_preplot(samples)
    if preplot is not None:
        yield gelman_plot(preplot)
