"""
Convergence Diagnostics and Posterior Summaries.

Operates on Samples objects (n_iter, n_chains, n_vars):

- gelman_diag: Potential scale reduction factor (PSRF) with df correction
- gelman_preplot: PSRF on growing windows, for burn-in choice and plots
- select_burnin: Burn-in iteration from a gelman_preplot result
- trim_burnin: Drop iterations before the burn-in
- spectrum0_ar / effective_size: AR spectral density at 0 and ESS
- autocorr / autocorr_diag: Within-chain autocorrelation
- geweke_diag: Early-vs-late mean z-scores
- hpd_interval: Highest posterior density intervals
- crosscorr: Correlation between variables
- summarize: Mean, SD, standard errors and quantiles
- dic_samples: Deviance information criterion from a model

References:
    Gelman, A., & Rubin, D. B. (1992). Inference from iterative simulation
    using multiple sequences. Statistical Science, 7(4), 457-472.
    Brooks, S. P., & Gelman, A. (1998). General methods for monitoring
    convergence of iterative simulations. JCGS, 7(4), 434-455.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy import linalg
from scipy import stats

from .samples import Samples, apply_burnin

import logging
logger = logging.getLogger('bugsmcmc')


# Draws in the first gelman_preplot window
PREPLOT_FIRST_BIN = 50


# ============================================================================
# GELMAN-RUBIN
# ============================================================================

@dataclass
class GelmanDiag:
    """
    PSRF per variable (point estimate and upper confidence limit) and the
    multivariate PSRF (None for a single variable or multivariate=False).
    """
    psrf: pd.DataFrame
    mpsrf: Optional[float]
    confidence: float

    @property
    def point(self) -> np.ndarray:
        return self.psrf['Point est.'].to_numpy()

    @property
    def upper(self) -> np.ndarray:
        return self.psrf['Upper C.I.'].to_numpy()

    def __str__(self):
        lines = ["Potential scale reduction factors:", "", self.psrf.to_string(float_format='{:.3f}'.format)]
        if self.mpsrf is not None:
            lines += ["", "Multivariate psrf", "", f"{self.mpsrf:.3f}"]
        return "\n".join(lines)


def _transform(draws: np.ndarray) -> np.ndarray:
    """log for positive variables, logit for variables in (0, 1)."""
    out = draws.copy()
    for j in range(draws.shape[2]):
        col = draws[:, :, j]
        if np.all(col > 0):
            if np.all(col < 1):
                out[:, :, j] = np.log(col / (1 - col))
            else:
                out[:, :, j] = np.log(col)
    return out


def _psrf(draws: np.ndarray, confidence: float, multivariate: bool):
    """Core PSRF computation on (n_iter, n_chains, n_vars) draws."""
    n_iter, n_chain, n_var = draws.shape
    chains = np.transpose(draws, (1, 0, 2))  # (n_chains, n_iter, n_vars)

    s2 = np.var(chains, axis=1, ddof=1)       # (n_chains, n_vars)
    xbar = np.mean(chains, axis=1)            # (n_chains, n_vars)
    w = np.mean(s2, axis=0)
    b = n_iter * np.var(xbar, axis=0, ddof=1)
    muhat = np.mean(xbar, axis=0)

    mpsrf = None
    if n_var > 1 and multivariate:
        S2 = np.stack([np.cov(c, rowvar=False) for c in chains])
        W = np.mean(S2, axis=0)
        B = n_iter * np.cov(xbar, rowvar=False)
        emax = float(np.max(linalg.eigh(B, W, eigvals_only=True)))
        mpsrf = float(np.sqrt((1 - 1 / n_iter) + (1 + 1 / n_var) * emax / n_iter))

    def _cov(a, c):
        return np.sum((a - a.mean(axis=0)) * (c - c.mean(axis=0)), axis=0) / (n_chain - 1)

    with np.errstate(divide='ignore', invalid='ignore'):
        var_w = np.var(s2, axis=0, ddof=1) / n_chain
        var_b = 2 * b ** 2 / (n_chain - 1)
        cov_wb = (n_iter / n_chain) * (_cov(s2, xbar ** 2) - 2 * muhat * _cov(s2, xbar))

        V = (n_iter - 1) * w / n_iter + (1 + 1 / n_chain) * b / n_iter
        var_V = ((n_iter - 1) ** 2 * var_w + (1 + 1 / n_chain) ** 2 * var_b
                 + 2 * (n_iter - 1) * (1 + 1 / n_chain) * cov_wb) / n_iter ** 2
        df_V = 2 * V ** 2 / var_V
        df_adj = (df_V + 3) / (df_V + 1)
        B_df = n_chain - 1
        W_df = 2 * w ** 2 / var_w

        R2_fixed = (n_iter - 1) / n_iter
        R2_random = (1 + 1 / n_chain) * (1 / n_iter) * (b / w)
        R2_estimate = R2_fixed + R2_random
        R2_upper = R2_fixed + stats.f.ppf((1 + confidence) / 2, B_df, W_df) * R2_random

        point = np.sqrt(df_adj * R2_estimate)
        upper = np.sqrt(df_adj * R2_upper)
    return point, upper, mpsrf


def gelman_diag(samples: Samples, confidence: float = 0.95, transform: bool = False,
                autoburnin: bool = True, multivariate: bool = True) -> GelmanDiag:
    """
    Gelman-Rubin potential scale reduction factor.

    Args:
        samples: Samples with at least two chains
        confidence: Coverage of the upper confidence limit
        transform: Apply log/logit to positive/(0, 1) variables first
        autoburnin: Use only the second half of the draws
        multivariate: Also compute the multivariate PSRF

    Raises:
        ValueError: With fewer than two chains
    """
    if samples.nchain < 2:
        raise ValueError("You need at least two chains")
    if autoburnin and samples.start < samples.end / 2:
        samples = samples.window(start=samples.end / 2 + 1)

    draws = _transform(samples.draws) if transform else samples.draws
    point, upper, mpsrf = _psrf(draws, confidence, multivariate)
    psrf = pd.DataFrame({'Point est.': point, 'Upper C.I.': upper}, index=samples.varnames)
    return GelmanDiag(psrf=psrf, mpsrf=mpsrf, confidence=confidence)


@dataclass
class GelmanPreplot:
    """
    Shrink factors on growing windows.

    shrink[i, j, 0] is the point estimate and shrink[i, j, 1] the upper limit
    for variable j using the draws up to iteration last_iter[i].
    """
    shrink: np.ndarray
    last_iter: np.ndarray
    varnames: List[str]
    start: int


def gelman_preplot(samples: Samples, max_bins: int = 50, confidence: float = 0.95,
                   transform: bool = False, autoburnin: bool = True) -> GelmanPreplot:
    """
    PSRF at a sequence of window end points.

    The first window ends 50 draws after the start; nbin =
    min(floor((niter - 50) / thin), max_bins) further windows follow at
    equal spacing, and the last ends at the final iteration.

    Raises:
        ValueError: With fewer than 51 draws or fewer than two chains
    """
    if samples.nchain < 2:
        raise ValueError("You need at least two chains")
    nbin = min((samples.niter - PREPLOT_FIRST_BIN) // samples.thin, max_bins)
    if nbin < 1:
        raise ValueError("Insufficient iterations to produce Gelman-Rubin plot")
    binw = (samples.niter - PREPLOT_FIRST_BIN) // nbin

    first = samples.start + PREPLOT_FIRST_BIN * samples.thin
    last_iter = np.append(first + binw * samples.thin * np.arange(nbin), samples.end)

    shrink = np.empty((nbin + 1, samples.nvar, 2))
    for i, end in enumerate(last_iter):
        diag = gelman_diag(samples.window(end=int(end)), confidence=confidence,
                           transform=transform, autoburnin=autoburnin, multivariate=False)
        shrink[i, :, 0] = diag.point
        shrink[i, :, 1] = diag.upper
    return GelmanPreplot(shrink=shrink, last_iter=last_iter.astype(int),
                         varnames=list(samples.varnames), start=samples.start)


def select_burnin(preplot: GelmanPreplot, threshold: float = 1.1, use_upper: bool = True) -> Optional[int]:
    """
    Burn-in iteration from a shrink-factor array.

    Returns the window end following the last window in which any variable's
    shrink factor exceeds threshold; the first iteration if no window
    exceeds it; None if the final window still exceeds it.
    """
    values = preplot.shrink[:, :, 1 if use_upper else 0]
    exceeds = np.any(values > threshold, axis=1)
    if not np.any(exceeds):
        return int(preplot.start)
    if exceeds[-1]:
        logger.warning(f"Shrink factor still above {threshold} at iteration {preplot.last_iter[-1]}")
        return None
    last_bad = int(np.nonzero(exceeds)[0][-1])
    return int(preplot.last_iter[last_bad + 1])


def trim_burnin(samples: Samples, burnin: int) -> Samples:
    """Keep draws at iterations >= burnin."""
    return apply_burnin(samples, burnin)


# ============================================================================
# SPECTRAL DENSITY AND EFFECTIVE SAMPLE SIZE
# ============================================================================

def _yule_walker_aic(x: np.ndarray):
    """
    Yule-Walker AR fit with order chosen by AIC.

    Returns:
        (ar coefficients, innovation variance)
    """
    n = len(x)
    xc = x - x.mean()
    order_max = int(min(n - 1, np.floor(10 * np.log10(n))))
    acf = np.array([np.dot(xc[:n - k], xc[k:]) / n for k in range(order_max + 1)])

    # Levinson-Durbin recursion
    phi = np.zeros(0)
    var = acf[0]
    variances = [var]
    coefs = [phi]
    for k in range(1, order_max + 1):
        kappa = (acf[k] - np.dot(phi, acf[k - 1:0:-1])) / var
        phi = np.append(phi - kappa * phi[::-1], kappa)
        var = var * (1 - kappa ** 2)
        variances.append(var)
        coefs.append(phi)

    with np.errstate(divide='ignore'):
        aic = n * np.log(np.array(variances)) + 2 * np.arange(order_max + 1)
    order = int(np.argmin(aic))
    var_pred = variances[order] * n / (n - (order + 1))
    return coefs[order], var_pred


def spectrum0_ar(x) -> float:
    """
    Spectral density at frequency zero of a single chain, from an AR fit.

    A chain with no variation around a linear trend has spectral density 0.
    """
    x = np.asarray(x, dtype=float)
    t = np.arange(len(x))
    slope, intercept = np.polyfit(t, x, 1)
    resid = x - (slope * t + intercept)
    if np.isclose(np.std(resid, ddof=1), 0.0, atol=1.5e-8 * max(1.0, np.abs(x).max())):
        return 0.0
    ar, var_pred = _yule_walker_aic(x)
    return float(var_pred / (1 - np.sum(ar)) ** 2)


def effective_size(samples: Samples) -> pd.Series:
    """Effective sample size per variable, summed over chains."""
    ess = np.zeros(samples.nvar)
    n = samples.niter
    for c in range(samples.nchain):
        for j in range(samples.nvar):
            x = samples.draws[:, c, j]
            spec = spectrum0_ar(x)
            if spec > 0:
                ess[j] += n * np.var(x, ddof=1) / spec
    return pd.Series(ess, index=samples.varnames, name='Effective size')


# ============================================================================
# AUTOCORRELATION
# ============================================================================

def _acf(x: np.ndarray, lags: Sequence[int]) -> np.ndarray:
    n = len(x)
    xc = x - x.mean()
    c0 = np.dot(xc, xc) / n
    out = []
    for k in lags:
        out.append(np.dot(xc[:n - k], xc[k:]) / n / c0 if c0 > 0 else np.nan)
    return np.array(out)


def _kept_lags(samples: Samples, lags):
    lags = [int(k) for k in lags if int(k) < samples.niter]
    return lags, [f"Lag {k * samples.thin}" for k in lags]


def autocorr(samples: Samples, lags: Sequence[int] = (0, 1, 5, 10, 50)) -> np.ndarray:
    """
    Autocorrelation of each chain at the given lags (in recorded draws).

    Lags at or beyond the chain length are dropped.

    Returns:
        (n_chains, n_lags, n_vars) array
    """
    lags, _ = _kept_lags(samples, lags)
    out = np.empty((samples.nchain, len(lags), samples.nvar))
    for c in range(samples.nchain):
        for j in range(samples.nvar):
            out[c, :, j] = _acf(samples.draws[:, c, j], lags)
    return out


def autocorr_diag(samples: Samples, lags: Sequence[int] = (0, 1, 5, 10, 50)) -> pd.DataFrame:
    """Autocorrelations averaged over chains; rows are labelled by lag in iterations."""
    _, labels = _kept_lags(samples, lags)
    values = np.mean(autocorr(samples, lags), axis=0)
    return pd.DataFrame(values, index=labels, columns=samples.varnames)


# ============================================================================
# OTHER DIAGNOSTICS
# ============================================================================

def geweke_diag(samples: Samples, frac1: float = 0.1, frac2: float = 0.5) -> pd.DataFrame:
    """
    Geweke z-scores comparing the mean of the first frac1 and last frac2 of each chain.

    Raises:
        ValueError: If the fractions overlap or are out of range
    """
    if not (0 < frac1 < 1 and 0 < frac2 < 1 and frac1 + frac2 <= 1):
        raise ValueError(f"Invalid fractions frac1={frac1}, frac2={frac2}")
    span = samples.end - samples.start
    first = samples.window(end=int(np.ceil(samples.start + frac1 * span)))
    last = samples.window(start=int(np.floor(samples.end - frac2 * span)))

    z = np.empty((samples.nchain, samples.nvar))
    for c in range(samples.nchain):
        for j in range(samples.nvar):
            x1 = first.draws[:, c, j]
            x2 = last.draws[:, c, j]
            var1 = spectrum0_ar(x1) / len(x1)
            var2 = spectrum0_ar(x2) / len(x2)
            with np.errstate(divide='ignore', invalid='ignore'):
                z[c, j] = (x1.mean() - x2.mean()) / np.sqrt(var1 + var2)
    return pd.DataFrame(z, index=[f"chain {c + 1}" for c in range(samples.nchain)],
                        columns=samples.varnames)


def _hpd(matrix: np.ndarray, prob: float):
    vals = np.sort(matrix, axis=0)
    nsamp = vals.shape[0]
    gap = max(1, min(nsamp - 1, int(round(nsamp * prob))))
    widths = vals[gap:] - vals[:nsamp - gap]
    inds = np.argmin(widths, axis=0)
    cols = np.arange(vals.shape[1])
    return vals[inds, cols], vals[inds + gap, cols]


def hpd_interval(samples: Samples, prob: float = 0.95, combine: bool = True):
    """
    Shortest intervals holding a fraction prob of the draws.

    Returns:
        DataFrame with columns lower/upper for the pooled draws, or a list
        of such DataFrames (one per chain) when combine is False
    """
    if not 0 < prob < 1:
        raise ValueError(f"prob must be in (0, 1), got {prob}")
    if combine:
        lower, upper = _hpd(samples.as_matrix(), prob)
        return pd.DataFrame({'lower': lower, 'upper': upper}, index=samples.varnames)
    out = []
    for c in range(samples.nchain):
        lower, upper = _hpd(samples.chain(c), prob)
        out.append(pd.DataFrame({'lower': lower, 'upper': upper}, index=samples.varnames))
    return out


def crosscorr(samples: Samples) -> pd.DataFrame:
    """Correlation matrix of the pooled draws."""
    corr = np.atleast_2d(np.corrcoef(samples.as_matrix(), rowvar=False))
    return pd.DataFrame(corr, index=samples.varnames, columns=samples.varnames)


# ============================================================================
# SUMMARIES
# ============================================================================

@dataclass
class MCMCSummary:
    """Per-variable statistics and quantiles of a Samples object."""
    statistics: pd.DataFrame
    quantiles: pd.DataFrame
    start: int
    end: int
    thin: int
    nchain: int

    def __str__(self):
        return "\n".join([
            f"Iterations = {self.start}:{self.end}",
            f"Thinning interval = {self.thin}",
            f"Number of chains = {self.nchain}",
            f"Sample size per chain = {(self.end - self.start) // self.thin + 1}",
            "",
            "1. Empirical mean and standard deviation for each variable,",
            "   plus standard error of the mean:",
            "",
            self.statistics.to_string(float_format='{:.4f}'.format),
            "",
            "2. Quantiles for each variable:",
            "",
            self.quantiles.to_string(float_format='{:.4f}'.format),
        ])


def summarize(samples: Samples, quantiles: Sequence[float] = (0.025, 0.25, 0.5, 0.75, 0.975)) -> MCMCSummary:
    """Mean, SD, naive and time-series standard errors, and quantiles."""
    pooled = samples.as_matrix()
    n_total = samples.niter * samples.nchain

    spec = np.array([[spectrum0_ar(samples.draws[:, c, j]) for j in range(samples.nvar)]
                     for c in range(samples.nchain)])
    sd = np.std(pooled, axis=0, ddof=1) if len(pooled) > 1 else np.full(samples.nvar, np.nan)
    statistics = pd.DataFrame({
        'Mean': pooled.mean(axis=0),
        'SD': sd,
        'Naive SE': sd / np.sqrt(n_total),
        'Time-series SE': np.sqrt(spec.mean(axis=0) / n_total),
    }, index=samples.varnames)

    qs = np.quantile(pooled, quantiles, axis=0)
    quantile_table = pd.DataFrame(qs.T, index=samples.varnames,
                                  columns=[f"{100 * q:g}%" for q in quantiles])
    return MCMCSummary(statistics=statistics, quantiles=quantile_table, start=samples.start,
                       end=samples.end, thin=samples.thin, nchain=samples.nchain)


@dataclass
class DICResult:
    """Mean deviance, penalty pV = var(deviance) / 2 and DIC = mean + pV."""
    mean_deviance: float
    penalty: float
    dic: float
    samples: Samples

    def __str__(self):
        return (f"Mean deviance:  {self.mean_deviance:.2f}\n"
                f"penalty {self.penalty:.2f}\n"
                f"Penalized deviance: {self.dic:.2f}")


def dic_samples(model, n_iter: int, thin: int = 1) -> DICResult:
    """
    Run model for n_iter iterations recording the deviance and compute DIC.

    Raises:
        ValueError: If the model has no observed stochastic nodes
    """
    if not any(b.is_stochastic and np.any(b.observed) for b in model.graph.blocks):
        raise ValueError("Model has no observed stochastic nodes; DIC is undefined")
    samples = model.coda_samples(['deviance'], n_iter, thin)
    deviance = samples.draws[:, :, 0].ravel()
    mean_dev = float(np.mean(deviance))
    penalty = float(np.var(deviance, ddof=1) / 2) if len(deviance) > 1 else 0.0
    return DICResult(mean_deviance=mean_dev, penalty=penalty, dic=mean_dev + penalty, samples=samples)
