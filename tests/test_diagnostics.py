"""
Convergence Diagnostic Tests

Gelman-Rubin, burn-in selection, effective sample size, autocorrelation,
Geweke, HPD intervals and summaries on synthetic chains.

Run with: pytest tests/test_diagnostics.py -v
"""

import numpy as np
import pandas as pd
import pytest

from bugsmcmc.samples import Samples
from bugsmcmc.diagnostics import (
    GelmanPreplot,
    gelman_diag, gelman_preplot, select_burnin, trim_burnin,
    spectrum0_ar, effective_size, autocorr, autocorr_diag, geweke_diag,
    hpd_interval, crosscorr, summarize,
)


def ar1_chain(rho, n, rng):
    x = np.empty(n)
    x[0] = rng.normal()
    eps = rng.normal(scale=np.sqrt(1 - rho ** 2), size=n)
    for t in range(1, n):
        x[t] = rho * x[t - 1] + eps[t]
    return x


# ============================================================================
# GELMAN-RUBIN
# ============================================================================

class TestGelmanDiag:
    """Potential scale reduction factors."""

    def test_iid_chains_near_one(self, iid_samples):
        diag = gelman_diag(iid_samples)
        assert np.all(diag.point < 1.05)
        assert np.all(diag.upper < 1.1)
        assert np.all(diag.upper >= diag.point)
        assert diag.mpsrf is not None and diag.mpsrf < 1.1

    def test_separated_chains_flagged(self, separated_samples):
        diag = gelman_diag(separated_samples)
        assert diag.point[0] > 10
        assert diag.mpsrf is None

    def test_needs_two_chains(self):
        with pytest.raises(ValueError, match="at least two chains"):
            gelman_diag(Samples(np.zeros((100, 1, 1)), ['x']))

    def test_autoburnin_uses_second_half(self):
        rng = np.random.default_rng(2)
        draws = rng.normal(size=(200, 2, 1))
        draws[:100, 1, 0] += 10.0
        samples = Samples(draws, ['x'], start=1)
        assert gelman_diag(samples, autoburnin=True).point[0] < 1.1
        assert gelman_diag(samples, autoburnin=False).point[0] > 2

    def test_transform(self):
        rng = np.random.default_rng(4)
        draws = rng.gamma(2.0, size=(300, 2, 1))
        diag = gelman_diag(Samples(draws, ['tau']), transform=True)
        assert diag.point[0] < 1.1

    def test_table_and_text(self, iid_samples):
        diag = gelman_diag(iid_samples)
        assert list(diag.psrf.columns) == ['Point est.', 'Upper C.I.']
        assert list(diag.psrf.index) == ['a', 'b']
        assert "Potential scale reduction factors" in str(diag)
        assert "Multivariate psrf" in str(diag)


class TestBurnin:
    """Shrink-factor windows and burn-in choice."""

    def test_preplot_windows(self, iid_samples):
        pre = gelman_preplot(iid_samples)
        # nbin = min((1000 - 50) // 1, 50) = 50 windows plus the final one
        assert pre.shrink.shape == (51, 2, 2)
        assert pre.last_iter[0] == iid_samples.start + 50
        assert pre.last_iter[-1] == iid_samples.end
        assert np.all(np.diff(pre.last_iter) > 0)

    def test_preplot_needs_enough_draws(self):
        samples = Samples(np.zeros((50, 2, 1)), ['x'])
        with pytest.raises(ValueError, match="Insufficient iterations"):
            gelman_preplot(samples)

    def _preplot(self, values):
        values = np.asarray(values, dtype=float)
        shrink = np.stack([values, values], axis=-1)[:, None, :]
        return GelmanPreplot(shrink=shrink, last_iter=np.array([100, 200, 300, 400]),
                             varnames=['x'], start=51)

    def test_select_burnin_converged_from_start(self):
        assert select_burnin(self._preplot([1.01, 1.02, 1.0, 1.01])) == 51

    def test_select_burnin_after_last_exceedance(self):
        assert select_burnin(self._preplot([1.5, 1.3, 1.05, 1.02])) == 300

    def test_select_burnin_not_converged(self):
        assert select_burnin(self._preplot([1.5, 1.0, 1.0, 1.2])) is None

    def test_select_burnin_point_estimate(self):
        pre = self._preplot([1.5, 1.0, 1.0, 1.0])
        pre.shrink[:, 0, 0] = 1.0
        assert select_burnin(pre, use_upper=False) == 51
        assert select_burnin(pre, use_upper=True) == 200

    def test_trim(self, iid_samples):
        trimmed = trim_burnin(iid_samples, 1500)
        assert trimmed.start == 1500
        assert trimmed.end == iid_samples.end
        assert trimmed.niter == iid_samples.end - 1500 + 1


# ============================================================================
# EFFECTIVE SAMPLE SIZE AND AUTOCORRELATION
# ============================================================================

class TestEffectiveSize:
    """AR-based spectral density at zero."""

    def test_iid_close_to_sample_size(self, iid_samples):
        ess = effective_size(iid_samples)
        assert isinstance(ess, pd.Series)
        assert list(ess.index) == ['a', 'b']
        total = iid_samples.niter * iid_samples.nchain
        assert np.all(ess > 0.7 * total)
        assert np.all(ess < 1.3 * total)

    def test_ar1_chain(self):
        rng = np.random.default_rng(9)
        rho = 0.9
        draws = np.stack([ar1_chain(rho, 5000, rng) for _ in range(2)], axis=1)[:, :, None]
        ess = effective_size(Samples(draws, ['x']))['x']
        expected = 10000 * (1 - rho) / (1 + rho)
        assert ess == pytest.approx(expected, rel=0.35)

    def test_constant_chain_has_zero_ess(self):
        samples = Samples(np.full((100, 2, 1), 3.0), ['c'])
        assert effective_size(samples)['c'] == 0.0
        assert spectrum0_ar(np.full(100, 3.0)) == 0.0

    def test_spectrum_of_white_noise(self):
        rng = np.random.default_rng(3)
        assert spectrum0_ar(rng.normal(scale=2.0, size=4000)) == pytest.approx(4.0, rel=0.15)


class TestAutocorrelation:
    """Sample autocorrelation per chain."""

    def test_lag_zero_is_one(self, iid_samples):
        acf = autocorr(iid_samples, lags=[0, 1])
        assert acf.shape == (4, 2, 2)
        np.testing.assert_allclose(acf[:, 0, :], 1.0)
        assert np.all(np.abs(acf[:, 1, :]) < 0.15)

    def test_ar1_lag_one(self):
        rng = np.random.default_rng(1)
        draws = ar1_chain(0.8, 5000, rng)[:, None, None]
        acf = autocorr(Samples(draws, ['x']), lags=[1])
        assert acf[0, 0, 0] == pytest.approx(0.8, abs=0.05)

    def test_long_lags_dropped_and_labelled(self):
        rng = np.random.default_rng(1)
        samples = Samples(rng.normal(size=(30, 2, 1)), ['x'], thin=10)
        table = autocorr_diag(samples, lags=[0, 1, 5, 50])
        assert list(table.index) == ['Lag 0', 'Lag 10', 'Lag 50']

    def test_crosscorr(self):
        rng = np.random.default_rng(6)
        a = rng.normal(size=(500, 2))
        draws = np.stack([a, 2 * a, rng.normal(size=(500, 2))], axis=-1)
        corr = crosscorr(Samples(draws, ['a', 'b', 'c']))
        assert corr.loc['a', 'b'] == pytest.approx(1.0)
        assert abs(corr.loc['a', 'c']) < 0.15


# ============================================================================
# OTHER DIAGNOSTICS
# ============================================================================

class TestGeweke:
    """Z-scores comparing early and late segments."""

    def test_stationary_chains(self, iid_samples):
        z = geweke_diag(iid_samples)
        assert list(z.index) == ['chain 1', 'chain 2', 'chain 3', 'chain 4']
        assert np.all(np.abs(z.to_numpy()) < 4)

    def test_shifted_chain(self):
        rng = np.random.default_rng(8)
        draws = rng.normal(size=(1000, 1, 1))
        draws[300:] += 3.0
        z = geweke_diag(Samples(draws, ['x']))
        assert z.iloc[0, 0] < -5

    def test_segment_bounds_round_outward(self):
        # 100 draws at iterations 1..100: first segment ends at ceil(10.9) = 11,
        # last segment starts at floor(50.5) = 50
        x = np.random.default_rng(21).normal(size=100)
        z = geweke_diag(Samples(x.reshape(100, 1, 1), ['x']))
        x1, x2 = x[:11], x[49:]
        expected = (x1.mean() - x2.mean()) / np.sqrt(spectrum0_ar(x1) / 11 + spectrum0_ar(x2) / 51)
        assert z.iloc[0, 0] == pytest.approx(expected)

    def test_invalid_fractions(self, iid_samples):
        with pytest.raises(ValueError, match="Invalid fractions"):
            geweke_diag(iid_samples, frac1=0.6, frac2=0.5)


class TestHPD:
    """Shortest intervals."""

    def test_normal_interval(self):
        rng = np.random.default_rng(12)
        samples = Samples(rng.normal(size=(20000, 1, 1)), ['x'])
        hpd = hpd_interval(samples, prob=0.95)
        assert hpd.loc['x', 'lower'] == pytest.approx(-1.96, abs=0.08)
        assert hpd.loc['x', 'upper'] == pytest.approx(1.96, abs=0.08)

    def test_skewed_interval_is_shorter_than_equal_tails(self):
        rng = np.random.default_rng(13)
        draws = rng.exponential(size=(20000, 1, 1))
        hpd = hpd_interval(Samples(draws, ['x']), prob=0.9)
        lower, upper = hpd.loc['x', 'lower'], hpd.loc['x', 'upper']
        q_lo, q_hi = np.quantile(draws, [0.05, 0.95])
        assert lower < q_lo
        assert upper - lower < q_hi - q_lo

    def test_per_chain(self, iid_samples):
        out = hpd_interval(iid_samples, combine=False)
        assert len(out) == 4
        assert list(out[0].columns) == ['lower', 'upper']

    def test_invalid_prob(self, iid_samples):
        with pytest.raises(ValueError):
            hpd_interval(iid_samples, prob=1.5)


class TestSummary:
    """Statistics and quantile tables."""

    def test_summary_tables(self, iid_samples):
        summary = summarize(iid_samples)
        stats = summary.statistics
        assert list(stats.columns) == ['Mean', 'SD', 'Naive SE', 'Time-series SE']
        assert np.all(np.abs(stats['Mean']) < 0.1)
        np.testing.assert_allclose(stats['SD'], 1.0, atol=0.05)
        np.testing.assert_allclose(stats['Naive SE'], stats['SD'] / np.sqrt(4000))
        assert list(summary.quantiles.columns) == ['2.5%', '25%', '50%', '75%', '97.5%']

    def test_summary_text(self, iid_samples):
        text = str(summarize(iid_samples))
        assert "Iterations = 1001:2000" in text
        assert "Number of chains = 4" in text
        assert "Sample size per chain = 1000" in text

    def test_custom_quantiles(self, iid_samples):
        summary = summarize(iid_samples, quantiles=(0.1, 0.9))
        assert list(summary.quantiles.columns) == ['10%', '90%']
