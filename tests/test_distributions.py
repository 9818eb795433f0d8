"""
Distribution Tests - Log Densities Against scipy.stats

Every BUGS distribution uses the JAGS parameterisation; these tests pin the
conversion to the usual scipy parameters.

Run with: pytest tests/test_distributions.py -v
"""

import numpy as np
import jax.numpy as jnp
import pytest
from scipy import stats

from bugsmcmc.bugs import get_distribution, DISTRIBUTIONS
from bugsmcmc.bugs.functions import NUMPY_FUNCTIONS, JAX_FUNCTIONS


def logpdf(name, x, *params):
    dist = get_distribution(name)
    args = [jnp.asarray(np.asarray(p, dtype=float)) for p in params]
    return np.asarray(dist.logpdf(jnp.asarray(np.asarray(x, dtype=float)), *args))


CONTINUOUS_CASES = [
    ('dnorm', [-1.0, 0.3, 2.5], (0.5, 4.0), stats.norm(0.5, 0.5)),
    ('dlnorm', [0.2, 1.0, 3.0], (0.1, 2.0), stats.lognorm(s=1 / np.sqrt(2.0), scale=np.exp(0.1))),
    ('dt', [-2.0, 0.0, 1.5], (1.0, 0.25, 5.0), stats.t(df=5.0, loc=1.0, scale=2.0)),
    ('dgamma', [0.1, 1.0, 4.0], (2.5, 1.5), stats.gamma(a=2.5, scale=1 / 1.5)),
    ('dexp', [0.0, 0.7, 3.0], (2.0,), stats.expon(scale=0.5)),
    ('dunif', [-0.5, 0.0, 1.9], (-1.0, 2.0), stats.uniform(-1.0, 3.0)),
    ('dbeta', [0.05, 0.5, 0.9], (2.0, 3.0), stats.beta(2.0, 3.0)),
    ('dchisqr', [0.5, 2.0, 7.0], (3.0,), stats.chi2(3.0)),
    ('dweib', [0.3, 1.0, 2.2], (1.7, 0.8), stats.weibull_min(c=1.7, scale=0.8 ** (-1 / 1.7))),
    ('dlogis', [-1.0, 0.0, 2.0], (0.5, 2.0), stats.logistic(loc=0.5, scale=0.5)),
    ('ddexp', [-1.0, 0.0, 2.0], (0.5, 2.0), stats.laplace(loc=0.5, scale=0.5)),
    ('dpar', [1.5, 2.0, 10.0], (3.0, 1.2), stats.pareto(b=3.0, scale=1.2)),
]

DISCRETE_CASES = [
    ('dbern', [0, 1], (0.3,), stats.bernoulli(0.3)),
    ('dbin', [0, 3, 10], (0.4, 10), stats.binom(10, 0.4)),
    ('dpois', [0, 2, 9], (3.5,), stats.poisson(3.5)),
    ('dnegbin', [0, 4, 12], (0.3, 2.5), stats.nbinom(2.5, 0.3)),
]


class TestContinuous:
    """Log densities match scipy inside the support."""

    @pytest.mark.parametrize("name,x,params,ref", CONTINUOUS_CASES, ids=[c[0] for c in CONTINUOUS_CASES])
    def test_logpdf_matches_scipy(self, name, x, params, ref):
        np.testing.assert_allclose(logpdf(name, x, *params), ref.logpdf(x), rtol=1e-4, atol=1e-5)

    @pytest.mark.parametrize("name,x,params,ref", CONTINUOUS_CASES, ids=[c[0] for c in CONTINUOUS_CASES])
    def test_cdf_matches_scipy(self, name, x, params, ref):
        dist = get_distribution(name)
        assert dist.can_truncate
        args = [jnp.asarray(float(p)) for p in params]
        cdf = np.asarray(dist.cdf(jnp.asarray(x, dtype=float), *args))
        np.testing.assert_allclose(cdf, ref.cdf(x), rtol=1e-4, atol=1e-5)

    @pytest.mark.parametrize("name,x,params", [
        ('dgamma', -1.0, (2.0, 1.0)),
        ('dbeta', 1.5, (2.0, 2.0)),
        ('dunif', 3.0, (0.0, 1.0)),
        ('dexp', -0.1, (1.0,)),
        ('dlnorm', 0.0, (0.0, 1.0)),
        ('dpar', 0.5, (2.0, 1.0)),
    ])
    def test_outside_support_is_minus_inf(self, name, x, params):
        assert logpdf(name, x, *params) == -np.inf


class TestDiscrete:
    """Probability mass functions match scipy; non-integers have no mass."""

    @pytest.mark.parametrize("name,x,params,ref", DISCRETE_CASES, ids=[c[0] for c in DISCRETE_CASES])
    def test_logpmf_matches_scipy(self, name, x, params, ref):
        np.testing.assert_allclose(logpdf(name, x, *params), ref.logpmf(x), rtol=1e-4, atol=1e-5)

    def test_non_integer_has_no_mass(self):
        assert logpdf('dpois', 1.5, 2.0) == -np.inf
        assert logpdf('dbin', 2.5, 0.5, 5) == -np.inf
        assert logpdf('dbern', 0.5, 0.5) == -np.inf

    def test_binomial_outside_trials(self):
        assert logpdf('dbin', 6, 0.5, 5) == -np.inf

    def test_categorical(self):
        dist = get_distribution('dcat')
        pi = jnp.asarray([[1.0, 2.0, 1.0]] * 3)
        lp = np.asarray(dist.logpdf(jnp.asarray([1.0, 2.0, 3.0]), pi))
        np.testing.assert_allclose(lp, np.log([0.25, 0.5, 0.25]), rtol=1e-5)
        assert np.asarray(dist.logpdf(jnp.asarray([4.0]), pi[:1]))[0] == -np.inf

    def test_discrete_distributions_cannot_truncate(self):
        for name in ('dbern', 'dbin', 'dpois', 'dnegbin', 'dcat'):
            assert get_distribution(name).discrete
            assert not get_distribution(name).can_truncate


class TestTable:
    """Lookup, support and typical values."""

    def test_unknown_distribution(self):
        with pytest.raises(KeyError, match="Unknown distribution 'dfoo'"):
            get_distribution('dfoo')

    def test_every_entry_has_matching_name(self):
        for name, dist in DISTRIBUTIONS.items():
            assert dist.name == name

    def test_support(self):
        assert get_distribution('dgamma').support(1.0, 1.0) == (0.0, np.inf)
        assert get_distribution('dunif').support(-2.0, 3.0) == (-2.0, 3.0)
        assert get_distribution('dcat').support(np.ones((1, 4))) == (1.0, 4.0)

    def test_typical_values_lie_in_support(self):
        assert float(get_distribution('dgamma').typical(2.0, 4.0)) == pytest.approx(0.5)
        assert float(get_distribution('dbeta').typical(1.0, 3.0)) == pytest.approx(0.25)
        assert float(get_distribution('dbin').typical(0.3, 10.0)) == 3.0
        assert float(get_distribution('dunif').typical(0.0, 10.0)) == 5.0


class TestFunctions:
    """Scalar functions agree between compile time and run time."""

    @pytest.mark.parametrize("table", [NUMPY_FUNCTIONS, JAX_FUNCTIONS])
    def test_round_half_away_from_zero(self, table):
        fn, _ = table['round']
        x = np.array([0.5, 1.5, 2.5, -0.5, -2.5, 1.2, -1.7])
        np.testing.assert_array_equal(np.asarray(fn(x)), [1.0, 2.0, 3.0, -1.0, -3.0, 1.0, -2.0])

    @pytest.mark.parametrize("table", [NUMPY_FUNCTIONS, JAX_FUNCTIONS])
    def test_trunc_toward_zero(self, table):
        fn, _ = table['trunc']
        np.testing.assert_array_equal(np.asarray(fn(np.array([2.7, -2.7]))), [2.0, -2.0])
