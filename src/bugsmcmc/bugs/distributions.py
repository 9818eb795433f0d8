"""
Distribution table for stochastic relations.

Every distribution uses the JAGS parameterisation (precision rather than
variance for dnorm/dlnorm/dt/dlogis/ddexp, rate for dgamma/dexp).

Each entry provides:
    logpdf(x, *params)   - JAX log density, vectorised over rows
    support(*params)     - NumPy (lower, upper) bounds, evaluated at compile time
    typical(*params)     - NumPy "typical value" used when no inits are supplied
    cdf(x, *params)      - JAX CDF, present only for distributions that can be truncated
    discrete             - True for integer-valued distributions
    vector_params        - positions of parameters that are vectors (dcat)

To add a distribution: write the functions and add a Distribution to
DISTRIBUTIONS at the bottom of the module.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
import jax.numpy as jnp
import jax.scipy.special as jsp
import jax.nn


LOG_2PI = float(np.log(2.0 * np.pi))


@dataclass(frozen=True)
class Distribution:
    name: str
    n_params: int
    logpdf: Callable
    support: Callable
    typical: Callable
    discrete: bool = False
    cdf: Optional[Callable] = None
    vector_params: Tuple[int, ...] = ()

    @property
    def can_truncate(self) -> bool:
        return self.cdf is not None


def _where_valid(valid, value):
    return jnp.where(valid, value, -jnp.inf)


def _is_integer(x):
    return x == jnp.round(x)


def _positive(x):
    """Replace non-positive entries with 1 so logs stay finite inside jnp.where."""
    return jnp.where(x > 0, x, 1.0)


# =============================================================================
# CONTINUOUS
# =============================================================================

def dnorm_logpdf(x, mu, tau):
    return 0.5 * (jnp.log(tau) - LOG_2PI) - 0.5 * tau * (x - mu) ** 2


def dnorm_cdf(x, mu, tau):
    return jsp.ndtr((x - mu) * jnp.sqrt(tau))


def dlnorm_logpdf(x, mu, tau):
    safe_x = _positive(x)
    lx = jnp.log(safe_x)
    return _where_valid(x > 0, dnorm_logpdf(lx, mu, tau) - lx)


def dlnorm_cdf(x, mu, tau):
    return jnp.where(x > 0, jsp.ndtr((jnp.log(_positive(x)) - mu) * jnp.sqrt(tau)), 0.0)


def dt_logpdf(x, mu, tau, k):
    return (jsp.gammaln((k + 1.0) / 2.0) - jsp.gammaln(k / 2.0)
            + 0.5 * jnp.log(tau / (k * jnp.pi))
            - (k + 1.0) / 2.0 * jnp.log1p(tau * (x - mu) ** 2 / k))


def dt_cdf(x, mu, tau, k):
    t = (x - mu) * jnp.sqrt(tau)
    tail = 0.5 * jsp.betainc(k / 2.0, 0.5, k / (k + t ** 2))
    return jnp.where(t > 0, 1.0 - tail, tail)


def dgamma_logpdf(x, r, lam):
    safe_x = _positive(x)
    lp = r * jnp.log(lam) + (r - 1.0) * jnp.log(safe_x) - lam * safe_x - jsp.gammaln(r)
    return _where_valid(x > 0, lp)


def dgamma_cdf(x, r, lam):
    return jnp.where(x > 0, jsp.gammainc(r, lam * _positive(x)), 0.0)


def dexp_logpdf(x, lam):
    return _where_valid(x >= 0, jnp.log(lam) - lam * x)


def dexp_cdf(x, lam):
    return jnp.where(x > 0, -jnp.expm1(-lam * x), 0.0)


def dunif_logpdf(x, a, b):
    return _where_valid((x >= a) & (x <= b), -jnp.log(b - a))


def dunif_cdf(x, a, b):
    return jnp.clip((x - a) / (b - a), 0.0, 1.0)


def dbeta_logpdf(x, a, b):
    inside = (x > 0) & (x < 1)
    safe_x = jnp.where(inside, x, 0.5)
    lp = (a - 1.0) * jnp.log(safe_x) + (b - 1.0) * jnp.log1p(-safe_x) - jsp.betaln(a, b)
    return _where_valid(inside, lp)


def dbeta_cdf(x, a, b):
    return jsp.betainc(a, b, jnp.clip(x, 0.0, 1.0))


def dchisqr_logpdf(x, k):
    return dgamma_logpdf(x, k / 2.0, 0.5)


def dchisqr_cdf(x, k):
    return dgamma_cdf(x, k / 2.0, 0.5)


def dweib_logpdf(x, v, lam):
    safe_x = _positive(x)
    lp = jnp.log(v) + jnp.log(lam) + (v - 1.0) * jnp.log(safe_x) - lam * safe_x ** v
    return _where_valid(x > 0, lp)


def dweib_cdf(x, v, lam):
    return jnp.where(x > 0, -jnp.expm1(-lam * _positive(x) ** v), 0.0)


def dlogis_logpdf(x, mu, tau):
    z = tau * (x - mu)
    return jnp.log(tau) + jax.nn.log_sigmoid(z) + jax.nn.log_sigmoid(-z)


def dlogis_cdf(x, mu, tau):
    return jax.nn.sigmoid(tau * (x - mu))


def ddexp_logpdf(x, mu, tau):
    return jnp.log(tau / 2.0) - tau * jnp.abs(x - mu)


def ddexp_cdf(x, mu, tau):
    z = tau * (x - mu)
    return jnp.where(z < 0, 0.5 * jnp.exp(jnp.minimum(z, 0.0)), 1.0 - 0.5 * jnp.exp(-jnp.maximum(z, 0.0)))


def dpar_logpdf(x, alpha, c):
    safe_x = jnp.where(x >= c, x, c)
    lp = jnp.log(alpha) + alpha * jnp.log(c) - (alpha + 1.0) * jnp.log(safe_x)
    return _where_valid(x >= c, lp)


def dpar_cdf(x, alpha, c):
    return jnp.where(x >= c, 1.0 - (c / jnp.maximum(x, c)) ** alpha, 0.0)


# =============================================================================
# DISCRETE
# =============================================================================

def dbern_logpdf(x, p):
    valid = (x == 0) | (x == 1)
    return _where_valid(valid, jsp.xlogy(x, p) + jsp.xlog1py(1.0 - x, -p))


def dbin_logpdf(x, p, n):
    valid = _is_integer(x) & (x >= 0) & (x <= n)
    safe_x = jnp.clip(x, 0.0, n)
    lp = (jsp.gammaln(n + 1.0) - jsp.gammaln(safe_x + 1.0) - jsp.gammaln(n - safe_x + 1.0)
          + jsp.xlogy(safe_x, p) + jsp.xlog1py(n - safe_x, -p))
    return _where_valid(valid, lp)


def dpois_logpdf(x, lam):
    valid = _is_integer(x) & (x >= 0)
    safe_x = jnp.maximum(x, 0.0)
    return _where_valid(valid, jsp.xlogy(safe_x, lam) - lam - jsp.gammaln(safe_x + 1.0))


def dnegbin_logpdf(x, p, r):
    valid = _is_integer(x) & (x >= 0)
    safe_x = jnp.maximum(x, 0.0)
    lp = (jsp.gammaln(safe_x + r) - jsp.gammaln(r) - jsp.gammaln(safe_x + 1.0)
          + r * jnp.log(p) + jsp.xlog1py(safe_x, -p))
    return _where_valid(valid, lp)


def dcat_logpdf(x, pi):
    k = pi.shape[-1]
    valid = _is_integer(x) & (x >= 1) & (x <= k)
    idx = jnp.clip(x.astype(jnp.int32) - 1, 0, k - 1)
    chosen = jnp.take_along_axis(pi, idx[..., None], axis=-1)[..., 0]
    return _where_valid(valid, jnp.log(chosen) - jnp.log(jnp.sum(pi, axis=-1)))


# =============================================================================
# SUPPORT AND TYPICAL VALUES (NumPy, compile time)
# =============================================================================

def _real_line(*params):
    return -np.inf, np.inf


def _positive_line(*params):
    return 0.0, np.inf


def _unit_interval(*params):
    return 0.0, 1.0


def _full_like(value, *params):
    shape = np.broadcast(*params).shape if params else ()
    return np.broadcast_to(np.asarray(value, dtype=float), shape)


DISTRIBUTIONS = {
    'dnorm': Distribution(
        'dnorm', 2, dnorm_logpdf, _real_line,
        typical=lambda mu, tau: _full_like(mu, mu, tau),
        cdf=dnorm_cdf),
    'dlnorm': Distribution(
        'dlnorm', 2, dlnorm_logpdf, _positive_line,
        typical=lambda mu, tau: _full_like(np.exp(mu), mu, tau),
        cdf=dlnorm_cdf),
    'dt': Distribution(
        'dt', 3, dt_logpdf, _real_line,
        typical=lambda mu, tau, k: _full_like(mu, mu, tau, k),
        cdf=dt_cdf),
    'dgamma': Distribution(
        'dgamma', 2, dgamma_logpdf, _positive_line,
        typical=lambda r, lam: _full_like(np.asarray(r) / np.asarray(lam), r, lam),
        cdf=dgamma_cdf),
    'dexp': Distribution(
        'dexp', 1, dexp_logpdf, _positive_line,
        typical=lambda lam: _full_like(1.0 / np.asarray(lam), lam),
        cdf=dexp_cdf),
    'dunif': Distribution(
        'dunif', 2, dunif_logpdf, lambda a, b: (a, b),
        typical=lambda a, b: _full_like((np.asarray(a) + np.asarray(b)) / 2.0, a, b),
        cdf=dunif_cdf),
    'dbeta': Distribution(
        'dbeta', 2, dbeta_logpdf, _unit_interval,
        typical=lambda a, b: _full_like(np.asarray(a) / (np.asarray(a) + np.asarray(b)), a, b),
        cdf=dbeta_cdf),
    'dchisqr': Distribution(
        'dchisqr', 1, dchisqr_logpdf, _positive_line,
        typical=lambda k: _full_like(k, k),
        cdf=dchisqr_cdf),
    'dweib': Distribution(
        'dweib', 2, dweib_logpdf, _positive_line,
        typical=lambda v, lam: _full_like(
            (np.log(2.0) / np.asarray(lam)) ** (1.0 / np.asarray(v)), v, lam),
        cdf=dweib_cdf),
    'dlogis': Distribution(
        'dlogis', 2, dlogis_logpdf, _real_line,
        typical=lambda mu, tau: _full_like(mu, mu, tau),
        cdf=dlogis_cdf),
    'ddexp': Distribution(
        'ddexp', 2, ddexp_logpdf, _real_line,
        typical=lambda mu, tau: _full_like(mu, mu, tau),
        cdf=ddexp_cdf),
    'dpar': Distribution(
        'dpar', 2, dpar_logpdf, lambda alpha, c: (c, np.inf),
        typical=lambda alpha, c: _full_like(
            np.asarray(c) * 2.0 ** (1.0 / np.asarray(alpha)), alpha, c),
        cdf=dpar_cdf),
    'dbern': Distribution(
        'dbern', 1, dbern_logpdf, lambda p: (0.0, 1.0),
        typical=lambda p: _full_like((np.asarray(p) >= 0.5).astype(float), p),
        discrete=True),
    'dbin': Distribution(
        'dbin', 2, dbin_logpdf, lambda p, n: (0.0, n),
        typical=lambda p, n: _full_like(np.round(np.asarray(p) * np.asarray(n)), p, n),
        discrete=True),
    'dpois': Distribution(
        'dpois', 1, dpois_logpdf, lambda lam: (0.0, np.inf),
        typical=lambda lam: _full_like(np.floor(lam), lam),
        discrete=True),
    'dnegbin': Distribution(
        'dnegbin', 2, dnegbin_logpdf, lambda p, r: (0.0, np.inf),
        typical=lambda p, r: _full_like(
            np.floor(np.asarray(r) * (1.0 - np.asarray(p)) / np.asarray(p)), p, r),
        discrete=True),
    'dcat': Distribution(
        'dcat', 1, dcat_logpdf, lambda pi: (1.0, float(np.shape(pi)[-1])),
        typical=lambda pi: np.argmax(np.asarray(pi), axis=-1).astype(float) + 1.0,
        discrete=True, vector_params=(0,)),
}


def get_distribution(name: str) -> Distribution:
    """
    Look up a distribution by its BUGS name.

    Raises:
        KeyError: If the distribution is unknown
    """
    if name not in DISTRIBUTIONS:
        raise KeyError(f"Unknown distribution '{name}'. Available: {sorted(DISTRIBUTIONS)}")
    return DISTRIBUTIONS[name]
