"""
Tutorial Models - Small BUGS Models with Known Answers

Each model comes with a synthetic data generator and, where the model is
conjugate, its analytical posterior ({node: (mean, sd)}), so sampler output
can be checked against exact results.

    coin_flip                      - Beta-Bernoulli
    normal_known_precision         - Normal mean, known precision
    normal_unknown_mean_precision  - Normal-Gamma
    poisson_gamma                  - Poisson rate with Gamma prior
    linear_regression              - Simple regression on centred x
    hierarchical_binomial          - Random-effects logistic model

Call register_tutorial_models() to add them to the model registry.
"""

import numpy as np

from .registry import register_model, list_models


# ============================================================================
# BETA-BERNOULLI
# ============================================================================

COIN_FLIP = """
model {
    for (i in 1:N) {
        y[i] ~ dbern(theta)
    }
    theta ~ dbeta(a, b)
}
"""


def coin_flip_data(seed=42, n=100, theta=0.7, a=1.0, b=1.0):
    rng = np.random.default_rng(seed)
    y = rng.binomial(1, theta, n).astype(float)
    return {'y': y, 'N': n, 'a': a, 'b': b}, {'theta': theta}


def coin_flip_posterior(data):
    """theta | y ~ Beta(a + sum(y), b + N - sum(y))"""
    s = float(np.sum(data['y']))
    alpha = data['a'] + s
    beta = data['b'] + data['N'] - s
    mean = alpha / (alpha + beta)
    sd = np.sqrt(alpha * beta / ((alpha + beta) ** 2 * (alpha + beta + 1)))
    return {'theta': (mean, sd)}


# ============================================================================
# NORMAL MEAN, KNOWN PRECISION
# ============================================================================

NORMAL_KNOWN_PRECISION = """
model {
    for (i in 1:N) {
        y[i] ~ dnorm(mu, tau)
    }
    mu ~ dnorm(mu0, tau0)
}
"""


def normal_known_precision_data(seed=42, n=50, mu=5.0, sigma=2.0, mu0=0.0, tau0=0.01):
    rng = np.random.default_rng(seed)
    y = rng.normal(mu, sigma, n)
    return {'y': y, 'N': n, 'tau': 1.0 / sigma ** 2, 'mu0': mu0, 'tau0': tau0}, {'mu': mu}


def normal_known_precision_posterior(data):
    """mu | y ~ N((tau0 mu0 + tau sum(y)) / prec, 1 / prec) with prec = tau0 + N tau"""
    prec = data['tau0'] + data['N'] * data['tau']
    mean = (data['tau0'] * data['mu0'] + data['tau'] * np.sum(data['y'])) / prec
    return {'mu': (mean, 1.0 / np.sqrt(prec))}


# ============================================================================
# NORMAL-GAMMA
# ============================================================================

NORMAL_UNKNOWN_MEAN_PRECISION = """
model {
    for (i in 1:N) {
        y[i] ~ dnorm(mu, tau)
    }
    mu ~ dnorm(mu0, k0 * tau)
    tau ~ dgamma(a0, b0)
    sigma <- 1 / sqrt(tau)
}
"""


def normal_unknown_mean_precision_data(seed=42, n=60, mu=-1.0, sigma=1.5,
                                       mu0=0.0, k0=0.01, a0=2.0, b0=2.0):
    rng = np.random.default_rng(seed)
    y = rng.normal(mu, sigma, n)
    data = {'y': y, 'N': n, 'mu0': mu0, 'k0': k0, 'a0': a0, 'b0': b0}
    return data, {'mu': mu, 'tau': 1.0 / sigma ** 2, 'sigma': sigma}


def normal_unknown_mean_precision_posterior(data):
    """
    Normal-Gamma update:
        tau | y ~ Gamma(a_n, b_n)
        mu | y  ~ t_{2 a_n}(mu_n, b_n / (a_n k_n))
    """
    y = np.asarray(data['y'])
    n = len(y)
    ybar = y.mean()
    k_n = data['k0'] + n
    mu_n = (data['k0'] * data['mu0'] + n * ybar) / k_n
    a_n = data['a0'] + n / 2.0
    b_n = (data['b0'] + 0.5 * np.sum((y - ybar) ** 2)
           + data['k0'] * n * (ybar - data['mu0']) ** 2 / (2.0 * k_n))
    return {
        'mu': (mu_n, np.sqrt(b_n / (k_n * (a_n - 1.0)))),
        'tau': (a_n / b_n, np.sqrt(a_n) / b_n),
    }


# ============================================================================
# POISSON-GAMMA
# ============================================================================

POISSON_GAMMA = """
model {
    for (i in 1:N) {
        y[i] ~ dpois(lambda)
    }
    lambda ~ dgamma(a, b)
}
"""


def poisson_gamma_data(seed=42, n=40, lam=3.5, a=1.0, b=0.1):
    rng = np.random.default_rng(seed)
    y = rng.poisson(lam, n).astype(float)
    return {'y': y, 'N': n, 'a': a, 'b': b}, {'lambda': lam}


def poisson_gamma_posterior(data):
    """lambda | y ~ Gamma(a + sum(y), b + N)"""
    shape = data['a'] + float(np.sum(data['y']))
    rate = data['b'] + data['N']
    return {'lambda': (shape / rate, np.sqrt(shape) / rate)}


# ============================================================================
# LINEAR REGRESSION
# ============================================================================

LINEAR_REGRESSION = """
model {
    for (i in 1:N) {
        y[i] ~ dnorm(mu[i], tau)
        mu[i] <- alpha + beta * (x[i] - x.bar)
    }
    x.bar <- mean(x[])
    alpha ~ dnorm(0.0, 1.0E-4)
    beta ~ dnorm(0.0, 1.0E-4)
    sigma ~ dunif(0, 100)
    tau <- 1 / (sigma * sigma)
}
"""


def linear_regression_data(seed=42, n=30, alpha=2.0, beta=0.8, sigma=1.0):
    rng = np.random.default_rng(seed)
    x = np.linspace(1.0, 10.0, n)
    y = alpha + beta * (x - x.mean()) + rng.normal(0.0, sigma, n)
    return {'x': x, 'y': y, 'N': n}, {'alpha': alpha, 'beta': beta, 'sigma': sigma}


# ============================================================================
# HIERARCHICAL BINOMIAL
# ============================================================================

HIERARCHICAL_BINOMIAL = """
model {
    for (i in 1:N) {
        r[i] ~ dbin(p[i], n[i])
        logit(p[i]) <- b[i]
        b[i] ~ dnorm(mu, tau)
    }
    mu ~ dnorm(0.0, 1.0E-2)
    sigma ~ dunif(0, 10)
    tau <- 1 / (sigma * sigma)
}
"""


def hierarchical_binomial_data(seed=42, groups=8, trials=40, mu=-0.5, sigma=0.6):
    rng = np.random.default_rng(seed)
    b = rng.normal(mu, sigma, groups)
    p = 1.0 / (1.0 + np.exp(-b))
    n = np.full(groups, float(trials))
    r = rng.binomial(trials, p).astype(float)
    return {'r': r, 'n': n, 'N': groups}, {'mu': mu, 'sigma': sigma, 'b': b}


def _spread_inits(name, values):
    def inits(chain):
        return {name: values[chain % len(values)]}
    return inits


TUTORIAL_MODELS = {
    'coin_flip': {
        'model': COIN_FLIP,
        'generate_data': coin_flip_data,
        'analytic_posterior': coin_flip_posterior,
        'monitor': ['theta'],
        'inits': _spread_inits('theta', [0.1, 0.9, 0.3, 0.7]),
        'description': 'Beta-Bernoulli coin flip',
    },
    'normal_known_precision': {
        'model': NORMAL_KNOWN_PRECISION,
        'generate_data': normal_known_precision_data,
        'analytic_posterior': normal_known_precision_posterior,
        'monitor': ['mu'],
        'inits': _spread_inits('mu', [-10.0, 10.0, 0.0, 20.0]),
        'description': 'Normal mean with known precision',
    },
    'normal_unknown_mean_precision': {
        'model': NORMAL_UNKNOWN_MEAN_PRECISION,
        'generate_data': normal_unknown_mean_precision_data,
        'analytic_posterior': normal_unknown_mean_precision_posterior,
        'monitor': ['mu', 'tau', 'sigma'],
        'inits': _spread_inits('mu', [-5.0, 5.0, 0.0, 2.0]),
        'description': 'Normal mean and precision with Normal-Gamma prior',
    },
    'poisson_gamma': {
        'model': POISSON_GAMMA,
        'generate_data': poisson_gamma_data,
        'analytic_posterior': poisson_gamma_posterior,
        'monitor': ['lambda'],
        'inits': _spread_inits('lambda', [0.5, 10.0, 2.0, 6.0]),
        'description': 'Poisson rate with Gamma prior',
    },
    'linear_regression': {
        'model': LINEAR_REGRESSION,
        'generate_data': linear_regression_data,
        'monitor': ['alpha', 'beta', 'sigma'],
        'inits': _spread_inits('alpha', [-5.0, 5.0, 0.0, 10.0]),
        'description': 'Simple linear regression on centred covariate',
    },
    'hierarchical_binomial': {
        'model': HIERARCHICAL_BINOMIAL,
        'generate_data': hierarchical_binomial_data,
        'monitor': ['mu', 'sigma'],
        'inits': _spread_inits('mu', [-2.0, 2.0, 0.0, 1.0]),
        'description': 'Random-effects logistic model for grouped counts',
    },
}


def register_tutorial_models():
    """Register every tutorial model not already in the registry."""
    registered = set(list_models())
    for name, config in TUTORIAL_MODELS.items():
        if name not in registered:
            register_model(name, config)
