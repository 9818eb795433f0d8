"""
Pytest configuration and shared fixtures for bugsmcmc tests.
"""

import matplotlib
matplotlib.use("Agg")

import jax
import numpy as np
import pytest

from bugsmcmc.registry import _REGISTRY
from bugsmcmc.samples import Samples

# Models default to double precision; match it for direct JAX calls
jax.config.update("jax_enable_x64", True)


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def clean_registry():
    """
    Empty the model registry for a test and restore it afterwards.

    Usage:
        def test_something(clean_registry):
            register_model(...)
    """
    saved = dict(_REGISTRY)
    _REGISTRY.clear()
    yield
    _REGISTRY.clear()
    _REGISTRY.update(saved)


@pytest.fixture
def iid_samples():
    """Four chains of independent N(0, 1) draws for two variables."""
    rng = np.random.default_rng(0)
    draws = rng.normal(size=(1000, 4, 2))
    return Samples(draws, ['a', 'b'], start=1001, thin=1)


@pytest.fixture
def separated_samples():
    """Two chains stuck around different means."""
    rng = np.random.default_rng(1)
    draws = rng.normal(scale=0.1, size=(500, 2, 1))
    draws[:, 1, 0] += 5.0
    return Samples(draws, ['mu'], start=1, thin=1)


NORMAL_MEAN_MODEL = """
model {
    for (i in 1:N) {
        y[i] ~ dnorm(mu, 1)
    }
    mu ~ dnorm(0, 0.0001)
}
"""


@pytest.fixture
def normal_mean_data():
    """Data for NORMAL_MEAN_MODEL; the posterior of mu is N(mean(y), 1/N) (flat prior)."""
    rng = np.random.default_rng(3)
    y = rng.normal(2.0, 1.0, 20)
    return {'y': y, 'N': 20}


@pytest.fixture
def normal_mean_model():
    return NORMAL_MEAN_MODEL
