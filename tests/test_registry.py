"""
Model Registry Tests

Run with: pytest tests/test_registry.py -v
"""

import numpy as np
import pytest

from bugsmcmc.registry import register_model, get_model, list_models
from bugsmcmc.tutorial_models import register_tutorial_models, TUTORIAL_MODELS


def _config():
    return {
        'model': "model { mu ~ dnorm(0, 1) }",
        'generate_data': lambda seed=42: ({}, {'mu': 0.0}),
    }


class TestRegistry:

    def test_register_and_get(self, clean_registry):
        config = _config()
        register_model('prior_only', config)
        assert get_model('prior_only') is config
        assert list_models() == ['prior_only']

    def test_duplicate(self, clean_registry):
        register_model('prior_only', _config())
        with pytest.raises(ValueError, match="already registered"):
            register_model('prior_only', _config())

    def test_missing_keys(self, clean_registry):
        with pytest.raises(ValueError, match="generate_data"):
            register_model('broken', {'model': "model { }"})

    def test_generator_must_be_callable(self, clean_registry):
        with pytest.raises(ValueError, match="must be callable"):
            register_model('broken', {'model': "model { }", 'generate_data': {}})

    def test_unknown(self, clean_registry):
        with pytest.raises(KeyError, match="Unknown model 'nope'"):
            get_model('nope')


class TestTutorialModels:

    def test_register_is_idempotent(self, clean_registry):
        register_tutorial_models()
        register_tutorial_models()
        assert sorted(list_models()) == sorted(TUTORIAL_MODELS)

    @pytest.mark.parametrize("name", sorted(TUTORIAL_MODELS))
    def test_generate_data_is_reproducible(self, name):
        generate = TUTORIAL_MODELS[name]['generate_data']
        data1, truth = generate(seed=5)
        data2, _ = generate(seed=5)
        assert set(data1) == set(data2)
        for key in data1:
            np.testing.assert_array_equal(data1[key], data2[key])
        assert truth

    def test_coin_flip_posterior(self):
        config = TUTORIAL_MODELS['coin_flip']
        data, _ = config['generate_data'](seed=1)
        post = config['analytic_posterior'](data)
        mean, sd = post['theta']
        heads = float(np.sum(data['y']))
        n = len(data['y'])
        assert mean == pytest.approx((1 + heads) / (2 + n))
        assert 0 < sd < 0.1
