"""
Proposal Tests - Step Sizes and Symmetry

Tests the individual proposal functions:
- Hastings ratio is zero for every symmetric proposal
- Step size follows the adapted log scale / coupled-chain spread
- Integer walk never proposes the current value

Run with: pytest tests/test_proposals.py -v
"""

import numpy as np
import jax
import jax.numpy as jnp
import jax.random as random
import pytest

from bugsmcmc.proposals import rand_walk_proposal, self_mean_proposal, integer_walk_proposal
from bugsmcmc.settings import SettingSlot, SETTING_DEFAULTS, MAX_SETTINGS, build_settings_matrix
from bugsmcmc.batch_specs import BlockSpec, SamplerType


def make_settings(**overrides):
    settings = np.array([SETTING_DEFAULTS[slot] for slot in SettingSlot], dtype=float)
    for name, value in overrides.items():
        settings[SettingSlot[name.upper()]] = value
    return jnp.asarray(settings)


def draw_many(proposal_fn, current, log_scale=0.0, coupled_sd=1.0, n=4000, **settings):
    """Proposals from n independent keys."""
    keys = random.split(random.PRNGKey(0), n)
    s = make_settings(**settings)

    def one(key):
        prop, ratio, _ = proposal_fn((key, jnp.asarray(current), jnp.asarray(log_scale),
                                      jnp.asarray(coupled_sd), s))
        return prop, jnp.asarray(ratio)

    props, ratios = jax.vmap(one)(keys)
    return np.asarray(props), np.asarray(ratios)


class TestRandWalk:

    def test_zero_hastings_ratio(self):
        _, ratios = draw_many(rand_walk_proposal, 1.0, n=10)
        assert np.all(ratios == 0.0)

    def test_step_size_follows_log_scale(self):
        props, _ = draw_many(rand_walk_proposal, 2.0, log_scale=np.log(0.5))
        assert abs(props.mean() - 2.0) < 0.05
        assert abs(props.std() - 0.5) < 0.05

    def test_init_scale(self):
        props, _ = draw_many(rand_walk_proposal, 0.0, init_scale=3.0)
        assert abs(props.std() - 3.0) < 0.25

    def test_returns_new_key(self):
        key = random.PRNGKey(1)
        _, _, new_key = rand_walk_proposal((key, jnp.asarray(0.0), jnp.asarray(0.0),
                                            jnp.asarray(1.0), make_settings()))
        assert not np.array_equal(np.asarray(key), np.asarray(new_key))


class TestSelfMean:

    def test_step_size_from_coupled_spread(self):
        props, ratios = draw_many(self_mean_proposal, -1.0, coupled_sd=0.2)
        assert np.all(ratios == 0.0)
        assert abs(props.mean() + 1.0) < 0.05
        assert abs(props.std() - 2.38 * 0.2) < 0.04

    def test_collapsed_group_still_moves(self):
        props, _ = draw_many(self_mean_proposal, 0.0, coupled_sd=0.0, n=100)
        assert np.all(np.isfinite(props))
        assert props.std() > 0


class TestIntegerWalk:

    def test_never_proposes_current(self):
        props, ratios = draw_many(integer_walk_proposal, 5.0, log_scale=np.log(0.1))
        assert np.all(ratios == 0.0)
        assert np.all(props != 5.0)
        np.testing.assert_array_equal(props, np.round(props))

    def test_small_scale_steps_by_one(self):
        props, _ = draw_many(integer_walk_proposal, 5.0, log_scale=np.log(0.01))
        assert set(np.unique(props)) <= {4.0, 6.0}
        assert abs(np.mean(props == 6.0) - 0.5) < 0.05

    def test_symmetric(self):
        props, _ = draw_many(integer_walk_proposal, 0.0, log_scale=np.log(3.0))
        assert abs(props.mean()) < 0.2


class TestSettingsMatrix:

    def test_defaults_and_overrides(self):
        specs = [
            BlockSpec(size=1, sampler_type=SamplerType.METROPOLIS_HASTINGS, label="mu"),
            BlockSpec(size=1, sampler_type=SamplerType.DISCRETE_GIBBS, label="z",
                      settings={'support_lower': 1, 'support_size': 3}),
        ]
        matrix = np.asarray(build_settings_matrix(specs, dtype=jnp.float64))
        assert matrix.shape == (2, MAX_SETTINGS)
        assert matrix[0, SettingSlot.COV_MULT] == pytest.approx(2.38 ** 2)
        assert matrix[0, SettingSlot.SUPPORT_SIZE] == 0
        assert matrix[1, SettingSlot.SUPPORT_LOWER] == 1
        assert matrix[1, SettingSlot.SUPPORT_SIZE] == 3

    def test_unknown_setting(self):
        spec = BlockSpec(size=1, sampler_type=SamplerType.METROPOLIS_HASTINGS, label="mu",
                         settings={'step': 2.0})
        with pytest.raises(ValueError, match="Unknown setting 'step'"):
            build_settings_matrix([spec])
