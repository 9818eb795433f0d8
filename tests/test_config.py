"""
Configuration Tests - Defaults, Validation and Initial Values

Run with: pytest tests/test_config.py -v
"""

import numpy as np
import jax.numpy as jnp
import pytest

from bugsmcmc.batch_specs import BlockSpec, SamplerType, ProposalType, validate_block_specs, create_node_blocks
from bugsmcmc.error_handling import validate_mcmc_config, diagnose_sampler_issues
from bugsmcmc.mcmc.config import (
    configure_mcmc_system, resolve_proposal, load_model_text, prepare_data,
    normalize_inits, gen_rng_keys,
)


class TestConfigure:

    def test_defaults(self):
        config, ctx = configure_mcmc_system({'n_chains': 3})
        assert config['n_adapt'] == 1000
        assert config['rng_seed'] == 42
        assert config['proposal'] == 'auto'
        assert config['chunk_size'] == 1000
        assert ctx['jnp_float_dtype'] == jnp.float64

    @pytest.mark.parametrize("key,value,message", [
        ('n_chains', 0, "n_chains must be >= 1"),
        ('n_adapt', -1, "n_adapt must be >= 0"),
        ('thin', 0, "thin must be >= 1"),
        ('chunk_size', 0, "chunk_size must be >= 1"),
        ('proposal', 'mala', "proposal must be"),
    ])
    def test_invalid(self, key, value, message):
        with pytest.raises(ValueError, match=message):
            validate_mcmc_config({key: value})

    def test_self_mean_needs_four_chains(self):
        with pytest.raises(ValueError, match="needs at least 4 chains"):
            validate_mcmc_config({'proposal': 'self_mean', 'n_chains': 3})
        validate_mcmc_config({'proposal': 'self_mean', 'n_chains': 4})

    def test_errors_are_collected(self):
        with pytest.raises(ValueError) as exc:
            validate_mcmc_config({'n_chains': 0, 'thin': 0})
        assert "n_chains" in str(exc.value) and "thin" in str(exc.value)

    def test_resolve_proposal(self):
        assert resolve_proposal('auto', 2) == ProposalType.RAND_WALK
        assert resolve_proposal('auto', 4) == ProposalType.SELF_MEAN
        assert resolve_proposal('rand_walk', 8) == ProposalType.RAND_WALK


class TestInputs:

    def test_model_text_from_file(self, tmp_path):
        path = tmp_path / "m.bug"
        path.write_text("model { x ~ dnorm(0, 1) }")
        assert load_model_text(str(path)) == "model { x ~ dnorm(0, 1) }"
        assert load_model_text(path) == "model { x ~ dnorm(0, 1) }"

    def test_model_text_passthrough(self):
        assert load_model_text("model { }") == "model { }"

    def test_prepare_data(self):
        data = prepare_data({'y': [1, None, 3], 'N': 3, '.RNG.seed': 4})
        assert set(data) == {'y', 'N'}
        assert np.isnan(data['y'][1])
        assert data['N'].shape == ()

    def test_prepare_data_not_numeric(self):
        with pytest.raises(ValueError, match="Data for y is not numeric"):
            prepare_data({'y': ['a', 'b']})

    def test_normalize_inits(self):
        assert normalize_inits({'mu': 1.0}, 2) == [{'mu': 1.0}, {'mu': 1.0}]
        assert normalize_inits(lambda c: {'mu': c}, 3) == [{'mu': 0}, {'mu': 1}, {'mu': 2}]
        with pytest.raises(ValueError, match="does not match n_chains"):
            normalize_inits([{}, {}], 3)
        with pytest.raises(ValueError, match="inits must be"):
            normalize_inits(5, 1)

    def test_no_inits_warns_for_several_chains(self, caplog):
        with caplog.at_level("WARNING", logger="bugsmcmc"):
            assert normalize_inits(None, 2) == [{}, {}]
        assert "same point" in caplog.text

    def test_rng_keys(self):
        keys = np.asarray(gen_rng_keys(42, [{}, {}, {'.RNG.seed': 7}]))
        assert keys.shape[0] == 3
        assert not np.array_equal(keys[0], keys[1])
        again = np.asarray(gen_rng_keys(1, [{'.RNG.seed': 7}]))
        np.testing.assert_array_equal(keys[2], again[0])


class TestBlockSpecs:

    def test_node_blocks(self):
        specs = create_node_blocks(
            ['mu', 'z', 'n'], np.array([0.0, 1.0, 0.0]), np.array([0, 3, 0]),
            np.array([False, True, True]), ProposalType.SELF_MEAN)
        assert [s.sampler_type for s in specs] == [
            SamplerType.METROPOLIS_HASTINGS, SamplerType.DISCRETE_GIBBS, SamplerType.INTEGER_WALK]
        assert specs[0].proposal_type == ProposalType.SELF_MEAN
        assert specs[1].settings == {'support_lower': 1.0, 'support_size': 3}
        assert specs[0].sampler_name() == "Metropolis Hastings (Self Mean)"
        assert [s.is_mh_sampler() for s in specs] == [True, False, True]

    def test_gibbs_needs_support(self):
        with pytest.raises(ValueError, match="support_size"):
            BlockSpec(size=1, sampler_type=SamplerType.DISCRETE_GIBBS, label="z")

    def test_validate(self):
        bad = [BlockSpec(size=2, sampler_type=SamplerType.METROPOLIS_HASTINGS, label="v")]
        with pytest.raises(ValueError, match="only scalar blocks"):
            validate_block_specs(bad)


class TestSamplerIssues:

    def test_stuck_chain(self):
        draws = np.random.default_rng(0).normal(size=(100, 2, 2))
        draws[:, 1, 0] = 3.0
        issues = diagnose_sampler_issues(draws, ['a', 'b'], {})
        assert any("a (chain 2)" in w for w in issues['warnings'])
        assert not issues['issues']

    def test_non_finite(self):
        draws = np.zeros((10, 1, 1))
        draws[3] = np.nan
        issues = diagnose_sampler_issues(draws, ['a'], {})
        assert "NaN or Inf values for: a" in issues['issues'][0]

    def test_low_ess_and_high_rhat(self):
        draws = np.random.default_rng(0).normal(size=(100, 2, 2))
        issues = diagnose_sampler_issues(draws, ['a', 'b'],
                                         {'ess': np.array([40.0, 180.0]), 'rhat': np.array([1.01, 1.3]),
                                          'rhat_threshold': 1.1})
        assert "Effective sample size below 100 for: a" in issues['warnings']
        assert "Shrink factor above 1.1 for: b" in issues['warnings']

    def test_constant_node_is_not_stuck(self):
        issues = diagnose_sampler_issues(np.ones((50, 2, 1)), ['c'], {})
        assert not issues['warnings']
