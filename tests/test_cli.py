"""
Command Line Tests

Run with: pytest tests/test_cli.py -v
"""

import json

import pytest

from bugsmcmc.cli import main
from bugsmcmc.checkpoint_io import load_samples, load_samples_metadata


SHORT_RUN = ['--chains', '2', '--adapt', '100', '--burnin', '100', '--iter', '300', '--quiet']


@pytest.fixture
def model_files(tmp_path, normal_mean_model, normal_mean_data):
    model_path = tmp_path / "model.bug"
    model_path.write_text(normal_mean_model)
    data_path = tmp_path / "data.json"
    data_path.write_text(json.dumps({'y': list(normal_mean_data['y']), 'N': 20}))
    inits_path = tmp_path / "inits.json"
    inits_path.write_text(json.dumps([{'mu': -2.0}, {'mu': 5.0}]))
    return model_path, data_path, inits_path


class TestCommands:

    def test_list(self, capsys):
        assert main(['list']) == 0
        out = capsys.readouterr().out
        assert "coin_flip" in out
        assert "Beta-Bernoulli coin flip" in out

    def test_demo(self, capsys):
        code = main(['demo', '--model', 'coin_flip'] + SHORT_RUN)
        assert code in (0, 2)
        out = capsys.readouterr().out
        assert "True values used to simulate the data" in out
        assert "Analytical posterior" in out
        assert "MCMC WORKFLOW REPORT" in out

    def test_run_and_summary(self, tmp_path, model_files, capsys):
        model_path, data_path, inits_path = model_files
        out_path = tmp_path / "samples.npz"
        code = main(['run', str(model_path), '--data', str(data_path), '--inits', str(inits_path),
                     '--out', str(out_path)] + SHORT_RUN)
        assert code in (0, 2)
        samples = load_samples(out_path)
        assert samples.varnames == ['mu']
        assert samples.niter == 300
        assert 'burnin' in load_samples_metadata(out_path)
        capsys.readouterr()

        assert main(['summary', str(out_path), '--burnin', '300']) == 0
        out = capsys.readouterr().out
        assert "Iterations = 300:500" in out
        assert "Effective sample size" in out
        assert "Potential scale reduction factors" in out

    def test_run_with_monitor(self, tmp_path, model_files):
        model_path, data_path, _ = model_files
        out_path = tmp_path / "dev.npz"
        main(['run', str(model_path), '--data', str(data_path), '--monitor', 'mu', 'deviance',
              '--out', str(out_path)] + SHORT_RUN)
        assert load_samples(out_path).varnames == ['mu', 'deviance']


    def test_unconverged_run_exits_2(self, tmp_path):
        model_path = tmp_path / "prior.bug"
        model_path.write_text("model { mu ~ dnorm(0, 1) }")
        data_path = tmp_path / "data.json"
        data_path.write_text("{}")
        inits_path = tmp_path / "inits.json"
        inits_path.write_text(json.dumps([{'mu': -100.0}, {'mu': 100.0}]))
        code = main(['run', str(model_path), '--data', str(data_path), '--inits', str(inits_path),
                     '--chains', '2', '--adapt', '0', '--burnin', '0', '--iter', '40', '--quiet'])
        assert code == 2


class TestErrors:

    def test_syntax_error(self, tmp_path, capsys):
        model_path = tmp_path / "bad.bug"
        model_path.write_text("model { mu ~ dnorm(0, 1 }")
        data_path = tmp_path / "data.json"
        data_path.write_text("{}")
        assert main(['run', str(model_path), '--data', str(data_path)] + SHORT_RUN) == 1
        assert "Error:" in capsys.readouterr().err

    def test_missing_model_file(self, tmp_path):
        data_path = tmp_path / "data.json"
        data_path.write_text("{}")
        assert main(['run', str(tmp_path / "absent.bug"), '--data', str(data_path)]) == 1

    def test_unknown_demo(self, capsys):
        assert main(['demo', '--model', 'nope'] + SHORT_RUN) == 1
        assert "Unknown model 'nope'" in capsys.readouterr().err
