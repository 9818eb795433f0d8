"""
bugsmcmc - BUGS models sampled with JAX

Public API:
    Workflow:
        compile_model - Parse, compile and adapt a model (returns Model)
        update - Run iterations without recording
        coda_samples - Run iterations and record monitored nodes (returns Samples)
        run_workflow - Compile, sample, diagnose, trim and summarise in one call

    Samples:
        Samples - Draws of monitored nodes from several chains
        apply_burnin - Drop draws before an iteration
        concatenate_samples - Join consecutive runs

    Diagnostics:
        gelman_diag, gelman_preplot, select_burnin, trim_burnin,
        effective_size, spectrum0_ar, autocorr, autocorr_diag, geweke_diag,
        hpd_interval, crosscorr, summarize, dic_samples

    Plots (bugsmcmc.plotting):
        traceplot, densplot, plot_samples, autocorr_plot, gelman_plot,
        save_diagnostics_pdf

    Models:
        register_model - Register a named model
        get_model - Retrieve a registered model
        list_models - List registered model names
        register_tutorial_models - Register the built-in tutorial models

    Errors:
        ModelSyntaxError, ModelCompileError, ModelRuntimeError

Example:
    from bugsmcmc import compile_model, update, coda_samples, gelman_diag

    model = compile_model('''
        model {
            for (i in 1:N) { y[i] ~ dnorm(mu, 1) }
            mu ~ dnorm(0, 0.001)
        }''', data={'y': [0.3, 1.1, 0.7], 'N': 3}, n_chains=4,
        inits=lambda chain: {'mu': [-5.0, 5.0, 0.0, 2.0][chain]})
    update(model, 1000)
    samples = coda_samples(model, ['mu'], n_iter=5000)
    print(gelman_diag(samples))
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .error_handling import ModelSyntaxError, ModelCompileError, ModelRuntimeError
from .batch_specs import BlockSpec, SamplerType, ProposalType
from .settings import SettingSlot
from .mcmc import Model, compile_model, update, coda_samples
from .samples import Samples, apply_burnin, concatenate_samples
from .diagnostics import (
    gelman_diag,
    gelman_preplot,
    select_burnin,
    trim_burnin,
    effective_size,
    spectrum0_ar,
    autocorr,
    autocorr_diag,
    geweke_diag,
    hpd_interval,
    crosscorr,
    summarize,
    dic_samples,
)
from .registry import register_model, get_model, list_models, clear_registry
from .tutorial_models import register_tutorial_models
from .checkpoint_io import save_samples, load_samples, save_model_state, load_model_state
from .workflow import run_workflow, WorkflowResult

__version__ = "0.1.0"

__all__ = [
    # Workflow
    'compile_model',
    'update',
    'coda_samples',
    'run_workflow',
    'WorkflowResult',
    'Model',
    # Samples
    'Samples',
    'apply_burnin',
    'concatenate_samples',
    # Diagnostics
    'gelman_diag',
    'gelman_preplot',
    'select_burnin',
    'trim_burnin',
    'effective_size',
    'spectrum0_ar',
    'autocorr',
    'autocorr_diag',
    'geweke_diag',
    'hpd_interval',
    'crosscorr',
    'summarize',
    'dic_samples',
    # Models
    'register_model',
    'get_model',
    'list_models',
    'clear_registry',
    'register_tutorial_models',
    # Checkpoints
    'save_samples',
    'load_samples',
    'save_model_state',
    'load_model_state',
    # Blocks
    'BlockSpec',
    'SamplerType',
    'ProposalType',
    'SettingSlot',
    # Errors
    'ModelSyntaxError',
    'ModelCompileError',
    'ModelRuntimeError',
]
