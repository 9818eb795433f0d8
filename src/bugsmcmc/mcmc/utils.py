import os


def clean_config(mcmc_config):
    """
    Fill in defaults for a sampler configuration dict.
    All config keys use lowercase with underscores.
    """
    mcmc_config.setdefault('n_chains', 1)
    mcmc_config.setdefault('n_adapt', 1000)
    mcmc_config.setdefault('rng_seed', 42)
    mcmc_config.setdefault('use_double', True)
    mcmc_config.setdefault('proposal', 'auto')
    mcmc_config.setdefault('chunk_size', 1000)
    mcmc_config.setdefault('gpu_preallocation', False)

    if 'XLA_PYTHON_CLIENT_PREALLOCATE' not in os.environ:
        os.environ['XLA_PYTHON_CLIENT_PREALLOCATE'] = 'true' if mcmc_config['gpu_preallocation'] else 'false'

    return mcmc_config
