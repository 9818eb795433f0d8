"""
Model Registration System

A registry of named example models. Each entry bundles the model text with a
synthetic data generator, the nodes worth monitoring and, where one exists,
the analytical posterior.

Example usage:
    from bugsmcmc import register_model

    register_model('my_model', {
        'model': "model { mu ~ dnorm(0, 0.01); for (i in 1:N) { y[i] ~ dnorm(mu, 1) } }",
        'generate_data': lambda seed=42: ({'y': [1.2, 0.8], 'N': 2}, {'mu': 1.0}),
        # optional:
        'monitor': ['mu'],
        'inits': lambda chain: {'mu': chain - 1.0},
        'analytic_posterior': my_posterior_fn,   # data -> {node: (mean, sd)}
        'description': 'Normal mean with known precision',
    })
"""

_REGISTRY = {}


def register_model(name, config):
    """
    Register a named model.

    Args:
        name: Unique model identifier string
        config: Dict with keys:

            Required:
                model: Model text
                generate_data: fn(seed=...) -> (data, true_values)

            Optional:
                monitor: Node names to record (default: every stochastic
                    node with no data)
                inits: Anything accepted as inits by compile_model
                analytic_posterior: fn(data) -> {node: (mean, sd)}
                description: One-line description

    Raises:
        ValueError: If required keys are missing or name is already registered.
    """
    if name in _REGISTRY:
        raise ValueError(f"Model '{name}' is already registered")

    required_keys = ['model', 'generate_data']
    missing = [k for k in required_keys if k not in config]
    if missing:
        raise ValueError(f"Missing required keys for model '{name}': {missing}")
    if not callable(config['generate_data']):
        raise ValueError(f"'generate_data' for model '{name}' must be callable")

    _REGISTRY[name] = config


def get_model(name):
    """
    Get a registered model configuration by name.

    Raises:
        KeyError: If the model is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown model '{name}'. Available: {available}")
    return _REGISTRY[name]


def list_models():
    """List all registered model names."""
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered models. Primarily for testing.
    """
    _REGISTRY.clear()
