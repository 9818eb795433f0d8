"""
Environment defaults read by JAX at import time; import before jax.

Variables:
    BUGSMCMC_CACHE_DIR   Directory for compiled sampling kernels
                         (default ~/.cache/jax/bugsmcmc_cache)
    BUGSMCMC_NO_CACHE    Set to 1 to skip the persistent kernel cache

A model recompiled with the same shapes and samplers reuses the cached
kernel across sessions; only kernels taking a second or more to build are
written.
"""
import os
from pathlib import Path

# XLA C++ chatter only; Python logging is unaffected
os.environ.setdefault('TF_CPP_MIN_LOG_LEVEL', '2')

if os.environ.get("BUGSMCMC_NO_CACHE", "0") != "1":
    _cache_dir = Path(os.environ.get("BUGSMCMC_CACHE_DIR", Path.home() / ".cache" / "jax" / "bugsmcmc_cache"))
    _cache_dir.mkdir(parents=True, exist_ok=True)
    os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_cache_dir))
    os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")
