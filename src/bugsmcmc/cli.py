"""bugsmcmc command line interface.

Usage
-----
bugsmcmc run model.bug --data data.json [--inits inits.json] [--monitor mu tau] [--out samples.npz]
bugsmcmc demo [--model coin_flip]
bugsmcmc list
bugsmcmc summary samples.npz [--burnin 2000]

Data and inits are JSON objects; `null` marks a missing value. Inits may
also be a list with one object per chain.
"""

import argparse
import json
import sys
from pathlib import Path

from .error_handling import ModelSyntaxError, ModelCompileError, ModelRuntimeError
from .registry import get_model, list_models
from .tutorial_models import register_tutorial_models

import logging


def _read_json(path):
    if path is None:
        return None
    with open(path) as f:
        return json.load(f)


def _add_run_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--chains", type=int, default=4, help="Number of chains")
    p.add_argument("--adapt", type=int, default=1000, help="Adaptation iterations")
    p.add_argument("--burnin", type=int, default=1000, help="Burn-in iterations before recording")
    p.add_argument("--iter", type=int, default=5000, help="Recorded iterations")
    p.add_argument("--thin", type=int, default=1, help="Thinning interval")
    p.add_argument("--seed", type=int, default=42, help="Random seed")
    p.add_argument("--threshold", type=float, default=1.1, help="Shrink factor threshold for burn-in")
    p.add_argument("--pdf", default=None, help="Write diagnostic plots to this PDF")
    p.add_argument("--out", default=None, help="Save samples to this .npz file")
    p.add_argument("--quiet", action="store_true", help="Only print the final report")


def _finish(result, args) -> int:
    if args.out:
        from .checkpoint_io import save_samples
        save_samples(args.out, result.samples, metadata={'burnin': result.burnin})
        print(f"Samples saved to {args.out}")
    if args.quiet:
        print(result.report())
    return 0 if result.converged else 2


def _cmd_run(args: argparse.Namespace) -> int:
    from .workflow import run_workflow
    result = run_workflow(
        Path(args.model).read_text(),
        data=_read_json(args.data),
        inits=_read_json(args.inits),
        variable_names=args.monitor,
        n_chains=args.chains, n_adapt=args.adapt, n_burnin=args.burnin, n_iter=args.iter,
        thin=args.thin, rhat_threshold=args.threshold, pdf_path=args.pdf,
        rng_seed=args.seed, quiet=args.quiet,
    )
    return _finish(result, args)


def _cmd_demo(args: argparse.Namespace) -> int:
    from .workflow import run_workflow
    register_tutorial_models()
    config = get_model(args.model)
    data, truth = config['generate_data'](seed=args.seed)
    result = run_workflow(
        config['model'], data=data, inits=config.get('inits'),
        variable_names=config.get('monitor'),
        n_chains=args.chains, n_adapt=args.adapt, n_burnin=args.burnin, n_iter=args.iter,
        thin=args.thin, rhat_threshold=args.threshold, pdf_path=args.pdf,
        rng_seed=args.seed, quiet=args.quiet,
    )
    print("\nTrue values used to simulate the data:")
    for name, value in truth.items():
        print(f"  {name} = {value}")
    if config.get('analytic_posterior'):
        print("\nAnalytical posterior (mean, sd):")
        for name, (mean, sd) in config['analytic_posterior'](data).items():
            print(f"  {name}: {mean:.4f}, {sd:.4f}")
    return _finish(result, args)


def _cmd_list(args: argparse.Namespace) -> int:
    register_tutorial_models()
    for name in list_models():
        print(f"{name:32s} {get_model(name).get('description', '')}")
    return 0


def _cmd_summary(args: argparse.Namespace) -> int:
    from .checkpoint_io import load_samples
    from .diagnostics import summarize, effective_size, gelman_diag
    from .samples import apply_burnin

    samples = load_samples(args.samples)
    if args.burnin is not None:
        samples = apply_burnin(samples, args.burnin)
    print(samples)
    print(summarize(samples))
    print("\nEffective sample size:")
    print(effective_size(samples).to_string(float_format='{:.1f}'.format))
    if samples.nchain >= 2:
        print()
        print(gelman_diag(samples))
    return 0


def main(argv=None) -> int:
    p = argparse.ArgumentParser(prog="bugsmcmc", description="BUGS models sampled with JAX")
    p.add_argument("--verbose", "-v", action="store_true", help="Log progress messages")
    sp = p.add_subparsers(dest="cmd", required=True)

    pr = sp.add_parser("run", help="Sample a model and report diagnostics")
    pr.add_argument("model", help="Path to the model file")
    pr.add_argument("--data", required=True, help="Path to data JSON")
    pr.add_argument("--inits", default=None, help="Path to inits JSON (object or list of objects)")
    pr.add_argument("--monitor", nargs="+", default=None, help="Nodes to record")
    _add_run_options(pr)
    pr.set_defaults(func=_cmd_run)

    pd_ = sp.add_parser("demo", help="Run a built-in tutorial model on simulated data")
    pd_.add_argument("--model", default="coin_flip", help="Tutorial model name (see 'list')")
    _add_run_options(pd_)
    pd_.set_defaults(func=_cmd_demo)

    pl = sp.add_parser("list", help="List built-in tutorial models")
    pl.set_defaults(func=_cmd_list)

    ps = sp.add_parser("summary", help="Summarise saved samples")
    ps.add_argument("samples", help="Path to a samples .npz file")
    ps.add_argument("--burnin", type=int, default=None, help="Drop draws before this iteration")
    ps.set_defaults(func=_cmd_summary)

    ns = p.parse_args(argv)
    logging.basicConfig(level=logging.INFO if ns.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        return int(ns.func(ns))
    except (ModelSyntaxError, ModelCompileError, ModelRuntimeError, KeyError, ValueError,
            FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
