"""
End-to-end workflow: compile, burn in, sample, diagnose, trim and summarise.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import numpy as np
import pandas as pd

from .mcmc import Model
from .samples import Samples
from .diagnostics import (
    GelmanDiag, GelmanPreplot, MCMCSummary,
    gelman_diag, gelman_preplot, select_burnin, trim_burnin, effective_size, summarize,
    PREPLOT_FIRST_BIN,
)
from .error_handling import diagnose_sampler_issues, print_diagnostics

import logging
logger = logging.getLogger('bugsmcmc')


@dataclass
class WorkflowResult:
    """Everything produced by run_workflow."""
    model: Model
    samples: Samples
    trimmed: Samples
    burnin: Optional[int]
    gelman: Optional[GelmanDiag]
    preplot: Optional[GelmanPreplot]
    ess: pd.Series
    summary: MCMCSummary
    adapted: bool
    issues: Dict[str, Any] = field(default_factory=dict)
    pdf_path: Optional[str] = None

    @property
    def converged(self) -> bool:
        """Shrink factors are below the threshold (always True with a single chain)."""
        return self.burnin is not None

    def report(self) -> str:
        lines = ["=" * 60, "MCMC WORKFLOW REPORT", "=" * 60,
                 f"Chains: {self.samples.nchain}  "
                 f"Recorded iterations: {self.samples.start}:{self.samples.end} (thin {self.samples.thin})",
                 f"Adaptation complete: {self.adapted}"]
        if self.gelman is not None:
            lines += ["", str(self.gelman)]
        if self.burnin is None:
            lines += ["", "Burn-in: NOT FOUND (shrink factor above threshold in final window)"]
        elif self.preplot is not None:
            lines += ["", f"Burn-in: draws before iteration {self.burnin} discarded "
                          f"({self.trimmed.niter} draws per chain kept)"]
        lines += ["", "Effective sample size:", self.ess.to_string(float_format='{:.1f}'.format),
                  "", str(self.summary)]
        if self.pdf_path:
            lines += ["", f"Diagnostic plots: {self.pdf_path}"]
        return "\n".join(lines)


def run_workflow(model, data=None, inits=None, variable_names: Optional[Sequence[str]] = None,
                 n_chains: int = 4, n_adapt: int = 1000, n_burnin: int = 1000, n_iter: int = 5000,
                 thin: int = 1, rhat_threshold: float = 1.1, pdf_path=None,
                 rng_seed: int = 42, quiet: bool = False, **config) -> WorkflowResult:
    """
    Compile a model, sample it and post-process the chains.

    Steps:
        1. compile_model with n_adapt adaptation iterations
        2. update for n_burnin iterations
        3. coda_samples for n_iter iterations
        4. gelman_diag and gelman_preplot (two or more chains)
        5. select_burnin at rhat_threshold; trim the chains
        6. effective_size and summarize on the trimmed chains
        7. Optional multi-page PDF of diagnostic plots

    Args:
        variable_names: Nodes to record (default: every unobserved
            stochastic variable)

    Returns:
        WorkflowResult; its report is printed unless quiet
    """
    m = Model(model, data=data, inits=inits, n_chains=n_chains, n_adapt=n_adapt,
              rng_seed=rng_seed, quiet=quiet, **config)
    if variable_names is None:
        variable_names = list(dict.fromkeys(m.graph.param_var))
        if not variable_names:
            raise ValueError("Model has no unobserved stochastic nodes; pass variable_names")

    m.update(n_burnin)
    samples = m.coda_samples(variable_names, n_iter, thin)

    gelman = preplot = None
    burnin = samples.start
    trimmed = samples
    if samples.nchain >= 2:
        gelman = gelman_diag(samples)
        if (samples.niter - PREPLOT_FIRST_BIN) // samples.thin >= 1:
            preplot = gelman_preplot(samples)
            burnin = select_burnin(preplot, threshold=rhat_threshold)
            if burnin is None:
                logger.warning("Chains have not converged; summaries use all recorded draws")
            else:
                trimmed = trim_burnin(samples, burnin)
        else:
            logger.warning(f"Too few draws ({samples.niter}) for a Gelman-Rubin plot; no burn-in trimmed")
            if np.any(gelman.upper > rhat_threshold):
                logger.warning("Chains have not converged; summaries use all recorded draws")
                burnin = None
    else:
        logger.warning("Gelman-Rubin diagnostics need at least two chains")

    ess = effective_size(trimmed)
    summary = summarize(trimmed)
    issues = diagnose_sampler_issues(trimmed.draws, trimmed.varnames,
                                     {'ess': ess.to_numpy(),
                                      'rhat': gelman.point if gelman is not None else None,
                                      'rhat_threshold': rhat_threshold})

    saved = None
    if pdf_path is not None:
        from .plotting import save_diagnostics_pdf
        saved = str(save_diagnostics_pdf(samples, pdf_path, burnin=burnin, preplot=preplot))

    result = WorkflowResult(model=m, samples=samples, trimmed=trimmed, burnin=burnin, gelman=gelman,
                            preplot=preplot, ess=ess, summary=summary, adapted=m.adapted,
                            issues=issues, pdf_path=saved)
    if not quiet:
        print(result.report())
        print_diagnostics(issues)
    return result
