"""
Main SwitchdeModel class for testing genes for switch-like expression.

Fits every gene independently with the selected strategy, computes
likelihood-ratio p-values and Benjamini-Hochberg q-values across all
genes, and reports per-gene numerical problems in aggregate.
"""

import numpy as np
import warnings
from concurrent.futures import ProcessPoolExecutor
from itertools import repeat
from typing import Optional, List, Sequence

from .config import FitConfig
from .exceptions import (
    DegenerateInputWarning,
    EMNonConvergenceWarning,
    OptimizationFailureWarning
)
from .hypothesis import bh_qvalues
from .preprocess import PreparedData, prepare_inputs
from .results import GeneFit, SwitchdeResult, STATUS_OK, STATUS_FAILED, STATUS_DEGENERATE
from .strategy import make_strategy


def _format_genes(genes: Sequence[str], max_show: int = 10) -> str:
    shown = ", ".join(genes[:max_show])
    if len(genes) > max_show:
        shown += f", ... ({len(genes) - max_show} more)"
    return shown


class SwitchdeModel:
    """
    Sigmoid model of gene expression along pseudotime.

    Fits mu(t) = mu0 / (1 + exp(-k (t - t0))) to every gene and tests
    k != 0 with a likelihood-ratio test against constant expression.

    Parameters
    ----------
    zero_inflated : bool, default=False
        Model dropouts with the zero-inflated mixture (fit by EM).
    lower_threshold : float or None, default=0.01
        Expression values below this are set to 0 before fitting.
    maxiter : int, default=1000
        Maximum EM iterations (zero-inflated model).
    log_lik_tol : float, default=1e-2
        EM convergence tolerance on the log-likelihood change.
    optim_maxiter : int, default=500
        L-BFGS-B iteration limit.
    n_starts : int, default=3
        Optimizer starting points for the Gaussian fit.
    n_jobs : int, default=1
        Worker processes for fitting genes in parallel.
    random_state : int, default=0
        Seed for random starting points.
    verbose : bool, default=False
        Print progress information.
    config : FitConfig, optional
        Complete configuration; overrides the individual arguments.

    Attributes
    ----------
    config : FitConfig
        Configuration used for fitting.
    strategy : FitStrategy
        Per-gene fitting strategy selected from `config.zero_inflated`.
    """

    def __init__(
        self,
        zero_inflated: bool = False,
        lower_threshold: Optional[float] = 0.01,
        maxiter: int = 1000,
        log_lik_tol: float = 1e-2,
        optim_maxiter: int = 500,
        n_starts: int = 3,
        n_jobs: int = 1,
        random_state: int = 0,
        verbose: bool = False,
        config: Optional[FitConfig] = None
    ):
        if config is None:
            config = FitConfig(
                zero_inflated=zero_inflated,
                lower_threshold=lower_threshold,
                maxiter=maxiter,
                log_lik_tol=log_lik_tol,
                optim_maxiter=optim_maxiter,
                n_starts=n_starts,
                n_jobs=n_jobs,
                random_state=random_state,
                verbose=verbose
            )
        self.config = config
        self.strategy = make_strategy(config)

    def _fit_genes(self, prepared: PreparedData) -> List[GeneFit]:
        """Fit every gene; the only shared state is the read-only pseudotime."""
        cfg = self.config
        names = list(prepared.gene_names)
        rows = list(prepared.expression)

        if cfg.n_jobs > 1 and prepared.n_genes > 1:
            n_workers = min(cfg.n_jobs, prepared.n_genes)
            chunksize = max(1, prepared.n_genes // (4 * n_workers))
            if cfg.verbose:
                print(f"Fitting {prepared.n_genes} genes on {n_workers} processes...")
            with ProcessPoolExecutor(max_workers=n_workers) as executor:
                return list(executor.map(
                    self.strategy.fit_gene, names, rows, repeat(prepared.pseudotime),
                    chunksize=chunksize
                ))

        records = []
        for i, (gene, x) in enumerate(zip(names, rows)):
            if cfg.verbose and prepared.n_genes > 10 and i % max(1, prepared.n_genes // 10) == 0:
                print(f"  Gene {i + 1}/{prepared.n_genes}...")
            records.append(self.strategy.fit_gene(gene, x, prepared.pseudotime))
        return records

    def _report_problems(self, records: List[GeneFit]):
        """Emit one warning per problem category after all genes are fit."""
        n_total = len(records)

        failed = [r.gene for r in records if r.status == STATUS_FAILED]
        if failed:
            warnings.warn(
                f"Optimization failed for {len(failed)} of {n_total} genes; their parameters "
                f"and p-values are NA: {_format_genes(failed)}. Retry with a larger "
                "optim_maxiter or n_starts, or discard these rows.",
                OptimizationFailureWarning,
                stacklevel=3
            )

        degenerate = [r.gene for r in records if r.status == STATUS_DEGENERATE]
        if degenerate:
            warnings.warn(
                f"{len(degenerate)} of {n_total} genes have degenerate expression after "
                f"thresholding at lower_threshold={self.config.lower_threshold} and are "
                f"reported as NA: {_format_genes(degenerate)}. Consider removing lowly "
                "expressed genes before testing.",
                DegenerateInputWarning,
                stacklevel=3
            )

        if self.strategy.zero_inflated:
            not_converged = [
                r.gene for r in records
                if r.status == STATUS_OK and not r.em_converged
            ]
            if not_converged:
                warnings.warn(
                    f"EM did not converge within maxiter={self.config.maxiter} "
                    f"(log_lik_tol={self.config.log_lik_tol}) for {len(not_converged)} of "
                    f"{n_total} genes (EM_converged = False): {_format_genes(not_converged)}. "
                    "Accept these estimates, rerun with a larger maxiter or log_lik_tol, "
                    "or discard these rows.",
                    EMNonConvergenceWarning,
                    stacklevel=3
                )

    def fit(
        self,
        expression,
        pseudotime,
        gene_names: Optional[Sequence[str]] = None,
        layer: Optional[str] = None
    ) -> SwitchdeResult:
        """
        Fit the sigmoid model to every gene and test for switch-like expression.

        Parameters
        ----------
        expression : ndarray, sparse matrix, DataFrame or AnnData
            Expression values, genes x cells (AnnData: cells x genes).
        pseudotime : array-like of shape (n_cells,) or str
            Pseudotime of each cell, or an `adata.obs` key.
        gene_names : sequence of str, optional
            Gene identifiers.
        layer : str, optional
            AnnData layer to use instead of `adata.X`.

        Returns
        -------
        result : SwitchdeResult
            One row per gene, in input order.

        Raises
        ------
        InputShapeError
            If the inputs are invalid; raised before any gene is fit.

        Notes
        -----
        Failed and degenerate genes get NA parameters and p-values and are
        excluded from the Benjamini-Hochberg family. Each kind of problem
        is reported in a single warning at the end of the run.
        """
        cfg = self.config
        prepared = prepare_inputs(expression, pseudotime, gene_names=gene_names, layer=layer)

        if cfg.verbose:
            model = "zero-inflated (EM)" if cfg.zero_inflated else "Gaussian (MLE)"
            print(f"Fitting {model} sigmoid model to {prepared.n_genes} genes x {prepared.n_cells} cells")

        records = self._fit_genes(prepared)

        # Sequential barrier: q-values need every p-value
        qvals = bh_qvalues([r.pval for r in records])
        for record, q in zip(records, qvals):
            record.qval = float(q)

        self._report_problems(records)

        if cfg.verbose:
            n_ok = sum(r.status == STATUS_OK for r in records)
            print(f"Done: {n_ok}/{len(records)} genes fit")

        config = cfg.to_dict()
        config.update({'n_genes': prepared.n_genes, 'n_cells': prepared.n_cells})
        return SwitchdeResult.from_records(records, cfg.zero_inflated, config)


def switchde(
    expression,
    pseudotime,
    zero_inflated: bool = False,
    lower_threshold: Optional[float] = 0.01,
    maxiter: int = 1000,
    log_lik_tol: float = 1e-2,
    gene_names: Optional[Sequence[str]] = None,
    layer: Optional[str] = None,
    **kwargs
) -> SwitchdeResult:
    """
    Test every gene for switch-like expression along pseudotime.

    Convenience wrapper around `SwitchdeModel(...).fit(...)`; extra keyword
    arguments (optim_maxiter, n_starts, n_jobs, random_state, verbose) are
    passed to `SwitchdeModel`.

    Returns
    -------
    result : SwitchdeResult
    """
    model = SwitchdeModel(
        zero_inflated=zero_inflated,
        lower_threshold=lower_threshold,
        maxiter=maxiter,
        log_lik_tol=log_lik_tol,
        **kwargs
    )
    return model.fit(expression, pseudotime, gene_names=gene_names, layer=layer)


def fit_gene(
    x: np.ndarray,
    pseudotime: np.ndarray,
    gene: str = "gene",
    **kwargs
) -> GeneFit:
    """
    Fit and test a single gene.

    Parameters
    ----------
    x : ndarray of shape (n_cells,)
        Expression values.
    pseudotime : ndarray of shape (n_cells,)
        Pseudotimes.
    gene : str, default="gene"
        Identifier stored in the record.
    **kwargs
        FitConfig fields (zero_inflated, lower_threshold, maxiter, ...).

    Returns
    -------
    record : GeneFit
        With qval equal to pval (a single hypothesis).
    """
    config = FitConfig(**kwargs)
    prepared = prepare_inputs(x, pseudotime, gene_names=[gene])
    record = make_strategy(config).fit_gene(gene, prepared.expression[0], prepared.pseudotime)
    record.qval = record.pval
    return record
