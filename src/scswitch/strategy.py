"""
Per-gene fitting strategies.

`GaussianStrategy` fits the sigmoid model by maximum likelihood and
`ZeroInflatedStrategy` fits the zero-inflated model by EM. One strategy is
selected per call by `make_strategy` and applied to every gene. A strategy
never raises for numerical problems; they are recorded in the returned
`GeneFit` instead.
"""

import numpy as np
from abc import ABC, abstractmethod
from typing import Optional

from .config import FitConfig
from .em import fit_zero_inflated, fit_zero_inflated_null
from .exceptions import OptimizationFailure
from .hypothesis import likelihood_ratio_test
from .likelihood import null_log_likelihood
from .optimize import MIN_CELLS, fit_sigmoid_mle, fit_null_model
from .preprocess import apply_threshold
from .results import GeneFit, STATUS_FAILED, STATUS_DEGENERATE


class FitStrategy(ABC):
    """
    Fits one gene and tests it against the constant-expression null.

    Parameters
    ----------
    config : FitConfig
        Shared, read-only configuration.
    """

    zero_inflated = False

    def __init__(self, config: FitConfig):
        self.config = config

    def fit_gene(self, gene: str, x: np.ndarray, pst: np.ndarray) -> GeneFit:
        """
        Threshold, fit and test a single gene.

        Parameters
        ----------
        gene : str
            Gene identifier.
        x : ndarray of shape (n_cells,)
            Raw expression values of the gene.
        pst : ndarray of shape (n_cells,)
            Pseudotimes.

        Returns
        -------
        record : GeneFit
            Status "ok", "failed" or "degenerate"; q-value not yet set.
            A constant positive gene is fit exactly at k = 0 with p-value 1.
            All-zero (or constant negative) genes are degenerate.
        """
        x = apply_threshold(x, self.config.lower_threshold)
        pst = np.asarray(pst, dtype=float)

        reason = self.degenerate_reason(x)
        if reason is not None:
            return self._na_record(gene, STATUS_DEGENERATE, reason)
        if np.ptp(x) == 0:
            return self._constant_record(gene, x, pst)

        try:
            return self._fit(gene, x, pst)
        except OptimizationFailure as e:
            return self._na_record(gene, STATUS_FAILED, str(e))

    def degenerate_reason(self, x: np.ndarray) -> Optional[str]:
        """Why `x` cannot be fit, or None."""
        if np.ptp(x) == 0:
            if np.all(x == 0):
                return "all-zero expression after thresholding"
            if x[0] < 0:
                return "constant negative expression"
        return None

    def _constant_record(self, gene: str, x: np.ndarray, pst: np.ndarray) -> GeneFit:
        """
        Exact fit of a constant positive gene.

        The sigmoid at k = 0 reproduces the constant, so the full and null
        models coincide: statistic 0, p-value 1.
        """
        log_lik, mean, sigma = null_log_likelihood(x)
        return GeneFit(
            gene=gene,
            mu0=2.0 * mean,
            k=0.0,
            t0=float(np.median(pst)),
            sigma=sigma,
            lambda_=0.0 if self.zero_inflated else None,
            log_lik=log_lik,
            null_log_lik=log_lik,
            statistic=0.0,
            pval=1.0,
            n_iterations=0,
            em_converged=True if self.zero_inflated else None,
            message="constant expression"
        )

    def _na_record(self, gene: str, status: str, message: str) -> GeneFit:
        return GeneFit(
            gene=gene,
            status=status,
            lambda_=np.nan if self.zero_inflated else None,
            message=message
        )

    @abstractmethod
    def _fit(self, gene: str, x: np.ndarray, pst: np.ndarray) -> GeneFit:
        ...


class GaussianStrategy(FitStrategy):
    """Gaussian sigmoid model, fit by multi-start L-BFGS-B."""

    def _fit(self, gene, x, pst):
        cfg = self.config
        full = fit_sigmoid_mle(
            x, pst,
            n_starts=cfg.n_starts,
            maxiter=cfg.optim_maxiter,
            random_state=cfg.random_state
        )
        null = fit_null_model(x, pst)
        statistic, pval = likelihood_ratio_test(full.log_lik, null.log_lik)

        mu0, k, t0, sigma = full.params
        return GeneFit(
            gene=gene,
            mu0=float(mu0),
            k=float(k),
            t0=float(t0),
            sigma=float(sigma),
            log_lik=full.log_lik,
            null_log_lik=null.log_lik,
            statistic=statistic,
            pval=pval,
            n_iterations=full.n_iterations,
            message=full.message
        )


class ZeroInflatedStrategy(FitStrategy):
    """Zero-inflated sigmoid model, fit by EM."""

    zero_inflated = True

    def degenerate_reason(self, x):
        reason = super().degenerate_reason(x)
        if reason is None and np.count_nonzero(x) < MIN_CELLS:
            reason = f"fewer than {MIN_CELLS} nonzero cells after thresholding"
        return reason

    def _fit(self, gene, x, pst):
        cfg = self.config
        full = fit_zero_inflated(
            x, pst,
            maxiter=cfg.maxiter,
            log_lik_tol=cfg.log_lik_tol,
            optim_maxiter=cfg.optim_maxiter,
            n_starts=cfg.n_starts,
            random_state=cfg.random_state
        )
        null = fit_zero_inflated_null(
            x, pst,
            maxiter=cfg.maxiter,
            log_lik_tol=cfg.log_lik_tol,
            optim_maxiter=cfg.optim_maxiter
        )
        statistic, pval = likelihood_ratio_test(full.log_lik, null.log_lik)

        message = full.message
        if not null.converged:
            message = f"{message}; null model: {null.message}"

        mu0, k, t0, sigma, lam = full.params
        return GeneFit(
            gene=gene,
            mu0=float(mu0),
            k=float(k),
            t0=float(t0),
            sigma=float(sigma),
            lambda_=float(lam),
            log_lik=full.log_lik,
            null_log_lik=null.log_lik,
            statistic=statistic,
            pval=pval,
            n_iterations=full.n_iterations,
            em_converged=full.converged and null.converged,
            message=message
        )


def make_strategy(config: FitConfig) -> FitStrategy:
    """Select the fitting strategy for a call."""
    if config.zero_inflated:
        return ZeroInflatedStrategy(config)
    return GaussianStrategy(config)
