"""
Likelihood-ratio test and multiple-testing correction.
"""

import numpy as np
from scipy.stats import chi2, false_discovery_control
from typing import Sequence, Tuple

# Full model (mu0, k, t0, sigma[, lambda]) vs null (mu0, sigma[, lambda]):
# the null fixes k = 0, which leaves t0 without effect.
LRT_DF = 2


def likelihood_ratio_test(
    log_lik_full: float,
    log_lik_null: float,
    df: int = LRT_DF
) -> Tuple[float, float]:
    """
    Likelihood-ratio test of the sigmoid model against constant expression.

    Parameters
    ----------
    log_lik_full : float
        Maximised log-likelihood of the full model.
    log_lik_null : float
        Maximised log-likelihood of the null model.
    df : int, default=2
        Degrees of freedom of the chi-squared reference distribution.

    Returns
    -------
    statistic : float
        D = 2 (log_lik_full - log_lik_null), clipped at 0.
    pval : float
        P(chi2_df >= D). NaN if either log-likelihood is not finite.
    """
    if not (np.isfinite(log_lik_full) and np.isfinite(log_lik_null)):
        return np.nan, np.nan
    statistic = max(2.0 * (log_lik_full - log_lik_null), 0.0)
    return statistic, float(chi2.sf(statistic, df))


def bh_qvalues(pvals: Sequence[float]) -> np.ndarray:
    """
    Benjamini-Hochberg q-values over a whole set of genes.

    Parameters
    ----------
    pvals : sequence of float
        Raw p-values; NaN entries (failed or degenerate genes) are left
        out of the BH family.

    Returns
    -------
    qvals : ndarray
        BH-adjusted p-values, NaN where the input is NaN.
    """
    p = np.asarray(pvals, dtype=float)
    qvals = np.full(p.shape, np.nan)
    valid = np.isfinite(p)
    if valid.any():
        qvals[valid] = false_discovery_control(p[valid], method='bh')
    return qvals
