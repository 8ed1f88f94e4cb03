"""
Log-likelihoods for the sigmoid expression model.

Implements the Gaussian observation model around the sigmoid mean, the
closed-form constant-mean null model, and the zero-inflated mixture used
by the EM fitter together with its E-step and complete-data objective.

Parameter vectors
-----------------
Gaussian model:        (mu0, k, t0, sigma)
Zero-inflated model:   (mu0, k, t0, sigma, lambda)

Dropout model
-------------
A cell whose latent mean is m is observed as an exact zero ("dropout")
with probability

    p(m) = exp(-m^2 / lambda),    lambda >= 0

so p decreases as m grows and lambda -> 0 switches dropout off. The
dropout component is a point mass at zero: observed zeros contribute
p + (1 - p) phi(0 | m, sigma) and nonzero observations (1 - p) phi(x | m, sigma).
"""

import numpy as np
from typing import Optional, Tuple

from .sigmoid import sigmoid, sigmoid_derivatives

LOG_2PI = np.log(2.0 * np.pi)
SIGMA_MIN = 1e-8
LAMBDA_FLOOR = 1e-10
_A_MIN = 1e-10


def _normal_logpdf(x: np.ndarray, mean: np.ndarray, sigma: float) -> np.ndarray:
    z = (x - mean) / sigma
    return -0.5 * LOG_2PI - np.log(sigma) - 0.5 * z ** 2


def gaussian_log_likelihood(
    params: np.ndarray,
    x: np.ndarray,
    pst: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> float:
    """
    Log-likelihood of the Gaussian sigmoid model.

    Parameters
    ----------
    params : ndarray of shape (4,)
        (mu0, k, t0, sigma).
    x : ndarray of shape (n_cells,)
        Expression values.
    pst : ndarray of shape (n_cells,)
        Pseudotimes.
    weights : ndarray of shape (n_cells,), optional
        Per-cell weights (EM responsibilities for the expression component).
        If None, every cell has weight 1.

    Returns
    -------
    log_lik : float
        sum_i w_i log N(x_i | mu(t_i), sigma^2)
    """
    mu0, k, t0, sigma = params[:4]
    sigma = max(sigma, SIGMA_MIN)
    mean = sigmoid(pst, mu0, k, t0)
    ll = _normal_logpdf(x, mean, sigma)
    if weights is None:
        return float(np.sum(ll))
    return float(np.sum(weights * ll))


def gaussian_log_likelihood_grad(
    params: np.ndarray,
    x: np.ndarray,
    pst: np.ndarray,
    weights: Optional[np.ndarray] = None
) -> np.ndarray:
    """
    Analytic gradient of `gaussian_log_likelihood` w.r.t. (mu0, k, t0, sigma).

    Returns
    -------
    grad : ndarray of shape (4,)
    """
    mu0, k, t0, sigma = params[:4]
    sigma = max(sigma, SIGMA_MIN)
    if weights is None:
        weights = np.ones_like(x)

    mean, jac = sigmoid_derivatives(pst, mu0, k, t0)
    resid = x - mean

    grad = np.empty(4)
    grad[:3] = jac.T @ (weights * resid / sigma ** 2)
    grad[3] = np.sum(weights * (resid ** 2 / sigma ** 3 - 1.0 / sigma))
    return grad


def null_log_likelihood(x: np.ndarray) -> Tuple[float, float, float]:
    """
    Closed-form maximum likelihood of the constant-mean (k = 0) model.

    Parameters
    ----------
    x : ndarray of shape (n_cells,)
        Expression values.

    Returns
    -------
    log_lik : float
        Maximised log-likelihood.
    mean : float
        Sample mean.
    sigma : float
        Root-mean-square residual, floored at SIGMA_MIN.

    Notes
    -----
    The null model is the sigmoid model at (2 * mean, 0, t0, sigma) for
    any t0, so both models share the same likelihood at k = 0. It has two
    free parameters against four in the full model.
    """
    mean = float(np.mean(x))
    sigma = max(float(np.sqrt(np.mean((x - mean) ** 2))), SIGMA_MIN)
    log_lik = float(np.sum(_normal_logpdf(x, mean, sigma)))
    return log_lik, mean, sigma


def _dropout_log_terms(
    mean: np.ndarray,
    lam: float
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Return a = mean^2 / lambda and log p, log(1 - p) for p = exp(-a)."""
    lam = max(lam, LAMBDA_FLOOR)
    a = np.maximum(mean ** 2 / lam, _A_MIN)
    log_p = -a
    log_1mp = np.log(-np.expm1(-a))
    return a, log_p, log_1mp


def dropout_probability(mean: np.ndarray, lam: float) -> np.ndarray:
    """
    Probability that a cell with latent mean `mean` is observed as zero.

    Parameters
    ----------
    mean : ndarray
        Latent mean expression.
    lam : float
        Dropout coefficient (>= 0). lambda = 0 gives p = 0 for every
        nonzero mean.

    Returns
    -------
    p : ndarray
        exp(-mean^2 / lambda), in [0, 1].
    """
    _, log_p, _ = _dropout_log_terms(np.asarray(mean, dtype=float), lam)
    return np.exp(log_p)


def _mixture_terms(params, x, pst):
    mu0, k, t0, sigma, lam = params[:5]
    sigma = max(sigma, SIGMA_MIN)
    mean = sigmoid(pst, mu0, k, t0)
    _, log_p, log_1mp = _dropout_log_terms(mean, lam)
    log_expr = log_1mp + _normal_logpdf(x, mean, sigma)
    return log_p, log_expr


def zero_inflated_log_likelihood(
    params: np.ndarray,
    x: np.ndarray,
    pst: np.ndarray
) -> float:
    """
    Observed-data log-likelihood of the zero-inflated sigmoid model.

    Parameters
    ----------
    params : ndarray of shape (5,)
        (mu0, k, t0, sigma, lambda).
    x : ndarray of shape (n_cells,)
        Expression values; exact zeros are candidate dropouts.
    pst : ndarray of shape (n_cells,)
        Pseudotimes.

    Returns
    -------
    log_lik : float
    """
    log_p, log_expr = _mixture_terms(params, x, pst)
    is_zero = x == 0
    ll = np.where(is_zero, np.logaddexp(log_p, log_expr), log_expr)
    return float(np.sum(ll))


def dropout_responsibilities(
    params: np.ndarray,
    x: np.ndarray,
    pst: np.ndarray
) -> np.ndarray:
    """
    E-step: posterior probability that each cell is a dropout.

    Returns
    -------
    resp : ndarray of shape (n_cells,)
        P(dropout | x_i, params); exactly 0 for nonzero observations.
    """
    log_p, log_expr = _mixture_terms(params, x, pst)
    is_zero = x == 0
    log_post = log_p - np.logaddexp(log_p, log_expr)
    return np.where(is_zero, np.exp(log_post), 0.0)


def expected_log_likelihood(
    params: np.ndarray,
    x: np.ndarray,
    pst: np.ndarray,
    resp: np.ndarray
) -> float:
    """
    Expected complete-data log-likelihood maximised by the M-step.

    Q = sum_i [ r_i log p_i + (1 - r_i) (log(1 - p_i) + log phi(x_i | mu_i, sigma)) ]

    Parameters
    ----------
    params : ndarray of shape (5,)
        (mu0, k, t0, sigma, lambda).
    x, pst : ndarray of shape (n_cells,)
        Expression values and pseudotimes.
    resp : ndarray of shape (n_cells,)
        Dropout responsibilities from the E-step.

    Returns
    -------
    Q : float
    """
    log_p, log_expr = _mixture_terms(params, x, pst)
    return float(np.sum(resp * log_p + (1.0 - resp) * log_expr))


def expected_log_likelihood_grad(
    params: np.ndarray,
    x: np.ndarray,
    pst: np.ndarray,
    resp: np.ndarray
) -> np.ndarray:
    """
    Analytic gradient of `expected_log_likelihood`.

    Returns
    -------
    grad : ndarray of shape (5,)
        Derivatives w.r.t. (mu0, k, t0, sigma, lambda).
    """
    mu0, k, t0, sigma, lam = params[:5]
    sigma = max(sigma, SIGMA_MIN)
    lam_eff = max(lam, LAMBDA_FLOOR)
    w = 1.0 - resp

    mean, jac = sigmoid_derivatives(pst, mu0, k, t0)
    resid = x - mean
    a_raw = mean ** 2 / lam_eff
    a = np.maximum(a_raw, _A_MIN)
    active = a_raw > _A_MIN

    # d/da of r log p + w log(1 - p) with p = exp(-a)
    with np.errstate(over="ignore"):
        dq_da = -resp + w / np.expm1(a)
    da_dmean = np.where(active, 2.0 * mean / lam_eff, 0.0)
    if lam > LAMBDA_FLOOR:
        da_dlam = np.where(active, -a_raw / lam_eff, 0.0)
    else:
        da_dlam = np.zeros_like(mean)

    dq_dmean = w * resid / sigma ** 2 + dq_da * da_dmean

    grad = np.empty(5)
    grad[:3] = jac.T @ dq_dmean
    grad[3] = np.sum(w * (resid ** 2 / sigma ** 3 - 1.0 / sigma))
    grad[4] = np.sum(dq_da * da_dlam)
    return grad
