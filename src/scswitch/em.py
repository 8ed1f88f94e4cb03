"""
Expectation-Maximization for the zero-inflated sigmoid model.

Each iteration computes dropout responsibilities for the observed zeros
(E-step) and then maximises the expected complete-data log-likelihood over
(mu0, k, t0, sigma, lambda) with L-BFGS-B (M-step). The loop stops when the
observed-data log-likelihood changes by less than `log_lik_tol` or after
`maxiter` iterations.
"""

import numpy as np
from scipy.optimize import minimize
from typing import List, Optional
from dataclasses import dataclass, field
from enum import Enum
import warnings

from .exceptions import OptimizationFailure
from .likelihood import (
    SIGMA_MIN,
    dropout_responsibilities,
    expected_log_likelihood,
    expected_log_likelihood_grad,
    zero_inflated_log_likelihood
)
from .optimize import GAUSSIAN_BOUNDS, MU0_MIN, fit_sigmoid_mle, initial_parameters

LAMBDA_MAX = 1e6

# (mu0, k, t0, sigma, lambda)
ZERO_INFLATED_BOUNDS = GAUSSIAN_BOUNDS + [(0.0, LAMBDA_MAX)]

# k and t0 held fixed: constant mean mu0 / 2
NULL_FIXED = np.array([False, True, True, False, False])


class EMStatus(Enum):
    """State of the EM loop."""
    RUNNING = "running"
    CONVERGED = "converged"
    EXHAUSTED = "exhausted"


@dataclass
class EMResult:
    """
    Result of an EM run.

    Attributes
    ----------
    params : ndarray of shape (5,)
        (mu0, k, t0, sigma, lambda) at termination (last good estimate).
    log_lik : float
        Observed-data log-likelihood at `params`.
    n_iterations : int
        Number of completed E/M iterations.
    status : EMStatus
        CONVERGED or EXHAUSTED.
    log_lik_trace : list of float
        Observed-data log-likelihood after initialization and after each
        accepted iteration.
    message : str
        Reason for termination.
    """
    params: np.ndarray
    log_lik: float
    n_iterations: int
    status: EMStatus
    log_lik_trace: List[float] = field(default_factory=list)
    message: str = ""

    @property
    def converged(self) -> bool:
        return self.status is EMStatus.CONVERGED


def initial_lambda(x: np.ndarray) -> float:
    """
    Starting dropout coefficient from the fraction of observed zeros.

    Chooses lambda so that a cell at the mean nonzero expression level has
    dropout probability equal to the observed zero fraction; 0 if there
    are no zeros.
    """
    is_zero = x == 0
    zero_frac = float(np.mean(is_zero))
    if zero_frac == 0 or zero_frac == 1:
        return 0.0
    level = float(np.mean(x[~is_zero]))
    return float(min(level ** 2 / -np.log(zero_frac), LAMBDA_MAX))


def m_step(
    params: np.ndarray,
    x: np.ndarray,
    pst: np.ndarray,
    resp: np.ndarray,
    free: np.ndarray,
    maxiter: int = 500
) -> np.ndarray:
    """
    Maximise the expected complete-data log-likelihood over the free parameters.

    Parameters
    ----------
    params : ndarray of shape (5,)
        Current estimate, used as the starting point and for fixed entries.
    x, pst : ndarray of shape (n_cells,)
        Expression values and pseudotimes.
    resp : ndarray of shape (n_cells,)
        Dropout responsibilities from the E-step.
    free : ndarray of bool, shape (5,)
        Which parameters are optimised.
    maxiter : int, default=500
        L-BFGS-B iteration limit.

    Returns
    -------
    new_params : ndarray of shape (5,)
    """
    free_idx = np.flatnonzero(free)

    def expand(theta):
        p = params.copy()
        p[free_idx] = theta
        return p

    def objective(theta):
        return -expected_log_likelihood(expand(theta), x, pst, resp)

    def gradient(theta):
        return -expected_log_likelihood_grad(expand(theta), x, pst, resp)[free_idx]

    bounds = [ZERO_INFLATED_BOUNDS[j] for j in free_idx]
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        with np.errstate(all="ignore"):
            result = minimize(
                objective,
                params[free_idx],
                jac=gradient,
                method='L-BFGS-B',
                bounds=bounds,
                options={'maxiter': maxiter}
            )
    return expand(result.x)


def run_em(
    x: np.ndarray,
    pst: np.ndarray,
    params0: np.ndarray,
    maxiter: int = 1000,
    log_lik_tol: float = 1e-2,
    fixed: Optional[np.ndarray] = None,
    optim_maxiter: int = 500,
    verbose: bool = False
) -> EMResult:
    """
    Run EM from a given starting point.

    Parameters
    ----------
    x : ndarray of shape (n_cells,)
        Expression values (dropouts are exact zeros).
    pst : ndarray of shape (n_cells,)
        Pseudotimes.
    params0 : ndarray of shape (5,)
        Starting (mu0, k, t0, sigma, lambda).
    maxiter : int, default=1000
        Maximum number of EM iterations.
    log_lik_tol : float, default=1e-2
        Convergence threshold on the absolute change of the observed-data
        log-likelihood between consecutive iterations.
    fixed : ndarray of bool, shape (5,), optional
        Parameters held at their starting value (e.g. NULL_FIXED).
    optim_maxiter : int, default=500
        L-BFGS-B iteration limit of each M-step.
    verbose : bool, default=False
        Print the log-likelihood after every iteration.

    Returns
    -------
    result : EMResult

    Raises
    ------
    OptimizationFailure
        If the starting point has a non-finite log-likelihood.

    Notes
    -----
    An M-step proposal that lowers the expected complete-data
    log-likelihood is rejected, so the observed-data log-likelihood never
    decreases. A numerically failed M-step keeps the last good estimate and
    ends the run as EXHAUSTED.
    """
    params = np.array(params0, dtype=float)
    free = np.ones(5, dtype=bool) if fixed is None else ~np.asarray(fixed, dtype=bool)

    log_lik = zero_inflated_log_likelihood(params, x, pst)
    if not np.isfinite(log_lik):
        raise OptimizationFailure("Non-finite log-likelihood at the EM starting point")

    trace = [log_lik]
    status = EMStatus.RUNNING
    n_iter = 0
    message = ""

    while status is EMStatus.RUNNING:
        if n_iter >= maxiter:
            status = EMStatus.EXHAUSTED
            message = f"Reached maxiter={maxiter} without meeting log_lik_tol={log_lik_tol}"
            break
        n_iter += 1

        # E-step
        resp = dropout_responsibilities(params, x, pst)
        q_old = expected_log_likelihood(params, x, pst, resp)

        # M-step
        try:
            candidate = m_step(params, x, pst, resp, free, maxiter=optim_maxiter)
        except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
            status = EMStatus.EXHAUSTED
            message = f"M-step failed at iteration {n_iter}: {e}"
            break

        q_new = expected_log_likelihood(candidate, x, pst, resp)
        if not (np.isfinite(q_new) and np.all(np.isfinite(candidate))):
            status = EMStatus.EXHAUSTED
            message = f"Non-finite M-step at iteration {n_iter}"
            break
        if q_new < q_old:
            candidate = params

        new_log_lik = zero_inflated_log_likelihood(candidate, x, pst)
        if not np.isfinite(new_log_lik):
            status = EMStatus.EXHAUSTED
            message = f"Non-finite log-likelihood at iteration {n_iter}"
            break

        change = abs(new_log_lik - log_lik)
        params, log_lik = candidate, new_log_lik
        trace.append(log_lik)

        if verbose:
            print(f"  EM iteration {n_iter}: log-lik = {log_lik:.4f}, change = {change:.2e}")

        if change < log_lik_tol:
            status = EMStatus.CONVERGED
            message = f"Converged after {n_iter} iterations"

    return EMResult(
        params=params,
        log_lik=log_lik,
        n_iterations=n_iter,
        status=status,
        log_lik_trace=trace,
        message=message
    )


def fit_zero_inflated(
    x: np.ndarray,
    pst: np.ndarray,
    maxiter: int = 1000,
    log_lik_tol: float = 1e-2,
    optim_maxiter: int = 500,
    n_starts: int = 3,
    random_state: int = 0,
    verbose: bool = False
) -> EMResult:
    """
    Fit the full zero-inflated sigmoid model for one gene.

    The sigmoid parameters are seeded with the Gaussian MLE on all cells
    (or the heuristic start if that fit fails) and lambda with
    `initial_lambda`.

    Parameters
    ----------
    x, pst : ndarray of shape (n_cells,)
        Expression values and pseudotimes.
    maxiter, log_lik_tol, optim_maxiter, verbose
        See `run_em`.
    n_starts, random_state
        Passed to the seeding Gaussian fit.

    Returns
    -------
    result : EMResult
    """
    x = np.asarray(x, dtype=float)
    pst = np.asarray(pst, dtype=float)

    try:
        seed = fit_sigmoid_mle(
            x, pst, n_starts=n_starts, maxiter=optim_maxiter, random_state=random_state
        ).params
    except OptimizationFailure:
        seed = initial_parameters(x, pst)

    params0 = np.append(seed, initial_lambda(x))
    return run_em(
        x, pst, params0,
        maxiter=maxiter, log_lik_tol=log_lik_tol,
        optim_maxiter=optim_maxiter, verbose=verbose
    )


def fit_zero_inflated_null(
    x: np.ndarray,
    pst: np.ndarray,
    maxiter: int = 1000,
    log_lik_tol: float = 1e-2,
    optim_maxiter: int = 500,
    verbose: bool = False
) -> EMResult:
    """
    Fit the zero-inflated constant-mean null model (k = 0) for one gene.

    Free parameters are mu0, sigma and lambda, so the likelihood-ratio
    test against `fit_zero_inflated` has 2 degrees of freedom.

    Returns
    -------
    result : EMResult
    """
    x = np.asarray(x, dtype=float)
    pst = np.asarray(pst, dtype=float)

    nonzero = x[x != 0]
    if len(nonzero) == 0:
        nonzero = x
    mu0 = max(2.0 * float(np.mean(nonzero)), MU0_MIN)
    sigma = max(float(np.std(nonzero)), SIGMA_MIN)
    params0 = np.array([mu0, 0.0, float(np.median(pst)), sigma, initial_lambda(x)])

    return run_em(
        x, pst, params0,
        maxiter=maxiter, log_lik_tol=log_lik_tol, fixed=NULL_FIXED,
        optim_maxiter=optim_maxiter, verbose=verbose
    )
