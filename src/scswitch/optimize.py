"""
Maximum-likelihood fitting of the Gaussian sigmoid model for one gene.

Implements starting-point heuristics, multi-start L-BFGS-B optimization
and the closed-form null model.
"""

import numpy as np
from scipy.optimize import minimize
from typing import Callable, Optional, Tuple, List, Dict, Any
from dataclasses import dataclass
import warnings

from .exceptions import OptimizationFailure
from .likelihood import (
    SIGMA_MIN,
    gaussian_log_likelihood,
    gaussian_log_likelihood_grad,
    null_log_likelihood
)

MIN_CELLS = 5
MU0_MIN = 1e-8

# (mu0, k, t0, sigma)
GAUSSIAN_BOUNDS = [(MU0_MIN, None), (None, None), (None, None), (SIGMA_MIN, None)]


@dataclass
class MLEFit:
    """
    Result of a single-gene maximum-likelihood fit.

    Attributes
    ----------
    params : ndarray of shape (4,)
        (mu0, k, t0, sigma).
    log_lik : float
        Maximised log-likelihood.
    n_iterations : int
        L-BFGS-B iterations of the best start.
    success : bool
        Whether the best start converged.
    message : str
        Optimizer message of the best start.
    """
    params: np.ndarray
    log_lik: float
    n_iterations: int = 0
    success: bool = True
    message: str = ""


def initial_parameters(x: np.ndarray, pst: np.ndarray) -> np.ndarray:
    """
    Heuristic starting point for the Gaussian sigmoid fit.

    Parameters
    ----------
    x : ndarray of shape (n_cells,)
        Expression values.
    pst : ndarray of shape (n_cells,)
        Pseudotimes.

    Returns
    -------
    x0 : ndarray of shape (4,)
        mu0 = mean of the top decile of x, k = sign(corr(x, t)) * 4 / range(t),
        t0 = median(t), sigma = std(x).
    """
    n_top = max(1, int(np.ceil(0.1 * len(x))))
    mu0 = max(float(np.mean(np.sort(x)[-n_top:])), MU0_MIN)

    t_range = float(np.ptp(pst))
    if t_range <= 0:
        t_range = 1.0
    cov = np.mean((x - np.mean(x)) * (pst - np.mean(pst)))
    k = float(np.sign(cov)) * 4.0 / t_range

    t0 = float(np.median(pst))
    sigma = max(float(np.std(x)), SIGMA_MIN)
    return np.array([mu0, k, t0, sigma])


def starting_points(
    x: np.ndarray,
    pst: np.ndarray,
    n_starts: int = 3,
    random_state: int = 0
) -> List[np.ndarray]:
    """
    Starting points for multi-start optimization.

    The first three are deterministic: the heuristic start, the null-model
    optimum (k = 0) and a sigmoid whose slope at the median pseudotime
    matches the least-squares line. Any further starts are random
    perturbations of the heuristic start.

    Parameters
    ----------
    x, pst : ndarray of shape (n_cells,)
        Expression values and pseudotimes.
    n_starts : int, default=3
        Total number of starts (at least 1).
    random_state : int, default=0
        Seed for the random perturbations.

    Returns
    -------
    starts : list of ndarray of shape (4,)
    """
    base = initial_parameters(x, pst)
    _, mean, sigma = null_log_likelihood(x)
    t_med = float(np.median(pst))

    starts = [base]

    # Null optimum expressed in the sigmoid parameterization
    mu0_null = max(2.0 * mean, MU0_MIN)
    starts.append(np.array([mu0_null, 0.0, t_med, sigma]))

    # mu(t0) = mu0 / 2 and mu'(t0) = mu0 k / 4
    t_var = float(np.var(pst))
    if t_var > 0:
        slope = float(np.mean((x - mean) * (pst - np.mean(pst)))) / t_var
        level = mean + slope * (t_med - np.mean(pst))
        mu0_lin = max(2.0 * level, MU0_MIN)
        starts.append(np.array([mu0_lin, 4.0 * slope / mu0_lin, t_med, sigma]))

    rng = np.random.default_rng(random_state)
    scale = np.array([
        max(abs(base[0]), 1.0) * 0.5,
        max(abs(base[1]), 1.0),
        max(float(np.ptp(pst)), 1e-3) * 0.25,
        base[3] * 0.5
    ])
    while len(starts) < n_starts:
        x0 = base + rng.normal(0, 1, 4) * scale
        x0[0] = max(x0[0], MU0_MIN)
        x0[3] = max(x0[3], SIGMA_MIN)
        starts.append(x0)

    return starts[:max(n_starts, 1)]


def _projected_grad_norm(grad: np.ndarray, x: np.ndarray, bounds) -> float:
    pg = np.array(grad, dtype=float)
    for j, (lb, ub) in enumerate(bounds):
        if lb is not None and x[j] <= lb and pg[j] > 0:
            pg[j] = 0.0
        if ub is not None and x[j] >= ub and pg[j] < 0:
            pg[j] = 0.0
    return float(np.max(np.abs(pg))) if len(pg) else 0.0


def multi_start_optimize(
    objective_fn: Callable[[np.ndarray], float],
    x0_list: List[np.ndarray],
    bounds: List[Tuple[Optional[float], Optional[float]]],
    jac: Optional[Callable[[np.ndarray], np.ndarray]] = None,
    maxiter: int = 500,
    gtol: float = 1e-3,
    verbose: bool = False
) -> Tuple[np.ndarray, float, Dict[str, Any]]:
    """
    Multi-start L-BFGS-B minimization.

    Parameters
    ----------
    objective_fn : callable
        Objective function f(theta) -> float to minimize.
    x0_list : list of ndarray
        Starting points.
    bounds : list of tuples
        Parameter bounds, None for unbounded.
    jac : callable, optional
        Gradient of `objective_fn`. If None, finite differences are used.
    maxiter : int, default=500
        Maximum iterations per start.
    gtol : float, default=1e-3
        A start that L-BFGS-B did not flag as successful still counts as
        converged if its projected gradient is below gtol * (1 + |f|).
    verbose : bool, default=False
        Print progress.

    Returns
    -------
    x_best : ndarray
        Best parameter vector found among converged starts.
    f_best : float
        Best objective value.
    info : dict
        Optimization info with keys 'n_iterations', 'success', 'message', 'all_results'.

    Raises
    ------
    OptimizationFailure
        If no start converged to a finite objective value.
    """
    best_result = None
    best_f = np.inf
    all_results = []

    for i, x0 in enumerate(x0_list):
        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                with np.errstate(all="ignore"):
                    result = minimize(
                        objective_fn,
                        np.asarray(x0, dtype=float),
                        jac=jac,
                        method='L-BFGS-B',
                        bounds=bounds,
                        options={'maxiter': maxiter}
                    )
        except (ValueError, FloatingPointError, np.linalg.LinAlgError) as e:
            if verbose:
                print(f"  Start {i+1}/{len(x0_list)}: failed with {e}")
            all_results.append({'x': x0, 'fun': np.inf, 'success': False, 'nit': 0, 'error': str(e)})
            continue

        finite = np.isfinite(result.fun) and np.all(np.isfinite(result.x))
        converged = bool(result.success)
        if finite and not converged and jac is not None and result.nit < maxiter:
            grad = jac(result.x)
            if np.all(np.isfinite(grad)):
                pg = _projected_grad_norm(grad, result.x, bounds)
                converged = pg <= gtol * (1.0 + abs(result.fun))
        converged = converged and finite

        all_results.append({
            'x': result.x,
            'fun': result.fun,
            'success': converged,
            'nit': result.nit
        })

        if converged and result.fun < best_f:
            best_f = float(result.fun)
            best_result = result

        if verbose:
            print(f"  Start {i+1}/{len(x0_list)}: f = {result.fun:.4f}, converged = {converged}")

    if best_result is None:
        messages = {str(r.get('error', '')) for r in all_results} - {''}
        raise OptimizationFailure(
            "No optimizer start converged to a finite optimum"
            + (f" ({'; '.join(sorted(messages))})" if messages else "")
        )

    info = {
        'n_iterations': int(best_result.nit),
        'success': True,
        'message': str(getattr(best_result, 'message', "")),
        'all_results': all_results
    }

    return best_result.x, best_f, info


def fit_sigmoid_mle(
    x: np.ndarray,
    pst: np.ndarray,
    x0: Optional[np.ndarray] = None,
    n_starts: int = 3,
    maxiter: int = 500,
    random_state: int = 0,
    verbose: bool = False
) -> MLEFit:
    """
    Fit (mu0, k, t0, sigma) of the Gaussian sigmoid model by maximum likelihood.

    Parameters
    ----------
    x : ndarray of shape (n_cells,)
        Expression values.
    pst : ndarray of shape (n_cells,)
        Pseudotimes, same length as x.
    x0 : ndarray of shape (3,) or (4,), optional
        User starting point (mu0, k, t0[, sigma]), tried before the heuristic
        starts.
    n_starts : int, default=3
        Number of heuristic / random starts.
    maxiter : int, default=500
        L-BFGS-B iteration limit per start.
    random_state : int, default=0
        Seed for random starts.
    verbose : bool, default=False
        Print per-start progress.

    Returns
    -------
    fit : MLEFit

    Raises
    ------
    OptimizationFailure
        If every start fails or produces a non-finite likelihood.
    """
    x = np.asarray(x, dtype=float)
    pst = np.asarray(pst, dtype=float)

    def objective(theta):
        return -gaussian_log_likelihood(theta, x, pst)

    def gradient(theta):
        return -gaussian_log_likelihood_grad(theta, x, pst)

    starts = starting_points(x, pst, n_starts=n_starts, random_state=random_state)
    if x0 is not None:
        x0 = np.asarray(x0, dtype=float)
        if len(x0) == 3:
            x0 = np.append(x0, starts[0][3])
        x0[0] = max(x0[0], MU0_MIN)
        x0[3] = max(x0[3], SIGMA_MIN)
        starts.insert(0, x0)

    theta, f_opt, info = multi_start_optimize(
        objective, starts, GAUSSIAN_BOUNDS, jac=gradient,
        maxiter=maxiter, verbose=verbose
    )

    return MLEFit(
        params=theta,
        log_lik=-f_opt,
        n_iterations=info['n_iterations'],
        success=info['success'],
        message=info['message']
    )


def fit_null_model(x: np.ndarray, pst: np.ndarray) -> MLEFit:
    """
    Fit the constant-expression null model in closed form.

    Returns
    -------
    fit : MLEFit
        params = (2 * mean, 0, median(pst), sigma), the sigmoid
        parameterization of the constant mean.
    """
    log_lik, mean, sigma = null_log_likelihood(np.asarray(x, dtype=float))
    params = np.array([max(2.0 * mean, MU0_MIN), 0.0, float(np.median(pst)), sigma])
    return MLEFit(params=params, log_lik=log_lik, message="closed form")
