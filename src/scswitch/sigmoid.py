"""
Sigmoidal mean function for switch-like gene expression.

The mean expression of a gene along pseudotime t is modelled as

    mu(t) = mu0 / (1 + exp(-k (t - t0)))

where mu0 > 0 is the expression scale (mu(t0) = mu0 / 2), the sign of k
gives the direction of regulation and its magnitude the steepness, and t0
is the activation time.
"""

import numpy as np
from scipy.special import expit
from typing import Sequence, Tuple, Union


def sigmoid(
    pst: Union[float, np.ndarray],
    mu0: float,
    k: float,
    t0: float
) -> Union[float, np.ndarray]:
    """
    Evaluate the sigmoid mean at one or more pseudotimes.

    Parameters
    ----------
    pst : float or ndarray of shape (n_cells,)
        Pseudotime value(s).
    mu0 : float
        Expression scale; the curve tends to mu0 as k (t - t0) -> inf.
    k : float
        Activation strength. Positive for up-regulation, negative for
        down-regulation, zero for constant expression mu0 / 2.
    t0 : float
        Activation time.

    Returns
    -------
    mean : float or ndarray
        Predicted mean expression, same shape as `pst`.

    Notes
    -----
    Evaluated as mu0 * expit(k (t - t0)) so very large |k| saturates to
    0 or mu0 instead of overflowing.
    """
    if np.ndim(pst) == 0:
        return float(mu0 * expit(k * (pst - t0)))
    pst = np.asarray(pst, dtype=float)
    return mu0 * expit(k * (pst - t0))


def sigmoid_derivatives(
    pst: np.ndarray,
    mu0: float,
    k: float,
    t0: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Sigmoid mean and its partial derivatives w.r.t. (mu0, k, t0).

    Parameters
    ----------
    pst : ndarray of shape (n_cells,)
        Pseudotimes.
    mu0, k, t0 : float
        Sigmoid parameters.

    Returns
    -------
    mean : ndarray of shape (n_cells,)
        Predicted mean expression.
    jac : ndarray of shape (n_cells, 3)
        Columns d mean / d mu0, d mean / d k, d mean / d t0.
    """
    pst = np.asarray(pst, dtype=float)
    dt = pst - t0
    s = expit(k * dt)
    ds = s * (1.0 - s)

    mean = mu0 * s
    jac = np.column_stack([
        s,
        mu0 * ds * dt,
        -mu0 * ds * k
    ])
    return mean, jac


def sigmoid_curve(
    params: Sequence[float],
    t_min: float = 0.0,
    t_max: float = 1.0,
    n_points: int = 200
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Evaluate the sigmoid on an even pseudotime grid.

    Parameters
    ----------
    params : sequence of float
        (mu0, k, t0). Extra trailing entries (e.g. lambda) are ignored.
    t_min, t_max : float
        Pseudotime domain.
    n_points : int, default=200
        Number of grid points.

    Returns
    -------
    t : ndarray of shape (n_points,)
        Pseudotime grid.
    mean : ndarray of shape (n_points,)
        Sigmoid mean on the grid.
    """
    mu0, k, t0 = (float(p) for p in params[:3])
    t = np.linspace(t_min, t_max, n_points)
    return t, sigmoid(t, mu0, k, t0)
