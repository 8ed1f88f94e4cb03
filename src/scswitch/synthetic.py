"""
Synthetic data generation for testing and demonstration.

Simulates genes whose mean follows the sigmoid model along pseudotime,
with Gaussian noise and optional dropout, and assembles mixed datasets of
switching and constant genes with known ground truth.
"""

import numpy as np
import pandas as pd
from typing import Optional, Tuple

from .likelihood import dropout_probability
from .sigmoid import sigmoid


def simulate_gene(
    pst: np.ndarray,
    mu0: float,
    k: float,
    t0: float,
    sigma: float,
    lambda_: float = 0.0,
    random_state: Optional[int] = None,
    clip_negative: bool = False
) -> np.ndarray:
    """
    Simulate expression of one gene.

    Parameters
    ----------
    pst : ndarray of shape (n_cells,)
        Pseudotimes.
    mu0, k, t0 : float
        Sigmoid parameters of the mean.
    sigma : float
        Noise standard deviation.
    lambda_ : float, default=0.0
        Dropout coefficient. Each cell is set to zero with probability
        exp(-mu^2 / lambda_); 0 disables dropout.
    random_state : int, optional
        Random seed.
    clip_negative : bool, default=False
        Clip negative values to 0.

    Returns
    -------
    x : ndarray of shape (n_cells,)
        Expression values.
    """
    if sigma <= 0:
        raise ValueError(f"sigma must be positive, got {sigma}")
    if lambda_ < 0:
        raise ValueError(f"lambda_ must be >= 0, got {lambda_}")

    rng = np.random.default_rng(random_state)
    pst = np.asarray(pst, dtype=float)
    mean = sigmoid(pst, mu0, k, t0)
    x = rng.normal(mean, sigma)

    if clip_negative:
        x = np.maximum(x, 0.0)

    if lambda_ > 0:
        drop = rng.uniform(size=len(pst)) < dropout_probability(mean, lambda_)
        x[drop] = 0.0

    return x


def generate_switch_dataset(
    n_genes: int = 100,
    n_cells: int = 200,
    frac_switch: float = 0.2,
    mu0_range: Tuple[float, float] = (2.0, 10.0),
    k_range: Tuple[float, float] = (5.0, 20.0),
    t0_range: Tuple[float, float] = (0.2, 0.8),
    sigma: float = 0.5,
    lambda_: float = 0.0,
    random_state: int = 0
) -> dict:
    """
    Generate a dataset of switching and constant genes.

    Pseudotimes are drawn uniformly on [0, 1]. Switching genes get a
    random mu0, |k| and t0 from the given ranges and a random sign of k;
    constant genes have k = 0 (mean mu0 / 2 everywhere).

    Parameters
    ----------
    n_genes : int, default=100
        Number of genes.
    n_cells : int, default=200
        Number of cells.
    frac_switch : float, default=0.2
        Fraction of genes that switch.
    mu0_range, k_range, t0_range : tuple of float
        Ranges of the switching genes' parameters (k_range is for |k|).
    sigma : float, default=0.5
        Noise standard deviation of every gene.
    lambda_ : float, default=0.0
        Dropout coefficient of every gene; 0 disables dropout.
    random_state : int, default=0
        Random seed.

    Returns
    -------
    dataset : dict with keys:
        - 'expression': ndarray of shape (n_genes, n_cells)
        - 'pseudotime': ndarray of shape (n_cells,)
        - 'gene_names': ndarray of shape (n_genes,)
        - 'params': DataFrame of true mu0, k, t0, sigma, lambda per gene
        - 'is_switch': ndarray of bool of shape (n_genes,)
    """
    if not 0 <= frac_switch <= 1:
        raise ValueError(f"frac_switch must be in [0, 1], got {frac_switch}")

    rng = np.random.default_rng(random_state)
    pst = np.sort(rng.uniform(0, 1, size=n_cells))

    n_switch = int(round(frac_switch * n_genes))
    is_switch = np.zeros(n_genes, dtype=bool)
    is_switch[rng.choice(n_genes, size=n_switch, replace=False)] = True

    mu0 = rng.uniform(*mu0_range, size=n_genes)
    k = rng.uniform(*k_range, size=n_genes) * rng.choice([-1.0, 1.0], size=n_genes)
    t0 = rng.uniform(*t0_range, size=n_genes)
    k[~is_switch] = 0.0
    t0[~is_switch] = 0.5

    expression = np.empty((n_genes, n_cells))
    for g in range(n_genes):
        expression[g] = simulate_gene(
            pst, mu0[g], k[g], t0[g], sigma, lambda_=lambda_,
            random_state=random_state + g + 1
        )

    gene_names = np.array([f"gene_{g + 1}" for g in range(n_genes)])
    params = pd.DataFrame({
        "gene": gene_names,
        "mu0": mu0,
        "k": k,
        "t0": t0,
        "sigma": sigma,
        "lambda": lambda_,
    })

    return {
        'expression': expression,
        'pseudotime': pst,
        'gene_names': gene_names,
        'params': params,
        'is_switch': is_switch
    }
