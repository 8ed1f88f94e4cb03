"""
Visualization tools for switch-like expression fits.

Provides scatter plots of expression along pseudotime with the fitted
sigmoid overlaid, for raw parameters or a gene in a SwitchdeResult.
"""

import numpy as np
import matplotlib.pyplot as plt
from typing import Optional, Sequence

from .likelihood import dropout_probability
from .results import SwitchdeResult
from .sigmoid import sigmoid_curve


def plot_switch(
    x: np.ndarray,
    pst: np.ndarray,
    params: Sequence[float],
    ax: Optional[plt.Axes] = None,
    title: Optional[str] = None,
    color: str = "tab:blue"
) -> plt.Axes:
    """
    Plot expression against pseudotime with a sigmoid overlaid.

    Parameters
    ----------
    x : ndarray of shape (n_cells,)
        Expression values.
    pst : ndarray of shape (n_cells,)
        Pseudotimes.
    params : sequence of float
        (mu0, k, t0), optionally followed by lambda. With lambda > 0 the
        expected observed mean (1 - p) mu is drawn as well.
    ax : Axes, optional
        Matplotlib axes. If None, creates new figure.
    title : str, optional
        Plot title.
    color : str, default="tab:blue"
        Point color.

    Returns
    -------
    ax : Axes
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 4))

    x = np.asarray(x, dtype=float)
    pst = np.asarray(pst, dtype=float)

    ax.scatter(pst, x, s=10, alpha=0.6, color=color, edgecolors='none', label='Cells')

    params = np.asarray(params, dtype=float)
    if np.all(np.isfinite(params[:3])):
        t, mean = sigmoid_curve(params, t_min=pst.min(), t_max=pst.max())
        ax.plot(t, mean, 'k-', lw=2, label='Sigmoid fit')
        if len(params) > 3 and np.isfinite(params[3]) and params[3] > 0:
            observed = (1 - dropout_probability(mean, params[3])) * mean
            ax.plot(t, observed, 'k--', lw=1.5, label='With dropout')
        ax.axvline(params[2], color='gray', ls=':', lw=1)

    ax.set_xlabel('Pseudotime')
    ax.set_ylabel('Expression')
    if title is not None:
        ax.set_title(title)
    ax.legend(loc='best', fontsize=8)

    return ax


def plot_gene(
    result: SwitchdeResult,
    gene: str,
    expression: np.ndarray,
    pseudotime: np.ndarray,
    ax: Optional[plt.Axes] = None
) -> plt.Axes:
    """
    Plot a gene's expression with its fitted sigmoid.

    Parameters
    ----------
    result : SwitchdeResult
        Fitted results containing `gene`.
    gene : str
        Gene identifier.
    expression : ndarray
        Either the gene's expression (n_cells,) or the genes x cells
        matrix the result was fit on. The matrix row is taken from the
        gene's input_index, so sorted or filtered results work too.
    pseudotime : ndarray of shape (n_cells,)
        Pseudotimes.
    ax : Axes, optional
        Matplotlib axes. If None, creates new figure.

    Returns
    -------
    ax : Axes
    """
    params = result.extract_pars(gene)
    row = result.details.loc[result.details["gene"] == gene].iloc[0]
    expression = np.asarray(expression, dtype=float)
    if expression.ndim == 2:
        expression = expression[int(row["input_index"])]

    title = f"{gene} (q = {row['qval']:.2g})" if np.isfinite(row["qval"]) else f"{gene} ({row['status']})"
    return plot_switch(expression, pseudotime, params, ax=ax, title=title)
