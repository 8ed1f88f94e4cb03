"""
Data preprocessing and input preparation.

Handles input validation, coercion of the accepted expression sources
(ndarray, scipy sparse matrix, pandas DataFrame, AnnData) to a dense
genes x cells matrix, and the per-gene low-value threshold.
"""

import numpy as np
import pandas as pd
from scipy import sparse
from typing import Optional, Union, Sequence
from dataclasses import dataclass

from .exceptions import InputShapeError
from .optimize import MIN_CELLS


@dataclass
class PreparedData:
    """
    Validated input data for model fitting.

    Attributes
    ----------
    expression : ndarray of shape (n_genes, n_cells)
        Expression values, genes as rows.
    pseudotime : ndarray of shape (n_cells,)
        Pseudotime of each cell.
    gene_names : ndarray of shape (n_genes,)
        Gene identifiers (str).
    n_genes : int
        Number of genes.
    n_cells : int
        Number of cells.
    """
    expression: np.ndarray
    pseudotime: np.ndarray
    gene_names: np.ndarray
    n_genes: int
    n_cells: int


def _is_anndata(obj) -> bool:
    return hasattr(obj, "var_names") and hasattr(obj, "obs") and hasattr(obj, "X")


def _to_dense(matrix) -> np.ndarray:
    if sparse.issparse(matrix):
        matrix = matrix.toarray()
    return np.asarray(matrix, dtype=float)


def prepare_inputs(
    expression,
    pseudotime: Union[np.ndarray, Sequence[float], str],
    gene_names: Optional[Sequence[str]] = None,
    layer: Optional[str] = None,
    min_cells: int = MIN_CELLS
) -> PreparedData:
    """
    Prepare input data for model fitting.

    Parameters
    ----------
    expression : ndarray, sparse matrix, DataFrame or AnnData
        Expression values. Arrays and DataFrames are genes x cells (a 1-D
        array is a single gene); AnnData objects are cells x genes and are
        transposed.
    pseudotime : array-like of shape (n_cells,) or str
        Pseudotime of each cell. For AnnData input, a str is read from
        `adata.obs`.
    gene_names : sequence of str, optional
        Gene identifiers. Defaults to the DataFrame index, `adata.var_names`
        or gene_1, gene_2, ...
    layer : str, optional
        AnnData layer to use instead of `adata.X`.
    min_cells : int, default=5
        Minimum number of cells; the full model has four free parameters.

    Returns
    -------
    prepared : PreparedData

    Raises
    ------
    InputShapeError
        On mismatched lengths, wrong dimensionality, too few cells,
        non-finite values or constant pseudotime.
    """
    if _is_anndata(expression):
        adata = expression
        matrix = adata.layers[layer] if layer is not None else adata.X
        matrix = _to_dense(matrix).T
        if gene_names is None:
            gene_names = np.asarray(adata.var_names).astype(str)
        if isinstance(pseudotime, str):
            if pseudotime not in adata.obs:
                raise KeyError(f"Pseudotime key {pseudotime!r} not found in adata.obs")
            pseudotime = adata.obs[pseudotime].to_numpy()
    elif isinstance(expression, pd.DataFrame):
        matrix = expression.to_numpy(dtype=float)
        if gene_names is None:
            gene_names = expression.index.astype(str).to_numpy()
    else:
        matrix = _to_dense(expression)

    if isinstance(pseudotime, str):
        raise ValueError("pseudotime may only be an obs key when expression is an AnnData object")

    if matrix.ndim == 1:
        matrix = matrix.reshape(1, -1)
    if matrix.ndim != 2:
        raise InputShapeError(f"expression must be 2-D (genes x cells), got {matrix.ndim} dimensions")

    pst = np.asarray(pseudotime, dtype=float)
    if pst.ndim != 1:
        raise InputShapeError(f"pseudotime must be 1-D, got shape {pst.shape}")

    n_genes, n_cells = matrix.shape
    if len(pst) != n_cells:
        raise InputShapeError(
            f"pseudotime length {len(pst)} != number of cells {n_cells} "
            "(expression must be genes x cells)"
        )
    if n_cells < min_cells:
        raise InputShapeError(f"At least {min_cells} cells are required, got {n_cells}")
    if n_genes == 0:
        raise InputShapeError("expression contains no genes")
    if not np.all(np.isfinite(pst)):
        raise InputShapeError(f"pseudotime contains {int((~np.isfinite(pst)).sum())} non-finite values")
    if np.ptp(pst) == 0:
        raise InputShapeError("pseudotime is constant; activation time and strength cannot be estimated")
    if not np.all(np.isfinite(matrix)):
        raise InputShapeError(f"expression contains {int((~np.isfinite(matrix)).sum())} non-finite values")

    if gene_names is None:
        gene_names = np.array([f"gene_{i + 1}" for i in range(n_genes)])
    else:
        gene_names = np.asarray(gene_names).astype(str)
        if len(gene_names) != n_genes:
            raise InputShapeError(f"gene_names length {len(gene_names)} != n_genes {n_genes}")

    return PreparedData(
        expression=matrix,
        pseudotime=pst,
        gene_names=gene_names,
        n_genes=n_genes,
        n_cells=n_cells
    )


def apply_threshold(x: np.ndarray, lower_threshold: Optional[float] = 0.01) -> np.ndarray:
    """
    Zero out expression values below `lower_threshold`.

    Parameters
    ----------
    x : ndarray of shape (n_cells,)
        Expression values of one gene.
    lower_threshold : float or None, default=0.01
        Values strictly below are set to 0. None disables thresholding.

    Returns
    -------
    x : ndarray
        Thresholded copy.
    """
    x = np.array(x, dtype=float)
    if lower_threshold is not None:
        x[x < lower_threshold] = 0.0
    return x
