"""
Result containers for switch-like differential expression tests.

Provides the per-gene fit record and the result table returned by
`SwitchdeModel.fit`, with parameter lookup, sorting, filtering and
save/load functionality.
"""

import numpy as np
import pandas as pd
import json
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Callable, Union
from pathlib import Path

STATUS_OK = "ok"
STATUS_FAILED = "failed"
STATUS_DEGENERATE = "degenerate"

TABLE_COLUMNS = ["gene", "pval", "qval", "mu0", "k", "t0"]
ZERO_INFLATED_COLUMNS = ["lambda", "EM_converged"]
DETAIL_COLUMNS = [
    "sigma", "log_lik", "null_log_lik", "statistic", "status", "n_iterations", "message", "input_index"
]


@dataclass
class GeneFit:
    """
    Fit record for a single gene.

    Attributes
    ----------
    gene : str
        Gene identifier.
    status : str
        "ok", "failed" (optimization failure) or "degenerate" (all-zero input).
    mu0, k, t0 : float
        Sigmoid parameter estimates (NaN unless status is "ok").
    sigma : float
        Noise standard deviation estimate.
    lambda_ : float, optional
        Dropout coefficient (zero-inflated fits only).
    log_lik : float
        Full-model log-likelihood.
    null_log_lik : float
        Null-model log-likelihood.
    statistic : float
        Likelihood-ratio statistic 2 (log_lik - null_log_lik).
    pval : float
        Raw likelihood-ratio p-value.
    qval : float
        Benjamini-Hochberg q-value, set once all genes are fit.
    n_iterations : int
        Optimizer iterations (Gaussian) or EM iterations (zero-inflated).
    em_converged : bool, optional
        Whether EM met log_lik_tol for both full and null models
        (zero-inflated fits only, None for failed/degenerate genes).
    message : str
        Failure or termination message.
    """
    gene: str
    status: str = STATUS_OK
    mu0: float = np.nan
    k: float = np.nan
    t0: float = np.nan
    sigma: float = np.nan
    lambda_: Optional[float] = None
    log_lik: float = np.nan
    null_log_lik: float = np.nan
    statistic: float = np.nan
    pval: float = np.nan
    qval: float = np.nan
    n_iterations: int = 0
    em_converged: Optional[bool] = None
    message: str = ""

    @property
    def params(self) -> np.ndarray:
        """(mu0, k, t0), with lambda appended for zero-inflated fits."""
        pars = [self.mu0, self.k, self.t0]
        if self.lambda_ is not None:
            pars.append(self.lambda_)
        return np.array(pars, dtype=float)

    def to_row(self, zero_inflated: bool) -> Dict[str, Any]:
        row = {
            "gene": self.gene,
            "pval": self.pval,
            "qval": self.qval,
            "mu0": self.mu0,
            "k": self.k,
            "t0": self.t0,
        }
        if zero_inflated:
            row["lambda"] = np.nan if self.lambda_ is None else self.lambda_
            row["EM_converged"] = pd.NA if self.em_converged is None else bool(self.em_converged)
        row.update({
            "sigma": self.sigma,
            "log_lik": self.log_lik,
            "null_log_lik": self.null_log_lik,
            "statistic": self.statistic,
            "status": self.status,
            "n_iterations": self.n_iterations,
            "message": self.message,
        })
        return row


def _columns(zero_inflated: bool) -> List[str]:
    cols = list(TABLE_COLUMNS)
    if zero_inflated:
        cols += ZERO_INFLATED_COLUMNS
    return cols


class SwitchdeResult:
    """
    Per-gene results of a switch-like differential expression test.

    Parameters
    ----------
    details : DataFrame
        One row per gene with the public columns plus sigma, log-likelihoods,
        statistic, status, iteration count, message and input_index (the
        gene's row in the expression matrix that was fit).
    zero_inflated : bool
        Whether the zero-inflated model was fit.
    config : dict, optional
        Configuration used for fitting.

    Attributes
    ----------
    table : DataFrame
        Public columns gene, pval, qval, mu0, k, t0 (and lambda,
        EM_converged for zero-inflated fits), in this order.
    details : DataFrame
        All recorded columns.
    """

    def __init__(
        self,
        details: pd.DataFrame,
        zero_inflated: bool,
        config: Optional[Dict[str, Any]] = None
    ):
        self.details = details.reset_index(drop=True)
        self.zero_inflated = bool(zero_inflated)
        self.config = dict(config) if config is not None else {}

    @classmethod
    def from_records(
        cls,
        records: List[GeneFit],
        zero_inflated: bool,
        config: Optional[Dict[str, Any]] = None
    ) -> "SwitchdeResult":
        """Assemble a result from per-gene records (q-values already set)."""
        columns = _columns(zero_inflated) + DETAIL_COLUMNS
        details = pd.DataFrame([r.to_row(zero_inflated) for r in records], columns=columns)
        if zero_inflated:
            details["EM_converged"] = details["EM_converged"].astype("boolean")
        details["n_iterations"] = details["n_iterations"].astype(int)
        details["input_index"] = np.arange(len(details))
        return cls(details, zero_inflated, config)

    @property
    def table(self) -> pd.DataFrame:
        return self.details[_columns(self.zero_inflated)].copy()

    @property
    def records(self) -> List[GeneFit]:
        """Per-gene records rebuilt from the details table."""
        records = []
        for row in self.details.to_dict(orient="records"):
            lam = row.get("lambda") if self.zero_inflated else None
            conv = row.get("EM_converged") if self.zero_inflated else None
            records.append(GeneFit(
                gene=row["gene"],
                status=row["status"],
                mu0=row["mu0"],
                k=row["k"],
                t0=row["t0"],
                sigma=row["sigma"],
                lambda_=lam,
                log_lik=row["log_lik"],
                null_log_lik=row["null_log_lik"],
                statistic=row["statistic"],
                pval=row["pval"],
                qval=row["qval"],
                n_iterations=int(row["n_iterations"]),
                em_converged=None if conv is None or pd.isna(conv) else bool(conv),
                message=row["message"]
            ))
        return records

    @property
    def genes(self) -> np.ndarray:
        return self.details["gene"].to_numpy()

    def __len__(self) -> int:
        return len(self.details)

    def __repr__(self) -> str:
        kind = "zero-inflated" if self.zero_inflated else "gaussian"
        return (
            f"SwitchdeResult({len(self)} genes, {kind}, "
            f"{self.n_failed} failed, {self.n_degenerate} degenerate)"
        )

    @property
    def n_failed(self) -> int:
        return int((self.details["status"] == STATUS_FAILED).sum())

    @property
    def n_degenerate(self) -> int:
        return int((self.details["status"] == STATUS_DEGENERATE).sum())

    @property
    def n_not_converged(self) -> int:
        """Successfully fit genes whose EM hit maxiter (0 for Gaussian fits)."""
        if not self.zero_inflated:
            return 0
        ok = self.details["status"] == STATUS_OK
        converged = self.details["EM_converged"].fillna(False).astype(bool)
        return int((ok & ~converged).sum())

    def extract_pars(self, gene: str) -> np.ndarray:
        """
        Look up the fitted parameters of one gene.

        Parameters
        ----------
        gene : str
            Gene identifier.

        Returns
        -------
        pars : ndarray
            (mu0, k, t0), or (mu0, k, t0, lambda) for zero-inflated fits.
            NaN entries for failed or degenerate genes.

        Raises
        ------
        KeyError
            If the gene is not in the result.
        """
        rows = self.details.loc[self.details["gene"] == gene]
        if len(rows) == 0:
            raise KeyError(f"Gene {gene!r} not found in result")
        row = rows.iloc[0]
        cols = ["mu0", "k", "t0"] + (["lambda"] if self.zero_inflated else [])
        return row[cols].to_numpy(dtype=float)

    def _derive(self, details: pd.DataFrame) -> "SwitchdeResult":
        return SwitchdeResult(details, self.zero_inflated, self.config)

    def sort_values(self, by: Union[str, List[str]] = "qval", ascending: bool = True) -> "SwitchdeResult":
        """Return a new result sorted by one or more columns (NaN rows last)."""
        details = self.details.sort_values(
            by, ascending=ascending, kind="mergesort", na_position="last"
        )
        return self._derive(details)

    def filter(
        self,
        condition: Union[np.ndarray, pd.Series, Callable[[pd.DataFrame], Any]]
    ) -> "SwitchdeResult":
        """
        Return a new result with the rows where `condition` holds.

        Parameters
        ----------
        condition : array-like of bool or callable
            Boolean mask over rows, or a function mapping the details
            DataFrame to such a mask.
        """
        if callable(condition):
            condition = condition(self.details)
        mask = np.asarray(condition, dtype=bool)
        if mask.shape != (len(self.details),):
            raise ValueError(f"Mask length {mask.shape} != number of genes {len(self.details)}")
        return self._derive(self.details.loc[mask])

    def query(self, expr: str) -> "SwitchdeResult":
        """Filter rows with a pandas query expression, e.g. "qval < 0.05 and k > 0"."""
        return self._derive(self.details.query(expr))

    def significant(self, alpha: float = 0.05) -> "SwitchdeResult":
        """Genes with q-value below `alpha`, sorted by q-value."""
        return self.filter(self.details["qval"] < alpha).sort_values("qval")

    def save(self, path: str):
        """
        Save results to file.

        Parameters
        ----------
        path : str
            Output CSV path. The configuration is written next to it with a
            .json suffix.
        """
        path = Path(path)
        self.details.to_csv(path, index=False)
        meta = {"zero_inflated": self.zero_inflated, "config": self.config}
        path.with_suffix(".json").write_text(json.dumps(meta, indent=2, default=str))

    @classmethod
    def load(cls, path: str) -> "SwitchdeResult":
        """
        Load results from file.

        Parameters
        ----------
        path : str
            CSV path written by `save`.

        Returns
        -------
        result : SwitchdeResult
        """
        path = Path(path)
        # Only empty fields are missing; gene names like "NA" or "null" stay strings.
        details = pd.read_csv(path, dtype={"gene": str}, keep_default_na=False, na_values=[""])
        details["gene"] = details["gene"].fillna("").astype(str)
        details["message"] = details["message"].fillna("").astype(str)
        if "input_index" not in details.columns:
            details["input_index"] = np.arange(len(details))

        meta_path = path.with_suffix(".json")
        if meta_path.exists():
            meta = json.loads(meta_path.read_text())
            zero_inflated = bool(meta.get("zero_inflated", False))
            config = meta.get("config", {})
        else:
            zero_inflated = "lambda" in details.columns
            config = {}

        if zero_inflated:
            details["EM_converged"] = details["EM_converged"].astype("boolean")
        return cls(details, zero_inflated, config)


def extract_pars(result: SwitchdeResult, gene: str) -> np.ndarray:
    """Fitted (mu0, k, t0[, lambda]) of `gene` in `result`."""
    return result.extract_pars(gene)
