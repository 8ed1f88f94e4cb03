"""
Fitting configuration.

A single `FitConfig` is built per call and shared read-only by every
per-gene fit.
"""

import json
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Optional, Dict, Any, Union


@dataclass(frozen=True)
class FitConfig:
    """
    Configuration for fitting all genes.

    Attributes
    ----------
    zero_inflated : bool, default=False
        Fit the zero-inflated model with EM instead of the Gaussian MLE.
    lower_threshold : float or None, default=0.01
        Expression values below this are set to 0 before fitting.
        None disables thresholding.
    maxiter : int, default=1000
        Maximum number of EM iterations (zero-inflated model).
    log_lik_tol : float, default=1e-2
        EM convergence threshold on the absolute log-likelihood change.
    optim_maxiter : int, default=500
        L-BFGS-B iteration limit per start / per M-step.
    n_starts : int, default=3
        Starting points for the Gaussian MLE. The first three are
        deterministic, further starts are random perturbations.
    n_jobs : int, default=1
        Number of worker processes. 1 fits genes serially.
    random_state : int, default=0
        Seed for random starting points.
    verbose : bool, default=False
        Print progress information.
    """
    zero_inflated: bool = False
    lower_threshold: Optional[float] = 0.01
    maxiter: int = 1000
    log_lik_tol: float = 1e-2
    optim_maxiter: int = 500
    n_starts: int = 3
    n_jobs: int = 1
    random_state: int = 0
    verbose: bool = False

    def __post_init__(self):
        if self.maxiter < 1:
            raise ValueError(f"maxiter must be >= 1, got {self.maxiter}")
        if not self.log_lik_tol > 0:
            raise ValueError(f"log_lik_tol must be positive, got {self.log_lik_tol}")
        if self.optim_maxiter < 1:
            raise ValueError(f"optim_maxiter must be >= 1, got {self.optim_maxiter}")
        if self.n_starts < 1:
            raise ValueError(f"n_starts must be >= 1, got {self.n_starts}")
        if self.n_jobs < 1:
            raise ValueError(f"n_jobs must be >= 1, got {self.n_jobs}")
        if self.lower_threshold is not None and self.lower_threshold < 0:
            raise ValueError(f"lower_threshold must be >= 0 or None, got {self.lower_threshold}")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "FitConfig":
        """
        Load a configuration from a JSON object of FitConfig fields.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        ValueError
            On invalid JSON, a non-object root or unknown keys.
        """
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(
                f"Invalid JSON in config '{config_path}' at line {exc.lineno}, "
                f"column {exc.colno}: {exc.msg}"
            ) from exc

        if not isinstance(data, dict):
            raise ValueError(
                f"Invalid config root in '{config_path}': expected JSON object, got {type(data).__name__}."
            )

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown config keys in '{config_path}': {', '.join(unknown)}")
        return cls(**data)
