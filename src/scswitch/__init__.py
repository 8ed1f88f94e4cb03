"""
scswitch: switch-like differential expression along pseudotime

Fit a sigmoid mu(t) = mu0 / (1 + exp(-k (t - t0))) to each gene's expression
along pseudotime and test for switch-like behaviour with a likelihood-ratio
test, optionally modelling dropouts with a zero-inflated model fit by EM.
"""

__version__ = "0.1.0"

from .config import FitConfig
from .exceptions import (
    ScswitchError,
    InputShapeError,
    OptimizationFailure,
    ScswitchWarning,
    OptimizationFailureWarning,
    EMNonConvergenceWarning,
    DegenerateInputWarning,
)
from .preprocess import prepare_inputs, PreparedData
from .results import GeneFit, SwitchdeResult, extract_pars
from .sigmoid import sigmoid, sigmoid_curve
from .solver import SwitchdeModel, switchde, fit_gene

__all__ = [
    "__version__",
    "FitConfig",
    "ScswitchError",
    "InputShapeError",
    "OptimizationFailure",
    "ScswitchWarning",
    "OptimizationFailureWarning",
    "EMNonConvergenceWarning",
    "DegenerateInputWarning",
    "prepare_inputs",
    "PreparedData",
    "GeneFit",
    "SwitchdeResult",
    "extract_pars",
    "sigmoid",
    "sigmoid_curve",
    "SwitchdeModel",
    "switchde",
    "fit_gene",
]
