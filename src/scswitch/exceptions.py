"""
Exceptions and warning categories used by scswitch.

Input problems are fatal and raised before any fitting starts. Numerical
problems are contained to a single gene and reported once per run with
one of the warning categories below.
"""


class ScswitchError(Exception):
    """Base exception class for all scswitch errors."""

    pass


class InputShapeError(ScswitchError, ValueError):
    """
    Raised when the expression matrix and pseudotime cannot be fit together.

    Covers mismatched lengths, a matrix that is not 2-D, non-finite
    values and too few cells for the four-parameter model.
    """

    pass


class OptimizationFailure(ScswitchError, RuntimeError):
    """Raised when no optimizer start reaches a finite, converged optimum."""

    pass


class ScswitchWarning(UserWarning):
    """Base warning class for aggregated end-of-run reports."""

    pass


class OptimizationFailureWarning(ScswitchWarning):
    """Some genes could not be fit and were reported as NA."""

    pass


class EMNonConvergenceWarning(ScswitchWarning):
    """Some genes hit the EM iteration cap before meeting the tolerance."""

    pass


class DegenerateInputWarning(ScswitchWarning):
    """Some genes had constant (e.g. all-zero) expression after thresholding."""

    pass
