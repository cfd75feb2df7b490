# handle_forecaster_src/exceptions.py

"""
Error taxonomy for the handle forecasting pipeline.

Data-integrity errors (missing or duplicate periods, misaligned covariates,
singular design matrices) propagate to the caller immediately. Optimizer
failures are raised per candidate and are collected by the model selector.
Residual autocorrelation is a warning, never an error.
"""

from typing import Dict, Optional


class ForecastError(Exception):
    """Base class for all pipeline errors."""


class SeriesIntegrityError(ForecastError, ValueError):
    """A series has unsorted, duplicate or non-finite periods."""


class MissingPeriodError(SeriesIntegrityError):
    """A dense series was requested while periods are missing."""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(message)
        self.missing = list(missing or [])


class DuplicatePeriodError(SeriesIntegrityError):
    """Two observations map to the same monthly period."""


class CovariateAlignmentError(SeriesIntegrityError):
    """A covariate does not match the target series period-for-period."""


class RangeError(ForecastError, IndexError):
    """A slice or lookup falls outside the available period range."""


class InsufficientDataError(ForecastError, ValueError):
    """Too few observations (or seasonal cycles) for the requested operation."""


class SingularMatrixError(ForecastError, ValueError):
    """The regression design matrix is rank-deficient."""


class ConvergenceFailure(ForecastError, RuntimeError):
    """A likelihood optimizer did not converge within its bounds."""


class NonStationarityError(ForecastError, ValueError):
    """Differencing reached its maximum order without passing the stationarity check."""


class InvalidHorizonError(ForecastError, ValueError):
    """A forecast horizon below one was requested."""


class DivisionByZeroError(ForecastError, ZeroDivisionError):
    """A historical period total used as a ratio denominator is zero or missing."""


class AllCandidatesFailedError(ForecastError, RuntimeError):
    """Every model family failed to fit during selection."""

    def __init__(self, failures: Dict[str, Exception]):
        detail = "; ".join(f"{name}: {err}" for name, err in failures.items())
        super().__init__(f"No candidate model could be fit ({detail})")
        self.failures = dict(failures)


class ResidualAutocorrelationWarning(UserWarning):
    """Ljung-Box rejects residual independence at the seasonal lag."""

    def __init__(self, label: str, lag: int, statistic: float, p_value: float):
        super().__init__(
            f"{label}: residual autocorrelation at lag {lag} "
            f"(Q={statistic:.3f}, p={p_value:.4f})"
        )
        self.label = label
        self.lag = lag
        self.statistic = statistic
        self.p_value = p_value
