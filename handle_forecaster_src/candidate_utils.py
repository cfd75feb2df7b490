# handle_forecaster_src/candidate_utils.py

"""
Fitted-model representation shared by every model family.

A ModelCandidate is a tagged variant: the ``family`` tag says which model
produced it and ``projector`` holds the family-specific fitted state used to
project forward. Every candidate exposes the same capabilities (fitted
values, residuals, fit statistics, scoring, forecasting) so selection can be
a pure function over structured scores.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


class ModelFamily(Enum):
    """Model families compared by the selector."""
    REGRESSION = "regression"
    SMOOTHING = "smoothing"
    SEASONAL_ARIMA = "seasonal_arima"


@dataclass(frozen=True)
class FitStatistics:
    """Scalar fit statistics; information criteria are lower-is-better."""

    log_likelihood: float
    aic: float
    aicc: float
    bic: float
    adjusted_r2: float
    residual_variance: float
    n_obs: int
    n_params: int

    def as_dict(self) -> Dict[str, float]:
        return {
            "log_likelihood": self.log_likelihood,
            "aic": self.aic,
            "aicc": self.aicc,
            "bic": self.bic,
            "adjusted_r2": self.adjusted_r2,
            "residual_variance": self.residual_variance,
            "n_obs": self.n_obs,
            "n_params": self.n_params,
        }


@dataclass(frozen=True)
class Projection:
    """Point forecasts and forecast-error variances for steps 1..h."""

    mean: np.ndarray
    variance: np.ndarray


def _frozen(values: Sequence[float]) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class ModelCandidate:
    """
    One fitted model.

    Attributes
    ----------
    family : ModelFamily
        Variant tag.
    label : str
        Human-readable model name, e.g. ``SARIMA(1,0,0)(0,1,1,12)``.
    params : Mapping[str, float]
        Read-only fitted parameters.
    periods : pd.PeriodIndex
        Training periods.
    fitted_values : np.ndarray
        In-sample one-step fitted values (NaN where the model cannot fit, e.g.
        the first period of a lagged regression).
    residual_values : np.ndarray
        Actual minus fitted on the training range.
    statistics : FitStatistics
    projector : Callable
        ``projector(horizon, future_covariates) -> Projection``; built from the
        training slice only.
    coefficients : Optional[pd.DataFrame]
        Regression coefficient table (estimate, std_error, t_value, p_value).
    details : Mapping[str, Any]
        Family-specific descriptors (orders, variant name, dropped terms).
    """

    family: ModelFamily
    label: str
    params: Mapping[str, float]
    periods: pd.PeriodIndex
    fitted_values: np.ndarray
    residual_values: np.ndarray
    statistics: FitStatistics
    projector: Callable[..., Projection] = field(repr=False)
    coefficients: Optional[pd.DataFrame] = field(default=None, repr=False)
    details: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        object.__setattr__(self, "details", MappingProxyType(dict(self.details)))
        object.__setattr__(self, "fitted_values", _frozen(self.fitted_values))
        object.__setattr__(self, "residual_values", _frozen(self.residual_values))
        if self.coefficients is not None:
            object.__setattr__(self, "coefficients", self.coefficients.copy())

    @property
    def training_end(self) -> pd.Period:
        return self.periods[-1]

    @property
    def fitted(self) -> pd.Series:
        return pd.Series(self.fitted_values.copy(), index=self.periods, name=f"{self.label} fitted")

    @property
    def residuals(self) -> pd.Series:
        return pd.Series(self.residual_values.copy(), index=self.periods, name=f"{self.label} residuals")

    def score(self, name: str) -> float:
        """Look up a fit statistic by name (``aicc``, ``bic``, ``adjusted_r2``, ...)."""
        stats = self.statistics.as_dict()
        if name not in stats:
            raise KeyError(f"Unknown score {name!r}; available: {sorted(stats)}")
        return float(stats[name])

    def project(self, horizon: int, future_covariates: Optional[pd.DataFrame] = None) -> Projection:
        return self.projector(horizon, future_covariates)

    def forecast(self, horizon: int, confidence: float = 0.95, future_covariates=None):
        """Shortcut for ``Forecaster(confidence).forecast(self, horizon, future_covariates)``."""
        from .forecasting_utils import Forecaster
        return Forecaster(confidence=confidence).forecast(self, horizon, future_covariates)


def info_criteria(log_likelihood: float, n_obs: int, n_params: int) -> Tuple[float, float, float]:
    """
    AIC, AICc and BIC from a Gaussian log-likelihood.

    ``n_params`` counts every estimated parameter including the error variance.
    AICc is infinite when n_obs - n_params - 1 <= 0.
    """
    aic = -2.0 * log_likelihood + 2.0 * n_params
    bic = -2.0 * log_likelihood + math.log(n_obs) * n_params
    denom = n_obs - n_params - 1
    aicc = aic + (2.0 * n_params * (n_params + 1)) / denom if denom > 0 else float("inf")
    return aic, aicc, bic


def adjusted_r_squared(actual: Sequence[float], fitted: Sequence[float], n_regressors: int) -> float:
    """
    Adjusted R-squared over periods where both actual and fitted are finite.

    ``n_regressors`` excludes the intercept/level. Returns NaN when fewer than
    n_regressors + 2 usable points remain or the actuals are constant.
    """
    a = np.asarray(actual, dtype=float)
    f = np.asarray(fitted, dtype=float)
    mask = np.isfinite(a) & np.isfinite(f)
    a, f = a[mask], f[mask]
    n = len(a)
    if n < n_regressors + 2:
        return float("nan")
    sst = float(np.sum((a - a.mean()) ** 2))
    if sst == 0.0:
        return float("nan")
    ssr = float(np.sum((a - f) ** 2))
    r2 = 1.0 - ssr / sst
    return float(1.0 - (1.0 - r2) * (n - 1) / (n - n_regressors - 1))


# Criteria where a larger value is better.
HIGHER_IS_BETTER = {"adjusted_r2", "log_likelihood"}


def rank_candidates(candidates: List[ModelCandidate], criterion: str = "aicc") -> List[ModelCandidate]:
    """
    Order candidates best-first by ``criterion``.

    Ties are broken by fewer parameters, then by label, so the ranking is
    deterministic. Non-finite scores sort last.
    """
    higher = criterion in HIGHER_IS_BETTER

    def _key(c: ModelCandidate):
        value = c.score(criterion)
        if not np.isfinite(value):
            return (1, 0.0, c.statistics.n_params, c.label)
        return (0, -value if higher else value, c.statistics.n_params, c.label)

    ranked = sorted(candidates, key=_key)
    logger.debug("Ranked %d candidates by %s: %s", len(ranked), criterion,
                 ", ".join(f"{c.label}={c.score(criterion):.3f}" for c in ranked))
    return ranked
