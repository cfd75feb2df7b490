# handle_forecaster_src/forecasting_utils.py

import hashlib
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy.stats import norm

from helpers.temporal import to_month

from .candidate_utils import ModelCandidate, ModelFamily
from .config_utils import get_config_value
from .exceptions import InvalidHorizonError, RangeError
from .series_utils import CovariateSeries

logger = logging.getLogger(__name__)


def hash_forecast(seq: Union[List[float], np.ndarray, pd.Series]) -> str:
    """
    Generate a hash fingerprint for a forecast sequence.

    Parameters
    ----------
    seq : Union[List[float], np.ndarray, pd.Series]
        Forecast sequence to hash

    Returns
    -------
    str
        16-character SHA-1 hash of the forecast sequence
    """
    arr = np.ascontiguousarray(np.asarray(seq, dtype=np.float64))
    return hashlib.sha1(arr.tobytes()).hexdigest()[:16]


def covariates_to_frame(covariates: Optional[Sequence[CovariateSeries]]) -> Optional[pd.DataFrame]:
    """Stack covariate series into one frame indexed by period (NaN where a series has no value)."""
    if not covariates:
        return None
    return pd.DataFrame({c.name: c.to_series(allow_missing=True) for c in covariates})


@dataclass(frozen=True)
class Forecast:
    """
    Point forecasts with two-sided intervals for consecutive future periods.

    Attributes
    ----------
    periods : pd.PeriodIndex
        Forecast periods, starting the month after the training end.
    point, lower, upper : np.ndarray
        Point estimate and interval bounds per period.
    confidence : float
        Interval coverage level.
    model_label : str
    family : ModelFamily
    """

    periods: pd.PeriodIndex
    point: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    confidence: float
    model_label: str
    family: ModelFamily

    def __post_init__(self):
        for name in ("point", "lower", "upper"):
            arr = np.array(getattr(self, name), dtype=float)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    def __len__(self) -> int:
        return len(self.periods)

    @property
    def horizon(self) -> int:
        return len(self.periods)

    @property
    def widths(self) -> np.ndarray:
        return self.upper - self.lower

    def point_at(self, period) -> float:
        month = to_month(period)
        if month not in self.periods:
            raise RangeError(f"{month} is outside the forecast range {self.periods[0]}..{self.periods[-1]}")
        return float(self.point[self.periods.get_loc(month)])

    def to_frame(self) -> pd.DataFrame:
        pct = int(round(self.confidence * 100))
        return pd.DataFrame({
            "forecast": self.point,
            f"lower_{pct}": self.lower,
            f"upper_{pct}": self.upper,
        }, index=pd.PeriodIndex(self.periods, name="period"))

    def fingerprint(self) -> str:
        return hash_forecast(self.point)


class Forecaster:
    """
    Turn a fitted candidate into a forecast with Gaussian intervals.

    Projection is a single deterministic pass through the candidate's own
    recursion; only state from the training range is used.
    """

    def __init__(self, confidence: Optional[float] = None):
        self.confidence = float(confidence if confidence is not None
                                else get_config_value("forecast.confidence", 0.95))
        if not 0.0 < self.confidence < 1.0:
            raise ValueError(f"Confidence must lie in (0, 1), got {self.confidence}")

    @property
    def z(self) -> float:
        return float(norm.ppf(1.0 - (1.0 - self.confidence) / 2.0))

    def forecast(self, candidate: ModelCandidate, horizon: int,
                 future_covariates: Optional[Union[pd.DataFrame, Sequence[CovariateSeries]]] = None) -> Forecast:
        """
        Project ``horizon`` periods past the end of the candidate's training range.

        Parameters
        ----------
        candidate : ModelCandidate
        horizon : int
            Number of periods, at least one.
        future_covariates : DataFrame or list of CovariateSeries, optional
            Covariate values for the forecast periods; by default the values
            seen after the training end during fitting are used.

        Raises
        ------
        InvalidHorizonError
            If ``horizon`` < 1.
        """
        if isinstance(horizon, bool) or int(horizon) != horizon or horizon < 1:
            raise InvalidHorizonError(f"Forecast horizon must be an integer >= 1, got {horizon!r}")
        horizon = int(horizon)

        if future_covariates is not None and not isinstance(future_covariates, pd.DataFrame):
            future_covariates = covariates_to_frame(future_covariates)

        projection = candidate.project(horizon, future_covariates)
        mean = np.asarray(projection.mean, dtype=float)
        variance = np.asarray(projection.variance, dtype=float)
        if len(mean) != horizon or len(variance) != horizon:
            raise RuntimeError(f"{candidate.label} projected {len(mean)} points for horizon {horizon}")

        half = self.z * np.sqrt(np.maximum(variance, 0.0))
        periods = pd.period_range(start=candidate.training_end + 1, periods=horizon, freq="M")
        result = Forecast(
            periods=periods,
            point=mean,
            lower=mean - half,
            upper=mean + half,
            confidence=self.confidence,
            model_label=candidate.label,
            family=candidate.family,
        )
        logger.info("Forecast %d periods (%s..%s) with %s at %.0f%% [fingerprint %s]",
                    horizon, periods[0], periods[-1], candidate.label,
                    self.confidence * 100, result.fingerprint())
        return result
