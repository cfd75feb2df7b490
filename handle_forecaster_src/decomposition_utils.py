# handle_forecaster_src/decomposition_utils.py

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from statsmodels.tsa.seasonal import STL

from helpers.temporal import seasonal_phase

from .config_utils import get_config_value
from .exceptions import InsufficientDataError
from .series_utils import TimeSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decomposition:
    """
    Additive trend / seasonal / remainder split of a monthly series.

    All four series share the source PeriodIndex; observed equals
    trend + seasonal + remainder at every period.
    """

    observed: pd.Series
    trend: pd.Series
    seasonal: pd.Series
    remainder: pd.Series
    period: int

    @property
    def seasonal_strength(self) -> float:
        """
        Strength of seasonality, max(0, 1 - Var(R) / Var(S + R)).

        Values near 1 indicate a dominant seasonal pattern; values below about
        0.64 are usually treated as not seasonal enough to difference.
        """
        detrended = self.seasonal + self.remainder
        denom = float(np.var(detrended.to_numpy()))
        if denom <= 0.0:
            return 0.0
        return float(max(0.0, 1.0 - np.var(self.remainder.to_numpy()) / denom))

    @property
    def trend_strength(self) -> float:
        """Strength of trend, max(0, 1 - Var(R) / Var(T + R))."""
        deseasonal = self.trend + self.remainder
        denom = float(np.var(deseasonal.to_numpy()))
        if denom <= 0.0:
            return 0.0
        return float(max(0.0, 1.0 - np.var(self.remainder.to_numpy()) / denom))

    @property
    def seasonal_std(self) -> float:
        """Standard deviation of the seasonal component."""
        return float(np.std(self.seasonal.to_numpy(), ddof=1))

    def phase_profile(self) -> pd.Series:
        """Mean seasonal effect per phase (0..period-1)."""
        phases = seasonal_phase(self.seasonal.index, self.period)
        return self.seasonal.groupby(phases).mean()

    def reconstruct(self) -> pd.Series:
        return self.trend + self.seasonal + self.remainder

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "observed": self.observed,
            "trend": self.trend,
            "seasonal": self.seasonal,
            "remainder": self.remainder,
        })


def decompose(series: TimeSeries,
              period: Optional[int] = None,
              seasonal: Optional[int] = None,
              robust: Optional[bool] = None,
              inner_iter: int = 2,
              outer_iter: Optional[int] = None) -> Decomposition:
    """
    STL decomposition (iterated LOESS smoothing) of a dense monthly series.

    Each inner pass detrends the series, smooths every cycle-subseries (one
    per calendar month) to estimate the seasonal component, then re-estimates
    the trend on the seasonally adjusted series. The remainder is whatever
    trend and seasonal do not explain, so the split is exactly additive.

    Parameters
    ----------
    series : TimeSeries
        Series without missing periods.
    period : int, optional
        Seasonal cycle length (default from config, 12 for monthly/annual).
    seasonal : int, optional
        Odd LOESS window for the cycle-subseries smoother (default 7).
    robust : bool, optional
        Use robustness weights in outer passes.
    inner_iter : int, default=2
        Number of trend/seasonal refinement passes.
    outer_iter : int, optional
        Robustness passes (statsmodels default when None).

    Returns
    -------
    Decomposition

    Raises
    ------
    InsufficientDataError
        If fewer than two full seasonal cycles are available.
    MissingPeriodError
        If the series has gaps.
    """
    period = int(period or get_config_value("series.seasonal_period", 12))
    seasonal = int(seasonal or get_config_value("decomposition.seasonal", 7))
    if robust is None:
        robust = bool(get_config_value("decomposition.robust", False))

    values = series.values()
    if len(values) < 2 * period:
        raise InsufficientDataError(
            f"Decomposition needs at least {2 * period} periods (two cycles), got {len(values)}"
        )

    stl = STL(np.asarray(values, dtype=float), period=period, seasonal=seasonal, robust=robust)
    res = stl.fit(inner_iter=inner_iter, outer_iter=outer_iter)

    index = series.periods
    name = series.name
    observed = pd.Series(np.array(values, dtype=float), index=index, name=name)
    trend = pd.Series(np.asarray(res.trend, dtype=float), index=index, name="trend")
    seasonal_part = pd.Series(np.asarray(res.seasonal, dtype=float), index=index, name="seasonal")
    remainder = pd.Series(np.asarray(res.resid, dtype=float), index=index, name="remainder")

    result = Decomposition(
        observed=observed,
        trend=trend,
        seasonal=seasonal_part,
        remainder=remainder,
        period=period,
    )
    logger.info("Decomposed %s (n=%d, period=%d): seasonal strength=%.3f, trend strength=%.3f",
                name, len(values), period, result.seasonal_strength, result.trend_strength)
    return result
