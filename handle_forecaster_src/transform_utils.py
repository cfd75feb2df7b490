# handle_forecaster_src/transform_utils.py

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from statsmodels.tsa.stattools import adfuller

from .exceptions import InsufficientDataError, NonStationarityError

logger = logging.getLogger(__name__)

MIN_ADF_OBS = 12


def differencing_lags(d: int, D: int, period: int) -> List[int]:
    """
    Lags applied by a (d, D, period) differencing plan, in application order.

    Seasonal differences are applied first, then ordinary first differences.
    """
    if d < 0 or D < 0:
        raise ValueError(f"Differencing orders must be non-negative, got d={d}, D={D}")
    return [int(period)] * int(D) + [1] * int(d)


@dataclass(frozen=True)
class DifferencedSeries:
    """
    Result of applying a differencing plan.

    Attributes
    ----------
    differenced : np.ndarray
        Final differenced values (length n - sum(lags)).
    levels : Tuple[np.ndarray, ...]
        Intermediate series before each differencing step; ``levels[0]`` is
        the original series.
    lags : Tuple[int, ...]
        Lag of each step, aligned with ``levels``.
    """

    differenced: np.ndarray
    levels: Tuple[np.ndarray, ...]
    lags: Tuple[int, ...]

    @property
    def n_lost(self) -> int:
        return int(sum(self.lags))

    def invert(self, differenced: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Re-integrate differenced values back to the original scale.

        Uses the first ``lag`` values of each intermediate level as the
        starting conditions, so ``invert()`` reproduces ``levels[0]``.
        """
        out = np.asarray(self.differenced if differenced is None else differenced, dtype=float)
        for lag, level in zip(reversed(self.lags), reversed(self.levels)):
            restored = np.empty(len(out) + lag, dtype=float)
            restored[:lag] = level[:lag]
            for t in range(lag, len(restored)):
                restored[t] = restored[t - lag] + out[t - lag]
            out = restored
        return out

    def integrate_forecast(self, forecast: Sequence[float]) -> np.ndarray:
        """
        Carry forecasts made on the differenced scale back to the original scale.

        Each step undoes one differencing operation in reverse order, seeding
        the recursion with the last ``lag`` observed values of that level. No
        value after the end of the history is used.
        """
        out = np.asarray(forecast, dtype=float)
        for lag, level in zip(reversed(self.lags), reversed(self.levels)):
            extended = np.empty(lag + len(out), dtype=float)
            extended[:lag] = level[-lag:]
            for i in range(len(out)):
                extended[lag + i] = extended[i] + out[i]
            out = extended[lag:]
        return out


def difference(values: Union[Sequence[float], np.ndarray, pd.Series],
               d: int = 0,
               D: int = 0,
               period: int = 12) -> DifferencedSeries:
    """
    Apply D seasonal differences (lag=period) then d first differences.

    Parameters
    ----------
    values : array-like
        Dense series without NaNs.
    d : int
        Non-seasonal differencing order.
    D : int
        Seasonal differencing order.
    period : int
        Seasonal lag.

    Returns
    -------
    DifferencedSeries

    Raises
    ------
    InsufficientDataError
        If differencing would leave no observations.
    """
    arr = np.asarray(values, dtype=float).ravel()
    if np.isnan(arr).any():
        raise ValueError("Cannot difference a series containing missing values")
    lags = differencing_lags(d, D, period)
    if sum(lags) >= len(arr):
        raise InsufficientDataError(
            f"Differencing with lags {lags} needs more than {sum(lags)} observations, got {len(arr)}"
        )
    levels: List[np.ndarray] = []
    current = arr
    for lag in lags:
        levels.append(current)
        current = current[lag:] - current[:-lag]
    return DifferencedSeries(differenced=current, levels=tuple(levels), lags=tuple(lags))


def adf_test(series: Union[pd.Series, np.ndarray]) -> Tuple[float, float]:
    """
    Run the Augmented Dickey-Fuller (ADF) test for unit roots.

    Returns
    -------
    Tuple[float, float]
        (test_statistic, p_value)

    Notes
    -----
    - ADF null hypothesis: the series has a unit root (non-stationary)
    - Lower p-values (< 0.05) suggest rejection of null (series is stationary)
    """
    res = adfuller(pd.Series(series).dropna(), autolag="AIC")
    return float(res[0]), float(res[1])


def safe_adf_pval(series: Union[pd.Series, np.ndarray]) -> float:
    """
    ADF p-value, or NaN when the series is too short or constant.

    Requires at least 12 observations to perform the test reliably.
    """
    s = pd.Series(series).dropna()
    if len(s) < MIN_ADF_OBS:
        return float("nan")
    if float(np.ptp(s.to_numpy())) == 0.0:
        # A constant series is trivially stationary; adfuller cannot invert it.
        return 0.0
    try:
        return adf_test(s)[1]
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.debug("ADF test failed: %s", e)
        return float("nan")


def is_stationary(series: Union[pd.Series, np.ndarray], alpha: float = 0.05) -> bool:
    """ADF rejects the unit-root null at level ``alpha``."""
    p = safe_adf_pval(series)
    return bool(np.isfinite(p) and p < alpha)


def select_differencing(values: Union[Sequence[float], np.ndarray],
                        period: int = 12,
                        seasonal_start: int = 0,
                        max_d: int = 2,
                        max_D: int = 1,
                        alpha: float = 0.05,
                        min_d: int = 0) -> Tuple[int, int]:
    """
    Choose (d, D) by differencing until the ADF check passes.

    Seasonal orders are tried from ``seasonal_start`` up to ``max_D``; for
    each, d is raised from ``min_d`` to ``max_d``. The first combination whose
    differenced series is stationary wins.

    Parameters
    ----------
    values : array-like
        Dense series.
    period : int
        Seasonal lag.
    seasonal_start : int
        Initial seasonal order, typically 1 when seasonal strength is high.
    max_d, max_D : int
        Maximum differencing orders.
    min_d : int
        Smallest non-seasonal order tried; equal to ``max_d`` pins d.
    alpha : float
        ADF significance level.

    Returns
    -------
    Tuple[int, int]
        (d, D)

    Raises
    ------
    NonStationarityError
        If no combination within the limits passes the check.
    """
    arr = np.asarray(values, dtype=float)
    tried: List[Tuple[int, int, float]] = []
    for D in range(min(seasonal_start, max_D), max_D + 1):
        for d in range(min_d, max_d + 1):
            lags = differencing_lags(d, D, period)
            if len(arr) - sum(lags) < MIN_ADF_OBS:
                continue
            diffed = difference(arr, d=d, D=D, period=period).differenced
            p = safe_adf_pval(diffed)
            tried.append((d, D, p))
            logger.debug("ADF after d=%d, D=%d: p=%.4f", d, D, p)
            if np.isfinite(p) and p < alpha:
                return d, D
    raise NonStationarityError(
        f"No differencing up to d={max_d}, D={max_D} passed the ADF check at alpha={alpha}; "
        f"tried (d, D, p): {tried}"
    )
