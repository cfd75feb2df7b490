# handle_forecaster_src/metrics_utils.py

import logging
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd

from .exceptions import RangeError

logger = logging.getLogger(__name__)

ArrayLike = Union[List[float], np.ndarray, pd.Series]


def _paired(y_true: ArrayLike, y_hat: ArrayLike):
    """Align two sequences pairwise and keep positions where both are finite."""
    yt = np.asarray(y_true, dtype=float).ravel()
    yh = np.asarray(y_hat, dtype=float).ravel()
    n = min(len(yt), len(yh))
    yt, yh = yt[:n], yh[:n]
    mask = np.isfinite(yt) & np.isfinite(yh)
    return yt[mask], yh[mask]


def mape_epsilon_from_train(y_train: Optional[ArrayLike]) -> float:
    """
    Epsilon for stabilized MAPE: the 10th percentile of absolute training values.

    Returns 1e-8 when no training data is available.
    """
    if y_train is None:
        return 1e-8
    arr = np.asarray(y_train, dtype=float).ravel()
    arr = arr[np.isfinite(arr)]
    if arr.size == 0:
        return 1e-8
    return float(max(1e-8, np.percentile(np.abs(arr), 10.0)))


def mape_eps(y_true: ArrayLike, y_hat: ArrayLike, eps: float) -> float:
    """
    Mean absolute percentage error with a floor on the denominator.

    Returns
    -------
    float
        MAPE as percentage, or NaN if no valid pairs
    """
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    denom = np.maximum(np.abs(yt), eps)
    return float(np.mean(np.abs(yh - yt) / denom) * 100.0)


def smape(y_true: ArrayLike, y_hat: ArrayLike, eps: float = 1e-12) -> float:
    """Symmetric MAPE as percentage (0-200), or NaN if no valid pairs."""
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    denom = np.maximum(np.abs(yt) + np.abs(yh), eps)
    return float(np.mean(2.0 * np.abs(yh - yt) / denom) * 100.0)


def mae(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    return float(np.mean(np.abs(yh - yt)))


def rmse(y_true: ArrayLike, y_hat: ArrayLike) -> float:
    yt, yh = _paired(y_true, y_hat)
    if yt.size == 0:
        return float("nan")
    return float(np.sqrt(np.mean((yh - yt) ** 2)))


def compute_metrics(y_true: ArrayLike,
                    y_hat: ArrayLike,
                    y_train: Optional[ArrayLike] = None) -> Dict[str, float]:
    """
    Point-forecast accuracy metrics.

    Parameters
    ----------
    y_true : array-like
        Actual values
    y_hat : array-like
        Predicted values, paired positionally with ``y_true``
    y_train : array-like, optional
        Training data used to stabilize the MAPE denominator

    Returns
    -------
    Dict[str, float]
        ME, MAE, RMSE, MAPE, sMAPE and the number of pairs ``n``
    """
    yt, yh = _paired(y_true, y_hat)
    eps = mape_epsilon_from_train(y_train)
    err = yh - yt
    return {
        "n": int(yt.size),
        "ME": float(np.mean(err)) if yt.size else float("nan"),
        "MAE": mae(yt, yh),
        "RMSE": rmse(yt, yh),
        "MAPE": mape_eps(yt, yh, eps),
        "sMAPE": smape(yt, yh),
    }


def evaluate_forecast(forecast, actual, y_train: Optional[ArrayLike] = None) -> Dict[str, float]:
    """
    Score a forecast against realised values by period.

    Parameters
    ----------
    forecast : Forecast
    actual : TimeSeries
        Realised values; only periods shared with the forecast are scored.
    y_train : array-like, optional
        Training values for the MAPE epsilon.

    Returns
    -------
    Dict[str, float]
        ``compute_metrics`` output plus ``hit_rate``: the share of actuals
        that fall inside the forecast interval.

    Raises
    ------
    RangeError
        If the forecast and actual share no periods.
    """
    fc = forecast.to_frame()
    realised = actual.to_series(allow_missing=True)
    common = fc.index.intersection(realised.index)
    if len(common) == 0:
        raise RangeError(
            f"Forecast {fc.index[0]}..{fc.index[-1]} does not overlap actual {actual.start}..{actual.end}"
        )
    y = realised.reindex(common).to_numpy(dtype=float)
    point = fc.loc[common, "forecast"].to_numpy(dtype=float)
    lower = fc.loc[common].iloc[:, 1].to_numpy(dtype=float)
    upper = fc.loc[common].iloc[:, 2].to_numpy(dtype=float)

    metrics = compute_metrics(y, point, y_train)
    finite = np.isfinite(y)
    inside = (y[finite] >= lower[finite]) & (y[finite] <= upper[finite])
    metrics["hit_rate"] = float(inside.mean()) if inside.size else float("nan")
    logger.debug("Holdout over %d periods: MAE=%.3f RMSE=%.3f hit rate=%.2f",
                 metrics["n"], metrics["MAE"], metrics["RMSE"], metrics["hit_rate"])
    return metrics
