# handle_forecaster_src/ratio_utils.py

"""
Estimate a recurring event's amount from a period forecast.

Each past occurrence gives a ratio of event amount to the total of the
period containing it. The ratio is extrapolated one occurrence ahead and
multiplied by the forecast for the target period. With two occurrences this
is a straight continuation of the last change; with more, a least-squares
line through the ratios. Either way the estimate is fragile to regime
changes between occurrences.
"""

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import linregress

from helpers.temporal import to_month

from .exceptions import DivisionByZeroError, InsufficientDataError, RangeError
from .series_utils import TimeSeries

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventOccurrence:
    """One past occurrence: the event amount and the total of its period."""

    period: pd.Period
    event_amount: float
    period_total: Optional[float]

    def __post_init__(self):
        object.__setattr__(self, "period", to_month(self.period))

    @property
    def ratio(self) -> float:
        total = self.period_total
        if total is None or not np.isfinite(total) or total == 0:
            raise DivisionByZeroError(
                f"Period total for {self.period} is {total!r}; cannot form an event ratio"
            )
        return float(self.event_amount) / float(total)


@dataclass(frozen=True)
class EventEstimate:
    """Event estimate plus every value used to derive it."""

    target_period: pd.Period
    forecast_value: float
    ratios: Tuple[float, ...]
    ratio_change: float
    projected_ratio: float
    estimate: float
    method: str

    def as_dict(self) -> dict:
        return {
            "target_period": str(self.target_period),
            "forecast_value": self.forecast_value,
            "ratios": list(self.ratios),
            "ratio_change": self.ratio_change,
            "projected_ratio": self.projected_ratio,
            "estimate": self.estimate,
            "method": self.method,
        }


class EventRatioEstimator:
    """Project the event/period ratio one occurrence ahead and scale the forecast."""

    def project_ratio(self, occurrences: Sequence[EventOccurrence]) -> Tuple[Tuple[float, ...], float, float, str]:
        """
        Returns
        -------
        Tuple
            (ratios in period order, change per occurrence, projected ratio, method)

        Raises
        ------
        InsufficientDataError
            If fewer than two occurrences are given.
        DivisionByZeroError
            If any period total is zero or missing.
        """
        if len(occurrences) < 2:
            raise InsufficientDataError(
                f"Ratio extrapolation needs at least two occurrences, got {len(occurrences)}"
            )
        ordered = sorted(occurrences, key=lambda o: o.period)
        ratios = tuple(o.ratio for o in ordered)

        if len(ratios) == 2:
            change = ratios[1] - ratios[0]
            return ratios, change, ratios[1] + change, "last_change"

        steps = np.arange(len(ratios), dtype=float)
        fit = linregress(steps, np.asarray(ratios, dtype=float))
        projected = float(fit.intercept + fit.slope * len(ratios))
        return ratios, float(fit.slope), projected, "linear_trend"

    def estimate(self, forecast_value: float, occurrences: Sequence[EventOccurrence],
                 target_period=None) -> EventEstimate:
        """
        Multiply ``forecast_value`` by the projected ratio.

        Parameters
        ----------
        forecast_value : float
            Point forecast for the period containing the next occurrence.
        occurrences : Sequence[EventOccurrence]
            At least two past occurrences, any order.
        target_period : optional
            Period of the next occurrence, for reporting.
        """
        ratios, change, projected, method = self.project_ratio(occurrences)
        if not 0.0 <= projected <= 1.0:
            logger.warning("Projected event ratio %.4f lies outside [0, 1]; check for a regime change", projected)
        value = float(forecast_value) * projected
        result = EventEstimate(
            target_period=to_month(target_period) if target_period is not None else None,
            forecast_value=float(forecast_value),
            ratios=ratios,
            ratio_change=change,
            projected_ratio=projected,
            estimate=value,
            method=method,
        )
        logger.info("Event estimate %.2f = %.2f x %.4f (ratios %s, %s)",
                    value, forecast_value, projected, ", ".join(f"{r:.4f}" for r in ratios), method)
        return result

    def estimate_from_forecast(self, forecast, target_period,
                               occurrences: Sequence[EventOccurrence]) -> EventEstimate:
        """
        Estimate using the forecast's point value at ``target_period``.

        Raises
        ------
        RangeError
            If ``target_period`` is not among the forecast periods.
        """
        return self.estimate(forecast.point_at(target_period), occurrences, target_period=target_period)


def occurrences_from_series(series: TimeSeries, events: Mapping) -> List[EventOccurrence]:
    """
    Build occurrences taking each period total from ``series``.

    Parameters
    ----------
    series : TimeSeries
        Series holding the period totals.
    events : Mapping
        ``{period: event_amount}``.

    Raises
    ------
    DivisionByZeroError
        If an event period has no value in the series.
    """
    occurrences = []
    for period, amount in events.items():
        try:
            total = series.value_at(period)
        except RangeError as e:
            raise DivisionByZeroError(f"No period total for event at {to_month(period)}: {e}") from e
        occurrences.append(EventOccurrence(period=period, event_amount=float(amount), period_total=total))
    return occurrences
