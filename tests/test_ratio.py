import logging

import numpy as np
import pandas as pd
import pytest

from handle_forecaster_src.exceptions import DivisionByZeroError, InsufficientDataError, RangeError
from handle_forecaster_src.ratio_utils import EventOccurrence, EventRatioEstimator, occurrences_from_series
from handle_forecaster_src.series_utils import TimeSeries

from conftest import make_candidate


def _occ(period, amount, total):
    return EventOccurrence(period=period, event_amount=amount, period_total=total)


def test_two_occurrences_continue_the_last_change():
    occurrences = [_occ("2022-02", 100.0, 1000.0), _occ("2023-02", 120.0, 1000.0)]
    est = EventRatioEstimator().estimate(1000.0, occurrences, target_period="2024-02")
    assert est.ratios == pytest.approx((0.10, 0.12))
    assert est.ratio_change == pytest.approx(0.02)
    assert est.projected_ratio == pytest.approx(0.14)
    assert est.estimate == pytest.approx(140.0)
    assert est.method == "last_change"
    assert est.target_period == pd.Period("2024-02", "M")


def test_three_occurrences_fit_a_line():
    occurrences = [_occ("2021-02", 10.0, 100.0), _occ("2022-02", 12.0, 100.0), _occ("2023-02", 14.0, 100.0)]
    est = EventRatioEstimator().estimate(200.0, occurrences)
    assert est.method == "linear_trend"
    assert est.projected_ratio == pytest.approx(0.16)
    assert est.estimate == pytest.approx(32.0)


def test_occurrence_order_does_not_matter():
    ordered = [_occ("2022-02", 100.0, 1000.0), _occ("2023-02", 120.0, 1000.0)]
    shuffled = list(reversed(ordered))
    estimator = EventRatioEstimator()
    assert estimator.estimate(500.0, shuffled).estimate == pytest.approx(estimator.estimate(500.0, ordered).estimate)


@pytest.mark.parametrize("total", [0.0, None, float("nan")])
def test_unusable_period_total_raises(total):
    occurrences = [_occ("2022-02", 100.0, total), _occ("2023-02", 120.0, 1000.0)]
    with pytest.raises(DivisionByZeroError):
        EventRatioEstimator().estimate(1000.0, occurrences)


def test_single_occurrence_is_not_enough():
    with pytest.raises(InsufficientDataError):
        EventRatioEstimator().estimate(1000.0, [_occ("2023-02", 120.0, 1000.0)])


def test_ratio_outside_unit_interval_is_logged(caplog):
    occurrences = [_occ("2022-02", 900.0, 1000.0), _occ("2023-02", 1000.0, 1000.0)]
    with caplog.at_level(logging.WARNING, logger="handle_forecaster_src.ratio_utils"):
        est = EventRatioEstimator().estimate(1000.0, occurrences)
    assert est.projected_ratio == pytest.approx(1.1)
    assert "outside [0, 1]" in caplog.text


def test_occurrences_from_series_reads_period_totals():
    series = TimeSeries(pd.period_range("2022-01", periods=24, freq="M"), np.arange(1.0, 25.0))
    occurrences = occurrences_from_series(series, {"2022-02": 1.0, "2023-02": 2.0})
    assert [o.period_total for o in occurrences] == [2.0, 14.0]
    with pytest.raises(DivisionByZeroError):
        occurrences_from_series(series, {"2021-02": 1.0})


def test_estimate_from_forecast_requires_target_in_range():
    fc = make_candidate(n=48).forecast(12)
    occurrences = [_occ("2021-02", 10.0, 100.0), _occ("2022-02", 12.0, 100.0)]
    estimator = EventRatioEstimator()
    est = estimator.estimate_from_forecast(fc, "2023-02", occurrences)
    assert est.estimate == pytest.approx(100.0 * 0.14)
    with pytest.raises(RangeError):
        estimator.estimate_from_forecast(fc, "2024-02", occurrences)
