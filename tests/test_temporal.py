import datetime

import numpy as np
import pandas as pd

from helpers.temporal import month_range, seasonal_phase, to_month, to_month_index


def test_to_month_accepts_common_date_types():
    expected = pd.Period("2021-03", "M")
    assert to_month("2021-03-31") == expected
    assert to_month(datetime.date(2021, 3, 1)) == expected
    assert to_month(pd.Timestamp("2021-03-15 12:00")) == expected
    assert to_month(pd.Period("2021Q1", "Q")) == expected
    assert to_month(expected) is expected


def test_to_month_index_preserves_order_and_duplicates():
    idx = to_month_index(["2021-02-01", "2021-01-31", "2021-02-20"])
    assert list(idx.astype(str)) == ["2021-02", "2021-01", "2021-02"]
    dt = pd.date_range("2021-01-01", periods=3, freq="MS")
    assert to_month_index(dt).equals(pd.period_range("2021-01", periods=3, freq="M"))


def test_month_range_is_inclusive():
    idx = month_range("2020-11", "2021-02")
    assert list(idx.astype(str)) == ["2020-11", "2020-12", "2021-01", "2021-02"]


def test_seasonal_phase_is_calendar_month_for_annual_period():
    idx = pd.period_range("2020-11", periods=4, freq="M")
    np.testing.assert_array_equal(seasonal_phase(idx, 12), [10, 11, 0, 1])


def test_seasonal_phase_for_other_periods_cycles():
    idx = pd.period_range("2020-01", periods=8, freq="M")
    phases = seasonal_phase(idx, 4)
    assert set(phases) == {0, 1, 2, 3}
    np.testing.assert_array_equal(phases[:4], phases[4:])
