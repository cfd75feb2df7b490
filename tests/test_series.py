import numpy as np
import pandas as pd
import pytest

from handle_forecaster_src.exceptions import (
    CovariateAlignmentError,
    DuplicatePeriodError,
    MissingPeriodError,
    RangeError,
    SeriesIntegrityError,
)
from handle_forecaster_src.series_utils import CovariateSeries, TimeSeries, align_covariates


def _series(values, start="2020-01", name="handle"):
    idx = pd.period_range(start=start, periods=len(values), freq="M")
    return TimeSeries(idx, values, name=name)


def test_from_mapping_accepts_date_strings_and_timestamps():
    ts = TimeSeries.from_mapping({"2021-01-31": 1.0, pd.Timestamp("2021-02-15"): 2.0, "2021-03": 3.0})
    assert list(ts.periods.astype(str)) == ["2021-01", "2021-02", "2021-03"]
    assert ts.value_at("2021-02-01") == 2.0


def test_duplicate_periods_rejected():
    with pytest.raises(DuplicatePeriodError):
        TimeSeries.from_mapping({"2021-01-01": 1.0, "2021-01-20": 2.0})


def test_unsorted_and_infinite_values_rejected():
    idx = pd.PeriodIndex(["2021-02", "2021-01"], freq="M")
    with pytest.raises(SeriesIntegrityError):
        TimeSeries(idx, [1.0, 2.0])
    with pytest.raises(SeriesIntegrityError):
        _series([1.0, np.inf])


def test_missing_periods_detects_absent_and_marked_months():
    ts = TimeSeries.from_mapping({"2021-01": 1.0, "2021-02": np.nan, "2021-04": 4.0})
    assert ts.missing_periods() == {pd.Period("2021-02", "M"), pd.Period("2021-03", "M")}
    assert ts.has_gaps

    with pytest.raises(MissingPeriodError) as excinfo:
        ts.values()
    assert excinfo.value.missing == [pd.Period("2021-02", "M"), pd.Period("2021-03", "M")]


def test_fill_gaps_inserts_nan_markers_without_interpolating():
    ts = TimeSeries.from_mapping({"2021-01": 1.0, "2021-04": 4.0})
    filled = ts.fill_gaps()
    assert len(filled) == 4
    s = filled.to_series(allow_missing=True)
    assert s.isna().sum() == 2
    assert filled.missing_periods() == ts.missing_periods()


def test_values_are_read_only_and_to_series_is_a_copy():
    ts = _series([1.0, 2.0, 3.0])
    with pytest.raises(ValueError):
        ts.values()[0] = 99.0
    s = ts.to_series()
    s.iloc[0] = 99.0
    assert ts.value_at("2020-01") == 1.0


def test_slice_is_inclusive_and_bounds_checked():
    ts = _series(np.arange(12.0))
    part = ts.slice("2020-03", "2020-05")
    assert list(part.values()) == [2.0, 3.0, 4.0]
    assert part.start == pd.Period("2020-03", "M")

    with pytest.raises(RangeError):
        ts.slice("2019-12", "2020-05")
    with pytest.raises(RangeError):
        ts.slice("2020-06", "2020-05")
    with pytest.raises(RangeError):
        ts.value_at("2021-01")


def test_split_keeps_the_last_months_out():
    ts = _series(np.arange(24.0))
    train, test = ts.split(6)
    assert len(train) == 18 and len(test) == 6
    assert train.end + 1 == test.start
    same, none = ts.split(0)
    assert same is ts and none is None
    with pytest.raises(RangeError):
        ts.split(24)


def test_slicing_a_covariate_keeps_its_type():
    cov = CovariateSeries(pd.period_range("2020-01", periods=6, freq="M"), np.arange(6.0), name="promo")
    assert isinstance(cov.slice("2020-02", "2020-03"), CovariateSeries)


def test_align_covariates_keeps_future_values():
    target = _series(np.arange(12.0))
    cov = CovariateSeries(pd.period_range("2020-01", periods=15, freq="M"), np.arange(15.0) * 2, name="promo")
    frame = align_covariates(target, [cov])
    assert list(frame.columns) == ["promo"]
    assert len(frame) == 15
    assert frame.loc[pd.Period("2021-03", "M"), "promo"] == 28.0


def test_align_covariates_rejects_missing_target_period():
    target = _series(np.arange(12.0))
    cov = CovariateSeries.from_mapping(
        {str(p): 1.0 for p in pd.period_range("2020-01", periods=12, freq="M") if p.month != 5},
        name="promo",
    )
    with pytest.raises(CovariateAlignmentError):
        align_covariates(target, [cov])


def test_align_covariates_rejects_periods_before_target_start():
    target = _series(np.arange(12.0))
    cov = CovariateSeries(pd.period_range("2019-12", periods=13, freq="M"), np.ones(13), name="promo")
    with pytest.raises(CovariateAlignmentError):
        align_covariates(target, [cov])


def test_align_covariates_rejects_name_clash():
    target = _series(np.arange(12.0), name="promo")
    cov = CovariateSeries(target.periods, np.ones(12), name="promo")
    with pytest.raises(CovariateAlignmentError):
        align_covariates(target, [cov])
    assert align_covariates(target, None) is None


def test_from_series_and_head():
    raw = pd.Series([1.0, 2.0, 3.0], index=pd.date_range("2021-01-01", periods=3, freq="MS"), name="handle")
    ts = TimeSeries.from_series(raw)
    assert ts.name == "handle"
    assert ts.start == pd.Period("2021-01", "M")
    assert list(ts.head(2).values()) == [1.0, 2.0]
    with pytest.raises(RangeError):
        ts.head(4)
