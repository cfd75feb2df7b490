import numpy as np
import pandas as pd
import pytest

from handle_forecaster_src.candidate_utils import ModelFamily
from handle_forecaster_src.exceptions import MissingPeriodError, SingularMatrixError
from handle_forecaster_src.forecasting_utils import Forecaster
from handle_forecaster_src.regression_utils import (
    LAG,
    RegressionModel,
    backward_eliminate,
    build_design,
    seasonal_dummy_names,
)
from handle_forecaster_src.series_utils import CovariateSeries

from conftest import make_series


def test_design_has_one_dummy_per_non_reference_month():
    periods = pd.period_range("2020-01", periods=24, freq="M")
    design = build_design(periods, trend_start=1, period=12)
    assert list(design.columns) == ["const", "trend"] + seasonal_dummy_names(12)
    assert design.loc[pd.Period("2020-01", "M"), seasonal_dummy_names(12)].sum() == 0.0
    assert design.loc[pd.Period("2020-12", "M"), "month_12"] == 1.0
    assert design["trend"].iloc[-1] == 24.0


def test_fit_reports_coefficients_and_statistics(seasonal_series):
    cand = RegressionModel(include_lag=False).fit(seasonal_series)
    assert cand.family is ModelFamily.REGRESSION
    coef = cand.coefficients
    assert list(coef.columns) == ["estimate", "std_error", "t_value", "p_value", "significant"]
    assert coef.loc["trend", "estimate"] == pytest.approx(1.0, abs=0.05)
    assert coef.loc["month_12", "estimate"] > 25.0
    assert cand.statistics.n_params == 14  # const, trend, 11 dummies, error variance
    assert cand.statistics.adjusted_r2 > 0.9
    assert np.isfinite(cand.statistics.aicc)
    np.testing.assert_allclose(cand.fitted + cand.residuals, seasonal_series.values())


def test_lagged_fit_leaves_first_period_unfitted(seasonal_series):
    cand = RegressionModel(include_lag=True).fit(seasonal_series)
    assert np.isnan(cand.fitted.iloc[0])
    assert LAG in cand.coefficients.index
    assert cand.details["include_lag"] is True
    assert cand.statistics.n_obs == len(seasonal_series) - 1


def test_collinear_covariate_raises_singular_matrix(seasonal_series):
    trend_copy = CovariateSeries(seasonal_series.periods, np.arange(1.0, len(seasonal_series) + 1), name="index")
    with pytest.raises(SingularMatrixError):
        RegressionModel(include_lag=False).fit(seasonal_series, [trend_copy])


def test_recursive_forecast_feeds_back_its_own_output(seasonal_series):
    train, test = seasonal_series.split(12)
    cand = RegressionModel(include_lag=True).fit(train)
    params = cand.params
    y_prev = train.values()[-1]
    expected = []
    for k, period in enumerate(test.periods, start=1):
        value = params["const"] + params["trend"] * (len(train) + k) + params[LAG] * y_prev
        if period.month != 1:
            value += params[f"month_{period.month:02d}"]
        expected.append(value)
        y_prev = value

    projection = cand.project(len(test))
    np.testing.assert_allclose(projection.mean, expected, rtol=1e-10)
    # The held-out truth never reaches the projector.
    assert not np.allclose(projection.mean, test.values())


def test_lag_variance_grows_with_horizon(seasonal_series):
    cand = RegressionModel(include_lag=True).fit(seasonal_series)
    projection = cand.project(24)
    rho = cand.params[LAG]
    sigma2 = cand.statistics.residual_variance
    assert projection.variance[0] == pytest.approx(sigma2)
    assert projection.variance[1] == pytest.approx(sigma2 * (1 + rho ** 2))
    assert np.all(np.diff(projection.variance) >= 0)


def test_covariates_supply_future_values(seasonal_series):
    rng = np.random.default_rng(4)
    n = len(seasonal_series)
    promo_values = rng.normal(size=n + 6)
    promo = CovariateSeries(pd.period_range(seasonal_series.start, periods=n + 6, freq="M"), promo_values, name="promo")
    cand = RegressionModel(include_lag=False).fit(seasonal_series, [promo])
    assert "promo" in cand.coefficients.index

    fc = Forecaster(0.95).forecast(cand, 6)
    assert len(fc) == 6
    with pytest.raises(MissingPeriodError):
        cand.project(7)


def test_covariates_without_future_values_cannot_forecast(seasonal_series):
    promo = CovariateSeries(seasonal_series.periods, np.linspace(0, 1, len(seasonal_series)) ** 2, name="promo")
    cand = RegressionModel(include_lag=False).fit(seasonal_series, [promo])
    with pytest.raises(MissingPeriodError):
        cand.project(3)
    future = pd.DataFrame({"promo": [1.0, 1.1, 1.2]},
                          index=pd.period_range(seasonal_series.end + 1, periods=3, freq="M"))
    assert len(cand.project(3, future).mean) == 3


def test_drop_terms_refits_without_them(seasonal_series):
    cand = RegressionModel(include_lag=True, drop_terms=[LAG]).fit(seasonal_series)
    assert LAG not in cand.coefficients.index
    assert cand.details["dropped_terms"] == [LAG]
    with pytest.raises(ValueError):
        RegressionModel(drop_terms=["nonexistent"]).fit(seasonal_series)
    with pytest.raises(ValueError):
        RegressionModel(drop_terms=["const"])


def test_backward_elimination_leaves_only_significant_eligible_terms():
    series = make_series(n=72, slope=0.8, spike=25.0, noise=2.0, seed=21)
    rng = np.random.default_rng(9)
    noise_cov = CovariateSeries(series.periods, rng.normal(size=len(series)), name="noise")
    model = RegressionModel(include_lag=True)
    cand = backward_eliminate(series, [noise_cov], model)
    dummies = set(seasonal_dummy_names(12))
    remaining = [t for t in model.insignificant_terms(cand) if t not in dummies]
    assert remaining == []
    assert "const" in cand.coefficients.index
    assert dummies.issubset(set(cand.coefficients.index))
