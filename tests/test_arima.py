import numpy as np
import pytest

from handle_forecaster_src.arima_utils import SEARCH_COLUMNS, SeasonalArimaModel, arima_label, integrated_psi_weights
from handle_forecaster_src.candidate_utils import ModelFamily
from handle_forecaster_src.exceptions import ConvergenceFailure, InsufficientDataError

from conftest import make_series


def _small(**kwargs):
    return SeasonalArimaModel(max_p=1, max_q=1, max_P=1, max_Q=1, **kwargs)


def test_label_format():
    assert arima_label((1, 0, 1, 1), 1, 1, 12) == "SARIMA(1,1,0)(1,1,1,12)"


def test_random_walk_psi_weights_are_all_one():
    psi = integrated_psi_weights(np.array([]), np.array([]), np.array([]), np.array([]),
                                 d=1, D=0, period=12, horizon=6)
    np.testing.assert_allclose(psi, np.ones(6))
    variance = 2.0 * np.cumsum(psi ** 2)
    np.testing.assert_allclose(variance, 2.0 * np.arange(1, 7))


def test_seasonal_difference_psi_weights_step_once_per_cycle():
    psi = integrated_psi_weights(np.array([]), np.array([]), np.array([]), np.array([]),
                                 d=0, D=1, period=4, horizon=9)
    np.testing.assert_allclose(psi, [1, 0, 0, 0, 1, 0, 0, 0, 1])


def test_fit_on_seasonal_series(seasonal_series):
    cand = _small().fit(seasonal_series)
    assert cand.family is ModelFamily.SEASONAL_ARIMA
    assert cand.label.startswith("SARIMA(")
    assert cand.details["seasonal_order"][1] == 1  # strong seasonality forces one seasonal difference
    assert cand.details["search"] == "stepwise"
    assert np.isfinite(cand.statistics.aicc)
    assert "sigma2" in cand.params
    assert cand.statistics.n_params == len(cand.params)


def test_interval_variance_is_non_decreasing(seasonal_series):
    cand = _small().fit(seasonal_series)
    projection = cand.project(24)
    assert len(projection.mean) == 24
    assert np.all(np.isfinite(projection.mean))
    assert np.all(np.diff(projection.variance) >= 0)


def test_search_table_is_ranked_by_aicc(seasonal_series):
    table = _small().search(seasonal_series)
    assert list(table.columns) == SEARCH_COLUMNS
    aicc = table["AICc"].to_numpy()
    assert np.all(np.diff(aicc[np.isfinite(aicc)]) >= 0)


def test_grid_search_chooses_the_top_ranked_order(seasonal_series):
    cand = _small(search="grid").fit(seasonal_series)
    table = cand.details["search_table"]
    assert len(table) <= 16
    p, q, P, Q = table.iloc[0]["(p,q,P,Q)"]
    assert cand.details["order"][0] == p and cand.details["order"][2] == q
    assert cand.details["seasonal_order"][0] == P and cand.details["seasonal_order"][2] == Q
    assert cand.statistics.aicc == pytest.approx(table.iloc[0]["AICc"])


def test_fixed_differencing_is_respected(seasonal_series):
    cand = _small(d=1, D=0).fit(seasonal_series)
    assert cand.details["order"][1] == 1
    assert cand.details["seasonal_order"][1] == 0
    assert cand.details["seasonal_strength"] is None
    assert cand.details["trend"] == "c"


def test_fixed_d_holds_when_seasonal_order_is_chosen(seasonal_series):
    model = _small(d=1)
    d, D, strength = model.choose_differencing(seasonal_series)
    assert d == 1
    assert strength is not None
    cand = model.fit(seasonal_series)
    assert cand.details["order"][1] == 1


def test_short_series_is_rejected():
    with pytest.raises(InsufficientDataError):
        _small().fit(make_series(n=20))


def test_unknown_search_strategy_is_rejected():
    with pytest.raises(ValueError):
        SeasonalArimaModel(search="random")


def test_no_fittable_order_raises(seasonal_series, monkeypatch):
    def _fail(self, w, order, trend):
        raise ConvergenceFailure("no")

    monkeypatch.setattr(SeasonalArimaModel, "fit_order", _fail)
    with pytest.raises(ConvergenceFailure):
        _small().fit(seasonal_series)
