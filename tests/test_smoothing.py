import numpy as np
import pandas as pd
import pytest

from handle_forecaster_src.candidate_utils import ModelFamily
from handle_forecaster_src.exceptions import ConvergenceFailure, InsufficientDataError
from handle_forecaster_src.forecasting_utils import Forecaster
from handle_forecaster_src.smoothing_utils import SmoothingModel, parse_variant, variant_label

from conftest import make_series


def test_variant_codes_map_to_ets_components():
    assert parse_variant("AAdA") == {"error": "add", "trend": "add", "damped_trend": True, "seasonal": "add"}
    assert parse_variant("ANN") == {"error": "add", "trend": None, "damped_trend": False, "seasonal": None}
    assert variant_label("AAdA") == "ETS(A,Ad,A)"
    with pytest.raises(ValueError):
        parse_variant("MAM")


def test_best_variant_is_chosen_by_aicc(seasonal_series):
    cand = SmoothingModel().fit(seasonal_series)
    assert cand.family is ModelFamily.SMOOTHING
    scores = cand.details["variant_scores"]
    assert len(scores) + len(cand.details["skipped"]) == 4
    assert cand.details["variant"] in scores
    assert cand.statistics.aicc == pytest.approx(min(scores.values()))
    assert cand.label.startswith("ETS(A,")


def test_seasonal_variants_need_two_cycles():
    short = make_series(n=18, slope=0.5, noise=0.5)
    model = SmoothingModel()
    with pytest.raises(InsufficientDataError):
        model.fit_variant(short, "AAA")
    cand = model.fit(short)
    assert cand.details["variant"] in {"ANN", "AAN"}
    assert "AAA" in cand.details["skipped"]
    assert "AAdA" in cand.details["skipped"]


def test_interval_variance_is_non_decreasing(seasonal_series):
    cand = SmoothingModel(variants=["AAA"]).fit(seasonal_series)
    projection = cand.project(24)
    assert len(projection.mean) == 24
    assert np.all(projection.variance > 0)
    assert np.all(np.diff(projection.variance) >= 0)


def test_seasonal_forecast_keeps_the_december_peak(seasonal_series):
    cand = SmoothingModel(variants=["AAA"]).fit(seasonal_series)
    mean = cand.project(12).mean
    assert int(np.argmax(mean)) == 11


def test_no_converged_variant_raises(seasonal_series, monkeypatch):
    def _fail(self, train, code):
        raise ConvergenceFailure(f"{code} did not converge")

    monkeypatch.setattr(SmoothingModel, "fit_variant", _fail)
    with pytest.raises(ConvergenceFailure):
        SmoothingModel().fit(seasonal_series)


def test_forecaster_builds_intervals_from_ets_prediction(seasonal_series):
    cand = SmoothingModel(variants=["AAA"]).fit(seasonal_series)
    fc = Forecaster(0.95).forecast(cand, 14)
    assert len(fc.point) == 14
    assert fc.periods[0] == pd.Period("2024-01", "M")
    assert np.all(np.isfinite(fc.lower)) and np.all(np.isfinite(fc.upper))
    assert np.all(np.diff(fc.widths) >= -1e-9)
