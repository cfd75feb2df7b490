import numpy as np
import pandas as pd
import pytest

from diagnostics import DiagnosticTest, ResidualDiagnostics


def _seasonal_residuals(n=60):
    t = np.arange(1, n + 1)
    return pd.Series(3.0 * np.sin(2 * np.pi * t / 12))


def _report(residuals, model_name="model", lags=12):
    return ResidualDiagnostics(config={"ljung_box_lags": lags}).run_comprehensive_diagnostics(
        residuals, model_name=model_name
    )


def test_ljung_box_flags_seasonal_pattern():
    result = ResidualDiagnostics().ljung_box_test(_seasonal_residuals(), lags=12)
    assert result.test_type is DiagnosticTest.LJUNG_BOX
    assert result.is_significant
    assert result.degrees_of_freedom == 12
    assert "Serial correlation" in result.interpretation


def test_ljung_box_ignores_unfitted_leading_values():
    rng = np.random.default_rng(3)
    resid = pd.Series(np.r_[np.nan, rng.normal(size=80)])
    result = ResidualDiagnostics().ljung_box_test(resid, lags=12)
    assert np.isfinite(result.p_value)


def test_ljung_box_needs_more_points_than_lags():
    with pytest.raises(ValueError):
        ResidualDiagnostics().ljung_box_test(pd.Series(np.ones(12)), lags=12)


def test_comprehensive_report_structure():
    rng = np.random.default_rng(1)
    report = _report(pd.Series(rng.normal(size=96)), model_name="reg")
    assert report["model_name"] == "reg"
    assert report["n_residuals"] == 96
    assert set(report["test_results"]) == {"ljung_box", "jarque_bera", "shapiro_wilk"}
    assert set(report["summary_statistics"]) == {"mean", "std", "skewness", "kurtosis", "min", "max"}
    assert "overall_adequate" in report["overall_assessment"]


def test_seasonal_residuals_fail_adequacy():
    report = _report(_seasonal_residuals(), model_name="bad")
    assessment = report["overall_assessment"]
    assert assessment["overall_adequate"] is False
    assert "Serial correlation in residuals" in assessment["issues_detected"]


def test_heavy_tailed_residuals_warn_without_failing_adequacy():
    resid = np.zeros(96)
    resid[[10, 40, 70]] = [25.0, -30.0, 28.0]
    rng = np.random.default_rng(5)
    report = _report(pd.Series(resid + rng.normal(scale=0.1, size=96)))
    assert report["test_results"]["jarque_bera"].is_significant
    assert report["test_results"]["shapiro_wilk"].is_significant
    assert "Residuals not normally distributed" in report["overall_assessment"]["warnings"]


def test_short_residuals_skip_ljung_box():
    rng = np.random.default_rng(2)
    report = _report(pd.Series(rng.normal(size=10)))
    assert "ljung_box" not in report["test_results"]
    assert "jarque_bera" in report["test_results"]
