import numpy as np
import pandas as pd
import pytest

from handle_forecaster_src import config_utils
from handle_forecaster_src.candidate_utils import FitStatistics, ModelCandidate, ModelFamily, Projection
from handle_forecaster_src.series_utils import TimeSeries


@pytest.fixture(autouse=True)
def _no_global_config():
    """Every test starts and ends with code defaults (no YAML loaded)."""
    config_utils.reset_config()
    yield
    config_utils.reset_config()


def make_series(n=84, start="2017-01", slope=1.0, level=100.0, amplitude=0.0,
                spike=0.0, noise=1.0, seed=7, name="handle") -> TimeSeries:
    """
    Synthetic monthly series.

    value(t) = level + slope*t + amplitude*sin(2*pi*t/12) + spike*(t % 12 == 0) + noise
    with t = 1..n.
    """
    rng = np.random.default_rng(seed)
    t = np.arange(1, n + 1, dtype=float)
    values = (level + slope * t
              + amplitude * np.sin(2.0 * np.pi * t / 12.0)
              + spike * ((t % 12 == 0).astype(float) - 1.0 / 12.0)
              + rng.normal(0.0, noise, size=n))
    index = pd.period_range(start=start, periods=n, freq="M")
    return TimeSeries(index, values, name=name)


def make_candidate(label="stub", aicc=10.0, n_params=3, residuals=None, n=48,
                   family=ModelFamily.REGRESSION, adjusted_r2=0.5) -> ModelCandidate:
    """Hand-built candidate with a flat projection, for selection tests."""
    periods = pd.period_range("2019-01", periods=n, freq="M")
    resid = np.zeros(n) if residuals is None else np.asarray(residuals, dtype=float)
    stats = FitStatistics(
        log_likelihood=-aicc / 2.0,
        aic=aicc,
        aicc=aicc,
        bic=aicc,
        adjusted_r2=adjusted_r2,
        residual_variance=1.0,
        n_obs=n,
        n_params=n_params,
    )
    return ModelCandidate(
        family=family,
        label=label,
        params={"level": 100.0},
        periods=periods,
        fitted_values=np.full(n, 100.0),
        residual_values=resid,
        statistics=stats,
        projector=lambda h, cov=None: Projection(mean=np.full(h, 100.0), variance=np.arange(1, h + 1, dtype=float)),
    )


class StubModel:
    """Model double exposing the family/fit interface."""

    def __init__(self, family, outcome):
        self.family = family
        self.outcome = outcome

    def fit(self, train, covariates=None):
        if isinstance(self.outcome, Exception):
            raise self.outcome
        if callable(self.outcome):
            return self.outcome()
        return self.outcome


@pytest.fixture
def seasonal_series():
    """84 months, upward trend, December spike of about 30."""
    return make_series(n=84, slope=1.0, spike=30.0, noise=1.0, seed=11)


@pytest.fixture
def sine_series():
    """96 months, gentle trend plus a 10-unit annual sine."""
    return make_series(n=96, slope=0.3, amplitude=10.0, noise=0.5, seed=3)
