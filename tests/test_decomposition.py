import numpy as np
import pytest

from handle_forecaster_src.decomposition_utils import decompose
from handle_forecaster_src.exceptions import InsufficientDataError, MissingPeriodError
from handle_forecaster_src.series_utils import TimeSeries

from conftest import make_series


def test_components_add_back_to_the_observed_series(seasonal_series):
    dec = decompose(seasonal_series)
    np.testing.assert_allclose(dec.reconstruct().to_numpy(), seasonal_series.values(), rtol=1e-6)
    assert dec.trend.index.equals(seasonal_series.periods)
    assert list(dec.to_frame().columns) == ["observed", "trend", "seasonal", "remainder"]


def test_seasonal_peaks_match_injected_sine(sine_series):
    dec = decompose(sine_series)
    seasonal = dec.seasonal.to_numpy()
    # sin(2*pi*t/12) with t starting at 1 peaks at position 2 of every 12-month cycle.
    for cycle in range(len(seasonal) // 12):
        window = seasonal[cycle * 12:(cycle + 1) * 12]
        assert abs(int(np.argmax(window)) - 2) <= 1


def test_strong_seasonality_is_reported(seasonal_series):
    dec = decompose(seasonal_series)
    assert dec.seasonal_strength > 0.64
    assert 0.0 <= dec.trend_strength <= 1.0
    assert dec.seasonal_std > 5.0
    profile = dec.phase_profile()
    assert len(profile) == 12
    assert int(profile.idxmax()) == 11  # December


def test_fewer_than_two_cycles_is_rejected():
    with pytest.raises(InsufficientDataError):
        decompose(make_series(n=20))


def test_gaps_are_not_silently_filled():
    ts = make_series(n=36)
    values = np.array(ts.values(), dtype=float)
    values[10] = np.nan
    with pytest.raises(MissingPeriodError):
        decompose(TimeSeries(ts.periods, values, name=ts.name))
