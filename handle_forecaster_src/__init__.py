# handle_forecaster_src/__init__.py

"""
Handle Forecaster - monthly time series forecasting package

Decomposes a monthly handle series, fits competing model families
(regression, exponential smoothing, seasonal ARIMA), selects one by
information criterion, forecasts with intervals, and derives a recurring
event's amount from historical event/period ratios.

Key Components
--------------
- series_utils: Immutable monthly series and covariate alignment
- decomposition_utils: STL trend/seasonal/remainder split
- transform_utils: Differencing, re-integration and ADF checks
- candidate_utils: Shared fitted-model representation and ranking
- regression_utils / smoothing_utils / arima_utils: Model families
- selection_utils: Cross-family selection with residual diagnostics
- forecasting_utils: Forecasts with Gaussian intervals
- ratio_utils: Event/period ratio extrapolation
- metrics_utils: Holdout accuracy metrics
- config_utils: Configuration management and CLI override support
- main: Command-line entry point

Usage
-----
    # Command-line usage
    python -m handle_forecaster_src.main --series-csv data/handle.csv --horizon 14

    # Programmatic usage
    from handle_forecaster_src import TimeSeries, ModelSelector, Forecaster
"""

__version__ = "1.0.0"
__author__ = "Handle Forecaster Development Team"

from .config_utils import initialize_config, get_config_value
from .series_utils import TimeSeries, CovariateSeries, align_covariates
from .decomposition_utils import Decomposition, decompose
from .candidate_utils import ModelCandidate, ModelFamily, FitStatistics
from .regression_utils import RegressionModel, backward_eliminate
from .smoothing_utils import SmoothingModel
from .arima_utils import SeasonalArimaModel
from .selection_utils import ModelSelector, SelectionResult
from .forecasting_utils import Forecaster, Forecast
from .ratio_utils import EventRatioEstimator, EventOccurrence, EventEstimate, occurrences_from_series
from .metrics_utils import compute_metrics, evaluate_forecast
from .main import main

__all__ = [
    "main",
    "initialize_config",
    "get_config_value",
    "TimeSeries",
    "CovariateSeries",
    "align_covariates",
    "Decomposition",
    "decompose",
    "ModelCandidate",
    "ModelFamily",
    "FitStatistics",
    "RegressionModel",
    "backward_eliminate",
    "SmoothingModel",
    "SeasonalArimaModel",
    "ModelSelector",
    "SelectionResult",
    "Forecaster",
    "Forecast",
    "EventRatioEstimator",
    "EventOccurrence",
    "EventEstimate",
    "occurrences_from_series",
    "compute_metrics",
    "evaluate_forecast",
    "__version__",
    "__author__",
]
