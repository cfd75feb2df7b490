# handle_forecaster_src/main.py

"""
Monthly handle forecasting: decomposition, model selection, forecast and
event estimate.

Purpose
-------
- Load a monthly handle series (and optional covariates) from CSV
- Decompose it into trend, seasonal and remainder components (STL)
- Fit regression, exponential smoothing and seasonal ARIMA candidates and
  rank them by the configured information criterion
- Forecast the requested horizon with the chosen candidate and Gaussian
  intervals
- Optionally estimate a recurring event's amount from historical
  event/period ratios, and score all candidates on a holdout window

Configuration-Driven Workflow
-----------------------------
Model settings live in config/forecast.yaml (or the file named by
HANDLE_FORECAST_CONFIG / --config). CLI arguments override configuration
values where applicable.
"""

import argparse
import logging
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config_utils import get_config_value, initialize_config, reset_config
from .data_utils import load_covariates_csv, load_series_csv, resolve_path, write_forecast_csv
from .decomposition_utils import decompose
from .exceptions import ForecastError
from .forecasting_utils import Forecaster
from .metrics_utils import evaluate_forecast
from .parsing_utils import parse_confidence, parse_events, validate_log_level
from .ratio_utils import EventRatioEstimator, occurrences_from_series
from .selection_utils import ModelSelector

logger = logging.getLogger(__name__)


def evaluate_candidates_on_holdout(ranking, train, test, confidence: float) -> Dict[str, Dict[str, float]]:
    """Forecast the holdout window with every ranked candidate and score it."""
    forecaster = Forecaster(confidence=confidence)
    results: Dict[str, Dict[str, float]] = {}
    for cand in ranking:
        fc = forecaster.forecast(cand, len(test))
        metrics = evaluate_forecast(fc, test, y_train=train.values())
        results[cand.label] = metrics
        logger.info("Holdout %s: MAE=%.3f RMSE=%.3f MAPE=%.2f%% hit rate=%.2f",
                    cand.label, metrics["MAE"], metrics["RMSE"], metrics["MAPE"], metrics["hit_rate"])
    return results


def run_forecast_workflow(args: argparse.Namespace, base_dir: Path) -> Dict[str, Any]:
    """
    Execute the end-to-end pipeline for one series.

    Workflow
    --------
    - Load the series (and covariates) and split off the holdout window
    - Decompose the training series and log seasonal/trend strength
    - Select a model across the three families
    - Forecast ``args.horizon`` periods past the training end
    - Score every candidate on the holdout window when requested
    - Estimate the event amount when ``--event`` values are given
    - Write the forecast table when ``--forecast-csv`` is given

    Returns
    -------
    Dict[str, Any]
        ``decomposition``, ``selection``, ``forecast``, ``holdout_metrics``
        and ``event_estimate`` (the last two may be None).
    """
    series = load_series_csv(resolve_path(args.series_csv, base_dir), value_col=args.value_col)
    covariates = None
    if args.covariates_csv:
        covariates = load_covariates_csv(resolve_path(args.covariates_csv, base_dir))

    train, test = series.split(args.holdout or 0)
    if test is not None:
        logger.info("Training on %s..%s, holding out %d period(s)", train.start, train.end, len(test))

    decomposition = decompose(train)
    logger.info("Seasonal std=%.3f", decomposition.seasonal_std)

    selector = ModelSelector(rule=get_config_value("selection.rule", "aicc", args, "selection_rule"))
    selection = selector.select(train, covariates)
    logger.info("Candidate scores (criteria use each family's own n_obs):\n%s", selection.scores_frame().to_string())
    for name, err in selection.failures.items():
        logger.warning("Family %s was not fitted: %s", name, err)

    confidence = parse_confidence(args.confidence, get_config_value("forecast.confidence", 0.95))
    forecast = Forecaster(confidence=confidence).forecast(selection.chosen, args.horizon)
    logger.info("Forecast:\n%s", forecast.to_frame().to_string())

    holdout_metrics = None
    if test is not None:
        holdout_metrics = evaluate_candidates_on_holdout(selection.ranking, train, test, confidence)

    event_estimate = None
    events = parse_events(args.event)
    if events:
        if not args.event_period:
            raise SystemExit("--event-period is required when --event values are given.")
        occurrences = occurrences_from_series(series, events)
        event_estimate = EventRatioEstimator().estimate_from_forecast(forecast, args.event_period, occurrences)
        logger.info("Event estimate for %s: %.2f (projected ratio %.4f)",
                    event_estimate.target_period, event_estimate.estimate, event_estimate.projected_ratio)

    if args.forecast_csv:
        write_forecast_csv(forecast.to_frame(), resolve_path(args.forecast_csv, base_dir))

    return {
        "decomposition": decomposition,
        "selection": selection,
        "forecast": forecast,
        "holdout_metrics": holdout_metrics,
        "event_estimate": event_estimate,
    }


def setup_cli_parser() -> argparse.ArgumentParser:
    """
    Set up the command-line argument parser.

    Returns
    -------
    argparse.ArgumentParser
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        description="Forecast a monthly handle series and estimate a recurring event's amount."
    )
    parser.add_argument(
        "--series-csv", type=str, required=True,
        help="CSV with a 'date' column and a value column (see --value-col)."
    )
    parser.add_argument(
        "--value-col", type=str, default="value",
        help="Name of the value column in --series-csv."
    )
    parser.add_argument(
        "--covariates-csv", type=str, default=None,
        help="Optional CSV with a 'date' column and one column per covariate. Rows past the series end are used as future values."
    )
    parser.add_argument(
        "--horizon", type=int, default=12,
        help="Number of months to forecast."
    )
    parser.add_argument(
        "--confidence", type=str, default=None,
        help="Interval confidence as a fraction or percentage (e.g. 0.95 or 95). Uses config default if not specified."
    )
    parser.add_argument(
        "--holdout", type=int, default=0,
        help="Hold out the last N months and report accuracy for every candidate."
    )
    parser.add_argument(
        "--selection-rule", dest="selection_rule", choices=["aicc", "bic", "adjusted_r2"], default=None,
        help="Ranking rule across model families. Uses config default if not specified."
    )
    parser.add_argument(
        "--event", action="append", default=None,
        help="Past event occurrence as YYYY-MM:AMOUNT; repeat for each occurrence."
    )
    parser.add_argument(
        "--event-period", type=str, default=None,
        help="Month of the next event occurrence (must lie within the forecast horizon)."
    )
    parser.add_argument(
        "--forecast-csv", type=str, default=None,
        help="If provided, write the forecast table to this CSV."
    )
    parser.add_argument(
        "--config", type=str, default=None,
        help="Path to a YAML configuration file."
    )
    parser.add_argument(
        "--log-level", type=str, default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level."
    )
    return parser


def setup_logging(log_level: str) -> None:
    """
    Configure logging with specified level and warning filters.

    Parameters
    ----------
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    level = validate_log_level(log_level)
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    if level == "DEBUG":
        warnings.resetwarnings()
        warnings.filterwarnings("default")
    else:
        from statsmodels.tools.sm_exceptions import ConvergenceWarning
        warnings.filterwarnings("ignore", category=ConvergenceWarning)
        warnings.filterwarnings("ignore", category=FutureWarning)
        warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")


def main(argv: Optional[List[str]] = None) -> None:
    """
    Main entry point for the handle forecasting application.
    """
    parser = setup_cli_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level)

    if args.config:
        reset_config()
    initialize_config(args.config)

    if args.horizon < 1:
        parser.error("--horizon must be at least 1")

    base_dir = Path.cwd()
    try:
        run_forecast_workflow(args, base_dir)
    except ForecastError as e:
        logger.error("Forecast failed: %s", e)
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
