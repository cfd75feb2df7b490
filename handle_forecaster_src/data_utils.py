# handle_forecaster_src/data_utils.py

import logging
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from .series_utils import CovariateSeries, TimeSeries

logger = logging.getLogger(__name__)


def resolve_path(path: Union[str, Path], base_dir: Path) -> Path:
    """Resolve ``path`` against ``base_dir`` unless it is already absolute."""
    p = Path(path)
    return p if p.is_absolute() else (base_dir / p)


def _read_dated_csv(path: Path, value_col: Optional[str]) -> pd.DataFrame:
    if not path.is_file():
        raise SystemExit(f"CSV not found: {path}")
    df = pd.read_csv(path)
    if "date" not in df.columns:
        raise SystemExit(f"{path} must contain a 'date' column.")
    if value_col is not None and value_col not in df.columns:
        raise SystemExit(f"{path} must contain a '{value_col}' column.")
    df["date"] = pd.to_datetime(df["date"], errors="coerce")
    bad = int(df["date"].isna().sum())
    if bad:
        logger.warning("Dropping %d row(s) with unparseable dates from %s", bad, path)
    df = df.dropna(subset=["date"]).sort_values("date").reset_index(drop=True)
    if df.empty:
        raise SystemExit(f"No valid rows found in {path} after parsing.")
    return df


def load_series_csv(series_path: Path, value_col: str = "value", name: Optional[str] = None) -> TimeSeries:
    """
    Load a monthly series from a CSV with ``date`` and value columns.

    Values that do not parse as numbers are kept as missing markers, so gaps
    surface as ``MissingPeriodError`` downstream instead of being dropped.

    Parameters
    ----------
    series_path : Path
        CSV file path.
    value_col : str, default="value"
        Column holding the monthly totals.
    name : str, optional
        Series name (defaults to ``value_col``).

    Returns
    -------
    TimeSeries

    Raises
    ------
    SystemExit
        If the file is missing, lacks required columns, or has no valid rows.
    DuplicatePeriodError
        If two rows fall in the same month.
    """
    logger.info("Loading series from: %s", series_path)
    df = _read_dated_csv(series_path, value_col)
    values = pd.to_numeric(df[value_col], errors="coerce")
    series = TimeSeries(df["date"], values.to_numpy(), name=name or value_col)
    missing = series.missing_periods()
    if missing:
        logger.warning("%s has %d missing period(s), first %s", series.name, len(missing), min(missing))
    logger.info("Loaded %s: %d periods (%s..%s)", series.name, len(series), series.start, series.end)
    return series


def load_covariates_csv(path: Path) -> List[CovariateSeries]:
    """
    Load every non-date column of a CSV as a covariate series.

    Rows may extend past the target's last period to supply known future
    covariate values for forecasting.
    """
    df = _read_dated_csv(path, None)
    covariates = []
    for col in df.columns:
        if col == "date":
            continue
        values = pd.to_numeric(df[col], errors="coerce")
        covariates.append(CovariateSeries(df["date"], values.to_numpy(), name=str(col)))
    if not covariates:
        raise SystemExit(f"{path} has no covariate columns besides 'date'.")
    logger.info("Loaded %d covariate(s) from %s: %s", len(covariates), path, [c.name for c in covariates])
    return covariates


def write_forecast_csv(frame: pd.DataFrame, path: Path) -> Path:
    """Write a forecast table with a ``period`` column, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    out = frame.copy()
    out.index = out.index.astype(str)
    out.to_csv(path, index_label="period")
    logger.info("Wrote forecast table to %s", path)
    return path
