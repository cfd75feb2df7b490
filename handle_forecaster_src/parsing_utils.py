# handle_forecaster_src/parsing_utils.py

import logging
from typing import Dict, List, Optional, Tuple

import pandas as pd

from helpers.temporal import to_month

logger = logging.getLogger(__name__)


def validate_log_level(log_level: str) -> str:
    """
    Validate and normalize logging level specification.

    Raises
    ------
    ValueError
        If the logging level is not supported
    """
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    level_upper = log_level.upper()
    if level_upper not in valid_levels:
        raise ValueError(f"Invalid log level '{log_level}'. Must be one of: {valid_levels}")
    return level_upper


def parse_event_arg(s: str) -> Tuple[pd.Period, float]:
    """
    Parse an ``--event`` value of the form ``YYYY-MM:AMOUNT``.

    Examples
    --------
    >>> parse_event_arg("2023-02:1500000")
    (Period('2023-02', 'M'), 1500000.0)
    """
    txt = (s or "").strip()
    period_txt, sep, amount_txt = txt.rpartition(":")
    if not sep or not period_txt or not amount_txt:
        raise ValueError(f"Event must look like 'YYYY-MM:AMOUNT', got {s!r}")
    try:
        period = to_month(period_txt.strip())
    except (ValueError, TypeError) as e:
        raise ValueError(f"Invalid event period {period_txt!r}: {e}") from e
    try:
        amount = float(amount_txt.strip().replace(",", ""))
    except ValueError as e:
        raise ValueError(f"Invalid event amount {amount_txt!r}") from e
    return period, amount


def parse_events(values: Optional[List[str]]) -> Dict[pd.Period, float]:
    """Parse repeated ``--event`` values into an ordered ``{period: amount}`` mapping."""
    events: Dict[pd.Period, float] = {}
    for raw in values or []:
        period, amount = parse_event_arg(raw)
        if period in events:
            raise ValueError(f"Event period {period} given more than once")
        events[period] = amount
    return events


def parse_confidence(value: Optional[str], default: float = 0.95) -> float:
    """
    Parse a confidence level given as a fraction (0.9) or a percentage (90).

    Raises
    ------
    ValueError
        If the level is not strictly between 0 and 1 after conversion
    """
    if value is None:
        return default
    level = float(value)
    if level > 1.0:
        level = level / 100.0
    if not 0.0 < level < 1.0:
        raise ValueError(f"Confidence must be in (0, 1) or (0, 100), got {value!r}")
    return level
