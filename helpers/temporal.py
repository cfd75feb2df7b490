# -*- coding: utf-8 -*-
"""
Temporal utilities for monthly period handling.

Functions
---------
- to_month(value): Coerce a date-like value (str, datetime, Timestamp, Period)
  to a monthly ``pd.Period``.
- to_month_index(values): Coerce a sequence of date-like values to a monthly
  ``pd.PeriodIndex`` without reordering or de-duplicating.
- month_range(start, end): Contiguous monthly ``PeriodIndex`` from start to end
  inclusive.
- seasonal_phase(index, period): Phase (0..period-1) of each period within its
  seasonal cycle. For monthly data with period 12 this is month-of-year - 1.
"""

from __future__ import annotations

from typing import Iterable

import numpy as np
import pandas as pd


def to_month(value) -> pd.Period:
    """
    Coerce a date-like value to a monthly period.

    Parameters
    ----------
    value : str, datetime, pd.Timestamp or pd.Period
        Any value pandas can interpret as a point in time. A Period of another
        frequency is converted with ``asfreq('M')``.

    Returns
    -------
    pd.Period
        Period with monthly frequency.
    """
    if isinstance(value, pd.Period):
        if value.freqstr.upper().startswith("M"):
            return value
        return value.asfreq("M")
    return pd.Period(pd.Timestamp(value), freq="M")


def to_month_index(values: Iterable) -> pd.PeriodIndex:
    """
    Coerce a sequence of date-like values to a monthly PeriodIndex.

    Order and duplicates are preserved so callers can validate them.
    """
    if isinstance(values, pd.PeriodIndex):
        return values.asfreq("M")
    if isinstance(values, pd.DatetimeIndex):
        return values.to_period("M")
    return pd.PeriodIndex([to_month(v) for v in values], freq="M")


def month_range(start, end) -> pd.PeriodIndex:
    """Contiguous monthly index from ``start`` to ``end`` inclusive."""
    return pd.period_range(start=to_month(start), end=to_month(end), freq="M")


def seasonal_phase(index: pd.PeriodIndex, period: int = 12) -> np.ndarray:
    """
    Position of each period within its seasonal cycle.

    Notes
    -----
    - For period=12 the phase is the calendar month minus one, so phase 0 is
      January regardless of where the series starts.
    - For other periods the phase is the monthly ordinal modulo the period.
    """
    index = to_month_index(index)
    if period == 12:
        return np.asarray(index.month, dtype=int) - 1
    ordinals = np.asarray(index.asi8, dtype=np.int64)
    return (ordinals % period).astype(int)
