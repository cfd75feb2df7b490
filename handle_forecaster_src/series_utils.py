# handle_forecaster_src/series_utils.py

"""
Immutable monthly time series and covariate alignment.

A TimeSeries is built once from validated input and never mutated. Slicing,
gap filling and train/holdout splits all return new instances. Missing
months are allowed on construction but must be detected and filled (as
explicit NaN markers) before a dense view can be requested.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

import numpy as np
import pandas as pd

from helpers.temporal import month_range, to_month, to_month_index

from .exceptions import (
    CovariateAlignmentError,
    DuplicatePeriodError,
    MissingPeriodError,
    RangeError,
    SeriesIntegrityError,
)

logger = logging.getLogger(__name__)


class TimeSeries:
    """
    Ordered monthly (period, value) sequence.

    Parameters
    ----------
    index : pd.PeriodIndex
        Strictly increasing monthly periods.
    values : array-like
        One value per period. NaN marks an explicitly missing month; infinite
        values are rejected.
    name : str
        Series name, used in logs and frames.
    """

    __slots__ = ("_index", "_values", "_name")

    def __init__(self, index: pd.PeriodIndex, values: Iterable[float], name: str = "value"):
        idx = to_month_index(index)
        arr = np.array(values, dtype=float).ravel()

        if len(idx) != len(arr):
            raise SeriesIntegrityError(
                f"Index and values differ in length ({len(idx)} != {len(arr)})"
            )
        if len(idx) == 0:
            raise SeriesIntegrityError("Cannot build a TimeSeries without observations")
        if np.isinf(arr).any():
            raise SeriesIntegrityError("Series values must be finite or NaN (missing marker)")

        if idx.has_duplicates:
            dupes = sorted({str(p) for p in idx[idx.duplicated()]})
            raise DuplicatePeriodError(f"Duplicate periods in {name}: {dupes}")
        if not idx.is_monotonic_increasing:
            raise SeriesIntegrityError(f"Periods of {name} must be strictly increasing")

        arr.setflags(write=False)
        self._index = idx
        self._values = arr
        self._name = str(name)

    # ------------------------------------------------------------------ builders

    @classmethod
    def from_mapping(cls, mapping: Mapping, name: str = "value") -> "TimeSeries":
        """Build from an ordered ``{period: value}`` mapping (keys are date-like)."""
        if not mapping:
            raise SeriesIntegrityError("Cannot build a TimeSeries from an empty mapping")
        keys = list(mapping.keys())
        return cls(to_month_index(keys), [mapping[k] for k in keys], name=name)

    @classmethod
    def from_series(cls, series: pd.Series, name: Optional[str] = None) -> "TimeSeries":
        """Build from a pandas Series indexed by dates or periods."""
        label = name if name is not None else (series.name if series.name is not None else "value")
        return cls(to_month_index(series.index), series.to_numpy(dtype=float), name=str(label))

    # ---------------------------------------------------------------- properties

    @property
    def name(self) -> str:
        return self._name

    @property
    def periods(self) -> pd.PeriodIndex:
        return self._index

    @property
    def start(self) -> pd.Period:
        return self._index[0]

    @property
    def end(self) -> pd.Period:
        return self._index[-1]

    def __len__(self) -> int:
        return len(self._index)

    def __repr__(self) -> str:
        return f"TimeSeries(name={self._name!r}, start={self.start}, end={self.end}, n={len(self)})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, TimeSeries):
            return NotImplemented
        return (
            self._name == other._name
            and self._index.equals(other._index)
            and np.array_equal(self._values, other._values, equal_nan=True)
        )

    __hash__ = None

    # ------------------------------------------------------------ gap handling

    def missing_periods(self) -> Set[pd.Period]:
        """
        Months absent from the index or explicitly marked missing.

        Returns
        -------
        Set[pd.Period]
            Every month between start and end with no finite value.
        """
        full = month_range(self.start, self.end)
        absent = set(full.difference(self._index))
        marked = set(self._index[np.isnan(self._values)])
        return absent | marked

    @property
    def has_gaps(self) -> bool:
        return bool(self.missing_periods())

    def fill_gaps(self) -> "TimeSeries":
        """
        Return a contiguous series with NaN markers in place of absent months.

        Values are neither zero-filled nor interpolated; the caller decides
        how to resolve the markers.
        """
        full = month_range(self.start, self.end)
        if len(full) == len(self._index):
            return self
        filled = self.to_series(allow_missing=True).reindex(full)
        logger.debug("Filled %d absent periods in %s", len(full) - len(self), self._name)
        return type(self)(full, filled.to_numpy(), name=self._name)

    # ----------------------------------------------------------------- access

    def values(self) -> np.ndarray:
        """
        Dense read-only value array.

        Raises
        ------
        MissingPeriodError
            If any month is absent or marked missing.
        """
        missing = self.missing_periods()
        if missing:
            ordered = sorted(missing)
            raise MissingPeriodError(
                f"{self._name} has {len(ordered)} missing period(s); first: {ordered[0]}",
                missing=ordered,
            )
        return self._values

    def to_series(self, allow_missing: bool = False) -> pd.Series:
        """Copy as a pandas Series with a monthly PeriodIndex."""
        data = self._values if allow_missing else self.values()
        return pd.Series(np.array(data, dtype=float), index=self._index.copy(), name=self._name)

    def value_at(self, period) -> float:
        month = to_month(period)
        if month not in self._index:
            raise RangeError(f"{month} is outside {self._name} ({self.start}..{self.end}) or absent")
        return float(self._values[self._index.get_loc(month)])

    # ---------------------------------------------------------------- slicing

    def slice(self, start=None, end=None) -> "TimeSeries":
        """
        Inclusive slice by period.

        Raises
        ------
        RangeError
            If either bound lies outside the available range or start > end.
        """
        lo = self.start if start is None else to_month(start)
        hi = self.end if end is None else to_month(end)
        if lo < self.start or hi > self.end:
            raise RangeError(
                f"Slice {lo}..{hi} is outside {self._name} range {self.start}..{self.end}"
            )
        if lo > hi:
            raise RangeError(f"Slice start {lo} is after end {hi}")
        mask = (self._index >= lo) & (self._index <= hi)
        return type(self)(self._index[mask], self._values[mask], name=self._name)

    def head(self, n: int) -> "TimeSeries":
        if n < 1 or n > len(self):
            raise RangeError(f"Cannot take {n} periods from a series of length {len(self)}")
        return type(self)(self._index[:n], self._values[:n], name=self._name)

    def split(self, holdout: int) -> Tuple["TimeSeries", Optional["TimeSeries"]]:
        """
        Split into (train, holdout) views keeping the last ``holdout`` months out.

        A holdout of zero returns ``(self, None)``.
        """
        if holdout < 0 or holdout >= len(self):
            raise RangeError(f"Holdout {holdout} is invalid for a series of length {len(self)}")
        if holdout == 0:
            return self, None
        cut = len(self) - holdout
        train = type(self)(self._index[:cut], self._values[:cut], name=self._name)
        test = type(self)(self._index[cut:], self._values[cut:], name=self._name)
        return train, test


class CovariateSeries(TimeSeries):
    """Named auxiliary series aligned to a target by exact period match."""

    __slots__ = ()

    def __repr__(self) -> str:
        return f"CovariateSeries(name={self.name!r}, start={self.start}, end={self.end}, n={len(self)})"


def align_covariates(target: TimeSeries,
                     covariates: Optional[List[CovariateSeries]]) -> Optional[pd.DataFrame]:
    """
    Align covariates to the target's periods.

    Parameters
    ----------
    target : TimeSeries
        Series whose periods every covariate must cover.
    covariates : Optional[List[CovariateSeries]]
        Covariates to align. Periods after the target end are kept as known
        future values for forecasting.

    Returns
    -------
    Optional[pd.DataFrame]
        One column per covariate indexed by the target periods followed by the
        later periods shared by all covariates, or None when no covariates
        were given.

    Raises
    ------
    CovariateAlignmentError
        If a covariate misses a target period, holds a period before the
        target start, has a missing marker on a target period, or names clash.
    """
    if not covariates:
        return None

    names = [c.name for c in covariates]
    if len(set(names)) != len(names):
        raise CovariateAlignmentError(f"Covariate names must be unique, got {names}")
    if target.name in names:
        raise CovariateAlignmentError(f"Covariate name {target.name!r} clashes with the target")

    columns: Dict[str, pd.Series] = {}
    future: Optional[pd.PeriodIndex] = None
    for cov in covariates:
        series = cov.to_series(allow_missing=True)
        if cov.start < target.start:
            raise CovariateAlignmentError(
                f"Covariate {cov.name} starts at {cov.start}, before target start {target.start}"
            )
        unmatched = target.periods.difference(series.index)
        if len(unmatched):
            raise CovariateAlignmentError(
                f"Covariate {cov.name} has no value for {len(unmatched)} target period(s); "
                f"first: {unmatched[0]}"
            )
        on_target = series.reindex(target.periods)
        if on_target.isna().any():
            first = on_target.index[on_target.isna()][0]
            raise CovariateAlignmentError(f"Covariate {cov.name} is marked missing at {first}")
        later = series[series.index > target.end].dropna().index
        future = later if future is None else future.intersection(later).sort_values()
        columns[cov.name] = series

    full_index = target.periods.append(future if future is not None else target.periods[:0])
    frame = pd.DataFrame({name: col.reindex(full_index) for name, col in columns.items()})
    logger.debug("Aligned %d covariate(s) over %d target and %d future periods",
                 len(columns), len(target), len(full_index) - len(target))
    return frame
