# handle_forecaster_src/regression_utils.py

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from statsmodels.regression.linear_model import OLS

from helpers.temporal import seasonal_phase

from .candidate_utils import (
    ModelCandidate,
    ModelFamily,
    FitStatistics,
    Projection,
    info_criteria,
)
from .config_utils import get_config_value
from .exceptions import InsufficientDataError, MissingPeriodError, SingularMatrixError
from .series_utils import CovariateSeries, TimeSeries, align_covariates

logger = logging.getLogger(__name__)

CONST = "const"
TREND = "trend"
LAG = "lag_1"


def seasonal_dummy_names(period: int) -> List[str]:
    """Dummy column names for phases 1..period-1 (phase 0 is the reference)."""
    if period == 12:
        return [f"month_{m:02d}" for m in range(2, 13)]
    return [f"season_{k}" for k in range(1, period)]


def build_design(periods: pd.PeriodIndex,
                 trend_start: int,
                 period: int,
                 covariates: Optional[pd.DataFrame] = None,
                 lag_values: Optional[Sequence[float]] = None) -> pd.DataFrame:
    """
    Design matrix for the trend + seasonal-dummy (+ covariate) (+ lag) model.

    Parameters
    ----------
    periods : pd.PeriodIndex
        Rows of the design.
    trend_start : int
        Trend index of the first row (1-based position in the training range).
    period : int
        Seasonal cycle length; one dummy per phase except phase 0.
    covariates : Optional[pd.DataFrame]
        Covariate values indexed by ``periods``.
    lag_values : Optional[Sequence[float]]
        Previous-period target values, one per row.

    Returns
    -------
    pd.DataFrame
        Columns: const, trend, seasonal dummies, covariates, lag_1.
    """
    n = len(periods)
    design = pd.DataFrame(index=periods)
    design[CONST] = 1.0
    design[TREND] = np.arange(trend_start, trend_start + n, dtype=float)
    phases = seasonal_phase(periods, period)
    for phase, name in enumerate(seasonal_dummy_names(period), start=1):
        design[name] = (phases == phase).astype(float)
    if covariates is not None:
        for col in covariates.columns:
            design[col] = covariates.loc[periods, col].to_numpy(dtype=float)
    if lag_values is not None:
        design[LAG] = np.asarray(lag_values, dtype=float)
    return design


class RegressionModel:
    """
    Ordinary least squares on trend, seasonal dummies, covariates and an
    optional one-period lag of the target.

    Parameters
    ----------
    period : int, optional
        Seasonal cycle length (default from config, 12).
    include_lag : bool, optional
        Add ``lag_1`` (previous value of the target) as a regressor.
    drop_terms : Sequence[str], optional
        Regressors to leave out, e.g. after finding them insignificant.
    significance_level : float, optional
        p-value threshold used by ``insignificant_terms``.
    """

    family = ModelFamily.REGRESSION

    def __init__(self,
                 period: Optional[int] = None,
                 include_lag: Optional[bool] = None,
                 drop_terms: Optional[Sequence[str]] = None,
                 significance_level: Optional[float] = None):
        self.period = int(period or get_config_value("series.seasonal_period", 12))
        if include_lag is None:
            include_lag = bool(get_config_value("model.regression.include_lag", True))
        self.include_lag = include_lag
        self.drop_terms = tuple(drop_terms or ())
        if CONST in self.drop_terms:
            raise ValueError("The intercept cannot be dropped")
        self.significance_level = float(
            significance_level or get_config_value("model.regression.significance_level", 0.05)
        )

    def fit(self, train: TimeSeries,
            covariates: Optional[List[CovariateSeries]] = None) -> ModelCandidate:
        """
        Fit by OLS against the training series.

        Returns
        -------
        ModelCandidate
            Regression candidate with a coefficient table (estimate, standard
            error, t value, p value, significance flag).

        Raises
        ------
        SingularMatrixError
            If the design matrix is rank-deficient.
        InsufficientDataError
            If there are not more usable rows than regressors.
        """
        y = train.values()
        periods = train.periods
        cov_frame = align_covariates(train, covariates)
        on_train = cov_frame.loc[periods] if cov_frame is not None else None

        offset = 1 if self.include_lag else 0
        design = build_design(
            periods[offset:],
            trend_start=1 + offset,
            period=self.period,
            covariates=on_train.iloc[offset:] if on_train is not None else None,
            lag_values=y[:-1] if self.include_lag else None,
        )
        unknown = [t for t in self.drop_terms if t not in design.columns]
        if unknown:
            raise ValueError(f"Cannot drop unknown regressors: {unknown}")
        design = design.drop(columns=list(self.drop_terms))
        target = pd.Series(y[offset:], index=periods[offset:], name=train.name)

        n_rows, n_cols = design.shape
        if n_rows <= n_cols:
            raise InsufficientDataError(
                f"Regression needs more than {n_cols} usable periods, got {n_rows}"
            )
        rank = int(np.linalg.matrix_rank(design.to_numpy()))
        if rank < n_cols:
            raise SingularMatrixError(
                f"Design matrix has rank {rank} < {n_cols} columns; "
                f"check for collinear regressors among {list(design.columns)}"
            )

        res = OLS(target, design).fit()

        coef = pd.DataFrame({
            "estimate": res.params,
            "std_error": res.bse,
            "t_value": res.tvalues,
            "p_value": res.pvalues,
        })
        coef["significant"] = coef["p_value"] <= self.significance_level

        fitted = np.full(len(y), np.nan)
        fitted[offset:] = np.asarray(res.fittedvalues, dtype=float)
        residuals = np.asarray(y, dtype=float) - fitted

        n_obs = int(res.nobs)
        n_params = n_cols + 1  # regression coefficients + error variance
        llf = float(res.llf)
        aic, aicc, bic = info_criteria(llf, n_obs, n_params)
        stats = FitStatistics(
            log_likelihood=llf,
            aic=aic,
            aicc=aicc,
            bic=bic,
            adjusted_r2=float(res.rsquared_adj),
            residual_variance=float(res.scale),
            n_obs=n_obs,
            n_params=n_params,
        )

        cov_names = list(on_train.columns) if on_train is not None else []
        cov_names = [c for c in cov_names if c not in self.drop_terms]
        future_cov = None
        if cov_frame is not None and cov_names:
            future_cov = cov_frame.loc[cov_frame.index > train.end, cov_names].copy()

        projector = _RecursiveProjector(
            params=res.params.copy(),
            columns=list(design.columns),
            period=self.period,
            n_train=len(y),
            last_value=float(y[-1]),
            training_end=train.end,
            covariate_names=cov_names,
            known_future_covariates=future_cov,
            sigma2=float(res.scale),
        )

        label = self._label(design.columns, cov_names)
        insignificant = [t for t in coef.index[~coef["significant"]] if t != CONST]
        if insignificant:
            logger.info("%s: insignificant at %.2f: %s", label, self.significance_level, insignificant)
        logger.info("Fitted %s: adj R2=%.4f, AICc=%.3f", label, stats.adjusted_r2, stats.aicc)

        return ModelCandidate(
            family=self.family,
            label=label,
            params={k: float(v) for k, v in res.params.items()},
            periods=periods,
            fitted_values=fitted,
            residual_values=residuals,
            statistics=stats,
            projector=projector,
            coefficients=coef,
            details={
                "include_lag": LAG in design.columns,
                "terms": list(design.columns),
                "dropped_terms": list(self.drop_terms),
                "covariates": cov_names,
                "period": self.period,
            },
        )

    def insignificant_terms(self, candidate: ModelCandidate) -> List[str]:
        """Non-intercept regressors with p-value above the significance level."""
        if candidate.coefficients is None:
            raise ValueError(f"{candidate.label} has no coefficient table")
        coef = candidate.coefficients
        mask = coef["p_value"] > self.significance_level
        return [t for t in coef.index[mask] if t != CONST]

    def without(self, terms: Sequence[str]) -> "RegressionModel":
        """Copy of this model with extra regressors dropped."""
        return RegressionModel(
            period=self.period,
            include_lag=self.include_lag,
            drop_terms=tuple(self.drop_terms) + tuple(t for t in terms if t not in self.drop_terms),
            significance_level=self.significance_level,
        )

    def _label(self, columns: Sequence[str], cov_names: Sequence[str]) -> str:
        parts = []
        if TREND in columns:
            parts.append("trend")
        if any(c in columns for c in seasonal_dummy_names(self.period)):
            parts.append("season")
        parts.extend(cov_names)
        if LAG in columns:
            parts.append("lag")
        return f"Regression({'+'.join(parts) or 'const'})"


def backward_eliminate(train: TimeSeries,
                       covariates: Optional[List[CovariateSeries]] = None,
                       model: Optional[RegressionModel] = None) -> ModelCandidate:
    """
    Refit repeatedly, dropping the least significant eligible regressor.

    Only the trend, covariates and the lag are eligible; the intercept and
    the seasonal dummies are always kept. Stops when every eligible term is
    significant.
    """
    model = model or RegressionModel()
    dummies = set(seasonal_dummy_names(model.period))
    candidate = model.fit(train, covariates)
    while True:
        coef = candidate.coefficients
        eligible = [t for t in model.insignificant_terms(candidate) if t not in dummies]
        if not eligible:
            return candidate
        worst = max(eligible, key=lambda t: float(coef.loc[t, "p_value"]))
        logger.info("Dropping %s (p=%.4f) from %s", worst, float(coef.loc[worst, "p_value"]), candidate.label)
        model = model.without([worst])
        candidate = model.fit(train, covariates)


class _RecursiveProjector:
    """
    Multi-step projection for the regression family.

    When ``lag_1`` is a regressor, step k uses the forecast from step k-1 as
    its lag input; only the last training value seeds the recursion. The
    forecast-error variance at step k is sigma2 * sum_{j<k} rho^(2j), where
    rho is the lag coefficient (zero without a lag).
    """

    def __init__(self, params: pd.Series, columns: List[str], period: int, n_train: int,
                 last_value: float, training_end: pd.Period, covariate_names: List[str],
                 known_future_covariates: Optional[pd.DataFrame], sigma2: float):
        self.params = params
        self.columns = columns
        self.period = period
        self.n_train = n_train
        self.last_value = last_value
        self.training_end = training_end
        self.covariate_names = covariate_names
        self.known_future_covariates = known_future_covariates
        self.sigma2 = sigma2

    def _future_covariates(self, periods: pd.PeriodIndex,
                           supplied: Optional[pd.DataFrame]) -> Optional[pd.DataFrame]:
        if not self.covariate_names:
            return None
        source = supplied if supplied is not None else self.known_future_covariates
        if source is None:
            raise MissingPeriodError(
                f"Covariates {self.covariate_names} have no values after {self.training_end}",
                missing=list(periods),
            )
        absent = [c for c in self.covariate_names if c not in source.columns]
        if absent:
            raise MissingPeriodError(f"Future covariate frame lacks columns {absent}")
        frame = source.reindex(periods)[self.covariate_names]
        gaps = frame.index[frame.isna().any(axis=1)]
        if len(gaps):
            raise MissingPeriodError(
                f"Future covariates missing for {len(gaps)} forecast period(s); first: {gaps[0]}",
                missing=list(gaps),
            )
        return frame

    def __call__(self, horizon: int, future_covariates: Optional[pd.DataFrame] = None) -> Projection:
        periods = pd.period_range(start=self.training_end + 1, periods=horizon, freq="M")
        cov = self._future_covariates(periods, future_covariates)
        has_lag = LAG in self.columns
        rho = float(self.params[LAG]) if has_lag else 0.0

        means = np.empty(horizon, dtype=float)
        previous = self.last_value
        for k in range(horizon):
            row = build_design(
                periods[k:k + 1],
                trend_start=self.n_train + k + 1,
                period=self.period,
                covariates=cov.iloc[k:k + 1] if cov is not None else None,
                lag_values=[previous] if has_lag else None,
            )
            x = row.reindex(columns=self.columns).to_numpy(dtype=float)[0]
            means[k] = float(np.dot(x, self.params[self.columns].to_numpy(dtype=float)))
            previous = means[k]

        weights = rho ** (2 * np.arange(horizon))
        variance = self.sigma2 * np.cumsum(weights)
        return Projection(mean=means, variance=variance)
