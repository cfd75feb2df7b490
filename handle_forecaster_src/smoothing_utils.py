# handle_forecaster_src/smoothing_utils.py

import logging
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
from scipy.stats import norm
from statsmodels.tsa.exponential_smoothing.ets import ETSModel

from .candidate_utils import (
    FitStatistics,
    ModelCandidate,
    ModelFamily,
    Projection,
    adjusted_r_squared,
    info_criteria,
    rank_candidates,
)
from .config_utils import VALID_SMOOTHING_VARIANTS, get_config_value
from .exceptions import ConvergenceFailure, InsufficientDataError
from .series_utils import CovariateSeries, TimeSeries

logger = logging.getLogger(__name__)

DEFAULT_VARIANTS = ("ANN", "AAN", "AAA", "AAdA")

# Interval level used to recover the forecast variance from ETS bounds.
_VARIANCE_ALPHA = 0.05


def parse_variant(code: str) -> Dict[str, object]:
    """
    Translate an ETS code (error, trend[, d], seasonal) into ETSModel arguments.

    ``AAdA`` is additive error, damped additive trend, additive seasonality.
    Only additive error/trend/seasonal components are supported.
    """
    if code not in VALID_SMOOTHING_VARIANTS:
        raise ValueError(f"Unknown smoothing variant {code!r}; expected one of {sorted(VALID_SMOOTHING_VARIANTS)}")
    damped = "d" in code
    trend = code[1]
    seasonal = code[-1]
    return {
        "error": "add",
        "trend": "add" if trend == "A" else None,
        "damped_trend": damped,
        "seasonal": "add" if seasonal == "A" else None,
    }


def variant_label(code: str) -> str:
    spec = parse_variant(code)
    trend = "N" if spec["trend"] is None else ("Ad" if spec["damped_trend"] else "A")
    seasonal = "N" if spec["seasonal"] is None else "A"
    return f"ETS(A,{trend},{seasonal})"


class SmoothingModel:
    """
    Exponential smoothing (state space ETS) with additive errors.

    Each configured variant is fitted by maximum likelihood and the one with
    the lowest AICc is returned. Seasonal variants are skipped when fewer
    than two full cycles are available.

    Parameters
    ----------
    variants : Sequence[str], optional
        ETS codes to try, e.g. ``("ANN", "AAN", "AAA", "AAdA")``.
    period : int, optional
        Seasonal cycle length.
    maxiter : int, optional
        Optimizer iteration limit per variant.
    """

    family = ModelFamily.SMOOTHING

    def __init__(self,
                 variants: Optional[Sequence[str]] = None,
                 period: Optional[int] = None,
                 maxiter: Optional[int] = None):
        self.variants = tuple(variants or get_config_value("model.smoothing.variants", list(DEFAULT_VARIANTS)))
        for code in self.variants:
            parse_variant(code)
        self.period = int(period or get_config_value("series.seasonal_period", 12))
        self.maxiter = int(maxiter or get_config_value("model.smoothing.maxiter", 1000))

    def fit_variant(self, train: TimeSeries, code: str) -> ModelCandidate:
        """
        Fit one ETS variant.

        Raises
        ------
        InsufficientDataError
            If a seasonal variant has fewer than two cycles of data.
        ConvergenceFailure
            If the likelihood optimizer does not converge.
        """
        spec = parse_variant(code)
        y = np.asarray(train.values(), dtype=float)
        endog = pd.Series(y, index=pd.DatetimeIndex(train.periods.to_timestamp(), freq="MS"), name=train.name)
        n = len(y)
        if spec["seasonal"] is not None and n < 2 * self.period:
            raise InsufficientDataError(
                f"{variant_label(code)} needs at least {2 * self.period} periods, got {n}"
            )

        model = ETSModel(
            endog,
            seasonal_periods=self.period if spec["seasonal"] is not None else None,
            **spec,
        )
        res = model.fit(maxiter=self.maxiter, disp=False)

        retvals = getattr(res, "mle_retvals", None) or {}
        if not retvals.get("converged", True):
            raise ConvergenceFailure(f"{variant_label(code)} did not converge in {self.maxiter} iterations")

        params = dict(zip(res.model.param_names, np.asarray(res.params, dtype=float)))
        fitted = np.asarray(res.fittedvalues, dtype=float)
        residuals = y - fitted

        llf = float(res.llf)
        n_params = len(params) + 1  # smoothing/initial-state parameters + error variance
        aic, aicc, bic = info_criteria(llf, n, n_params)
        stats = FitStatistics(
            log_likelihood=llf,
            aic=aic,
            aicc=aicc,
            bic=bic,
            adjusted_r2=adjusted_r_squared(y, fitted, max(len(params) - 1, 0)),
            residual_variance=float(np.mean(residuals ** 2)),
            n_obs=n,
            n_params=n_params,
        )
        label = variant_label(code)
        logger.debug("Fitted %s: AICc=%.3f", label, aicc)

        return ModelCandidate(
            family=self.family,
            label=label,
            params=params,
            periods=train.periods,
            fitted_values=fitted,
            residual_values=residuals,
            statistics=stats,
            projector=_EtsProjector(res, n),
            details={"variant": code, "period": self.period},
        )

    def fit(self, train: TimeSeries,
            covariates: Optional[List[CovariateSeries]] = None) -> ModelCandidate:
        """
        Fit every configured variant and return the lowest-AICc one.

        Covariates are not used by this family.

        Raises
        ------
        ConvergenceFailure
            If no variant could be fitted.
        """
        if covariates:
            logger.debug("Smoothing ignores %d covariate(s)", len(covariates))

        fitted: List[ModelCandidate] = []
        skipped: Dict[str, str] = {}
        for code in self.variants:
            try:
                fitted.append(self.fit_variant(train, code))
            except (InsufficientDataError, ConvergenceFailure, ValueError, np.linalg.LinAlgError) as e:
                skipped[code] = str(e)
                logger.debug("Skipping smoothing variant %s: %s", code, e)

        if not fitted:
            raise ConvergenceFailure(f"No smoothing variant could be fitted: {skipped}")

        best = rank_candidates(fitted, "aicc")[0]
        scores = {c.details["variant"]: c.statistics.aicc for c in fitted}
        logger.info("Smoothing chose %s (AICc=%.3f) among %s", best.label, best.statistics.aicc,
                    ", ".join(f"{k}={v:.2f}" for k, v in scores.items()))

        return ModelCandidate(
            family=best.family,
            label=best.label,
            params=best.params,
            periods=best.periods,
            fitted_values=best.fitted_values,
            residual_values=best.residual_values,
            statistics=best.statistics,
            projector=best.projector,
            details={**best.details, "variant_scores": scores, "skipped": skipped},
        )


class _EtsProjector:
    """Forecast means and variances from a fitted ETS result (exact for additive models)."""

    def __init__(self, result, n_train: int):
        self.result = result
        self.n_train = n_train

    def __call__(self, horizon: int, future_covariates: Optional[pd.DataFrame] = None) -> Projection:
        pred = self.result.get_prediction(start=self.n_train, end=self.n_train + horizon - 1)
        frame = pred.summary_frame(alpha=_VARIANCE_ALPHA)
        mean = frame["mean"].to_numpy(dtype=float)
        z = float(norm.ppf(1.0 - _VARIANCE_ALPHA / 2.0))
        half_width = (frame["pi_upper"].to_numpy(dtype=float) - mean) / z
        variance = np.maximum.accumulate(np.maximum(half_width, 0.0) ** 2)
        return Projection(mean=mean, variance=variance)
