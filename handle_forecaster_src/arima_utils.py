# handle_forecaster_src/arima_utils.py

import logging
from itertools import product
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from tqdm.auto import tqdm

from statsmodels.tsa.arima_process import arma2ma
from statsmodels.tsa.statespace.sarimax import SARIMAX

from .candidate_utils import (
    FitStatistics,
    ModelCandidate,
    ModelFamily,
    Projection,
    adjusted_r_squared,
    info_criteria,
)
from .config_utils import VALID_ARIMA_SEARCH, get_config_value
from .decomposition_utils import decompose
from .exceptions import ConvergenceFailure, InsufficientDataError
from .series_utils import CovariateSeries, TimeSeries
from .transform_utils import DifferencedSeries, difference, select_differencing

logger = logging.getLogger(__name__)

Order = Tuple[int, int, int, int]  # (p, q, P, Q)

SEARCH_COLUMNS = ["(p,q,P,Q)", "AICc", "AIC", "BIC", "n_params"]


def arima_label(order: Order, d: int, D: int, period: int) -> str:
    p, q, P, Q = order
    return f"SARIMA({p},{d},{q})({P},{D},{Q},{period})"


def _lag_polynomial(coefs: np.ndarray, lag: int, sign: float) -> np.ndarray:
    """1 + sign * sum_k coefs[k] B^(lag*(k+1)) as a coefficient array."""
    poly = np.zeros(lag * len(coefs) + 1)
    poly[0] = 1.0
    for k, c in enumerate(coefs, start=1):
        poly[lag * k] = sign * float(c)
    return poly


def integrated_psi_weights(arparams: np.ndarray,
                           maparams: np.ndarray,
                           seasonal_arparams: np.ndarray,
                           seasonal_maparams: np.ndarray,
                           d: int,
                           D: int,
                           period: int,
                           horizon: int) -> np.ndarray:
    """
    MA(infinity) weights psi_0..psi_{h-1} of the integrated seasonal ARMA process.

    The AR side is phi(B) Phi(B^s) (1-B)^d (1-B^s)^D, so the weights apply to
    forecasts on the original (undifferenced) scale.
    """
    ar = np.convolve(_lag_polynomial(arparams, 1, -1.0), _lag_polynomial(seasonal_arparams, period, -1.0))
    for _ in range(d):
        ar = np.convolve(ar, [1.0, -1.0])
    for _ in range(D):
        seasonal_diff = np.zeros(period + 1)
        seasonal_diff[0], seasonal_diff[period] = 1.0, -1.0
        ar = np.convolve(ar, seasonal_diff)
    ma = np.convolve(_lag_polynomial(maparams, 1, 1.0), _lag_polynomial(seasonal_maparams, period, 1.0))
    return np.asarray(arma2ma(ar, ma, lags=horizon), dtype=float)


class SeasonalArimaModel:
    """
    Seasonal ARIMA with automatic differencing and order search.

    Differencing is chosen first: one seasonal difference when the STL
    seasonal strength exceeds the threshold, then ordinary differences until
    the ADF test rejects a unit root. ARMA orders are then searched on the
    differenced series, either stepwise (neighbourhood moves from a small set
    of starting models) or over the full grid, ranked by AICc.

    Parameters
    ----------
    period : int, optional
        Seasonal lag.
    search : {"stepwise", "grid"}, optional
        Order search strategy.
    max_p, max_q, max_P, max_Q : int, optional
        Order bounds.
    max_d, max_D : int, optional
        Differencing bounds.
    d, D : int, optional
        Fixed differencing orders; skips the automatic choice when given.
    maxiter : int, optional
        Optimizer iteration limit per fit.
    stationarity_alpha : float, optional
        ADF significance level.
    seasonal_strength_threshold : float, optional
        Seasonal strength above which one seasonal difference is taken.
    show_progress : bool, default=False
        Show a tqdm progress bar during grid search.
    """

    family = ModelFamily.SEASONAL_ARIMA

    def __init__(self,
                 period: Optional[int] = None,
                 search: Optional[str] = None,
                 max_p: Optional[int] = None,
                 max_q: Optional[int] = None,
                 max_P: Optional[int] = None,
                 max_Q: Optional[int] = None,
                 max_d: Optional[int] = None,
                 max_D: Optional[int] = None,
                 d: Optional[int] = None,
                 D: Optional[int] = None,
                 maxiter: Optional[int] = None,
                 stationarity_alpha: Optional[float] = None,
                 seasonal_strength_threshold: Optional[float] = None,
                 show_progress: bool = False):
        def _cfg(value, key, default):
            return value if value is not None else get_config_value(f"model.arima.{key}", default)

        self.period = int(period or get_config_value("series.seasonal_period", 12))
        self.search_method = str(_cfg(search, "search", "stepwise"))
        if self.search_method not in VALID_ARIMA_SEARCH:
            raise ValueError(f"Unknown ARIMA search {self.search_method!r}; expected one of {VALID_ARIMA_SEARCH}")
        self.max_p = int(_cfg(max_p, "max_p", 2))
        self.max_q = int(_cfg(max_q, "max_q", 2))
        self.max_P = int(_cfg(max_P, "max_P", 1))
        self.max_Q = int(_cfg(max_Q, "max_Q", 1))
        self.max_d = int(_cfg(max_d, "max_d", 2))
        self.max_D = int(_cfg(max_D, "max_D", 1))
        self.d = d
        self.D = D
        self.maxiter = int(_cfg(maxiter, "maxiter", 200))
        self.stationarity_alpha = float(_cfg(stationarity_alpha, "stationarity_alpha", 0.05))
        self.seasonal_strength_threshold = float(
            _cfg(seasonal_strength_threshold, "seasonal_strength_threshold", 0.64)
        )
        self.show_progress = show_progress

    # ------------------------------------------------------------ differencing

    def choose_differencing(self, train: TimeSeries) -> Tuple[int, int, Optional[float]]:
        """
        Pick (d, D) for the training series.

        Returns
        -------
        Tuple[int, int, Optional[float]]
            (d, D, seasonal_strength); strength is None when D was fixed.
        """
        strength = None
        if self.D is None:
            strength = decompose(train, period=self.period).seasonal_strength
            seasonal_start = 1 if strength > self.seasonal_strength_threshold else 0
        else:
            seasonal_start = int(self.D)

        if self.d is not None and self.D is not None:
            return int(self.d), int(self.D), strength

        d, D = select_differencing(
            train.values(),
            period=self.period,
            seasonal_start=seasonal_start,
            max_d=self.max_d if self.d is None else int(self.d),
            max_D=self.max_D if self.D is None else int(self.D),
            alpha=self.stationarity_alpha,
            min_d=0 if self.d is None else int(self.d),
        )
        logger.info("Differencing for %s: d=%d, D=%d (seasonal strength=%s)",
                    train.name, d, D, "fixed" if strength is None else f"{strength:.3f}")
        return d, D, strength

    # ----------------------------------------------------------------- fitting

    def fit_order(self, w: np.ndarray, order: Order, trend: str):
        """
        Fit a stationary seasonal ARMA of ``order`` to the differenced series.

        Raises
        ------
        ConvergenceFailure
            If the optimizer reports non-convergence.
        """
        p, q, P, Q = order
        seasonal_order = (P, 0, Q, self.period) if (P or Q) else (0, 0, 0, 0)
        model = SARIMAX(w, order=(p, 0, q), seasonal_order=seasonal_order, trend=trend)
        res = model.fit(disp=False, maxiter=self.maxiter)
        retvals = getattr(res, "mle_retvals", None) or {}
        if not retvals.get("converged", True):
            raise ConvergenceFailure(f"ARMA{order} did not converge in {self.maxiter} iterations")
        return res

    def _score_row(self, order: Order, res, n_obs: int) -> Dict[str, object]:
        n_params = len(res.params)
        aic, aicc, bic = info_criteria(float(res.llf), n_obs, n_params)
        return {"(p,q,P,Q)": order, "AICc": aicc, "AIC": aic, "BIC": bic, "n_params": n_params}

    def _try(self, w: np.ndarray, order: Order, trend: str,
             fits: Dict[Order, object], rows: Dict[Order, Dict[str, object]]) -> None:
        if order in fits or order in rows:
            return
        try:
            res = self.fit_order(w, order, trend)
        except (ConvergenceFailure, ValueError, np.linalg.LinAlgError) as e:
            logger.debug("Skipping ARMA%s: %s", order, e)
            fits[order] = None
            return
        fits[order] = res
        rows[order] = self._score_row(order, res, len(w))

    @staticmethod
    def _row_key(row: Dict[str, object]):
        aicc = float(row["AICc"])
        return (0 if np.isfinite(aicc) else 1, aicc if np.isfinite(aicc) else 0.0,
                row["n_params"], row["(p,q,P,Q)"])

    def _in_bounds(self, order: Order) -> bool:
        p, q, P, Q = order
        return (0 <= p <= self.max_p and 0 <= q <= self.max_q
                and 0 <= P <= self.max_P and 0 <= Q <= self.max_Q)

    def _neighbours(self, order: Order) -> List[Order]:
        p, q, P, Q = order
        moves = []
        for dp, dq, dP, dQ in [(1, 0, 0, 0), (-1, 0, 0, 0), (0, 1, 0, 0), (0, -1, 0, 0),
                               (0, 0, 1, 0), (0, 0, -1, 0), (0, 0, 0, 1), (0, 0, 0, -1),
                               (1, 1, 0, 0), (-1, -1, 0, 0), (0, 0, 1, 1), (0, 0, -1, -1)]:
            cand = (p + dp, q + dq, P + dP, Q + dQ)
            if self._in_bounds(cand):
                moves.append(cand)
        return moves

    def stepwise_search(self, w: np.ndarray, trend: str) -> Tuple[Order, object, pd.DataFrame]:
        """
        Hyndman-Khandakar style stepwise search over (p, q, P, Q).

        Starts from a handful of small models, then repeatedly moves to the
        first neighbour (one order changed by +/-1, or p,q / P,Q together)
        with a lower AICc until no neighbour improves.

        Returns
        -------
        Tuple[Order, result, pd.DataFrame]
            Best order, its fitted result and every evaluated order ranked.
        """
        fits: Dict[Order, object] = {}
        rows: Dict[Order, Dict[str, object]] = {}
        starts = [
            (min(2, self.max_p), min(2, self.max_q), min(1, self.max_P), min(1, self.max_Q)),
            (0, 0, 0, 0),
            (min(1, self.max_p), 0, min(1, self.max_P), 0),
            (0, min(1, self.max_q), 0, min(1, self.max_Q)),
        ]
        for order in starts:
            self._try(w, order, trend, fits, rows)
        if not rows:
            raise ConvergenceFailure("No starting ARMA order could be fitted")

        best = min(rows.values(), key=self._row_key)["(p,q,P,Q)"]
        improved = True
        while improved:
            improved = False
            for cand in self._neighbours(best):
                if cand in fits:
                    continue
                self._try(w, cand, trend, fits, rows)
                if cand in rows and self._row_key(rows[cand]) < self._row_key(rows[best]):
                    logger.debug("Stepwise move %s -> %s (AICc %.3f -> %.3f)",
                                 best, cand, rows[best]["AICc"], rows[cand]["AICc"])
                    best = cand
                    improved = True
                    break

        table = self._ranking_table(rows)
        return best, fits[best], table

    def grid_search(self, w: np.ndarray, trend: str) -> Tuple[Order, object, pd.DataFrame]:
        """
        Exhaustive search over every (p, q, P, Q) within the bounds, ranked by AICc.

        Orders that fail to fit are skipped.
        """
        fits: Dict[Order, object] = {}
        rows: Dict[Order, Dict[str, object]] = {}
        order_list = list(product(range(self.max_p + 1), range(self.max_q + 1),
                                  range(self.max_P + 1), range(self.max_Q + 1)))
        for order in tqdm(order_list, desc="Grid search SARIMA", disable=not self.show_progress):
            self._try(w, order, trend, fits, rows)
        if not rows:
            raise ConvergenceFailure(f"None of {len(order_list)} ARMA orders could be fitted")
        table = self._ranking_table(rows)
        best = table.iloc[0]["(p,q,P,Q)"]
        return best, fits[best], table

    def _ranking_table(self, rows: Dict[Order, Dict[str, object]]) -> pd.DataFrame:
        ordered = sorted(rows.values(), key=self._row_key)
        return pd.DataFrame(ordered, columns=SEARCH_COLUMNS).reset_index(drop=True)

    def _run_search(self, w: np.ndarray, trend: str) -> Tuple[Order, object, pd.DataFrame]:
        if self.search_method == "grid":
            return self.grid_search(w, trend)
        return self.stepwise_search(w, trend)

    def search(self, train: TimeSeries) -> pd.DataFrame:
        """
        Choose differencing for ``train`` and return the ranked order table.

        Returns
        -------
        pd.DataFrame
            Columns ``(p,q,P,Q)``, AICc, AIC, BIC, n_params, best first.
        """
        y = np.asarray(train.values(), dtype=float)
        if len(y) < 2 * self.period:
            raise InsufficientDataError(
                f"Seasonal ARIMA needs at least {2 * self.period} periods, got {len(y)}"
            )
        d, D, _ = self.choose_differencing(train)
        w = difference(y, d=d, D=D, period=self.period).differenced
        _, _, table = self._run_search(w, "c" if d + D <= 1 else "n")
        return table

    def fit(self, train: TimeSeries,
            covariates: Optional[List[CovariateSeries]] = None) -> ModelCandidate:
        """
        Difference, search orders, and wrap the best model as a candidate.

        Covariates are not used by this family.

        Raises
        ------
        InsufficientDataError
            If fewer than two seasonal cycles are available.
        NonStationarityError
            If no differencing within the bounds passes the ADF check.
        ConvergenceFailure
            If no order could be fitted.
        """
        y = np.asarray(train.values(), dtype=float)
        if len(y) < 2 * self.period:
            raise InsufficientDataError(
                f"Seasonal ARIMA needs at least {2 * self.period} periods, got {len(y)}"
            )
        if covariates:
            logger.debug("Seasonal ARIMA ignores %d covariate(s)", len(covariates))

        d, D, strength = self.choose_differencing(train)
        diffed = difference(y, d=d, D=D, period=self.period)
        w = diffed.differenced
        trend = "c" if d + D <= 1 else "n"

        order, res, table = self._run_search(w, trend)
        p, q, P, Q = order
        label = arima_label(order, d, D, self.period)

        params = dict(zip(res.model.param_names, np.asarray(res.params, dtype=float)))
        sigma2 = float(params["sigma2"])
        resid_w = np.asarray(res.resid, dtype=float)
        fitted = np.full(len(y), np.nan)
        fitted[diffed.n_lost:] = y[diffed.n_lost:] - resid_w
        residuals = y - fitted

        n_obs = len(w)
        n_params = len(params)
        llf = float(res.llf)
        aic, aicc, bic = info_criteria(llf, n_obs, n_params)
        stats = FitStatistics(
            log_likelihood=llf,
            aic=aic,
            aicc=aicc,
            bic=bic,
            adjusted_r2=adjusted_r_squared(y, fitted, max(n_params - 1, 0)),
            residual_variance=sigma2,
            n_obs=n_obs,
            n_params=n_params,
        )
        logger.info("Seasonal ARIMA chose %s (AICc=%.3f) after evaluating %d orders",
                    label, aicc, len(table))

        projector = _ArimaProjector(
            result=res,
            differenced=diffed,
            sigma2=sigma2,
            d=d,
            D=D,
            period=self.period,
        )
        return ModelCandidate(
            family=self.family,
            label=label,
            params=params,
            periods=train.periods,
            fitted_values=fitted,
            residual_values=residuals,
            statistics=stats,
            projector=projector,
            details={
                "order": (p, d, q),
                "seasonal_order": (P, D, Q, self.period),
                "trend": trend,
                "seasonal_strength": strength,
                "search": self.search_method,
                "search_table": table,
            },
        )


class _ArimaProjector:
    """
    Forecasts on the differenced scale, integrated back to the original scale.

    Variances use psi weights of the integrated process, so they are
    non-decreasing in the horizon.
    """

    def __init__(self, result, differenced: DifferencedSeries, sigma2: float, d: int, D: int, period: int):
        self.result = result
        self.differenced = differenced
        self.sigma2 = sigma2
        self.d = d
        self.D = D
        self.period = period

    def __call__(self, horizon: int, future_covariates: Optional[pd.DataFrame] = None) -> Projection:
        w_forecast = np.asarray(self.result.forecast(steps=horizon), dtype=float)
        mean = self.differenced.integrate_forecast(w_forecast)
        psi = integrated_psi_weights(
            np.asarray(self.result.arparams if self.result.model.k_ar_params else [], dtype=float),
            np.asarray(self.result.maparams if self.result.model.k_ma_params else [], dtype=float),
            np.asarray(self.result.seasonalarparams if self.result.model.k_seasonal_ar_params else [], dtype=float),
            np.asarray(self.result.seasonalmaparams if self.result.model.k_seasonal_ma_params else [], dtype=float),
            self.d, self.D, self.period, horizon,
        )
        variance = self.sigma2 * np.cumsum(psi ** 2)
        return Projection(mean=mean, variance=variance)
