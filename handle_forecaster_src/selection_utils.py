# handle_forecaster_src/selection_utils.py

"""
Fit every model family on the same training series and pick one.

Families are fitted independently (optionally on worker threads) and
collected in a fixed order, so the outcome depends only on the training
data and configuration. Ranking is a pure function over fit statistics.
Residual autocorrelation in the leading candidates is reported as a
warning and non-normal residuals are logged; neither blocks the result.
"""

import logging
import warnings
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning

from diagnostics.residual_diagnostics import DiagnosticResult, ResidualDiagnostics

from .arima_utils import SeasonalArimaModel
from .candidate_utils import ModelCandidate, rank_candidates
from .config_utils import VALID_SELECTION_RULES, get_config_value
from .exceptions import (
    AllCandidatesFailedError,
    ConvergenceFailure,
    ForecastError,
    ResidualAutocorrelationWarning,
    SeriesIntegrityError,
    SingularMatrixError,
)
from .regression_utils import RegressionModel
from .series_utils import CovariateSeries, TimeSeries
from .smoothing_utils import SmoothingModel

logger = logging.getLogger(__name__)

RankingRule = Union[str, Callable[[List[ModelCandidate]], List[ModelCandidate]]]

NORMALITY_TESTS = ("jarque_bera", "shapiro_wilk")

# Errors that describe bad input rather than a failed fit; they abort selection.
FATAL_ERRORS = (SeriesIntegrityError, SingularMatrixError)


def default_models() -> List[object]:
    """One configured model per family, in ranking-independent fixed order."""
    return [RegressionModel(), SmoothingModel(), SeasonalArimaModel()]


@dataclass(frozen=True)
class SelectionResult:
    """
    Outcome of a selection run.

    Attributes
    ----------
    chosen : ModelCandidate
        Best candidate under ``rule``.
    ranking : Tuple[ModelCandidate, ...]
        Every fitted candidate, best first.
    failures : Mapping[str, Exception]
        Families that could not be fitted, keyed by family name.
    warnings : Tuple[ResidualAutocorrelationWarning, ...]
        Diagnostic warnings raised for the leading candidates.
    diagnostics : Mapping[str, Mapping[str, DiagnosticResult]]
        Per diagnosed candidate label, results keyed by test name
        (``ljung_box``, ``jarque_bera``, ``shapiro_wilk``).
    rule : str
        Name of the ranking rule used.
    """

    chosen: ModelCandidate
    ranking: Tuple[ModelCandidate, ...]
    failures: Mapping[str, Exception] = field(default_factory=dict)
    warnings: Tuple[ResidualAutocorrelationWarning, ...] = ()
    diagnostics: Mapping[str, Mapping[str, DiagnosticResult]] = field(default_factory=dict)
    rule: str = "aicc"

    def __post_init__(self):
        object.__setattr__(self, "ranking", tuple(self.ranking))
        object.__setattr__(self, "warnings", tuple(self.warnings))
        object.__setattr__(self, "failures", MappingProxyType(dict(self.failures)))
        object.__setattr__(self, "diagnostics", MappingProxyType(
            {label: MappingProxyType(dict(tests)) for label, tests in self.diagnostics.items()}
        ))

    @property
    def rejected(self) -> Tuple[ModelCandidate, ...]:
        return self.ranking[1:]

    @property
    def flagged_labels(self) -> List[str]:
        return [w.label for w in self.warnings]

    @property
    def non_normal_labels(self) -> List[str]:
        """Diagnosed candidates whose residuals fail a normality test."""
        return [label for label, tests in self.diagnostics.items()
                if any(tests[name].is_significant for name in NORMALITY_TESTS if name in tests)]

    def scores_frame(self) -> pd.DataFrame:
        """
        One row per fitted candidate with its statistics and diagnostics, best first.

        ``n_obs`` differs between families (ARIMA scores the differenced
        series, a lagged regression drops its first period), so information
        criteria are compared over slightly different samples.
        """
        rows = []
        flagged = set(self.flagged_labels)
        non_normal = set(self.non_normal_labels)
        for rank, cand in enumerate(self.ranking, start=1):
            tests = self.diagnostics.get(cand.label, {})
            lb = tests.get("ljung_box")
            jb = tests.get("jarque_bera")
            rows.append({
                "rank": rank,
                "label": cand.label,
                "family": cand.family.value,
                **cand.statistics.as_dict(),
                "ljung_box_p": lb.p_value if lb is not None else np.nan,
                "autocorrelated": cand.label in flagged,
                "normality_p": jb.p_value if jb is not None else np.nan,
                "non_normal": cand.label in non_normal,
                "chosen": rank == 1,
            })
        return pd.DataFrame(rows).set_index("rank")


class ModelSelector:
    """
    Fit candidate models and rank them.

    Parameters
    ----------
    models : Sequence, optional
        Family models exposing ``family`` and ``fit(train, covariates)``.
        Defaults to regression, smoothing and seasonal ARIMA.
    rule : str or callable, optional
        ``"aicc"``, ``"bic"``, ``"adjusted_r2"``, or a function that orders a
        list of candidates best-first.
    parallel : bool, optional
        Fit families on a thread pool.
    max_workers : int, optional
        Thread pool size.
    timeout_seconds : float, optional
        Per-family wait limit; exceeding it counts as a convergence failure.
    diagnose_top : int, optional
        Number of leading candidates given residual checks (Ljung-Box and normality).
    ljung_box_alpha : float, optional
        Significance level of the residual checks.
    seasonal_lag : int, optional
        Lag tested by Ljung-Box (the seasonal period).
    """

    def __init__(self,
                 models: Optional[Sequence[object]] = None,
                 rule: Optional[RankingRule] = None,
                 parallel: Optional[bool] = None,
                 max_workers: Optional[int] = None,
                 timeout_seconds: Optional[float] = None,
                 diagnose_top: Optional[int] = None,
                 ljung_box_alpha: Optional[float] = None,
                 seasonal_lag: Optional[int] = None):
        self.models = list(models) if models is not None else default_models()
        if not self.models:
            raise ValueError("ModelSelector needs at least one model")
        self.rule = rule if rule is not None else get_config_value("selection.rule", "aicc")
        if not callable(self.rule) and self.rule not in VALID_SELECTION_RULES:
            raise ValueError(f"Unknown selection rule {self.rule!r}; expected one of {VALID_SELECTION_RULES}")
        self.parallel = bool(get_config_value("selection.parallel", True) if parallel is None else parallel)
        self.max_workers = int(max_workers or get_config_value("selection.max_workers", 3))
        self.timeout_seconds = (timeout_seconds if timeout_seconds is not None
                                else get_config_value("selection.timeout_seconds", None))
        self.diagnose_top = int(get_config_value("selection.diagnose_top", 2) if diagnose_top is None else diagnose_top)
        self.ljung_box_alpha = float(ljung_box_alpha or get_config_value("selection.ljung_box_alpha", 0.05))
        self.seasonal_lag = int(seasonal_lag or get_config_value("series.seasonal_period", 12))

    @property
    def rule_name(self) -> str:
        return self.rule if isinstance(self.rule, str) else getattr(self.rule, "__name__", "custom")

    def rank(self, candidates: List[ModelCandidate]) -> List[ModelCandidate]:
        """Order candidates best-first under the configured rule."""
        if callable(self.rule):
            return list(self.rule(list(candidates)))
        return rank_candidates(candidates, self.rule)

    # ------------------------------------------------------------------ fitting

    def _fit_all(self, train: TimeSeries,
                 covariates: Optional[List[CovariateSeries]]) -> Tuple[List[ModelCandidate], Dict[str, Exception]]:
        candidates: List[ModelCandidate] = []
        failures: Dict[str, Exception] = {}

        def _record(name: str, outcome: Callable[[], ModelCandidate]) -> None:
            try:
                candidates.append(outcome())
            except FATAL_ERRORS:
                raise
            except (ForecastError, np.linalg.LinAlgError) as e:
                logger.warning("Candidate %s failed: %s", name, e)
                failures[name] = e

        if not self.parallel or len(self.models) == 1:
            for model in self.models:
                _record(model.family.value, lambda m=model: m.fit(train, covariates))
            return candidates, failures

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="fit")
        try:
            futures = [(m.family.value, executor.submit(m.fit, train, covariates)) for m in self.models]
            for name, future in futures:
                def _result(f=future, n=name):
                    try:
                        return f.result(timeout=self.timeout_seconds)
                    except FutureTimeoutError:
                        f.cancel()
                        raise ConvergenceFailure(
                            f"{n} did not finish within {self.timeout_seconds} seconds"
                        ) from None
                _record(name, _result)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)
        return candidates, failures

    # -------------------------------------------------------------- diagnostics

    def _diagnose(self, ranked: List[ModelCandidate]) -> Tuple[Dict[str, Dict[str, DiagnosticResult]],
                                                               List[ResidualAutocorrelationWarning]]:
        tester = ResidualDiagnostics(self.ljung_box_alpha, config={"ljung_box_lags": self.seasonal_lag})
        results: Dict[str, Dict[str, DiagnosticResult]] = {}
        flagged: List[ResidualAutocorrelationWarning] = []
        for cand in ranked[:self.diagnose_top]:
            report = tester.run_comprehensive_diagnostics(cand.residuals, model_name=cand.label)
            tests = dict(report["test_results"])
            results[cand.label] = tests

            lb = tests.get("ljung_box")
            if lb is not None and lb.is_significant:
                warning = ResidualAutocorrelationWarning(cand.label, self.seasonal_lag, lb.test_statistic, lb.p_value)
                flagged.append(warning)
                logger.warning("%s", warning)
                warnings.warn(warning, stacklevel=3)
            elif lb is not None:
                logger.debug("%s: Ljung-Box p=%.4f at lag %d", cand.label, lb.p_value, self.seasonal_lag)

            for name in NORMALITY_TESTS:
                check = tests.get(name)
                if check is not None and check.is_significant:
                    logger.warning("%s: residuals not normally distributed (%s p=%.4f); "
                                   "prediction intervals may be miscalibrated",
                                   cand.label, name, check.p_value)
        return results, flagged

    def select(self, train: TimeSeries,
               covariates: Optional[List[CovariateSeries]] = None) -> SelectionResult:
        """
        Fit every family on ``train`` and rank the successful fits.

        Raises
        ------
        AllCandidatesFailedError
            If no family could be fitted.
        SeriesIntegrityError, SingularMatrixError
            Propagated from any family as soon as it is seen.
        """
        logger.info("Selecting among %d model families on %s (n=%d, rule=%s)",
                    len(self.models), train.name, len(train), self.rule_name)
        # Filters are process-wide, so they are installed once here rather than in worker threads.
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", ConvergenceWarning)
            warnings.filterwarnings("ignore", category=UserWarning, module="statsmodels")
            candidates, failures = self._fit_all(train, covariates)
        if not candidates:
            raise AllCandidatesFailedError(failures)

        ranked = self.rank(candidates)
        diagnostics, flagged = self._diagnose(ranked)
        result = SelectionResult(
            chosen=ranked[0],
            ranking=ranked,
            failures=failures,
            warnings=flagged,
            diagnostics=diagnostics,
            rule=self.rule_name,
        )
        score_note = (f"{self.rule}={ranked[0].score(self.rule):.3f}"
                      if isinstance(self.rule, str) else self.rule_name)
        logger.info("Chose %s (%s); rejected: %s", result.chosen.label, score_note,
                    ", ".join(c.label for c in result.rejected) or "none")
        return result
