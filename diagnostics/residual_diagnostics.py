"""Residual diagnostics for fitted forecast candidates.

Features:
- Ljung-Box test for serial correlation at the seasonal lag
- Jarque-Bera and Shapiro-Wilk tests for normality
- Overall adequacy assessment
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.stats.stattools import jarque_bera

logger = logging.getLogger(__name__)


class DiagnosticTest(Enum):
    """Types of residual diagnostic tests."""
    LJUNG_BOX = "ljung_box"
    JARQUE_BERA = "jarque_bera"
    SHAPIRO_WILK = "shapiro_wilk"


@dataclass
class DiagnosticResult:
    """Results from a single diagnostic test."""

    test_name: str
    test_type: DiagnosticTest
    test_statistic: float
    p_value: float
    significance_level: float = 0.05
    degrees_of_freedom: Optional[int] = None
    test_description: Optional[str] = None
    additional_stats: Dict[str, float] = field(default_factory=dict)

    @property
    def is_significant(self) -> bool:
        """Check if test rejects null hypothesis."""
        return self.p_value < self.significance_level

    @property
    def interpretation(self) -> str:
        if self.test_type == DiagnosticTest.LJUNG_BOX:
            if self.is_significant:
                return "Serial correlation detected in residuals"
            return "No significant serial correlation in residuals"
        if self.test_type in (DiagnosticTest.JARQUE_BERA, DiagnosticTest.SHAPIRO_WILK):
            if self.is_significant:
                return "Residuals not normally distributed"
            return "Residuals appear normally distributed"
        return f"p={self.p_value:.4f}"


class ResidualDiagnostics:
    """Residual diagnostic testing.

    Parameters
    ----------
    significance_level : float, default 0.05
        Significance level for all tests
    config : dict, optional
        Overrides for ``ljung_box_lags``
    """

    def __init__(self, significance_level: float = 0.05, config: Optional[Dict[str, Any]] = None):
        self.significance_level = significance_level
        self.diag_config = {
            "ljung_box_lags": 12,
        }
        self.diag_config.update(config or {})

    @staticmethod
    def _clean(residuals: pd.Series) -> pd.Series:
        return pd.Series(residuals, dtype=float).dropna()

    def ljung_box_test(self, residuals: pd.Series, lags: Optional[int] = None) -> DiagnosticResult:
        """Ljung-Box test for serial correlation in residuals.

        Parameters
        ----------
        residuals : pd.Series
            Model residuals; NaNs (unfitted periods) are dropped
        lags : int, optional
            Lag to test (default from config, the seasonal period)

        Returns
        -------
        DiagnosticResult
            Ljung-Box test results

        Raises
        ------
        ValueError
            If there are not more residuals than lags
        """
        if lags is None:
            lags = int(self.diag_config["ljung_box_lags"])
        clean = self._clean(residuals)
        if len(clean) <= lags:
            raise ValueError(f"Ljung-Box at lag {lags} needs more than {lags} residuals, got {len(clean)}")

        logger.debug("Running Ljung-Box test at lag %d", lags)
        lb_result = acorr_ljungbox(clean, lags=[lags], return_df=True)
        test_stat = lb_result.loc[lags, "lb_stat"]
        p_value = lb_result.loc[lags, "lb_pvalue"]

        return DiagnosticResult(
            test_name="Ljung-Box Test",
            test_type=DiagnosticTest.LJUNG_BOX,
            test_statistic=float(test_stat),
            p_value=float(p_value),
            degrees_of_freedom=lags,
            significance_level=self.significance_level,
            test_description=f"Test for serial correlation in residuals (H0: No serial correlation, lags={lags})",
        )

    def jarque_bera_test(self, residuals: pd.Series) -> DiagnosticResult:
        """Jarque-Bera test for normality of residuals."""
        logger.debug("Running Jarque-Bera normality test")
        jb_stat, jb_pval, skew, kurtosis = jarque_bera(self._clean(residuals))

        return DiagnosticResult(
            test_name="Jarque-Bera Test",
            test_type=DiagnosticTest.JARQUE_BERA,
            test_statistic=float(jb_stat),
            p_value=float(jb_pval),
            degrees_of_freedom=2,
            significance_level=self.significance_level,
            test_description="Test for normality of residuals (H0: Residuals are normally distributed)",
            additional_stats={"skewness": float(skew), "kurtosis": float(kurtosis)},
        )

    def shapiro_wilk_test(self, residuals: pd.Series) -> DiagnosticResult:
        """Shapiro-Wilk test for normality (for smaller samples)."""
        clean = self._clean(residuals)
        if len(clean) > 5000:
            logger.warning("Shapiro-Wilk test may be unreliable for large samples (n=%d)", len(clean))

        sw_stat, sw_pval = stats.shapiro(clean)

        return DiagnosticResult(
            test_name="Shapiro-Wilk Test",
            test_type=DiagnosticTest.SHAPIRO_WILK,
            test_statistic=float(sw_stat),
            p_value=float(sw_pval),
            significance_level=self.significance_level,
            test_description="Test for normality of residuals (H0: Residuals are normally distributed)",
        )

    def run_comprehensive_diagnostics(self, residuals: pd.Series, model_name: str = "model") -> Dict[str, Any]:
        """Run every residual test and summarize model adequacy.

        Tests that cannot run on the given residuals (too few points) are
        logged and left out of ``test_results``.
        """
        logger.info("Running residual diagnostics for %s", model_name)
        clean = self._clean(residuals)

        results: Dict[str, Any] = {
            "model_name": model_name,
            "n_residuals": len(clean),
            "test_results": {},
            "summary_statistics": {
                "mean": float(clean.mean()),
                "std": float(clean.std()),
                "skewness": float(clean.skew()),
                "kurtosis": float(clean.kurtosis()),
                "min": float(clean.min()),
                "max": float(clean.max()),
            },
        }

        test_functions = [
            ("ljung_box", self.ljung_box_test),
            ("jarque_bera", self.jarque_bera_test),
        ]
        if len(clean) <= 5000:
            test_functions.append(("shapiro_wilk", self.shapiro_wilk_test))

        for test_name, test_func in test_functions:
            try:
                test_result = test_func(clean)
            except (ValueError, np.linalg.LinAlgError) as e:
                logger.warning("Test %s skipped for %s: %s", test_name, model_name, e)
                continue
            results["test_results"][test_name] = test_result
            logger.debug("%s: %s", test_result.test_name, test_result.interpretation)

        results["overall_assessment"] = self._assess_model_adequacy(results["test_results"])
        return results

    def _assess_model_adequacy(self, test_results: Dict[str, DiagnosticResult]) -> Dict[str, Any]:
        assessment = {
            "issues_detected": [],
            "warnings": [],
            "recommendations": [],
            "overall_adequate": True,
        }

        for result in test_results.values():
            if not result.is_significant:
                continue
            if result.test_type == DiagnosticTest.LJUNG_BOX:
                assessment["issues_detected"].append("Serial correlation in residuals")
                assessment["recommendations"].append("Consider a richer seasonal or ARMA structure")
                assessment["overall_adequate"] = False
            elif result.test_type in (DiagnosticTest.JARQUE_BERA, DiagnosticTest.SHAPIRO_WILK):
                assessment["warnings"].append("Residuals not normally distributed")
                assessment["recommendations"].append("Gaussian intervals may be miscalibrated")

        if not assessment["issues_detected"] and not assessment["warnings"]:
            assessment["recommendations"].append("Model diagnostics look good - no major issues detected")

        return assessment

