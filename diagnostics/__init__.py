"""Residual diagnostics for the handle forecaster.

This package provides diagnostic testing of fitted-model residuals:
- Serial correlation (Ljung-Box at the seasonal lag)
- Normality (Jarque-Bera, Shapiro-Wilk)
"""

from .residual_diagnostics import (
    ResidualDiagnostics,
    DiagnosticResult,
    DiagnosticTest,
)

__all__ = [
    'ResidualDiagnostics',
    'DiagnosticResult',
    'DiagnosticTest',
]

__version__ = '1.0.0'
