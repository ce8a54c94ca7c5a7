"""Scoring package — risk aggregation and tiering."""

from .engine import aggregate, compute_risk, NoDataError
from .models import AnalysisResult, RiskTier, SubjectRiskRecord

__all__ = [
    "aggregate",
    "compute_risk",
    "NoDataError",
    "AnalysisResult",
    "RiskTier",
    "SubjectRiskRecord",
]
