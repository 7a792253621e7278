"""
Churn Risk Engine Package

A deterministic weighted-rule engine for scoring customer churn risk.
"""

from .engine import ChurnRiskEngine
from .config import ScoringConfig, EngineSettings
from .batch import BatchResult, BatchFailure
from .types import (
    ChurnRiskScore,
    ChurnSignal,
    InterventionType,
    RiskLevel,
    SignalType,
    Urgency,
)

__all__ = [
    "ChurnRiskEngine",
    "ScoringConfig",
    "EngineSettings",
    "BatchResult",
    "BatchFailure",
    "ChurnRiskScore",
    "ChurnSignal",
    "InterventionType",
    "RiskLevel",
    "SignalType",
    "Urgency",
]
__version__ = "1.0.0"
