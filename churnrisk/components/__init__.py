"""Pipeline stages for churn risk scoring."""

from .base import BaseComponent
from .profile import ProfileBuilder
from .signals import SignalDetector
from .aggregator import RiskAggregator, RiskBreakdown
from .classifier import Classification, Classifier
from .confidence import ConfidenceEstimator

__all__ = [
    "BaseComponent",
    "ProfileBuilder",
    "SignalDetector",
    "RiskAggregator",
    "RiskBreakdown",
    "Classification",
    "Classifier",
    "ConfidenceEstimator",
]
