"""Confidence estimation component."""

from typing import Sequence

from ..types import BehaviorProfile, ChurnSignal
from .base import BaseComponent


class ConfidenceEstimator(BaseComponent):
    """
    Estimate how much behavioral evidence backs a score.

    Starts at 0.5 and adds 0.1 for each independent check:
    - more than 5 orders
    - more than 10 orders
    - subscription tenure over 60 days
    - more than 2 signals
    - an NPS score on file
    """

    name = "confidence"

    def estimate(self, profile: BehaviorProfile, signals: Sequence[ChurnSignal]) -> float:
        checks = [
            profile.total_orders > 5,
            profile.total_orders > 10,
            profile.subscription_tenure_days is not None
            and profile.subscription_tenure_days > 60,
            len(signals) > 2,
            profile.nps_score is not None,
        ]
        confidence = self.config.confidence_base + self.config.confidence_bonus * sum(checks)
        return round(min(1.0, max(0.0, confidence)), 2)
