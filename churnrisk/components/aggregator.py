"""Risk aggregation component."""

import operator
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from ..types import BehaviorProfile, ChurnSignal
from .base import BaseComponent

SECONDS_PER_HOUR = 60 * 60


@dataclass(frozen=True)
class RiskBreakdown:
    """
    Intermediate values of one aggregation, kept for explainability.

    Attributes:
        base_score: Sum of signal weights x 100 (unbounded)
        recency_modifier: Weighted recency factor in [0.5, 1]
        tenure_risk: Tenure risk in [0.1, 0.8]
        engagement_trend: 1 - engagement/100
        payment_health_risk: Payment risk in [0.1, 0.9]
        raw_score: Composite x 100 before clamping
        score: Final score in [0, 100]
    """

    base_score: float
    recency_modifier: float
    tenure_risk: float
    engagement_trend: float
    payment_health_risk: float
    raw_score: float
    score: float


class RiskAggregator(BaseComponent):
    """
    Combine signal weights with tenure, engagement and payment modifiers.

    score = base * recency * 0.35 + tenure * 0.2
            + engagement_trend * 0.3 + payment * 0.15

    then x100 and clamped to [0, 100]. The coefficients come from
    ScoringConfig.composite_weights and are never renormalised.
    """

    name = "aggregator"

    def aggregate(
        self,
        profile: BehaviorProfile,
        signals: Sequence[ChurnSignal],
        failed_transactions: int,
        now: datetime,
    ) -> RiskBreakdown:
        weights = self.config.composite_weights

        base_score = sum(signal.weight * 100 for signal in signals)
        recency = self.recency_modifier(signals, now)
        tenure = self.tenure_risk(profile.subscription_tenure_days)
        engagement = self.engagement_trend(profile.engagement_score)
        payment = self.payment_health_risk(failed_transactions)

        composite = (
            base_score * recency * weights["signals"]
            + tenure * weights["tenure"]
            + engagement * weights["engagement"]
            + payment * weights["payment"]
        )
        raw_score = composite * 100

        return RiskBreakdown(
            base_score=base_score,
            recency_modifier=recency,
            tenure_risk=tenure,
            engagement_trend=engagement,
            payment_health_risk=payment,
            raw_score=raw_score,
            score=min(100.0, max(0.0, raw_score)),
        )

    def recency_modifier(self, signals: Sequence[ChurnSignal], now: datetime) -> float:
        """Weight-averaged recency factor; 1 when there are no signals."""
        window = self.config.recency_window_hours
        floor = self.config.recency_floor

        total_weight = 0.0
        weighted_sum = 0.0
        for signal in signals:
            hours = (now - signal.detected_at).total_seconds() / SECONDS_PER_HOUR
            factor = min(1.0, max(floor, 1 - hours / window))
            weighted_sum += factor * signal.weight
            total_weight += signal.weight

        return weighted_sum / total_weight if total_weight > 0 else 1.0

    def tenure_risk(self, tenure_days: Optional[int]) -> float:
        """New subscribers carry the most risk; no subscription counts as day 0."""
        return self.first_match(
            tenure_days or 0,
            self.config.tenure_risk_thresholds,
            operator.lt,
            self.config.tenure_risk_default,
        )

    @staticmethod
    def engagement_trend(engagement_score: float) -> float:
        return 1 - engagement_score / 100

    def payment_health_risk(self, failed_transactions: int) -> float:
        """Risk from failed transactions in the lookback window."""
        return self.first_match(
            failed_transactions,
            self.config.payment_risk_thresholds,
            operator.ge,
            self.config.payment_risk_default,
        )
