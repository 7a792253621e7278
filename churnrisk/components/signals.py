"""Churn signal detection component."""

from datetime import datetime
from typing import Callable, List, Optional

from ..types import BehaviorProfile, ChurnSignal, SignalType
from .base import BaseComponent
from .profile import days_between

Rule = Callable[["SignalDetector", BehaviorProfile, datetime], Optional[ChurnSignal]]


class SignalDetector(BaseComponent):
    """
    Evaluate the signal rule catalog against a behavior profile.

    Every rule runs independently; a rule either fires or it doesn't.
    Weights come from the configured SignalWeight catalog.

    Rules:
    - time_since_purchase: last order more than 60 days ago
    - feature_usage_decline: engagement below 30
    - new_subscriber_risk: active subscription younger than 90 days
    - order_frequency_analysis: more than 3 orders (marker only)
    - nps_score_drop: NPS below 7, weight grows as NPS falls

    Active recorded signals on the profile are emitted as well, keeping
    their original detection time so the recency modifier applies.
    """

    name = "signals"

    def detect(self, profile: BehaviorProfile, now: datetime) -> List[ChurnSignal]:
        signals = []
        for rule in self.rules:
            signal = rule(self, profile, now)
            if signal is not None:
                signals.append(signal)
        signals.extend(self._recorded(profile, now))
        return signals

    def _base_weight(self, signal_type: SignalType) -> float:
        return self.config.get_weight(signal_type).base_weight

    def _time_since_purchase(self, profile: BehaviorProfile, now: datetime) -> Optional[ChurnSignal]:
        if profile.last_order_at is None:
            return None
        days_since_order = days_between(profile.last_order_at, now)
        if days_since_order <= self.config.inactivity_days:
            return None
        return ChurnSignal(
            type=SignalType.TIME_SINCE_PURCHASE,
            weight=self._base_weight(SignalType.TIME_SINCE_PURCHASE),
            description=f"{days_since_order} days since last purchase",
            detected_at=now,
            metadata={"daysSinceOrder": days_since_order},
        )

    def _feature_usage_decline(self, profile: BehaviorProfile, now: datetime) -> Optional[ChurnSignal]:
        if profile.engagement_score >= self.config.low_engagement_threshold:
            return None
        return ChurnSignal(
            type=SignalType.FEATURE_USAGE_DECLINE,
            weight=self._base_weight(SignalType.FEATURE_USAGE_DECLINE),
            description=f"Low engagement score: {profile.engagement_score:g}",
            detected_at=now,
            metadata={"engagementScore": profile.engagement_score},
        )

    def _new_subscriber_risk(self, profile: BehaviorProfile, now: datetime) -> Optional[ChurnSignal]:
        tenure = profile.subscription_tenure_days
        if tenure is None or tenure >= self.config.new_subscriber_days:
            return None
        return ChurnSignal(
            type=SignalType.NEW_SUBSCRIBER_RISK,
            weight=self._base_weight(SignalType.NEW_SUBSCRIBER_RISK),
            description=f"New subscriber: {tenure} days",
            detected_at=now,
            metadata={"tenure": tenure},
        )

    def _order_frequency_analysis(self, profile: BehaviorProfile, now: datetime) -> Optional[ChurnSignal]:
        # Marker only: records that enough history exists for a frequency
        # trend check. No trend is computed here.
        if profile.total_orders <= self.config.order_frequency_min_orders:
            return None
        return ChurnSignal(
            type=SignalType.ORDER_FREQUENCY_ANALYSIS,
            weight=self._base_weight(SignalType.ORDER_FREQUENCY_ANALYSIS),
            description="Order frequency analysis performed",
            detected_at=now,
        )

    def _nps_score_drop(self, profile: BehaviorProfile, now: datetime) -> Optional[ChurnSignal]:
        nps = profile.nps_score
        if nps is None or nps >= self.config.nps_threshold:
            return None
        scale = 1 + (self.config.nps_threshold - nps) / 10
        return ChurnSignal(
            type=SignalType.NPS_SCORE_DROP,
            weight=min(1.0, self._base_weight(SignalType.NPS_SCORE_DROP) * scale),
            description=f"Low NPS score: {nps:g}",
            detected_at=now,
            metadata={"npsScore": nps},
        )

    def _recorded(self, profile: BehaviorProfile, now: datetime) -> List[ChurnSignal]:
        return [
            ChurnSignal(
                type=recorded.signal_type,
                weight=recorded.weight,
                description=f"Recorded {recorded.signal_type.value.replace('_', ' ')}",
                detected_at=recorded.detected_at,
                metadata=recorded.metadata,
            )
            for recorded in sorted(profile.recorded_signals, key=lambda s: s.detected_at)
            if recorded.is_active(now)
        ]

    # Evaluation order is detection order, which breaks primary factor ties
    rules: List[Rule] = [
        _time_since_purchase,
        _feature_usage_decline,
        _new_subscriber_risk,
        _order_frequency_analysis,
        _nps_score_drop,
    ]
