"""Risk level, urgency and intervention classification."""

from dataclasses import dataclass
from typing import Sequence, Tuple

from ..types import ChurnSignal, InterventionType, RiskLevel, SignalType, Urgency
from .base import BaseComponent

URGENCY_BY_LEVEL = {
    RiskLevel.CRITICAL: Urgency.IMMEDIATE,
    RiskLevel.HIGH: Urgency.WITHIN_24H,
    RiskLevel.MEDIUM: Urgency.WITHIN_7D,
    RiskLevel.LOW: Urgency.MONITORING,
}

FALLBACK_ACTION_BY_LEVEL = {
    RiskLevel.CRITICAL: InterventionType.PROACTIVE_OUTREACH,
    RiskLevel.HIGH: InterventionType.PROACTIVE_OUTREACH,
    RiskLevel.MEDIUM: InterventionType.UPSELL,   # re-engage with value
    RiskLevel.LOW: InterventionType.WINBACK,
}


@dataclass(frozen=True)
class Classification:
    risk_level: RiskLevel
    urgency: Urgency
    recommended_action: InterventionType
    primary_factors: Tuple[SignalType, ...]


class Classifier(BaseComponent):
    """
    Map a score and its signals to a risk level, urgency and action.

    Levels use inclusive lower bounds: >=80 Critical, >=60 High,
    >=40 Medium, otherwise Low.

    Action precedence (first match wins, independent of score):
    - payment failure signal -> PAYMENT_RECOVERY
    - angry support signal -> SERVICE_RECOVERY
    - cancel page visit -> SAVE_FLOW
    - otherwise by level
    """

    name = "classifier"

    def classify(self, score: float, signals: Sequence[ChurnSignal]) -> Classification:
        risk_level = self.risk_level(score)
        return Classification(
            risk_level=risk_level,
            urgency=self.urgency(risk_level),
            recommended_action=self.recommended_action(risk_level, signals),
            primary_factors=self.primary_factors(signals),
        )

    def risk_level(self, score: float) -> RiskLevel:
        return self.config.get_risk_level(score)

    @staticmethod
    def urgency(risk_level: RiskLevel) -> Urgency:
        return URGENCY_BY_LEVEL[risk_level]

    def recommended_action(
        self,
        risk_level: RiskLevel,
        signals: Sequence[ChurnSignal],
    ) -> InterventionType:
        signal_types = {signal.type for signal in signals}

        if signal_types & self.config.payment_failure_signals:
            return InterventionType.PAYMENT_RECOVERY
        if signal_types & self.config.angry_support_signals:
            return InterventionType.SERVICE_RECOVERY
        if signal_types & self.config.cancel_intent_signals:
            return InterventionType.SAVE_FLOW

        return FALLBACK_ACTION_BY_LEVEL[risk_level]

    def primary_factors(self, signals: Sequence[ChurnSignal]) -> Tuple[SignalType, ...]:
        """Highest-weight signal types; ties keep detection order."""
        ranked = sorted(signals, key=lambda signal: signal.weight, reverse=True)
        return tuple(signal.type for signal in ranked[: self.config.primary_factor_count])
