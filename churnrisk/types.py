"""
Domain records for churn risk scoring.

Everything that crosses a stage boundary is a frozen dataclass or a
closed string enum, so values read back from storage are re-validated
instead of trusted as loose JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SignalType(str, Enum):
    """Catalog of churn signal types."""

    CANCEL_PAGE_VISIT = "cancel_page_visit"
    PAYMENT_FAILURE_MULTIPLE = "payment_failure_multiple"
    SUPPORT_TICKET_ANGRY = "support_ticket_angry"
    COMPETITOR_MENTION = "competitor_mention"
    LOGIN_FREQUENCY_DROP = "login_frequency_drop"
    FEATURE_USAGE_DECLINE = "feature_usage_decline"
    BILLING_PAGE_VIEWS = "billing_page_views"
    SKIP_PAUSE_CONSIDERATION = "skip_pause_consideration"
    EMAIL_OPEN_RATE_DECLINE = "email_open_rate_decline"
    TIME_SINCE_PURCHASE = "time_since_purchase"
    NPS_SCORE_DROP = "nps_score_drop"
    NEW_SUBSCRIBER_RISK = "new_subscriber_risk"
    ORDER_FREQUENCY_ANALYSIS = "order_frequency_analysis"


class SignalCategory(str, Enum):
    ENGAGEMENT = "engagement"
    PAYMENT = "payment"
    BEHAVIOR = "behavior"
    LIFECYCLE = "lifecycle"
    EXTERNAL = "external"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Urgency(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    WITHIN_24H = "WITHIN_24H"
    WITHIN_7D = "WITHIN_7D"
    MONITORING = "MONITORING"


class InterventionType(str, Enum):
    SAVE_FLOW = "SAVE_FLOW"
    PAYMENT_RECOVERY = "PAYMENT_RECOVERY"
    SERVICE_RECOVERY = "SERVICE_RECOVERY"
    PROACTIVE_OUTREACH = "PROACTIVE_OUTREACH"
    UPSELL = "UPSELL"
    WINBACK = "WINBACK"


class Trend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


# Ordered lowest to highest, used for "at or above" filters
RISK_LEVEL_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


@dataclass(frozen=True)
class SignalWeight:
    """
    Catalog entry describing how a signal type contributes to risk.

    Attributes:
        signal_type: Signal this entry configures
        base_weight: Contribution in [0, 1] before recency decay
        decay_days: Days a recorded signal stays active
        is_additive: Whether repeated recordings stack
        max_occurrences: Cap on active recordings for additive signals
        category: Grouping used for reporting
    """

    signal_type: SignalType
    base_weight: float
    decay_days: int
    is_additive: bool
    max_occurrences: int
    category: SignalCategory


@dataclass(frozen=True)
class OrderSnapshot:
    """A single order as read from the data store."""

    order_id: str
    total: Decimal
    ordered_at: datetime


@dataclass(frozen=True)
class SubscriptionSnapshot:
    subscription_id: str
    status: str
    current_period_start: datetime


@dataclass(frozen=True)
class RecordedSignal:
    """A signal written to the ledger by an upstream collaborator."""

    id: str
    company_id: str
    customer_id: str
    signal_type: SignalType
    weight: float
    detected_at: datetime
    expires_at: datetime
    metadata: Optional[Dict[str, Any]] = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass(frozen=True)
class CustomerSnapshot:
    """
    Customer with the history the profile builder needs.

    Orders are most recent first. Only ACTIVE subscriptions are included.
    """

    customer_id: str
    company_id: str
    orders: Tuple[OrderSnapshot, ...] = ()
    active_subscriptions: Tuple[SubscriptionSnapshot, ...] = ()
    recorded_signals: Tuple[RecordedSignal, ...] = ()
    support_ticket_count: int = 0
    nps_score: Optional[float] = None


@dataclass(frozen=True)
class BehaviorProfile:
    """Compact behavioral summary derived fresh for each scoring run."""

    customer_id: str
    company_id: str
    total_orders: int
    total_spent: Decimal
    avg_order_value: Decimal
    last_order_at: Optional[datetime]
    subscription_tenure_days: Optional[int]
    engagement_score: float
    support_ticket_count: int = 0
    nps_score: Optional[float] = None
    recorded_signals: Tuple[RecordedSignal, ...] = ()


@dataclass(frozen=True)
class ChurnSignal:
    """A weighted piece of evidence explaining why risk exists."""

    type: SignalType
    weight: float
    description: str
    detected_at: datetime
    metadata: Optional[Dict[str, Any]] = None

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "weight": self.weight,
            "description": self.description,
            "detectedAt": self.detected_at.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChurnSignal":
        """Rebuild a signal from its stored form, rejecting unknown types."""
        return cls(
            type=SignalType(data["type"]),
            weight=float(data["weight"]),
            description=str(data["description"]),
            detected_at=datetime.fromisoformat(data["detectedAt"]),
            metadata=data.get("metadata"),
        )


@dataclass(frozen=True)
class ChurnRiskScore:
    """The scored outcome for one customer."""

    customer_id: str
    company_id: str
    score: int
    confidence: float
    risk_level: RiskLevel
    primary_factors: Tuple[SignalType, ...]
    recommended_action: InterventionType
    urgency: Urgency
    calculated_at: datetime
    expires_at: datetime
    trend: Trend = Trend.STABLE
    trend_delta: int = 0

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class CustomerIntent:
    """Persisted score row: the current snapshot for one customer."""

    id: str
    score: ChurnRiskScore
    signals: Tuple[ChurnSignal, ...] = field(default_factory=tuple)

    @property
    def customer_id(self) -> str:
        return self.score.customer_id

    @property
    def company_id(self) -> str:
        return self.score.company_id
