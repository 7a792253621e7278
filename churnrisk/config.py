"""
Scoring configuration for the churn risk engine.

All thresholds, the signal weight catalog and the composite coefficients
are defined here so tuning never touches the scoring logic.

The composite weighting (0.35 / 0.2 / 0.3 / 0.15) is fixed policy:
- Signals (recency adjusted): 0.35
- Tenure risk: 0.2
- Engagement trend: 0.3
- Payment health: 0.15
"""

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .types import RiskLevel, SignalCategory, SignalType, SignalWeight


def _weight(
    signal_type: SignalType,
    base_weight: float,
    decay_days: int,
    category: SignalCategory,
    is_additive: bool = False,
    max_occurrences: int = 1,
) -> SignalWeight:
    return SignalWeight(
        signal_type=signal_type,
        base_weight=base_weight,
        decay_days=decay_days,
        is_additive=is_additive,
        max_occurrences=max_occurrences,
        category=category,
    )


def default_signal_weights() -> Dict[SignalType, SignalWeight]:
    """Default signal catalog, highest intent first."""
    catalog = [
        # Explicit intent: strongest evidence
        _weight(SignalType.CANCEL_PAGE_VISIT, 0.9, 14, SignalCategory.BEHAVIOR, True, 3),
        _weight(SignalType.PAYMENT_FAILURE_MULTIPLE, 0.85, 30, SignalCategory.PAYMENT),
        _weight(SignalType.SUPPORT_TICKET_ANGRY, 0.8, 21, SignalCategory.EXTERNAL, True, 2),
        _weight(SignalType.COMPETITOR_MENTION, 0.75, 30, SignalCategory.EXTERNAL),
        # Engagement decay
        _weight(SignalType.LOGIN_FREQUENCY_DROP, 0.6, 14, SignalCategory.ENGAGEMENT),
        _weight(SignalType.FEATURE_USAGE_DECLINE, 0.55, 14, SignalCategory.ENGAGEMENT),
        _weight(SignalType.BILLING_PAGE_VIEWS, 0.5, 7, SignalCategory.BEHAVIOR, True, 5),
        _weight(SignalType.SKIP_PAUSE_CONSIDERATION, 0.45, 14, SignalCategory.BEHAVIOR),
        _weight(SignalType.EMAIL_OPEN_RATE_DECLINE, 0.3, 30, SignalCategory.ENGAGEMENT),
        _weight(SignalType.TIME_SINCE_PURCHASE, 0.25, 30, SignalCategory.ENGAGEMENT),
        _weight(SignalType.NPS_SCORE_DROP, 0.2, 60, SignalCategory.EXTERNAL),
        # Lifecycle
        _weight(SignalType.NEW_SUBSCRIBER_RISK, 0.4, 90, SignalCategory.LIFECYCLE),
        _weight(SignalType.ORDER_FREQUENCY_ANALYSIS, 0.3, 30, SignalCategory.ENGAGEMENT),
    ]
    return {entry.signal_type: entry for entry in catalog}


DEFAULT_COMPOSITE_WEIGHTS = {
    "signals": 0.35,
    "tenure": 0.2,
    "engagement": 0.3,
    "payment": 0.15,
}


@dataclass
class ScoringConfig:
    """
    Configuration for all scoring stages.

    Load from YAML:
        config = ScoringConfig.from_yaml("configs/scoring.yaml")

    Create programmatically:
        config = ScoringConfig(inactivity_days=45)
    """

    # === Signal catalog ===
    signal_weights: Dict[SignalType, SignalWeight] = field(
        default_factory=default_signal_weights
    )

    # === Signal rules ===
    inactivity_days: int = 60            # > this many days since last order
    low_engagement_threshold: float = 30.0
    new_subscriber_days: int = 90
    order_frequency_min_orders: int = 3  # > this many orders
    nps_threshold: float = 7.0

    # === Profile ===
    order_history_limit: int = 100
    engagement_decay_per_day: float = 2.0
    no_order_days: int = 999             # days assumed when there is no order

    # === Recency modifier ===
    recency_window_hours: float = 168.0  # linear decay over 7 days
    recency_floor: float = 0.5

    # === Tenure risk (first match wins, tenure < max_days) ===
    tenure_risk_thresholds: List[Tuple[int, float]] = field(default_factory=lambda: [
        (30, 0.8),
        (90, 0.5),
        (180, 0.3),
        (365, 0.2),
    ])
    tenure_risk_default: float = 0.1

    # === Payment health (first match wins, failures >= min_failures) ===
    payment_risk_thresholds: List[Tuple[int, float]] = field(default_factory=lambda: [
        (3, 0.9),
        (2, 0.7),
        (1, 0.4),
    ])
    payment_risk_default: float = 0.1
    payment_lookback_days: int = 30

    # === Composite ===
    composite_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_COMPOSITE_WEIGHTS)
    )

    # === Classification (inclusive lower bounds, highest first) ===
    risk_level_thresholds: List[Tuple[float, RiskLevel]] = field(default_factory=lambda: [
        (80.0, RiskLevel.CRITICAL),
        (60.0, RiskLevel.HIGH),
        (40.0, RiskLevel.MEDIUM),
    ])
    payment_failure_signals: FrozenSet[SignalType] = frozenset({
        SignalType.PAYMENT_FAILURE_MULTIPLE,
    })
    angry_support_signals: FrozenSet[SignalType] = frozenset({
        SignalType.SUPPORT_TICKET_ANGRY,
    })
    cancel_intent_signals: FrozenSet[SignalType] = frozenset({
        SignalType.CANCEL_PAGE_VISIT,
    })
    primary_factor_count: int = 3

    # === Confidence ===
    confidence_base: float = 0.5
    confidence_bonus: float = 0.1

    # === Persistence & batching ===
    score_ttl_hours: int = 24
    trend_threshold: int = 5
    batch_chunk_size: int = 10
    high_risk_limit: int = 50

    # === Metadata ===
    version: str = "1.0.0"

    def get_weight(self, signal_type: SignalType) -> SignalWeight:
        """Catalog entry for a signal type."""
        return self.signal_weights[signal_type]

    def get_risk_level(self, score: float) -> RiskLevel:
        """Map numeric score to risk level."""
        for lower_bound, level in self.risk_level_thresholds:
            if score >= lower_bound:
                return level
        return RiskLevel.LOW

    @classmethod
    def from_dict(cls, data: dict) -> "ScoringConfig":
        """
        Build a config from plain data (YAML or JSON).

        Signal weights and composite weights may be given partially;
        unspecified entries keep their defaults. Raises ValueError for a
        base weight outside [0, 1] or an unknown composite term.
        """
        data = dict(data)
        catalog = default_signal_weights()
        for name, overrides in (data.pop("signal_weights", None) or {}).items():
            signal_type = SignalType(name)
            current = asdict(catalog[signal_type])
            current.update(overrides)
            current["signal_type"] = signal_type
            current["category"] = SignalCategory(current["category"])
            if not 0.0 <= float(current["base_weight"]) <= 1.0:
                raise ValueError(
                    f"base_weight for {name} must be in [0, 1], got {current['base_weight']}"
                )
            catalog[signal_type] = SignalWeight(**current)

        if "composite_weights" in data:
            unknown = set(data["composite_weights"]) - set(DEFAULT_COMPOSITE_WEIGHTS)
            if unknown:
                raise ValueError(f"Unknown composite weights: {sorted(unknown)}")
            data["composite_weights"] = {
                **DEFAULT_COMPOSITE_WEIGHTS,
                **data["composite_weights"],
            }

        for key in ("tenure_risk_thresholds", "payment_risk_thresholds"):
            if key in data:
                data[key] = [tuple(pair) for pair in data[key]]
        if "risk_level_thresholds" in data:
            data["risk_level_thresholds"] = [
                (float(bound), RiskLevel(level))
                for bound, level in data["risk_level_thresholds"]
            ]
        for key in ("payment_failure_signals", "angry_support_signals", "cancel_intent_signals"):
            if key in data:
                data[key] = frozenset(SignalType(value) for value in data[key])

        return cls(signal_weights=catalog, **data)

    def to_dict(self) -> dict:
        """Convert to plain data suitable for YAML."""
        return {
            "signal_weights": {
                signal_type.value: {
                    "base_weight": entry.base_weight,
                    "decay_days": entry.decay_days,
                    "is_additive": entry.is_additive,
                    "max_occurrences": entry.max_occurrences,
                    "category": entry.category.value,
                }
                for signal_type, entry in self.signal_weights.items()
            },
            "inactivity_days": self.inactivity_days,
            "low_engagement_threshold": self.low_engagement_threshold,
            "new_subscriber_days": self.new_subscriber_days,
            "order_frequency_min_orders": self.order_frequency_min_orders,
            "nps_threshold": self.nps_threshold,
            "order_history_limit": self.order_history_limit,
            "engagement_decay_per_day": self.engagement_decay_per_day,
            "no_order_days": self.no_order_days,
            "recency_window_hours": self.recency_window_hours,
            "recency_floor": self.recency_floor,
            "tenure_risk_thresholds": [list(pair) for pair in self.tenure_risk_thresholds],
            "tenure_risk_default": self.tenure_risk_default,
            "payment_risk_thresholds": [list(pair) for pair in self.payment_risk_thresholds],
            "payment_risk_default": self.payment_risk_default,
            "payment_lookback_days": self.payment_lookback_days,
            "composite_weights": dict(self.composite_weights),
            "risk_level_thresholds": [
                [bound, level.value] for bound, level in self.risk_level_thresholds
            ],
            "payment_failure_signals": sorted(s.value for s in self.payment_failure_signals),
            "angry_support_signals": sorted(s.value for s in self.angry_support_signals),
            "cancel_intent_signals": sorted(s.value for s in self.cancel_intent_signals),
            "primary_factor_count": self.primary_factor_count,
            "confidence_base": self.confidence_base,
            "confidence_bonus": self.confidence_bonus,
            "score_ttl_hours": self.score_ttl_hours,
            "trend_threshold": self.trend_threshold,
            "batch_chunk_size": self.batch_chunk_size,
            "high_risk_limit": self.high_risk_limit,
            "version": self.version,
        }

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ScoringConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)


@dataclass
class EngineSettings:
    """Deployment settings read from the environment."""

    database_url: str = "sqlite:///churnrisk.db"
    config_path: Optional[str] = None
    batch_chunk_size: Optional[int] = None

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Read settings from environment variables (and a .env file)."""
        load_dotenv()
        chunk_size = os.getenv("CHURNRISK_BATCH_CHUNK_SIZE")
        return cls(
            database_url=os.getenv("CHURNRISK_DATABASE_URL", cls.database_url),
            config_path=os.getenv("CHURNRISK_CONFIG_PATH"),
            batch_chunk_size=int(chunk_size) if chunk_size else None,
        )

    def load_scoring_config(self) -> ScoringConfig:
        """Scoring config from YAML if configured, defaults otherwise."""
        config = (
            ScoringConfig.from_yaml(self.config_path)
            if self.config_path
            else ScoringConfig()
        )
        if self.batch_chunk_size:
            config.batch_chunk_size = self.batch_chunk_size
        return config


# Default configuration instance
DEFAULT_CONFIG = ScoringConfig()
