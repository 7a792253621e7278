"""
ChurnRiskEngine - orchestrates the scoring stages.

Usage:
    from churnrisk import ChurnRiskEngine, ScoringConfig
    from churnrisk.store import SqlAlchemyStore

    # With default config
    store = SqlAlchemyStore.from_url("postgresql://...")
    engine = ChurnRiskEngine(store)

    # With custom config
    config = ScoringConfig.from_yaml("configs/scoring.yaml")
    engine = ChurnRiskEngine(store, config)

    score = engine.calculate_churn_risk("co_1", "cus_1")
    result = engine.batch_calculate_churn_risk("co_1", ["cus_1", "cus_2"])
    at_risk = engine.get_high_risk_customers("co_1", urgency=Urgency.IMMEDIATE)
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .batch import BatchOrchestrator, BatchResult
from .components import (
    Classifier,
    ConfidenceEstimator,
    ProfileBuilder,
    RiskAggregator,
    RiskBreakdown,
    SignalDetector,
)
from .config import DEFAULT_CONFIG, ScoringConfig
from .ledger import SignalLedger
from .repository import ScoreRepository
from .store.protocols import ChurnDataStore
from .types import (
    BehaviorProfile,
    ChurnRiskScore,
    ChurnSignal,
    CustomerIntent,
    RecordedSignal,
    RiskLevel,
    SignalType,
    Trend,
    Urgency,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class Assessment:
    """Everything one pure scoring pass produced."""

    score: ChurnRiskScore
    signals: Tuple[ChurnSignal, ...]
    breakdown: RiskBreakdown


class ChurnRiskEngine:
    """
    Deterministic weighted-rule churn risk engine.

    Pipeline per customer:
    profile -> signals -> aggregation -> classification + confidence -> upsert

    Only the profile read, the failed-transaction count and the upsert
    touch the data store; every other stage is a pure function of its
    inputs and ``now``.
    """

    def __init__(
        self,
        store: ChurnDataStore,
        config: Optional[ScoringConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize engine.

        Args:
            store: Data store backend
            config: ScoringConfig instance. Uses DEFAULT_CONFIG if None.
            clock: Returns the current UTC time (injectable for tests)
        """
        self.store = store
        self.config = config or DEFAULT_CONFIG
        self.clock = clock or utc_now
        self._init_components()

    def _init_components(self) -> None:
        """Initialize all pipeline stages."""
        self.profile_builder = ProfileBuilder(self.config, self.store)
        self.detector = SignalDetector(self.config)
        self.aggregator = RiskAggregator(self.config)
        self.classifier = Classifier(self.config)
        self.confidence = ConfidenceEstimator(self.config)
        self.repository = ScoreRepository(self.store, self.config)
        self.ledger = SignalLedger(self.store, self.config)

    # === Scoring ===

    def evaluate(
        self,
        profile: BehaviorProfile,
        failed_transactions: int,
        now: datetime,
        previous_score: Optional[int] = None,
    ) -> Assessment:
        """
        Score a profile without touching the store.

        Args:
            profile: Behavior profile to score
            failed_transactions: Failed transactions in the lookback window
            now: Reference time for recency and expiry
            previous_score: Last persisted score, for the trend

        Returns:
            Assessment with the score, its signals and the breakdown
        """
        signals = self.detector.detect(profile, now)
        breakdown = self.aggregator.aggregate(profile, signals, failed_transactions, now)
        classification = self.classifier.classify(breakdown.score, signals)
        score = round_half_up(breakdown.score)
        trend, trend_delta = self._trend(score, previous_score)

        result = ChurnRiskScore(
            customer_id=profile.customer_id,
            company_id=profile.company_id,
            score=score,
            confidence=self.confidence.estimate(profile, signals),
            risk_level=classification.risk_level,
            primary_factors=classification.primary_factors,
            recommended_action=classification.recommended_action,
            urgency=classification.urgency,
            calculated_at=now,
            expires_at=now + timedelta(hours=self.config.score_ttl_hours),
            trend=trend,
            trend_delta=trend_delta,
        )
        return Assessment(score=result, signals=tuple(signals), breakdown=breakdown)

    def calculate_churn_risk(
        self,
        company_id: str,
        customer_id: str,
        now: Optional[datetime] = None,
    ) -> ChurnRiskScore:
        """
        Score one customer and persist the result.

        Raises:
            CustomerNotFoundError: If the customer is not in the company
            UpstreamQueryError: If any store read or write fails
        """
        now = now or self.clock()
        profile = self.profile_builder.build(company_id, customer_id, now)
        failed_transactions = self.store.count_failed_transactions(
            company_id,
            customer_id,
            since=now - timedelta(days=self.config.payment_lookback_days),
        )
        previous = self.repository.previous(company_id, customer_id)

        assessment = self.evaluate(
            profile,
            failed_transactions,
            now,
            previous_score=previous.score.score if previous else None,
        )
        self.repository.save(assessment.score, assessment.signals, existing=previous)

        result = assessment.score
        logger.info(
            "Calculated churn risk for customer %s: score=%d, level=%s",
            customer_id,
            result.score,
            result.risk_level.value,
        )
        return result

    def batch_calculate_churn_risk(
        self,
        company_id: str,
        customer_ids: Sequence[str],
    ) -> BatchResult:
        """
        Score many customers, chunk by chunk.

        Returns:
            BatchResult with scores and per-customer failures
        """
        orchestrator = BatchOrchestrator(
            self.calculate_churn_risk,
            chunk_size=self.config.batch_chunk_size,
        )
        return orchestrator.run(company_id, customer_ids)

    def _trend(self, score: int, previous_score: Optional[int]) -> Tuple[Trend, int]:
        if previous_score is None:
            return Trend.STABLE, 0
        delta = score - previous_score
        if delta > self.config.trend_threshold:
            return Trend.DECLINING, delta
        if delta < -self.config.trend_threshold:
            return Trend.IMPROVING, delta
        return Trend.STABLE, delta

    # === Reads ===

    def get_customer_intent(self, company_id: str, customer_id: str) -> CustomerIntent:
        """
        Latest persisted score row.

        Raises:
            IntentNotFoundError: If the customer was never scored
        """
        return self.repository.latest(company_id, customer_id)

    def get_high_risk_customers(
        self,
        company_id: str,
        risk_level: Optional[RiskLevel] = None,
        urgency: Optional[Urgency] = None,
        limit: Optional[int] = None,
    ) -> List[CustomerIntent]:
        """Stored rows at HIGH/CRITICAL (or ``risk_level``), no recomputation."""
        return self.repository.high_risk(
            company_id,
            risk_level=risk_level,
            urgency=urgency,
            limit=limit,
        )

    # === Signal ledger ===

    def record_signal(
        self,
        company_id: str,
        customer_id: str,
        signal_type: SignalType | str,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> RecordedSignal:
        """Record an externally observed signal for later scoring runs."""
        return self.ledger.record(
            company_id,
            customer_id,
            signal_type,
            now=now or self.clock(),
            metadata=metadata,
        )

    def purge_expired_signals(self, now: Optional[datetime] = None) -> int:
        return self.ledger.purge_expired(now or self.clock())
