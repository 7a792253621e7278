"""
Score repository: one current churn risk snapshot per customer.
"""

import logging
from typing import List, Optional, Sequence

from .config import ScoringConfig
from .exceptions import IntentNotFoundError
from .schemas import validate_signals
from .store.protocols import ChurnDataStore
from .types import ChurnRiskScore, ChurnSignal, CustomerIntent, RiskLevel, Urgency

logger = logging.getLogger(__name__)

DEFAULT_HIGH_RISK_LEVELS = (RiskLevel.HIGH, RiskLevel.CRITICAL)


class ScoreRepository:
    """
    Upserts and reads CustomerIntent rows.

    Not an append-only log: save() overwrites the most recent row for
    (company_id, customer_id) when one exists. Expired rows are left in
    place; read-side consumers decide what to do with them.
    """

    def __init__(self, store: ChurnDataStore, config: ScoringConfig):
        self.store = store
        self.config = config

    def save(
        self,
        score: ChurnRiskScore,
        signals: Sequence[ChurnSignal],
        existing: Optional[CustomerIntent] = None,
    ) -> CustomerIntent:
        """
        Persist ``score`` and its signals as the current snapshot.

        Args:
            score: Score to store
            signals: Signals that produced it
            existing: Current row if the caller already read it

        Raises:
            pandera.errors.SchemaError: If a signal fails validation
            UpstreamQueryError: If the store fails
        """
        validate_signals(signals)
        if existing is None:
            existing = self.store.find_latest_intent(score.company_id, score.customer_id)
        intent = CustomerIntent(id=existing.id if existing else "", score=score, signals=tuple(signals))
        stored = self.store.upsert_intent(intent, row_id=existing.id if existing else None)
        logger.debug(
            "%s intent %s for customer %s",
            "Updated" if existing else "Created",
            stored.id,
            score.customer_id,
        )
        return stored

    def previous(self, company_id: str, customer_id: str) -> Optional[CustomerIntent]:
        return self.store.find_latest_intent(company_id, customer_id)

    def latest(self, company_id: str, customer_id: str) -> CustomerIntent:
        """
        Most recent persisted score.

        Raises:
            IntentNotFoundError: If the customer was never scored
        """
        intent = self.store.find_latest_intent(company_id, customer_id)
        if intent is None:
            raise IntentNotFoundError(
                f"No intent data found for customer {customer_id}",
                customer_id=customer_id,
                company_id=company_id,
            )
        return intent

    def high_risk(
        self,
        company_id: str,
        risk_level: Optional[RiskLevel] = None,
        urgency: Optional[Urgency] = None,
        limit: Optional[int] = None,
    ) -> List[CustomerIntent]:
        """
        Stored rows filtered by level and urgency, highest score first.

        Defaults to HIGH and CRITICAL when no level is given.
        """
        levels = (risk_level,) if risk_level else DEFAULT_HIGH_RISK_LEVELS
        return self.store.find_intents(
            company_id,
            risk_levels=levels,
            urgency=urgency,
            limit=limit or self.config.high_risk_limit,
        )
