"""Ledger of churn signals recorded by upstream collaborators."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .config import ScoringConfig
from .exceptions import UnknownSignalTypeError
from .store.protocols import ChurnDataStore
from .types import RecordedSignal, SignalType

logger = logging.getLogger(__name__)


class SignalLedger:
    """
    Records externally observed signals (cancel page visits, payment
    failures, angry tickets) so later scoring runs can pick them up.

    Catalog semantics per signal type:
    - expires decay_days after detection
    - non-additive: an active recording is refreshed in place
    - additive: stacks up to max_occurrences active recordings
    """

    def __init__(self, store: ChurnDataStore, config: ScoringConfig):
        self.store = store
        self.config = config

    def record(
        self,
        company_id: str,
        customer_id: str,
        signal_type: SignalType | str,
        now: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RecordedSignal:
        """
        Record one occurrence of a signal.

        Returns:
            The stored (or, when capped, the most recent) RecordedSignal

        Raises:
            UnknownSignalTypeError: If the type is not in the catalog
        """
        try:
            signal_type = SignalType(signal_type)
            weight = self.config.get_weight(signal_type)
        except (ValueError, KeyError) as exc:
            raise UnknownSignalTypeError(
                f"Unknown signal type: {signal_type}",
                signal_type=str(signal_type),
            ) from exc

        active = self.store.find_active_signals(company_id, customer_id, signal_type, now)
        expires_at = now + timedelta(days=weight.decay_days)
        row_id = None

        if not weight.is_additive and active:
            row_id = active[0].id
        elif weight.is_additive and len(active) >= weight.max_occurrences:
            logger.debug("Max occurrences reached for %s", signal_type.value)
            return active[0]

        return self.store.save_signal(
            RecordedSignal(
                id=row_id or "",
                company_id=company_id,
                customer_id=customer_id,
                signal_type=signal_type,
                weight=weight.base_weight,
                detected_at=now,
                expires_at=expires_at,
                metadata=metadata,
            ),
            row_id=row_id,
        )

    def purge_expired(self, now: datetime) -> int:
        deleted = self.store.delete_expired_signals(now)
        if deleted:
            logger.info("Purged %d expired churn signals", deleted)
        return deleted
