"""Data store protocol consumed by the scoring engine."""

from datetime import datetime
from typing import Optional, Protocol, Sequence, runtime_checkable

from ..types import (
    CustomerIntent,
    CustomerSnapshot,
    RecordedSignal,
    RiskLevel,
    SignalType,
    Urgency,
)


@runtime_checkable
class ChurnDataStore(Protocol):
    """
    Protocol for the external store holding customers, orders,
    transactions, score rows and recorded signals.

    Implemented by store/sql.py (SQLAlchemy) and store/memory.py.

    Implementations raise UpstreamQueryError when the backend fails.
    They never substitute defaults for failed reads.
    """

    def get_customer(
        self,
        company_id: str,
        customer_id: str,
        order_limit: int = 100,
        now: Optional[datetime] = None,
    ) -> Optional[CustomerSnapshot]:
        """
        Return customer with recent orders, active subscriptions and
        recorded signals still active at ``now``.

        Args:
            company_id: Owning company
            customer_id: Customer id
            order_limit: Maximum orders to return, most recent first
            now: Reference time for active recorded signals

        Returns:
            CustomerSnapshot, or None if the customer is not in the company
        """
        ...

    def count_failed_transactions(
        self,
        company_id: str,
        customer_id: str,
        since: datetime,
    ) -> int:
        """Count FAILED transactions created at or after ``since``."""
        ...

    def find_latest_intent(
        self,
        company_id: str,
        customer_id: str,
    ) -> Optional[CustomerIntent]:
        """Most recent score row by calculated_at, or None."""
        ...

    def upsert_intent(
        self,
        intent: CustomerIntent,
        row_id: Optional[str] = None,
    ) -> CustomerIntent:
        """Overwrite row ``row_id`` in place, or insert when it is None."""
        ...

    def find_intents(
        self,
        company_id: str,
        risk_levels: Sequence[RiskLevel],
        urgency: Optional[Urgency] = None,
        limit: int = 50,
    ) -> list[CustomerIntent]:
        """Score rows filtered by level/urgency, highest score first."""
        ...

    def find_active_signals(
        self,
        company_id: str,
        customer_id: str,
        signal_type: SignalType,
        now: datetime,
    ) -> list[RecordedSignal]:
        """Company-scoped recorded signals of one type active at ``now``, newest first."""
        ...

    def save_signal(
        self,
        signal: RecordedSignal,
        row_id: Optional[str] = None,
    ) -> RecordedSignal:
        """Overwrite ledger row ``row_id`` in place, or insert when None."""
        ...

    def delete_expired_signals(self, now: datetime) -> int:
        """Delete ledger rows expired at ``now``; return how many."""
        ...
