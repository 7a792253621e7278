"""In-memory data store for tests and local runs."""

import threading
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..types import (
    CustomerIntent,
    CustomerSnapshot,
    RecordedSignal,
    RiskLevel,
    SignalType,
    Urgency,
)


@dataclass(frozen=True)
class TransactionRecord:
    company_id: str
    customer_id: str
    status: str
    created_at: datetime


class InMemoryStore:
    """
    Dict-backed ChurnDataStore.

    Each operation holds a single lock, but a find followed by an upsert
    is two operations. Callers must not score the same customer from two
    threads at once; the batch orchestrator de-duplicates ids for this.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._customers: Dict[Tuple[str, str], CustomerSnapshot] = {}
        self._transactions: List[TransactionRecord] = []
        self._intents: Dict[str, CustomerIntent] = {}
        self._signals: Dict[str, RecordedSignal] = {}

    @classmethod
    def from_snapshots(cls, snapshots: Iterable[CustomerSnapshot]) -> "InMemoryStore":
        store = cls()
        for snapshot in snapshots:
            store.add_customer(snapshot)
        return store

    # === Fixtures ===

    def add_customer(self, snapshot: CustomerSnapshot) -> None:
        with self._lock:
            self._customers[(snapshot.company_id, snapshot.customer_id)] = snapshot

    def add_transaction(
        self,
        company_id: str,
        customer_id: str,
        status: str,
        created_at: datetime,
    ) -> None:
        with self._lock:
            self._transactions.append(
                TransactionRecord(company_id, customer_id, status, created_at)
            )

    def all_intents(self) -> List[CustomerIntent]:
        with self._lock:
            return list(self._intents.values())

    # === ChurnDataStore ===

    def get_customer(
        self,
        company_id: str,
        customer_id: str,
        order_limit: int = 100,
        now: Optional[datetime] = None,
    ) -> Optional[CustomerSnapshot]:
        with self._lock:
            snapshot = self._customers.get((company_id, customer_id))
            if snapshot is None:
                return None
            orders = sorted(snapshot.orders, key=lambda o: o.ordered_at, reverse=True)
            subscriptions = tuple(
                s for s in snapshot.active_subscriptions if s.status == "ACTIVE"
            )
            signals = tuple(
                s for s in self._signals.values()
                if s.company_id == company_id
                and s.customer_id == customer_id
                and (now is None or s.is_active(now))
            )
        return replace(
            snapshot,
            orders=tuple(orders[:order_limit]),
            active_subscriptions=subscriptions,
            recorded_signals=snapshot.recorded_signals + signals,
        )

    def count_failed_transactions(
        self,
        company_id: str,
        customer_id: str,
        since: datetime,
    ) -> int:
        with self._lock:
            return sum(
                1 for t in self._transactions
                if t.company_id == company_id
                and t.customer_id == customer_id
                and t.status == "FAILED"
                and t.created_at >= since
            )

    def find_latest_intent(
        self,
        company_id: str,
        customer_id: str,
    ) -> Optional[CustomerIntent]:
        with self._lock:
            matches = [
                i for i in self._intents.values()
                if i.company_id == company_id and i.customer_id == customer_id
            ]
        if not matches:
            return None
        return max(matches, key=lambda i: i.score.calculated_at)

    def upsert_intent(
        self,
        intent: CustomerIntent,
        row_id: Optional[str] = None,
    ) -> CustomerIntent:
        stored = replace(intent, id=row_id or str(uuid.uuid4()))
        with self._lock:
            self._intents[stored.id] = stored
        return stored

    def find_intents(
        self,
        company_id: str,
        risk_levels: Sequence[RiskLevel],
        urgency: Optional[Urgency] = None,
        limit: int = 50,
    ) -> List[CustomerIntent]:
        with self._lock:
            matches = [
                i for i in self._intents.values()
                if i.company_id == company_id
                and i.score.risk_level in risk_levels
                and (urgency is None or i.score.urgency == urgency)
            ]
        matches.sort(
            key=lambda i: (i.score.score, i.score.calculated_at),
            reverse=True,
        )
        return matches[:limit]

    def find_active_signals(
        self,
        company_id: str,
        customer_id: str,
        signal_type: SignalType,
        now: datetime,
    ) -> List[RecordedSignal]:
        with self._lock:
            matches = [
                s for s in self._signals.values()
                if s.company_id == company_id
                and s.customer_id == customer_id
                and s.signal_type == signal_type
                and s.is_active(now)
            ]
        return sorted(matches, key=lambda s: s.detected_at, reverse=True)

    def save_signal(
        self,
        signal: RecordedSignal,
        row_id: Optional[str] = None,
    ) -> RecordedSignal:
        stored = replace(signal, id=row_id or signal.id or str(uuid.uuid4()))
        with self._lock:
            self._signals[stored.id] = stored
        return stored

    def delete_expired_signals(self, now: datetime) -> int:
        with self._lock:
            expired = [key for key, s in self._signals.items() if not s.is_active(now)]
            for key in expired:
                del self._signals[key]
        return len(expired)
