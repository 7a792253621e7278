"""Behavior profile builder."""

import math
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from ..exceptions import CustomerNotFoundError
from ..types import BehaviorProfile, CustomerSnapshot
from .base import BaseComponent

if TYPE_CHECKING:
    from ..config import ScoringConfig
    from ..store.protocols import ChurnDataStore

SECONDS_PER_DAY = 24 * 60 * 60


def days_between(earlier: datetime, later: datetime) -> int:
    """Whole days elapsed from ``earlier`` to ``later``."""
    return math.floor((later - earlier).total_seconds() / SECONDS_PER_DAY)


class ProfileBuilder(BaseComponent):
    """
    Derive a BehaviorProfile from the customer's stored history.

    Reads the customer, its most recent orders and active subscriptions
    every time; nothing is cached.

    Engagement is a simple recency score: 100 minus 2 points per day
    since the last order, floored at 0. Customers without orders are
    treated as inactive for 999 days.
    """

    name = "profile"

    def __init__(self, config: "ScoringConfig", store: "ChurnDataStore"):
        super().__init__(config)
        self.store = store

    def build(self, company_id: str, customer_id: str, now: datetime) -> BehaviorProfile:
        """
        Read and summarise one customer.

        Raises:
            CustomerNotFoundError: If the customer is not in the company
            UpstreamQueryError: If the store read fails
        """
        snapshot = self.store.get_customer(
            company_id,
            customer_id,
            order_limit=self.config.order_history_limit,
            now=now,
        )
        if snapshot is None:
            raise CustomerNotFoundError(
                f"Customer {customer_id} not found",
                customer_id=customer_id,
                company_id=company_id,
            )
        return self.from_snapshot(snapshot, now)

    def from_snapshot(self, snapshot: CustomerSnapshot, now: datetime) -> BehaviorProfile:
        """Pure derivation of the profile from an already-read snapshot."""
        orders = sorted(snapshot.orders, key=lambda o: o.ordered_at, reverse=True)
        orders = orders[: self.config.order_history_limit]

        total_orders = len(orders)
        total_spent = sum((Decimal(o.total) for o in orders), Decimal("0"))
        avg_order_value = total_spent / total_orders if total_orders else Decimal("0")
        last_order_at = orders[0].ordered_at if orders else None

        return BehaviorProfile(
            customer_id=snapshot.customer_id,
            company_id=snapshot.company_id,
            total_orders=total_orders,
            total_spent=total_spent,
            avg_order_value=avg_order_value,
            last_order_at=last_order_at,
            subscription_tenure_days=self._tenure_days(snapshot, now),
            engagement_score=self.engagement_score(last_order_at, now),
            support_ticket_count=snapshot.support_ticket_count,
            nps_score=snapshot.nps_score,
            recorded_signals=tuple(s for s in snapshot.recorded_signals if s.is_active(now)),
        )

    def engagement_score(self, last_order_at: Optional[datetime], now: datetime) -> float:
        days_since = (
            days_between(last_order_at, now)
            if last_order_at is not None
            else self.config.no_order_days
        )
        score = 100.0 - days_since * self.config.engagement_decay_per_day
        return float(min(100.0, max(0.0, score)))

    def _tenure_days(self, snapshot: CustomerSnapshot, now: datetime) -> Optional[int]:
        active = [s for s in snapshot.active_subscriptions if s.status == "ACTIVE"]
        if not active:
            return None
        return max(0, days_between(active[0].current_period_start, now))
