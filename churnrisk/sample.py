"""Realistic sample customers for tests and local runs."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import numpy as np

from .types import CustomerSnapshot, OrderSnapshot, SubscriptionSnapshot


def generate_sample_customers(
    n_customers: int = 100,
    seed: int = 42,
    company_id: str = "company_demo",
    now: Optional[datetime] = None,
) -> List[CustomerSnapshot]:
    """
    Generate sample customers with order and subscription history.

    Distributions:
    - Order count: Poisson around 6, ~10% with no orders
    - Days since last order: exponential, mean 30
    - ~70% hold an active subscription, tenure uniform 1-720 days
    - ~40% have answered an NPS survey
    """
    rng = np.random.default_rng(seed)
    now = now or datetime.now(timezone.utc)

    order_counts = np.where(
        rng.random(n_customers) < 0.10,
        0,
        rng.poisson(lam=6, size=n_customers),
    )
    days_since_last = rng.exponential(scale=30, size=n_customers).astype(int)
    has_subscription = rng.random(n_customers) < 0.70
    tenure_days = rng.integers(1, 721, size=n_customers)
    has_nps = rng.random(n_customers) < 0.40
    nps_scores = rng.integers(0, 11, size=n_customers)

    customers = []
    for i in range(n_customers):
        customer_id = f"CUS_{i:04d}"
        gaps = rng.integers(5, 45, size=int(order_counts[i]))
        # Most recent order first; earlier orders spaced by the gaps
        offsets = int(days_since_last[i]) + np.concatenate(([0], np.cumsum(gaps)[:-1]))
        offsets = offsets[: len(gaps)]
        amounts = np.round(rng.lognormal(mean=3.5, sigma=0.6, size=len(gaps)), 2)

        orders = tuple(
            OrderSnapshot(
                order_id=f"{customer_id}_ORD_{j:03d}",
                total=Decimal(str(amounts[j])),
                ordered_at=now - timedelta(days=int(offset)),
            )
            for j, offset in enumerate(offsets)
        )
        subscriptions = (
            (
                SubscriptionSnapshot(
                    subscription_id=f"{customer_id}_SUB",
                    status="ACTIVE",
                    current_period_start=now - timedelta(days=int(tenure_days[i])),
                ),
            )
            if has_subscription[i]
            else ()
        )
        customers.append(
            CustomerSnapshot(
                customer_id=customer_id,
                company_id=company_id,
                orders=orders,
                active_subscriptions=subscriptions,
                nps_score=float(nps_scores[i]) if has_nps[i] else None,
            )
        )
    return customers
