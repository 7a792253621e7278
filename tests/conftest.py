"""
Pytest fixtures for churn risk engine tests.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

# Add package to path
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from churnrisk.config import ScoringConfig
from churnrisk.engine import ChurnRiskEngine
from churnrisk.sample import generate_sample_customers
from churnrisk.store import InMemoryStore, SqlAlchemyStore
from churnrisk.types import (
    BehaviorProfile,
    ChurnRiskScore,
    CustomerIntent,
    CustomerSnapshot,
    InterventionType,
    OrderSnapshot,
    SubscriptionSnapshot,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
COMPANY = "company_test"


def days_ago(days: float) -> datetime:
    return NOW - timedelta(days=days)


def make_snapshot(
    customer_id: str,
    order_days_ago=(),
    order_total: str = "40.00",
    tenure_days=None,
    nps_score=None,
    company_id: str = COMPANY,
) -> CustomerSnapshot:
    """Customer whose orders were placed ``order_days_ago`` days before NOW."""
    orders = tuple(
        OrderSnapshot(
            order_id=f"{customer_id}_ORD_{i}",
            total=Decimal(order_total),
            ordered_at=days_ago(days),
        )
        for i, days in enumerate(order_days_ago)
    )
    subscriptions = (
        (SubscriptionSnapshot(f"{customer_id}_SUB", "ACTIVE", days_ago(tenure_days)),)
        if tenure_days is not None
        else ()
    )
    return CustomerSnapshot(
        customer_id=customer_id,
        company_id=company_id,
        orders=orders,
        active_subscriptions=subscriptions,
        nps_score=nps_score,
    )


def make_intent(customer_id, score, level, urgency, calculated_at=NOW, company_id=COMPANY):
    """Unsaved score row with fixed level and urgency."""
    return CustomerIntent(
        id="",
        score=ChurnRiskScore(
            customer_id=customer_id,
            company_id=company_id,
            score=score,
            confidence=0.7,
            risk_level=level,
            primary_factors=(),
            recommended_action=InterventionType.PROACTIVE_OUTREACH,
            urgency=urgency,
            calculated_at=calculated_at,
            expires_at=calculated_at + timedelta(hours=24),
        ),
    )


@pytest.fixture
def now():
    """Fixed reference time."""
    return NOW


@pytest.fixture
def default_config():
    """Default scoring configuration."""
    return ScoringConfig()


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def engine(store, default_config):
    """Engine over the in-memory store with a frozen clock."""
    return ChurnRiskEngine(store, default_config, clock=lambda: NOW)


@pytest.fixture
def make_profile():
    """Factory for BehaviorProfile with neutral defaults."""

    def _make(**overrides) -> BehaviorProfile:
        fields = {
            "customer_id": "cus_1",
            "company_id": COMPANY,
            "total_orders": 0,
            "total_spent": Decimal("0"),
            "avg_order_value": Decimal("0"),
            "last_order_at": None,
            "subscription_tenure_days": None,
            "engagement_score": 100.0,
        }
        fields.update(overrides)
        return BehaviorProfile(**fields)

    return _make


@pytest.fixture
def scenario_a_profile(make_profile):
    """Lapsed new subscriber: 90 days since order, engagement 20, tenure 45."""
    return make_profile(
        customer_id="cus_scenario_a",
        total_orders=2,
        total_spent=Decimal("80.00"),
        avg_order_value=Decimal("40.00"),
        last_order_at=days_ago(90),
        subscription_tenure_days=45,
        engagement_score=20.0,
    )


@pytest.fixture
def scenario_b_profile(make_profile):
    """Healthy long-term subscriber who ordered yesterday."""
    return make_profile(
        customer_id="cus_scenario_b",
        total_orders=3,
        total_spent=Decimal("120.00"),
        avg_order_value=Decimal("40.00"),
        last_order_at=days_ago(1),
        subscription_tenure_days=400,
        engagement_score=95.0,
    )


@pytest.fixture
def sample_customers():
    """24 sample customers with realistic distributions."""
    return generate_sample_customers(n_customers=24, seed=42, company_id=COMPANY, now=NOW)


@pytest.fixture
def sql_store(tmp_path):
    """SQLite-backed store with tables created."""
    return SqlAlchemyStore.from_url(f"sqlite:///{tmp_path / 'churn.db'}", create_tables=True)
