"""
Tests for the SQLAlchemy-backed store.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from churnrisk import ChurnRiskEngine
from churnrisk.config import EngineSettings
from churnrisk.exceptions import UpstreamQueryError
from churnrisk.ledger import SignalLedger
from churnrisk.store import ChurnDataStore, InMemoryStore, SqlAlchemyStore
from churnrisk.store.models import (
    ChurnSignalRow,
    Customer,
    CustomerIntentRow,
    Order,
    Subscription,
    Transaction,
)
from churnrisk.types import CustomerIntent, RiskLevel, SignalType, Urgency

from conftest import COMPANY, NOW, days_ago, make_intent


@pytest.fixture
def seeded_sql_store(sql_store):
    """Lapsed new subscriber and a healthy long-term subscriber."""
    session = sql_store.session_factory()
    session.add_all([
        Customer(id="cus_lapsed", company_id=COMPANY, nps_score=4.0),
        Order(customer_id="cus_lapsed", company_id=COMPANY, total=Decimal("35.50"), ordered_at=days_ago(90)),
        Order(customer_id="cus_lapsed", company_id=COMPANY, total=Decimal("44.50"), ordered_at=days_ago(120)),
        Subscription(
            customer_id="cus_lapsed",
            company_id=COMPANY,
            status="ACTIVE",
            current_period_start=days_ago(45),
        ),
        Customer(id="cus_healthy", company_id=COMPANY),
        Order(customer_id="cus_healthy", company_id=COMPANY, total=Decimal("40.00"), ordered_at=days_ago(1)),
        Subscription(
            customer_id="cus_healthy",
            company_id=COMPANY,
            status="ACTIVE",
            current_period_start=days_ago(400),
        ),
        Subscription(
            customer_id="cus_healthy",
            company_id=COMPANY,
            status="CANCELLED",
            current_period_start=days_ago(10),
        ),
        Transaction(customer_id="cus_healthy", company_id=COMPANY, status="FAILED", created_at=days_ago(3)),
        Transaction(customer_id="cus_healthy", company_id=COMPANY, status="FAILED", created_at=days_ago(40)),
        Transaction(customer_id="cus_healthy", company_id=COMPANY, status="SUCCEEDED", created_at=days_ago(2)),
    ])
    session.commit()
    session.close()
    return sql_store


@pytest.fixture
def sql_engine(seeded_sql_store, default_config):
    return ChurnRiskEngine(seeded_sql_store, default_config, clock=lambda: NOW)


def count_rows(store, model):
    session = store.session_factory()
    try:
        return session.query(model).count()
    finally:
        session.close()


def add_legacy_signal(store, customer_id):
    """Active signal row whose type is no longer in the catalog."""
    session = store.session_factory()
    session.add(ChurnSignalRow(
        company_id=COMPANY,
        customer_id=customer_id,
        signal_type="legacy_signal",
        weight=0.5,
        detected_at=days_ago(1),
        expires_at=NOW + timedelta(days=5),
    ))
    session.commit()
    session.close()


class TestCustomerReads:
    """Tests for the profile-builder reads."""

    def test_stores_satisfy_protocol(self, sql_store):
        assert isinstance(sql_store, ChurnDataStore)
        assert isinstance(InMemoryStore(), ChurnDataStore)

    def test_get_customer(self, seeded_sql_store):
        snapshot = seeded_sql_store.get_customer(COMPANY, "cus_lapsed", now=NOW)

        assert snapshot.customer_id == "cus_lapsed"
        assert snapshot.nps_score == 4.0
        assert [o.ordered_at for o in snapshot.orders] == [days_ago(90), days_ago(120)]
        assert sum(o.total for o in snapshot.orders) == Decimal("80.00")
        assert snapshot.active_subscriptions[0].current_period_start == days_ago(45)

    def test_only_active_subscriptions(self, seeded_sql_store):
        snapshot = seeded_sql_store.get_customer(COMPANY, "cus_healthy", now=NOW)

        assert [s.status for s in snapshot.active_subscriptions] == ["ACTIVE"]

    def test_order_limit(self, seeded_sql_store):
        snapshot = seeded_sql_store.get_customer(COMPANY, "cus_lapsed", order_limit=1, now=NOW)

        assert len(snapshot.orders) == 1
        assert snapshot.orders[0].ordered_at == days_ago(90)

    def test_unknown_customer(self, seeded_sql_store):
        assert seeded_sql_store.get_customer(COMPANY, "cus_missing", now=NOW) is None
        assert seeded_sql_store.get_customer("other", "cus_lapsed", now=NOW) is None

    def test_failed_transactions_since(self, seeded_sql_store):
        count = seeded_sql_store.count_failed_transactions(COMPANY, "cus_healthy", since=days_ago(30))

        assert count == 1

    def test_subscriptions_scoped_to_company(self, seeded_sql_store):
        session = seeded_sql_store.session_factory()
        session.add(Subscription(
            customer_id="cus_lapsed",
            company_id="other",
            status="ACTIVE",
            current_period_start=days_ago(5),
        ))
        session.commit()
        session.close()

        snapshot = seeded_sql_store.get_customer(COMPANY, "cus_lapsed", now=NOW)

        assert [s.current_period_start for s in snapshot.active_subscriptions] == [days_ago(45)]

    def test_undecodable_signal_row_raises_upstream_error(self, seeded_sql_store):
        add_legacy_signal(seeded_sql_store, "cus_lapsed")

        with pytest.raises(UpstreamQueryError) as exc_info:
            seeded_sql_store.get_customer(COMPANY, "cus_lapsed", now=NOW)

        assert exc_info.value.data["operation"] == "get_customer"
        assert exc_info.value.code == "UPSTREAM_QUERY_FAILED"

    def test_from_settings(self, tmp_path):
        settings = EngineSettings(database_url=f"sqlite:///{tmp_path / 'settings.db'}")
        store = SqlAlchemyStore.from_settings(settings, create_tables=True)

        assert store.find_latest_intent(COMPANY, "cus_1") is None
        assert store.get_customer(COMPANY, "cus_1", now=NOW) is None

    def test_missing_tables_raise_upstream_error(self, tmp_path):
        store = SqlAlchemyStore.from_url(f"sqlite:///{tmp_path / 'empty.db'}")

        with pytest.raises(UpstreamQueryError) as exc_info:
            store.get_customer(COMPANY, "cus_lapsed", now=NOW)

        assert exc_info.value.data["operation"] == "get_customer"
        assert exc_info.value.http_status == 502


class TestScoringOnSql:
    """End to end scoring against SQLite."""

    def test_lapsed_customer(self, sql_engine):
        score = sql_engine.calculate_churn_risk(COMPANY, "cus_lapsed")

        assert score.risk_level == RiskLevel.CRITICAL
        # NPS 4 scales the 0.2 catalog weight to 0.26
        assert score.primary_factors == (
            SignalType.FEATURE_USAGE_DECLINE,
            SignalType.NEW_SUBSCRIBER_RISK,
            SignalType.NPS_SCORE_DROP,
        )
        assert score.confidence == 0.7

    def test_healthy_customer_with_failed_payment(self, sql_engine):
        score = sql_engine.calculate_churn_risk(COMPANY, "cus_healthy")

        # tenure 0.02 + engagement 0.006 + payment 0.4*0.15
        assert score.score == 9
        assert score.risk_level == RiskLevel.LOW

    def test_round_trip(self, sql_engine):
        score = sql_engine.calculate_churn_risk(COMPANY, "cus_lapsed")
        intent = sql_engine.get_customer_intent(COMPANY, "cus_lapsed")

        assert intent.score == score
        assert [s.type for s in intent.signals] == [
            SignalType.TIME_SINCE_PURCHASE,
            SignalType.FEATURE_USAGE_DECLINE,
            SignalType.NEW_SUBSCRIBER_RISK,
            SignalType.NPS_SCORE_DROP,
        ]
        assert intent.signals[0].metadata == {"daysSinceOrder": 90}
        assert intent.signals[0].detected_at == NOW

    def test_single_row_per_customer(self, sql_engine, seeded_sql_store):
        sql_engine.calculate_churn_risk(COMPANY, "cus_lapsed")
        sql_engine.calculate_churn_risk(COMPANY, "cus_lapsed", now=NOW + timedelta(hours=1))

        assert count_rows(seeded_sql_store, CustomerIntentRow) == 1
        intent = sql_engine.get_customer_intent(COMPANY, "cus_lapsed")
        assert intent.score.calculated_at == NOW + timedelta(hours=1)

    def test_batch_on_sql(self, sql_engine):
        result = sql_engine.batch_calculate_churn_risk(COMPANY, ["cus_lapsed", "cus_missing", "cus_healthy"])

        assert list(result.scores) == ["cus_lapsed", "cus_healthy"]
        assert result.failed_ids == ["cus_missing"]

    def test_batch_survives_undecodable_row(self, sql_engine, seeded_sql_store):
        add_legacy_signal(seeded_sql_store, "cus_lapsed")

        result = sql_engine.batch_calculate_churn_risk(COMPANY, ["cus_lapsed", "cus_healthy"])

        assert list(result.scores) == ["cus_healthy"]
        failure = result.failures["cus_lapsed"]
        assert failure.code == "UPSTREAM_QUERY_FAILED"
        assert failure.http_status == 502


class TestIntentQueries:
    """Tests for high-risk reads."""

    def test_find_intents_order_and_filters(self, sql_store):
        for intent in [
            make_intent("cus_high", 70, RiskLevel.HIGH, Urgency.WITHIN_24H),
            make_intent("cus_critical", 92, RiskLevel.CRITICAL, Urgency.IMMEDIATE),
            make_intent("cus_low", 10, RiskLevel.LOW, Urgency.MONITORING),
            make_intent("cus_tie", 70, RiskLevel.HIGH, Urgency.WITHIN_24H, calculated_at=NOW + timedelta(hours=1)),
        ]:
            sql_store.upsert_intent(intent)

        levels = (RiskLevel.HIGH, RiskLevel.CRITICAL)
        ordered = sql_store.find_intents(COMPANY, levels)
        immediate = sql_store.find_intents(COMPANY, levels, urgency=Urgency.IMMEDIATE)

        assert [i.customer_id for i in ordered] == ["cus_critical", "cus_tie", "cus_high"]
        assert [i.customer_id for i in immediate] == ["cus_critical"]
        assert len(sql_store.find_intents(COMPANY, levels, limit=2)) == 2

    def test_upsert_with_row_id_overwrites(self, sql_store):
        stored = sql_store.upsert_intent(make_intent("cus_1", 70, RiskLevel.HIGH, Urgency.WITHIN_24H))
        updated = make_intent("cus_1", 30, RiskLevel.LOW, Urgency.MONITORING)
        sql_store.upsert_intent(updated, row_id=stored.id)

        latest = sql_store.find_latest_intent(COMPANY, "cus_1")
        assert isinstance(latest, CustomerIntent)
        assert latest.id == stored.id
        assert latest.score.score == 30
        assert count_rows(sql_store, CustomerIntentRow) == 1


class TestLedgerOnSql:
    """Recorded signals persisted through SQLAlchemy."""

    def test_non_additive_refresh(self, sql_store, default_config):
        ledger = SignalLedger(sql_store, default_config)
        first = ledger.record(COMPANY, "cus_1", SignalType.COMPETITOR_MENTION, now=NOW)
        second = ledger.record(
            COMPANY, "cus_1", SignalType.COMPETITOR_MENTION, now=NOW + timedelta(days=1)
        )

        assert second.id == first.id
        assert second.detected_at == NOW + timedelta(days=1)
        assert count_rows(sql_store, ChurnSignalRow) == 1

    def test_recorded_signal_reaches_profile(self, sql_engine):
        sql_engine.record_signal(COMPANY, "cus_healthy", "support_ticket_angry", metadata={"ticket": "T-1"})
        score = sql_engine.calculate_churn_risk(COMPANY, "cus_healthy")

        assert score.primary_factors == (SignalType.SUPPORT_TICKET_ANGRY,)
        assert score.recommended_action.value == "SERVICE_RECOVERY"

    def test_delete_expired(self, sql_store, default_config):
        ledger = SignalLedger(sql_store, default_config)
        ledger.record(COMPANY, "cus_1", SignalType.BILLING_PAGE_VIEWS, now=NOW)
        ledger.record(COMPANY, "cus_1", SignalType.CANCEL_PAGE_VISIT, now=NOW)

        assert ledger.purge_expired(NOW + timedelta(days=7)) == 1
        assert count_rows(sql_store, ChurnSignalRow) == 1

    def test_companies_keep_separate_rows(self, sql_store, default_config):
        ledger = SignalLedger(sql_store, default_config)
        first = ledger.record("co_a", "cus_1", SignalType.COMPETITOR_MENTION, now=NOW)
        second = ledger.record("co_b", "cus_1", SignalType.COMPETITOR_MENTION, now=NOW + timedelta(hours=1))

        check_at = NOW + timedelta(hours=2)
        active_a = sql_store.find_active_signals("co_a", "cus_1", SignalType.COMPETITOR_MENTION, check_at)
        assert second.id != first.id
        assert count_rows(sql_store, ChurnSignalRow) == 2
        assert [s.id for s in active_a] == [first.id]
        assert active_a[0].company_id == "co_a"
        assert active_a[0].detected_at == NOW
