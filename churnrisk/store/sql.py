"""SQLAlchemy-backed implementation of the churn data store."""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Iterator, List, Optional, Sequence

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import UpstreamQueryError
from ..types import (
    ChurnRiskScore,
    ChurnSignal,
    CustomerIntent,
    CustomerSnapshot,
    InterventionType,
    OrderSnapshot,
    RecordedSignal,
    RiskLevel,
    SignalType,
    SubscriptionSnapshot,
    Trend,
    Urgency,
)
from .models import (
    Base,
    ChurnSignalRow,
    Customer,
    CustomerIntentRow,
    Order,
    Subscription,
    Transaction,
)

if TYPE_CHECKING:
    from ..config import EngineSettings

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; every stored timestamp is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def create_session_factory(database_url: str, create_tables: bool = False, **engine_kwargs) -> sessionmaker:
    """
    Build a session factory for ``database_url``.

    Args:
        database_url: SQLAlchemy URL, e.g. postgresql://user:pw@host/db
        create_tables: Create missing tables (tests, local runs)
        **engine_kwargs: Passed to create_engine

    Returns:
        sessionmaker bound to the new engine
    """
    if database_url.startswith("sqlite"):
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        engine_kwargs.setdefault("pool_pre_ping", True)
        engine_kwargs.setdefault("pool_size", 10)
        engine_kwargs.setdefault("max_overflow", 20)
    engine = create_engine(database_url, **engine_kwargs)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


class SqlAlchemyStore:
    """ChurnDataStore over a relational database."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str, create_tables: bool = False) -> "SqlAlchemyStore":
        return cls(create_session_factory(database_url, create_tables=create_tables))

    @classmethod
    def from_settings(cls, settings: "EngineSettings", create_tables: bool = False) -> "SqlAlchemyStore":
        """Store for the database configured in the environment."""
        return cls.from_url(settings.database_url, create_tables=create_tables)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except (SQLAlchemyError, ValueError, KeyError, TypeError) as exc:
            # Driver failures and rows that no longer decode into typed
            # records are both failed queries
            session.rollback()
            logger.error("Store operation %s failed: %s", operation, exc)
            raise UpstreamQueryError(
                f"{operation} failed: {exc.__class__.__name__}",
                operation=operation,
            ) from exc
        finally:
            session.close()

    # === Reads used by the profile builder ===

    def get_customer(
        self,
        company_id: str,
        customer_id: str,
        order_limit: int = 100,
        now: Optional[datetime] = None,
    ) -> Optional[CustomerSnapshot]:
        with self._session("get_customer") as session:
            customer = session.query(Customer).filter(
                Customer.id == customer_id,
                Customer.company_id == company_id,
            ).first()
            if customer is None:
                return None

            orders = session.query(Order).filter(
                Order.customer_id == customer_id,
                Order.company_id == company_id,
            ).order_by(Order.ordered_at.desc()).limit(order_limit).all()

            subscriptions = session.query(Subscription).filter(
                Subscription.customer_id == customer_id,
                Subscription.company_id == company_id,
                Subscription.status == "ACTIVE",
            ).order_by(Subscription.current_period_start.desc()).all()

            signal_query = session.query(ChurnSignalRow).filter(
                ChurnSignalRow.customer_id == customer_id,
                ChurnSignalRow.company_id == company_id,
            )
            if now is not None:
                signal_query = signal_query.filter(ChurnSignalRow.expires_at > _as_utc(now))
            signals = signal_query.order_by(ChurnSignalRow.detected_at.desc()).all()

            return CustomerSnapshot(
                customer_id=customer.id,
                company_id=customer.company_id,
                orders=tuple(
                    OrderSnapshot(
                        order_id=o.id,
                        total=Decimal(o.total),
                        ordered_at=_as_utc(o.ordered_at),
                    )
                    for o in orders
                ),
                active_subscriptions=tuple(
                    SubscriptionSnapshot(
                        subscription_id=s.id,
                        status=s.status,
                        current_period_start=_as_utc(s.current_period_start),
                    )
                    for s in subscriptions
                ),
                recorded_signals=tuple(self._to_recorded_signal(row) for row in signals),
                support_ticket_count=customer.support_ticket_count or 0,
                nps_score=customer.nps_score,
            )

    def count_failed_transactions(
        self,
        company_id: str,
        customer_id: str,
        since: datetime,
    ) -> int:
        with self._session("count_failed_transactions") as session:
            return session.query(Transaction).filter(
                Transaction.company_id == company_id,
                Transaction.customer_id == customer_id,
                Transaction.status == "FAILED",
                Transaction.created_at >= _as_utc(since),
            ).count()

    # === Score rows ===

    def find_latest_intent(
        self,
        company_id: str,
        customer_id: str,
    ) -> Optional[CustomerIntent]:
        with self._session("find_latest_intent") as session:
            row = session.query(CustomerIntentRow).filter(
                CustomerIntentRow.company_id == company_id,
                CustomerIntentRow.customer_id == customer_id,
            ).order_by(CustomerIntentRow.calculated_at.desc()).first()
            return self._to_intent(row) if row else None

    def upsert_intent(
        self,
        intent: CustomerIntent,
        row_id: Optional[str] = None,
    ) -> CustomerIntent:
        with self._session("upsert_intent") as session:
            row = session.get(CustomerIntentRow, row_id) if row_id else None
            if row is None:
                row = CustomerIntentRow(
                    company_id=intent.company_id,
                    customer_id=intent.customer_id,
                )
                session.add(row)

            score = intent.score
            row.churn_score = score.score
            row.churn_risk = score.risk_level.value
            row.confidence = score.confidence
            row.signals = [signal.to_dict() for signal in intent.signals]
            row.primary_factors = [factor.value for factor in score.primary_factors]
            row.recommended_action = score.recommended_action.value
            row.urgency = score.urgency.value
            row.trend = score.trend.value
            row.trend_delta = score.trend_delta
            row.calculated_at = _as_utc(score.calculated_at)
            row.expires_at = _as_utc(score.expires_at)

            session.flush()
            return self._to_intent(row)

    def find_intents(
        self,
        company_id: str,
        risk_levels: Sequence[RiskLevel],
        urgency: Optional[Urgency] = None,
        limit: int = 50,
    ) -> List[CustomerIntent]:
        with self._session("find_intents") as session:
            query = session.query(CustomerIntentRow).filter(
                CustomerIntentRow.company_id == company_id,
                CustomerIntentRow.churn_risk.in_([level.value for level in risk_levels]),
            )
            if urgency is not None:
                query = query.filter(CustomerIntentRow.urgency == urgency.value)
            rows = query.order_by(
                CustomerIntentRow.churn_score.desc(),
                CustomerIntentRow.calculated_at.desc(),
            ).limit(limit).all()
            return [self._to_intent(row) for row in rows]

    # === Recorded signal ledger ===

    def find_active_signals(
        self,
        company_id: str,
        customer_id: str,
        signal_type: SignalType,
        now: datetime,
    ) -> List[RecordedSignal]:
        with self._session("find_active_signals") as session:
            rows = session.query(ChurnSignalRow).filter(
                ChurnSignalRow.company_id == company_id,
                ChurnSignalRow.customer_id == customer_id,
                ChurnSignalRow.signal_type == signal_type.value,
                ChurnSignalRow.expires_at > _as_utc(now),
            ).order_by(ChurnSignalRow.detected_at.desc()).all()
            return [self._to_recorded_signal(row) for row in rows]

    def save_signal(
        self,
        signal: RecordedSignal,
        row_id: Optional[str] = None,
    ) -> RecordedSignal:
        with self._session("save_signal") as session:
            row = session.get(ChurnSignalRow, row_id) if row_id else None
            if row is None:
                row = ChurnSignalRow(
                    company_id=signal.company_id,
                    customer_id=signal.customer_id,
                    signal_type=signal.signal_type.value,
                )
                session.add(row)
            row.weight = signal.weight
            row.signal_metadata = signal.metadata
            row.detected_at = _as_utc(signal.detected_at)
            row.expires_at = _as_utc(signal.expires_at)
            session.flush()
            return self._to_recorded_signal(row)

    def delete_expired_signals(self, now: datetime) -> int:
        with self._session("delete_expired_signals") as session:
            return session.query(ChurnSignalRow).filter(
                ChurnSignalRow.expires_at <= _as_utc(now),
            ).delete(synchronize_session=False)

    # === Mapping ===

    @staticmethod
    def _to_intent(row: CustomerIntentRow) -> CustomerIntent:
        score = ChurnRiskScore(
            customer_id=row.customer_id,
            company_id=row.company_id,
            score=row.churn_score,
            confidence=row.confidence,
            risk_level=RiskLevel(row.churn_risk),
            primary_factors=tuple(SignalType(f) for f in row.primary_factors),
            recommended_action=InterventionType(row.recommended_action),
            urgency=Urgency(row.urgency),
            calculated_at=_as_utc(row.calculated_at),
            expires_at=_as_utc(row.expires_at),
            trend=Trend(row.trend),
            trend_delta=row.trend_delta,
        )
        return CustomerIntent(
            id=row.id,
            score=score,
            signals=tuple(ChurnSignal.from_dict(data) for data in row.signals),
        )

    @staticmethod
    def _to_recorded_signal(row: ChurnSignalRow) -> RecordedSignal:
        return RecordedSignal(
            id=row.id,
            company_id=row.company_id,
            customer_id=row.customer_id,
            signal_type=SignalType(row.signal_type),
            weight=row.weight,
            detected_at=_as_utc(row.detected_at),
            expires_at=_as_utc(row.expires_at),
            metadata=row.signal_metadata,
        )
