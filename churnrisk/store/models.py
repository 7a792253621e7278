"""SQLAlchemy models for the churn risk data store."""

import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class Customer(Base):
    """Customer master data."""
    __tablename__ = "customers"

    id = Column(String(50), primary_key=True, default=_uuid)
    company_id = Column(String(50), nullable=False, index=True)
    email = Column(String(255))
    support_ticket_count = Column(Integer, nullable=False, default=0)
    nps_score = Column(Float)

    orders = relationship("Order", back_populates="customer")
    subscriptions = relationship("Subscription", back_populates="customer")


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(50), primary_key=True, default=_uuid)
    customer_id = Column(String(50), ForeignKey("customers.id"), nullable=False, index=True)
    company_id = Column(String(50), nullable=False)
    total = Column(Numeric(12, 2), nullable=False)
    ordered_at = Column(DateTime(timezone=True), nullable=False, index=True)

    customer = relationship("Customer", back_populates="orders")


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(50), primary_key=True, default=_uuid)
    customer_id = Column(String(50), ForeignKey("customers.id"), nullable=False, index=True)
    company_id = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False, index=True)
    current_period_start = Column(DateTime(timezone=True), nullable=False)

    customer = relationship("Customer", back_populates="subscriptions")


class Transaction(Base):
    """Payment transactions; FAILED ones drive payment health risk."""
    __tablename__ = "transactions"

    id = Column(String(50), primary_key=True, default=_uuid)
    customer_id = Column(String(50), nullable=False, index=True)
    company_id = Column(String(50), nullable=False)
    status = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2))
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)


class CustomerIntentRow(Base):
    """Current churn risk snapshot per customer."""
    __tablename__ = "customer_intents"
    __table_args__ = (
        Index("ix_customer_intents_company_customer", "company_id", "customer_id"),
    )

    id = Column(String(50), primary_key=True, default=_uuid)
    company_id = Column(String(50), nullable=False)
    customer_id = Column(String(50), nullable=False)
    churn_score = Column(Integer, nullable=False, index=True)
    churn_risk = Column(String(20), nullable=False, index=True)
    confidence = Column(Float, nullable=False)
    signals = Column(JSON, nullable=False)
    primary_factors = Column(JSON, nullable=False)
    recommended_action = Column(String(30), nullable=False)
    urgency = Column(String(20), nullable=False)
    trend = Column(String(20), nullable=False)
    trend_delta = Column(Integer, nullable=False, default=0)
    calculated_at = Column(DateTime(timezone=True), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)


class ChurnSignalRow(Base):
    """Signals recorded by upstream collaborators, active until expires_at."""
    __tablename__ = "churn_signals"

    id = Column(String(50), primary_key=True, default=_uuid)
    company_id = Column(String(50), nullable=False)
    customer_id = Column(String(50), nullable=False, index=True)
    signal_type = Column(String(50), nullable=False)
    weight = Column(Float, nullable=False)
    signal_metadata = Column("metadata", JSON)
    detected_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
