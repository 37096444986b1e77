"""Client records and the activity the engagement engine reads."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from studio_engagement.db.base import Base, enum_values


class ClientStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ARCHIVED = "archived"


class Client(Base):
    """Studio client with credit balance and body-goal fields."""

    __tablename__ = "clients"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    status = Column(
        SqlEnum(ClientStatus, name="client_status", values_callable=enum_values),
        nullable=False,
        default=ClientStatus.ACTIVE,
        server_default=ClientStatus.ACTIVE.value,
    )
    current_weight = Column(Numeric(6, 2), nullable=True)
    target_weight = Column(Numeric(6, 2), nullable=True)
    credits_remaining = Column(Integer, nullable=False, default=0, server_default="0")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    tenant = relationship("Tenant")
    sessions = relationship("TrainingSession", back_populates="client", cascade="all, delete-orphan")
    measurements = relationship("ClientMeasurement", back_populates="client", cascade="all, delete-orphan")
    orders = relationship("ClientOrder", back_populates="client", cascade="all, delete-orphan")


class TrainingSessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class TrainingSession(Base):
    """A booked training session."""

    __tablename__ = "training_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(
        SqlEnum(TrainingSessionStatus, name="training_session_status", values_callable=enum_values),
        nullable=False,
        default=TrainingSessionStatus.SCHEDULED,
        server_default=TrainingSessionStatus.SCHEDULED.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    client = relationship("Client", back_populates="sessions")


class ClientMeasurement(Base):
    """Body measurement logged for a client."""

    __tablename__ = "client_measurements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    measured_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    weight = Column(Numeric(6, 2), nullable=True)

    client = relationship("Client", back_populates="measurements")


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class ClientOrder(Base):
    """Purchase (credit packages, memberships) placed by a client."""

    __tablename__ = "client_orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    total = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    payment_status = Column(
        SqlEnum(OrderPaymentStatus, name="order_payment_status", values_callable=enum_values),
        nullable=False,
        default=OrderPaymentStatus.PENDING,
        server_default=OrderPaymentStatus.PENDING.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    client = relationship("Client", back_populates="orders")
