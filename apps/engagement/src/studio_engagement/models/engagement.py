"""Badge and referral domain models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    false,
    func,
    true,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from studio_engagement.db.base import Base, enum_values


class Badge(Base):
    """Tenant-scoped achievement rule."""

    __tablename__ = "badges"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_badges_tenant_name"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(64), nullable=True)
    color = Column(String(16), nullable=True)
    category = Column(String(32), nullable=True)
    criteria = Column(JSON, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    grants = relationship("ClientBadge", back_populates="badge", cascade="all, delete-orphan")


class ClientBadge(Base):
    """Immutable record of a client earning a badge."""

    __tablename__ = "client_badges"
    __table_args__ = (
        UniqueConstraint("client_id", "badge_id", name="uq_client_badges_client_badge"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    badge_id = Column(UUID(as_uuid=True), ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    earned_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    notified = Column(Boolean, nullable=False, default=False, server_default=false())

    badge = relationship("Badge", back_populates="grants")


class ReferralStatus(str, Enum):
    """Forward-only referral lifecycle."""

    PENDING = "pending"
    SIGNED_UP = "signed_up"
    QUALIFIED = "qualified"
    REWARDED = "rewarded"
    EXPIRED = "expired"


class RewardType(str, Enum):
    CREDITS = "credits"
    DISCOUNT = "discount"
    CASH = "cash"


class QualificationCriteria(str, Enum):
    """Event that qualifies a signed-up referral for rewards."""

    SIGNUP = "signup"
    FIRST_SESSION = "first_session"
    FIRST_PAYMENT = "first_payment"


class Referral(Base):
    """Tracked introduction of a new client by an existing one."""

    __tablename__ = "referrals"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    referrer_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    referred_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL"), nullable=True)
    referral_code = Column(String(32), nullable=False, unique=True, index=True)
    referred_email = Column(String, nullable=True)
    referred_name = Column(String, nullable=True)
    status = Column(
        SqlEnum(ReferralStatus, name="referral_status", values_callable=enum_values),
        nullable=False,
        default=ReferralStatus.PENDING,
        server_default=ReferralStatus.PENDING.value,
    )
    signed_up_at = Column(DateTime(timezone=True), nullable=True)
    qualified_at = Column(DateTime(timezone=True), nullable=True)
    rewarded_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    referrer_reward = Column(JSON, nullable=True)
    referred_reward = Column(JSON, nullable=True)
    referrer_reward_applied = Column(Boolean, nullable=False, default=False, server_default=false())
    referred_reward_applied = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    referrer = relationship("Client", foreign_keys=[referrer_id])
    referred = relationship("Client", foreign_keys=[referred_id])


class ReferralSettings(Base):
    """Per-tenant referral program configuration."""

    __tablename__ = "referral_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(
        UUID(as_uuid=True),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    referrer_reward_type = Column(
        SqlEnum(RewardType, name="referral_reward_type", values_callable=enum_values),
        nullable=False,
    )
    referrer_reward_value = Column(Integer, nullable=False)
    referred_reward_type = Column(
        SqlEnum(RewardType, name="referral_reward_type", values_callable=enum_values),
        nullable=False,
    )
    referred_reward_value = Column(Integer, nullable=False)
    qualification_criteria = Column(
        SqlEnum(QualificationCriteria, name="referral_qualification_criteria", values_callable=enum_values),
        nullable=False,
        default=QualificationCriteria.FIRST_SESSION,
        server_default=QualificationCriteria.FIRST_SESSION.value,
    )
    max_referrals_per_client = Column(Integer, nullable=True)
    referral_code_expiry_days = Column(Integer, nullable=True)
    send_referral_emails = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class ClientDiscountStatus(str, Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    EXPIRED = "expired"


class ClientDiscount(Base):
    """Percentage discount owed to a client, redeemable on a later purchase."""

    __tablename__ = "client_discounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    client_id = Column(UUID(as_uuid=True), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    referral_id = Column(UUID(as_uuid=True), ForeignKey("referrals.id", ondelete="SET NULL"), nullable=True)
    percent = Column(Integer, nullable=False)
    description = Column(String, nullable=True)
    status = Column(
        SqlEnum(ClientDiscountStatus, name="client_discount_status", values_callable=enum_values),
        nullable=False,
        default=ClientDiscountStatus.ACTIVE,
        server_default=ClientDiscountStatus.ACTIVE.value,
    )
    expires_at = Column(DateTime(timezone=True), nullable=True)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
