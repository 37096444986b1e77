from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, func, true
from sqlalchemy.dialects.postgresql import UUID

from studio_engagement.db.base import Base


class Tenant(Base):
    """Isolated customer account (one studio)."""

    __tablename__ = "tenants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    slug = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False)
    timezone = Column(String(64), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
