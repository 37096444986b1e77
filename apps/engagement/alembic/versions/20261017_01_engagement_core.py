"""Create tenant, client activity, badge and referral tables."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "20261017_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


client_status = sa.Enum("active", "inactive", "archived", name="client_status")
training_session_status = sa.Enum("scheduled", "completed", "cancelled", "no_show", name="training_session_status")
order_payment_status = sa.Enum("pending", "paid", "refunded", "failed", name="order_payment_status")
referral_status = sa.Enum("pending", "signed_up", "qualified", "rewarded", "expired", name="referral_status")
referral_reward_type = sa.Enum("credits", "discount", "cash", name="referral_reward_type")
referral_qualification_criteria = sa.Enum(
    "signup", "first_session", "first_payment", name="referral_qualification_criteria"
)
client_discount_status = sa.Enum("active", "consumed", "expired", name="client_discount_status")

_ENUMS = (
    client_status,
    training_session_status,
    order_payment_status,
    referral_status,
    referral_reward_type,
    referral_qualification_criteria,
    client_discount_status,
)


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    op.create_table(
        "tenants",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("slug", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_tenants_slug", "tenants", ["slug"], unique=True)

    op.create_table(
        "clients",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=True),
        sa.Column("status", client_status, nullable=False, server_default="active"),
        sa.Column("current_weight", sa.Numeric(6, 2), nullable=True),
        sa.Column("target_weight", sa.Numeric(6, 2), nullable=True),
        sa.Column("credits_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_clients_tenant_id", "clients", ["tenant_id"])

    op.create_table(
        "training_sessions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", training_session_status, nullable=False, server_default="scheduled"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_training_sessions_client_id", "training_sessions", ["client_id"])

    op.create_table(
        "client_measurements",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("measured_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("weight", sa.Numeric(6, 2), nullable=True),
    )
    op.create_index("ix_client_measurements_client_id", "client_measurements", ["client_id"])

    op.create_table(
        "client_orders",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("payment_status", order_payment_status, nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_client_orders_client_id", "client_orders", ["client_id"])

    op.create_table(
        "badges",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(64), nullable=True),
        sa.Column("color", sa.String(16), nullable=True),
        sa.Column("category", sa.String(32), nullable=True),
        sa.Column("criteria", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "name", name="uq_badges_tenant_name"),
    )
    op.create_index("ix_badges_tenant_id", "badges", ["tenant_id"])

    op.create_table(
        "client_badges",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("badge_id", _uuid(), sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False),
        sa.Column("earned_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("notified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("client_id", "badge_id", name="uq_client_badges_client_badge"),
    )
    op.create_index("ix_client_badges_client_id", "client_badges", ["client_id"])

    op.create_table(
        "referral_settings",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column(
            "tenant_id",
            _uuid(),
            sa.ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("referrer_reward_type", referral_reward_type, nullable=False),
        sa.Column("referrer_reward_value", sa.Integer(), nullable=False),
        sa.Column("referred_reward_type", referral_reward_type, nullable=False),
        sa.Column("referred_reward_value", sa.Integer(), nullable=False),
        sa.Column(
            "qualification_criteria",
            referral_qualification_criteria,
            nullable=False,
            server_default="first_session",
        ),
        sa.Column("max_referrals_per_client", sa.Integer(), nullable=True),
        sa.Column("referral_code_expiry_days", sa.Integer(), nullable=True),
        sa.Column("send_referral_emails", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "referrals",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("tenant_id", _uuid(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referrer_id", _uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referred_id", _uuid(), sa.ForeignKey("clients.id", ondelete="SET NULL"), nullable=True),
        sa.Column("referral_code", sa.String(32), nullable=False),
        sa.Column("referred_email", sa.String(), nullable=True),
        sa.Column("referred_name", sa.String(), nullable=True),
        sa.Column("status", referral_status, nullable=False, server_default="pending"),
        sa.Column("signed_up_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("qualified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rewarded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("referrer_reward", sa.JSON(), nullable=True),
        sa.Column("referred_reward", sa.JSON(), nullable=True),
        sa.Column("referrer_reward_applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("referred_reward_applied", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_referrals_referral_code", "referrals", ["referral_code"], unique=True)
    op.create_index("ix_referrals_tenant_id", "referrals", ["tenant_id"])
    op.create_index("ix_referrals_referrer_id", "referrals", ["referrer_id"])

    op.create_table(
        "client_discounts",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("client_id", _uuid(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("referral_id", _uuid(), sa.ForeignKey("referrals.id", ondelete="SET NULL"), nullable=True),
        sa.Column("percent", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("status", client_discount_status, nullable=False, server_default="active"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_client_discounts_client_id", "client_discounts", ["client_id"])


def downgrade() -> None:
    op.drop_index("ix_client_discounts_client_id", table_name="client_discounts")
    op.drop_table("client_discounts")
    op.drop_index("ix_referrals_referrer_id", table_name="referrals")
    op.drop_index("ix_referrals_tenant_id", table_name="referrals")
    op.drop_index("ix_referrals_referral_code", table_name="referrals")
    op.drop_table("referrals")
    op.drop_table("referral_settings")
    op.drop_index("ix_client_badges_client_id", table_name="client_badges")
    op.drop_table("client_badges")
    op.drop_index("ix_badges_tenant_id", table_name="badges")
    op.drop_table("badges")
    op.drop_index("ix_client_orders_client_id", table_name="client_orders")
    op.drop_table("client_orders")
    op.drop_index("ix_client_measurements_client_id", table_name="client_measurements")
    op.drop_table("client_measurements")
    op.drop_index("ix_training_sessions_client_id", table_name="training_sessions")
    op.drop_table("training_sessions")
    op.drop_index("ix_clients_tenant_id", table_name="clients")
    op.drop_table("clients")
    op.drop_index("ix_tenants_slug", table_name="tenants")
    op.drop_table("tenants")

    bind = op.get_bind()
    for enum in _ENUMS:
        enum.drop(bind, checkfirst=True)
