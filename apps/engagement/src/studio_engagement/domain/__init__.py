"""Engagement domain records."""

from .engagement import (  # noqa: F401
    BadgeDefinition,
    BadgeGrant,
    BadgeRule,
    ClientActivitySnapshot,
    ClientRecord,
    DiscountRecord,
    ReferralRecord,
    ReferralSettingsRecord,
    ReferralStatusCounts,
    ReferrerSummary,
)
