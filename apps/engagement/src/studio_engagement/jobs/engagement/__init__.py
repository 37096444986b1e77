"""Engagement job exports."""

from .badges import run_badge_sweep, seed_tenant_badges  # noqa: F401
from .referrals import run_referral_sweep  # noqa: F401

__all__ = ["run_badge_sweep", "run_referral_sweep", "seed_tenant_badges"]
