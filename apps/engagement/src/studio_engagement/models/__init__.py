"""SQLAlchemy models package."""

from .client import (  # noqa: F401
    Client,
    ClientMeasurement,
    ClientOrder,
    ClientStatus,
    OrderPaymentStatus,
    TrainingSession,
    TrainingSessionStatus,
)
from .engagement import (  # noqa: F401
    Badge,
    ClientBadge,
    ClientDiscount,
    ClientDiscountStatus,
    QualificationCriteria,
    Referral,
    ReferralSettings,
    ReferralStatus,
    RewardType,
)
from .tenant import Tenant  # noqa: F401
