"""Versioned schemas for stored badge criteria and referral rewards.

Criteria and reward specs are persisted as JSON blobs. Every blob written by
this package carries ``schema_version``; blobs without one are treated as the
legacy ``{type, value, additionalParams?}`` shape and upgraded on decode.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from studio_engagement.models.engagement import QualificationCriteria, RewardType

CRITERIA_SCHEMA_VERSION = 1
REWARD_SCHEMA_VERSION = 1

_LEGACY_PARAM_KEYS = ("additionalParams", "params")


class CriterionType(str, Enum):
    SESSIONS_COMPLETED = "sessions_completed"
    FIRST_SESSION = "first_session"
    WEIGHT_GOAL = "weight_goal"
    CONSECUTIVE_WEEKS = "consecutive_weeks"
    MORNING_SESSIONS = "morning_sessions"
    WEEKEND_SESSIONS = "weekend_sessions"
    MEASUREMENT_LOGGED = "measurement_logged"
    CREDITS_PURCHASED = "credits_purchased"


class UnsupportedCriterionError(ValueError):
    """Raised when a stored criterion blob cannot be decoded."""


class UnsupportedRewardError(ValueError):
    """Raised when a stored reward blob cannot be decoded."""


class _Criterion(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    schema_version: Literal[1] = CRITERIA_SCHEMA_VERSION


class SessionsCompletedCriterion(_Criterion):
    type: Literal["sessions_completed"] = "sessions_completed"
    value: int = Field(ge=1)


class FirstSessionCriterion(_Criterion):
    type: Literal["first_session"] = "first_session"
    value: int = Field(default=1, ge=1)


class WeightGoalCriterion(_Criterion):
    type: Literal["weight_goal"] = "weight_goal"
    # Unused by evaluation; kept so catalog entries stay uniform.
    value: int = 1


class ConsecutiveWeeksCriterion(_Criterion):
    type: Literal["consecutive_weeks"] = "consecutive_weeks"
    value: int = Field(ge=1)


class MorningSessionsCriterion(_Criterion):
    type: Literal["morning_sessions"] = "morning_sessions"
    value: int = Field(ge=1)
    before_hour: int = Field(default=9, ge=1, le=23)


class WeekendSessionsCriterion(_Criterion):
    type: Literal["weekend_sessions"] = "weekend_sessions"
    value: int = Field(ge=1)


class MeasurementLoggedCriterion(_Criterion):
    type: Literal["measurement_logged"] = "measurement_logged"
    value: int = Field(ge=1)


class CreditsPurchasedCriterion(_Criterion):
    """Threshold on the summed total of paid orders (a money amount)."""

    type: Literal["credits_purchased"] = "credits_purchased"
    value: Decimal = Field(ge=0)


Criterion = Annotated[
    Union[
        SessionsCompletedCriterion,
        FirstSessionCriterion,
        WeightGoalCriterion,
        ConsecutiveWeeksCriterion,
        MorningSessionsCriterion,
        WeekendSessionsCriterion,
        MeasurementLoggedCriterion,
        CreditsPurchasedCriterion,
    ],
    Field(discriminator="type"),
]

_CRITERION_ADAPTER: TypeAdapter[Criterion] = TypeAdapter(Criterion)


def _upgrade_legacy_criterion(payload: Mapping[str, Any]) -> dict[str, Any]:
    upgraded: dict[str, Any] = {
        "schema_version": CRITERIA_SCHEMA_VERSION,
        "type": payload.get("type"),
    }
    if payload.get("value") is not None:
        upgraded["value"] = payload["value"]
    for key in _LEGACY_PARAM_KEYS:
        params = payload.get(key)
        if isinstance(params, Mapping):
            if "beforeHour" in params:
                upgraded["before_hour"] = params["beforeHour"]
            if "before_hour" in params:
                upgraded["before_hour"] = params["before_hour"]
    return upgraded


def decode_criterion(payload: Mapping[str, Any] | None) -> Criterion:
    """Decode a stored criterion blob into its typed model."""

    if not isinstance(payload, Mapping):
        raise UnsupportedCriterionError(f"Criterion payload must be an object, got {type(payload).__name__}")

    version = payload.get("schema_version")
    if version is None:
        data = _upgrade_legacy_criterion(payload)
    elif version == CRITERIA_SCHEMA_VERSION:
        data = dict(payload)
    else:
        raise UnsupportedCriterionError(f"Unsupported criteria schema version: {version!r}")

    try:
        return _CRITERION_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise UnsupportedCriterionError(
            f"Invalid criterion {payload.get('type')!r}: {exc.error_count()} validation error(s)"
        ) from exc


def encode_criterion(criterion: Criterion) -> dict[str, Any]:
    return criterion.model_dump(mode="json")


class RewardSpec(BaseModel):
    """Reward granted to one side of a referral, frozen at qualification time."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    schema_version: Literal[1] = REWARD_SCHEMA_VERSION
    type: RewardType
    value: int = Field(ge=0)
    description: str

    @classmethod
    def build(cls, reward_type: RewardType | str, value: int) -> "RewardSpec":
        resolved = RewardType(reward_type)
        return cls(type=resolved, value=value, description=describe_reward(resolved, value))


def describe_reward(reward_type: RewardType | str, value: int) -> str:
    """Customer-facing (Czech) label for a reward."""

    match RewardType(reward_type):
        case RewardType.CREDITS:
            if value == 1:
                suffix = ""
            elif value < 5:
                suffix = "y"
            else:
                suffix = "u"
            return f"{value} kredit{suffix} zdarma"
        case RewardType.DISCOUNT:
            return f"{value}% sleva na dalsi nakup"
        case RewardType.CASH:
            return f"{value} CZK bonus"


def decode_reward(payload: Mapping[str, Any] | None) -> RewardSpec | None:
    """Decode a stored reward blob; ``None`` stays ``None``."""

    if payload is None:
        return None
    if not isinstance(payload, Mapping):
        raise UnsupportedRewardError(f"Reward payload must be an object, got {type(payload).__name__}")

    version = payload.get("schema_version")
    if version is None:
        data = {key: payload[key] for key in ("type", "value", "description") if key in payload}
        data["schema_version"] = REWARD_SCHEMA_VERSION
        if "description" not in data and "type" in data and "value" in data:
            try:
                data["description"] = describe_reward(data["type"], int(data["value"]))
            except (TypeError, ValueError) as exc:
                raise UnsupportedRewardError(f"Invalid legacy reward: {dict(payload)!r}") from exc
    elif version == REWARD_SCHEMA_VERSION:
        data = dict(payload)
    else:
        raise UnsupportedRewardError(f"Unsupported reward schema version: {version!r}")

    try:
        return RewardSpec.model_validate(data)
    except ValidationError as exc:
        raise UnsupportedRewardError(f"Invalid reward payload: {exc.error_count()} validation error(s)") from exc


def encode_reward(reward: RewardSpec | None) -> dict[str, Any] | None:
    if reward is None:
        return None
    return reward.model_dump(mode="json")


class ReferralSettingsPatch(BaseModel):
    """Partial update of a tenant's referral program settings."""

    model_config = ConfigDict(extra="forbid")

    is_active: bool | None = None
    referrer_reward_type: RewardType | None = None
    referrer_reward_value: int | None = Field(default=None, ge=0)
    referred_reward_type: RewardType | None = None
    referred_reward_value: int | None = Field(default=None, ge=0)
    qualification_criteria: QualificationCriteria | None = None
    max_referrals_per_client: int | None = Field(default=None, ge=1)
    referral_code_expiry_days: int | None = Field(default=None, ge=1)
    send_referral_emails: bool | None = None

    @field_validator(
        "is_active",
        "referrer_reward_type",
        "referrer_reward_value",
        "referred_reward_type",
        "referred_reward_value",
        "qualification_criteria",
        "send_referral_emails",
        mode="before",
    )
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        # Only the quota and expiry may be cleared with null.
        if value is None:
            raise ValueError("field cannot be null")
        return value


__all__ = [
    "CRITERIA_SCHEMA_VERSION",
    "REWARD_SCHEMA_VERSION",
    "ConsecutiveWeeksCriterion",
    "CreditsPurchasedCriterion",
    "Criterion",
    "CriterionType",
    "FirstSessionCriterion",
    "MeasurementLoggedCriterion",
    "MorningSessionsCriterion",
    "ReferralSettingsPatch",
    "RewardSpec",
    "SessionsCompletedCriterion",
    "UnsupportedCriterionError",
    "UnsupportedRewardError",
    "WeekendSessionsCriterion",
    "WeightGoalCriterion",
    "decode_criterion",
    "decode_reward",
    "describe_reward",
    "encode_criterion",
    "encode_reward",
]
