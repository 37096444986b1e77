from decimal import Decimal

import pytest
from pydantic import ValidationError

from studio_engagement.models.engagement import QualificationCriteria, RewardType
from studio_engagement.schemas.engagement import (
    CRITERIA_SCHEMA_VERSION,
    CreditsPurchasedCriterion,
    MorningSessionsCriterion,
    ReferralSettingsPatch,
    RewardSpec,
    SessionsCompletedCriterion,
    UnsupportedCriterionError,
    UnsupportedRewardError,
    WeightGoalCriterion,
    decode_criterion,
    decode_reward,
    describe_reward,
    encode_criterion,
    encode_reward,
)
from studio_engagement.services.engagement import DEFAULT_BADGES


def test_encoded_criterion_carries_schema_version() -> None:
    payload = encode_criterion(SessionsCompletedCriterion(value=10))
    assert payload == {"schema_version": CRITERIA_SCHEMA_VERSION, "type": "sessions_completed", "value": 10}


def test_legacy_criterion_without_version_is_upgraded() -> None:
    criterion = decode_criterion({"type": "sessions_completed", "value": 50})
    assert criterion == SessionsCompletedCriterion(value=50)


def test_legacy_additional_params_are_lifted() -> None:
    criterion = decode_criterion({"type": "morning_sessions", "value": 3, "additionalParams": {"beforeHour": 8}})
    assert isinstance(criterion, MorningSessionsCriterion)
    assert criterion.before_hour == 8
    assert criterion.value == 3


def test_legacy_weight_goal_without_value_decodes() -> None:
    assert decode_criterion({"type": "weight_goal"}) == WeightGoalCriterion()


def test_credits_purchased_decodes_money_amount() -> None:
    criterion = decode_criterion(encode_criterion(CreditsPurchasedCriterion(value=Decimal("1500.50"))))
    assert isinstance(criterion, CreditsPurchasedCriterion)
    assert criterion.value == Decimal("1500.50")


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "mystery", "value": 1},
        {"schema_version": 1, "type": "mystery", "value": 1},
        {"schema_version": 2, "type": "sessions_completed", "value": 1},
        {"schema_version": 1, "type": "sessions_completed", "value": 0},
        {"schema_version": 1, "type": "sessions_completed", "value": 1, "unexpected": True},
        None,
        ["sessions_completed", 1],
    ],
)
def test_unsupported_criteria_raise(payload) -> None:
    with pytest.raises(UnsupportedCriterionError):
        decode_criterion(payload)


def test_unsupported_criterion_error_is_value_error() -> None:
    assert issubclass(UnsupportedCriterionError, ValueError)
    assert issubclass(UnsupportedRewardError, ValueError)


def test_default_catalog_criteria_decode() -> None:
    names = [definition.name for definition in DEFAULT_BADGES]
    assert len(names) == 8
    assert len(set(names)) == 8
    for definition in DEFAULT_BADGES:
        decode_criterion(definition.criteria)


@pytest.mark.parametrize(
    ("reward_type", "value", "expected"),
    [
        (RewardType.CREDITS, 1, "1 kredit zdarma"),
        (RewardType.CREDITS, 2, "2 kredity zdarma"),
        (RewardType.CREDITS, 4, "4 kredity zdarma"),
        (RewardType.CREDITS, 5, "5 kreditu zdarma"),
        (RewardType.DISCOUNT, 10, "10% sleva na dalsi nakup"),
        (RewardType.CASH, 200, "200 CZK bonus"),
    ],
)
def test_reward_descriptions(reward_type, value, expected) -> None:
    assert describe_reward(reward_type, value) == expected
    assert RewardSpec.build(reward_type, value).description == expected


def test_reward_blob_keeps_version_and_description() -> None:
    spec = RewardSpec.build(RewardType.DISCOUNT, 15)
    payload = encode_reward(spec)

    assert payload == {
        "schema_version": 1,
        "type": "discount",
        "value": 15,
        "description": "15% sleva na dalsi nakup",
    }
    assert decode_reward(payload) == spec


def test_legacy_reward_blob_gets_description() -> None:
    spec = decode_reward({"type": "credits", "value": 3})
    assert spec is not None
    assert spec.type == RewardType.CREDITS
    assert spec.description == "3 kredity zdarma"


def test_missing_reward_stays_none() -> None:
    assert decode_reward(None) is None
    assert encode_reward(None) is None


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "voucher", "value": 1},
        {"schema_version": 9, "type": "credits", "value": 1, "description": "x"},
        "credits",
    ],
)
def test_unsupported_reward_raises(payload) -> None:
    with pytest.raises(UnsupportedRewardError):
        decode_reward(payload)


def test_settings_patch_rejects_unknown_fields() -> None:
    with pytest.raises(ValidationError):
        ReferralSettingsPatch(referral_bonus=5)

    patch = ReferralSettingsPatch(qualification_criteria="signup")
    assert patch.qualification_criteria == QualificationCriteria.SIGNUP
    assert patch.model_dump(exclude_unset=True) == {"qualification_criteria": QualificationCriteria.SIGNUP}


@pytest.mark.parametrize(
    "field_name",
    [
        "is_active",
        "referrer_reward_type",
        "referrer_reward_value",
        "referred_reward_type",
        "referred_reward_value",
        "qualification_criteria",
        "send_referral_emails",
    ],
)
def test_settings_patch_rejects_null_for_required_fields(field_name) -> None:
    with pytest.raises(ValidationError):
        ReferralSettingsPatch.model_validate({field_name: None})


def test_settings_patch_allows_clearing_limits() -> None:
    patch = ReferralSettingsPatch.model_validate({"max_referrals_per_client": None, "referral_code_expiry_days": None})
    assert patch.model_dump(exclude_unset=True) == {"max_referrals_per_client": None, "referral_code_expiry_days": None}
