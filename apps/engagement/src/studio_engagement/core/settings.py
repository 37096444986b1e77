from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    service_name: str = "studio-engagement"
    database_url: str = "sqlite+aiosqlite:///./studio_engagement.db"
    database_echo: bool = False

    # Badge evaluation
    # Used when a tenant has no timezone of its own.
    engagement_default_timezone: str = "Europe/Prague"
    badge_sweep_batch_size: int = Field(default=200, ge=1)

    # Referral program defaults (applied when a tenant has no settings row yet)
    referral_default_referrer_reward_type: Literal["credits", "discount", "cash"] = "credits"
    referral_default_referrer_reward_value: int = 1
    referral_default_referred_reward_type: Literal["credits", "discount", "cash"] = "discount"
    referral_default_referred_reward_value: int = 10
    referral_default_qualification_criteria: Literal["signup", "first_session", "first_payment"] = "first_session"
    referral_default_send_emails: bool = True
    referral_top_referrers_limit: int = 10
    referral_code_length: int = Field(default=8, ge=6, le=32)
    referral_sweep_batch_size: int = Field(default=200, ge=1)

    # Engagement job scheduler
    engagement_job_scheduler_enabled: bool = False
    engagement_job_schedule_path: str = "config/schedules.toml"
    engagement_sweep_tenants: list[str] = Field(default_factory=list)

    @field_validator("engagement_sweep_tenants", mode="before")
    @classmethod
    def _parse_tenant_list(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        return []


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
