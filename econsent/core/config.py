"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application environment
    env: Literal["dev", "test", "staging", "prod"] = "dev"

    # Database (completed consent records)
    database_url: str = "sqlite+aiosqlite:///./econsent.db"
    init_db_on_startup: bool = True

    # Session links
    secret_key: str = "CHANGE_ME_IN_PRODUCTION"
    algorithm: str = "HS256"
    consent_link_ttl_days: int = 30

    # Staff access to archived records
    staff_token_expire_minutes: int = 60

    # Logging
    log_level: str = "INFO"

    # Identity verification (one-time codes)
    otp_code_length: int = 6
    otp_expiry_seconds: int = 300
    otp_resend_cooldown_seconds: int = 60
    otp_max_attempts: int = 3
    otp_max_challenges: int = 5
    # "simulated" accepts any well-formed code except the sentinel;
    # "strict" compares against the issued code.
    otp_verification_mode: Literal["simulated", "strict"] = "simulated"
    otp_reject_sentinel: str = "000000"

    # Document reading
    page_min_dwell_seconds: int = 15
    page_min_dwell_overrides: dict[int, int] = {}
    scroll_completion_percent: int = 95

    # Comprehension checklist
    recording_max_seconds: int = 30
    audio_playback_mode: Literal["declared", "fixed"] = "declared"
    audio_fixed_playback_seconds: float = 3.0

    # Signature submission
    submission_latency_seconds: float = 2.0

    # Study protocol definition (document pages + checklist items)
    protocol_file: str = "cardio-2024-01.yaml"

    def minimum_dwell_for(self, page: int, protocol_minimum: int | None = None) -> int:
        """Return the minimum dwell time for a document page.

        Settings overrides win over the protocol's per-page value, which
        wins over the global default.
        """
        if page in self.page_min_dwell_overrides:
            return self.page_min_dwell_overrides[page]
        if protocol_minimum is not None:
            return protocol_minimum
        return self.page_min_dwell_seconds

    @property
    def is_dev(self) -> bool:
        """Check if running in development mode."""
        return self.env == "dev"

    @property
    def is_prod(self) -> bool:
        """Check if running in production mode."""
        return self.env == "prod"

    @property
    def is_test(self) -> bool:
        """Check if running in test mode."""
        return self.env == "test"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
