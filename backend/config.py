"""Application configuration using pydantic-settings."""

import os
from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential

# Set to a truthy value on hosts without a keychain (containers, CI).
DISABLE_KEYCHAIN_ENV = "QBREVIEW_DISABLE_KEYCHAIN"


def keychain_disabled() -> bool:
    return os.environ.get(DISABLE_KEYCHAIN_ENV, "").strip().lower() in {"1", "true", "yes"}


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Secrets from the OS keychain, ranked above env vars and ``.env``.

    Only the integration secrets in ``CREDENTIAL_KEYS`` are looked up, so
    plain settings never trigger a keychain prompt.
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return get_credential(field_name.upper()), field_name, False

    def __call__(self) -> dict[str, Any]:
        if keychain_disabled():
            return {}
        found: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            if field_name.upper() not in CREDENTIAL_KEYS:
                continue
            value, key, _ = self.get_field_value(field_info, field_name)
            if value is not None:
                found[key] = value
        return found


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./qbreview.db"

    # Server-side secret the token vault derives its key from
    TOKEN_ENCRYPTION_KEY: str = ""

    # Intuit app credentials (fallback for firms without their own app)
    INTUIT_CLIENT_ID: str = ""
    INTUIT_CLIENT_SECRET: str = ""
    INTUIT_ENVIRONMENT: str = "sandbox"
    INTUIT_REDIRECT_URI: str = ""
    INTUIT_SCOPE: str = "com.intuit.quickbooks.accounting"

    # Dropbox app credentials (optional)
    DROPBOX_APP_KEY: str = ""
    DROPBOX_APP_SECRET: str = ""
    DROPBOX_REDIRECT_URI: str = ""

    # n8n workflow engine
    N8N_WEBHOOK_URL: str = ""
    N8N_CALLBACK_SECRET: str = ""
    N8N_INCLUDE_TOKENS: bool = False

    # Public URLs
    PUBLIC_BASE_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:5173"
    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    # Guards the scheduler endpoints when set
    INTERNAL_API_SECRET: str = ""

    # OAuth / token lifecycle
    OAUTH_STATE_TTL_MINUTES: int = 10
    TOKEN_REFRESH_THRESHOLD_MINUTES: int = 5
    REFRESH_LOOKAHEAD_DAYS: int = 7
    REFRESH_DELAY_SECONDS: float = 1.0
    HEALTH_CHECK_DELAY_SECONDS: float = 1.0

    # Job dispatch
    DISPATCH_BATCH_SIZE: int = 5
    DISPATCH_BATCH_DELAY_SECONDS: float = 2.0
    DISPATCH_TIMEOUT_SECONDS: float = 140.0
    DISPATCH_MAX_RETRIES: int = 3
    DISPATCH_BASE_DELAY_SECONDS: float = 1.0
    DEDUP_WINDOW_MINUTES: int = 5

    # Per-company rate limiting
    RATE_LIMIT_MAX_CALLS_PER_MINUTE: int = 30
    RATE_LIMIT_MIN_INTERVAL_SECONDS: float = 1.0

    @field_validator("INTUIT_ENVIRONMENT", mode="before")
    @classmethod
    def validate_intuit_environment(cls, v: str) -> str:
        """Normalize INTUIT_ENVIRONMENT to ``sandbox`` or ``production``."""
        if v.lower() not in {"sandbox", "production"}:
            raise ValueError(
                f"INTUIT_ENVIRONMENT must be 'sandbox' or 'production', got {v!r}"
            )
        return v.lower()

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
