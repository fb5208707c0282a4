# app/config.py
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.dispatch.batching import PROVIDER_MAX_BATCH_SIZE
from app.infra.logging_config import get_logger

logger = get_logger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: Literal["dev", "staging", "prod"] = "dev"
    log_level: str = "INFO"
    log_json: bool | None = None  # None = JSON logs in prod only

    # Firebase
    firebase_project_id: str | None = None
    firebase_credentials_file: str | None = None  # Service account JSON; unset = application default credentials

    # Push Dispatch
    push_notifications_enabled: bool = True  # Master switch to disable all push delivery
    push_batch_size: int = Field(default=PROVIDER_MAX_BATCH_SIZE, ge=1)
    push_max_concurrency: int = Field(default=4, ge=1)  # Batches in flight per dispatch
    push_dry_run: bool = False  # Provider validates messages without delivering them

    # Fixed per deployment; the client app registers this channel and click action
    push_android_channel_id: str = "high_importance_channel"
    push_android_click_action: str = "FLUTTER_NOTIFICATION_CLICK"

    # Transport retries (whole-call failures only, never per-recipient failures)
    # 0 = single attempt per batch
    push_transport_max_retries: int = Field(default=0, ge=0)
    push_transport_retry_delay: float = 1.0  # seconds, doubles on each retry
    push_transport_max_retry_delay: float = 10.0

    # Message rendering
    display_timezone: str = "UTC"  # IANA zone for pickup times shown to users

    @field_validator("push_batch_size")
    @classmethod
    def _batch_size_within_provider_limit(cls, value: int) -> int:
        if value > PROVIDER_MAX_BATCH_SIZE:
            raise ValueError(
                f"push_batch_size={value} exceeds provider limit of {PROVIDER_MAX_BATCH_SIZE}"
            )
        return value

    @field_validator("display_timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"display_timezone={value!r} is not a known IANA zone") from exc
        return value

    @property
    def display_tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.display_timezone)

    @property
    def is_production(self) -> bool:
        return self.app_env == "prod"

    @property
    def use_json_logs(self) -> bool:
        if self.log_json is None:
            return self.is_production
        return self.log_json

    def validate_required_for_production(self) -> list[str]:
        """Validate that required settings exist for production"""
        if not self.is_production:
            return []

        missing = []
        required_fields = [
            ("firebase_project_id", self.firebase_project_id),
        ]
        for field_name, value in required_fields:
            if not value:
                missing.append(field_name)

        return missing


def warn_on_risky_config(s: "Settings") -> list[str]:
    warnings: list[str] = []

    if not s.push_notifications_enabled:
        warnings.append("push_notifications_enabled=False (no notifications will be delivered).")

    if s.push_dry_run:
        warnings.append("push_dry_run=True (provider validates messages but devices receive nothing).")

    if s.is_production and not s.firebase_credentials_file:
        warnings.append("prod: firebase_credentials_file is not set (relying on application default credentials).")

    if s.push_transport_max_retries and s.push_transport_retry_delay <= 0:
        warnings.append("push_transport_retry_delay <= 0 with retries enabled (retries will hammer the provider).")

    if s.push_max_concurrency > 16:
        warnings.append(
            f"push_max_concurrency={s.push_max_concurrency} is high (provider quota errors are likely)."
        )

    return warnings


def validate_or_warn(s: "Settings") -> None:
    """
    In prod: enforce required settings (hard fail).
    In all envs: log risky-config warnings.
    """
    missing = s.validate_required_for_production()

    if missing:
        raise RuntimeError(f"Missing required settings for production: {', '.join(missing)}")

    for msg in warn_on_risky_config(s):
        logger.warning("[config] %s", msg)


def load_settings(**overrides) -> Settings:
    """Build and validate settings once at process start.

    The result is passed explicitly to the components that need it;
    there is no module-level settings instance.
    """
    s = Settings(**overrides)
    validate_or_warn(s)
    return s
