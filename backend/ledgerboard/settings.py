"""Settings for the ledgerboard service."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ALLOWED_CADENCE_HOURS = (1, 6, 12)
DEFAULT_CADENCE_HOURS = 12


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL", "UPSTASH_REDIS_URL")

    # Ledger collaborator
    ledger_rpc_url: Optional[str] = _env_field(None, "LEDGER_RPC_URL", "BASE_RPC_URL")
    score_contract_address: Optional[str] = _env_field(None, "SCORE_CONTRACT_ADDRESS")
    # Only consulted for the all-time stream; the weekly stream always starts at the head.
    score_contract_deploy_block: Optional[int] = _env_field(None, "SCORE_CONTRACT_DEPLOY_BLOCK")
    chain_id: int = _env_field(8453, "CHAIN_ID")
    ledger_chunk_blocks: int = _env_field(2000, "LEDGER_CHUNK_BLOCKS")
    ledger_timestamp_concurrency: int = _env_field(8, "LEDGER_TIMESTAMP_CONCURRENCY")
    ledger_timeout_seconds: float = _env_field(10.0, "LEDGER_TIMEOUT_SECONDS")

    # Weekly seasons
    window_seconds: int = 7 * 24 * 60 * 60
    snapshot_top_n: int = _env_field(100, "SNAPSHOT_TOP_N")
    public_refresh_max_blocks: int = _env_field(4000, "PUBLIC_REFRESH_MAX_BLOCKS")
    public_refresh_interval_seconds: int = _env_field(20, "PUBLIC_REFRESH_INTERVAL_SECONDS")

    # Notifications
    notif_cadence_hours: int = _env_field(DEFAULT_CADENCE_HOURS, "NOTIF_CADENCE_HOURS")
    notif_batch_limit: int = _env_field(200, "NOTIF_BATCH_LIMIT")
    notif_invalid_disable_threshold: int = _env_field(3, "NOTIF_INVALID_DISABLE_THRESHOLD")
    notif_invalid_retry_seconds: int = 10 * 60
    notif_rate_limited_retry_seconds: int = 15 * 60
    notif_error_retry_seconds: int = 10 * 60
    notif_event_log_size: int = 200
    notif_title: str = _env_field("2048 TX Game", "NOTIF_TITLE")
    notif_body: str = _env_field("One quick round? Try to beat your score.", "NOTIF_BODY")
    push_timeout_seconds: float = _env_field(10.0, "PUSH_TIMEOUT_SECONDS")
    app_url: str = _env_field("https://2048tx.vercel.app", "APP_URL", "NEXT_PUBLIC_APP_URL")

    # Trigger surface
    cron_secret: Optional[str] = _env_field(None, "CRON_SECRET")
    admin_key: Optional[str] = _env_field(None, "ADMIN_KEY")

    # Observability
    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_metrics_public: bool = _env_field(False, "OBS_METRICS_PUBLIC")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(1.0, "LOG_SAMPLING_RATE_INFO")
    service_name: str = _env_field("ledgerboard", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development", "test")

    @field_validator("notif_cadence_hours", mode="before")
    def _coerce_cadence(cls, value):  # type: ignore[override]
        """Unknown cadences fall back to the default rather than failing startup."""
        try:
            hours = int(str(value).strip())
        except (TypeError, ValueError):
            return DEFAULT_CADENCE_HOURS
        return hours if hours in ALLOWED_CADENCE_HOURS else DEFAULT_CADENCE_HOURS

    @field_validator("score_contract_address", "ledger_rpc_url", mode="before")
    def _blank_to_none(cls, value):  # type: ignore[override]
        if value is None:
            return None
        text = str(value).strip()
        return text or None


def _normalise_level(level: str) -> str:
    return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)


def is_true(value: str | bool | None) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
