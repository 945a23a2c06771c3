from typing import Optional

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from product_sync.constants.sync import INVOCATION_SOFT_TIME_LIMIT

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


def _clamp(value, low, high, cast=int):
    return max(low, min(high, cast(value)))


class SyncConfig(BaseModel):
    """
    Options read by the sync executor and batch coordinator.

    Out-of-range values are clamped to their limits instead of rejected,
    so a bad setting never stops the sync.
    """
    fetch_timeout_seconds: int = 30
    batch_size: int = 5
    max_errors: int = 1
    skip_recent_sync: bool = False
    skip_recent_hours: int = 24
    admin_email: str = ""
    detailed_logging: bool = False

    throttle_seconds: float = 1.0
    time_budget_seconds: float = 240.0
    manual_lock_staleness_seconds: int = 600
    cron_lock_staleness_seconds: int = 300
    state_ttl_seconds: int = 3600
    user_agent: str = DEFAULT_USER_AGENT
    site_name: str = "Product Sync"

    @field_validator("fetch_timeout_seconds", mode="before")
    @classmethod
    def clamp_timeout(cls, value):
        return _clamp(value, 5, 60)

    @field_validator("batch_size", mode="before")
    @classmethod
    def clamp_batch_size(cls, value):
        return _clamp(value, 1, 25)

    @field_validator("max_errors", mode="before")
    @classmethod
    def clamp_max_errors(cls, value):
        return _clamp(value, 1, 99)

    @field_validator("skip_recent_hours", mode="before")
    @classmethod
    def clamp_skip_recent_hours(cls, value):
        return _clamp(value, 1, 168)

    @field_validator("throttle_seconds", "time_budget_seconds", mode="before")
    @classmethod
    def non_negative(cls, value):
        return max(0.0, float(value))

    @model_validator(mode="after")
    def fit_budget_in_time_limit(self):
        # The last item may start right before the budget runs out
        ceiling = INVOCATION_SOFT_TIME_LIMIT - self.fetch_timeout_seconds - self.throttle_seconds
        self.time_budget_seconds = max(0.0, min(self.time_budget_seconds, ceiling))
        return self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = "sqlite:///./product_sync.db"
    redis_url: str = "redis://localhost:6379/2"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    celery_timezone: str = "UTC"

    # sql | woocommerce
    product_store_backend: str = "sql"
    wc_base_url: str = "https://localhost"
    wc_consumer_key: str = ""
    wc_consumer_secret: str = ""
    wc_api_version: str = "wc/v3"
    wc_request_timeout: int = 60
    wc_verify_ssl: bool = True

    # Sync options
    fetch_timeout_seconds: int = 30
    batch_size: int = 5
    max_errors: int = 1
    skip_recent_sync: bool = False
    skip_recent_hours: int = 24
    admin_email: str = ""
    detailed_logging: bool = False
    throttle_seconds: float = 1.0
    time_budget_seconds: float = 240.0
    fetch_insecure_fallback: bool = False

    # Scheduling
    schedule_frequency: str = "off"
    schedule_time: str = "02:00"
    cron_secret_key: str = ""

    # Alerts
    site_name: str = "Product Sync"
    alerts_enabled: bool = True
    alert_email_enabled: bool = True
    alert_email_smtp_host: str = "localhost"
    alert_email_smtp_port: int = 587
    alert_email_smtp_user: str = ""
    alert_email_smtp_password: str = ""
    alert_email_from: str = "product-sync@localhost"
    alert_webhook_enabled: bool = False
    alert_webhook_url: Optional[str] = None

    log_dir: str = "./logs"
    sync_log_retention_days: int = 90

    def sync_config(self) -> SyncConfig:
        return SyncConfig(
            fetch_timeout_seconds=self.fetch_timeout_seconds,
            batch_size=self.batch_size,
            max_errors=self.max_errors,
            skip_recent_sync=self.skip_recent_sync,
            skip_recent_hours=self.skip_recent_hours,
            admin_email=self.admin_email,
            detailed_logging=self.detailed_logging,
            throttle_seconds=self.throttle_seconds,
            time_budget_seconds=self.time_budget_seconds,
            site_name=self.site_name,
        )


settings = Settings()
