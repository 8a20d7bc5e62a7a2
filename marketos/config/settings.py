"""
MarketOS Marketplace Analytics
Centralized Configuration Management

Pydantic settings with environment variable support, grouped by subsystem:
database, cache, sync, analytics, alert rules, marketplace clients,
notifications, retention, scheduling and monitoring.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """PostgreSQL Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="marketos", alias="database", description="Database name")
    user: str = Field(default="marketos", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    pool_size: int = Field(default=10, ge=1, description="Connection pool size")
    max_overflow: int = Field(default=5, ge=0, description="Max overflow connections")
    echo: bool = Field(default=False, description="Echo SQL queries")
    url: Optional[str] = Field(default=None, alias="DATABASE_URL", description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class RedisSettings(BaseSettings):
    """Redis Cache Configuration"""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[SecretStr] = Field(default=None, description="Redis password")
    db: int = Field(default=0, description="Redis database number")
    max_connections: int = Field(default=50, description="Max connections")
    socket_timeout: int = Field(default=5, description="Socket timeout in seconds")
    decode_responses: bool = Field(default=True, description="Decode responses to strings")
    analytics_ttl_seconds: int = Field(default=600, description="TTL of cached analytics responses")
    url: Optional[str] = Field(default=None, alias="REDIS_URL", description="Redis URL (overrides host/port)")

    def get_url(self) -> str:
        """Redis connection URL - uses REDIS_URL if set, otherwise builds from host/port"""
        if self.url:
            return self.url
        if self.password:
            return f"redis://:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"
        return f"redis://{self.host}:{self.port}/{self.db}"


class SyncSettings(BaseSettings):
    """Marketplace synchronization configuration"""

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    window_days: int = Field(default=30, ge=1, description="Trailing window fetched on every sync")
    adapter_timeout_seconds: float = Field(default=30.0, gt=0, description="Upper bound for one adapter call")


class AnalyticsSettings(BaseSettings):
    """Aggregation engine configuration"""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    default_range_days: int = Field(default=30, description="Date range used when a request gives none")
    dead_stock_threshold_days: int = Field(default=30, description="Days without sales before stock is dead")
    rollup_window_days: int = Field(default=30, description="Trailing window of product rollups")
    rollup_dead_stock_days: int = Field(default=60, description="Dead stock threshold used by product rollups")
    top_queries_limit: int = Field(default=10, description="Top SEO queries kept per product")


class AlertSettings(BaseSettings):
    """Alert rule thresholds"""

    model_config = SettingsConfigDict(env_prefix="ALERT_")

    low_roas_threshold: float = Field(default=3.0, description="ROAS below which a HIGH alert fires")
    storage_cost_threshold: float = Field(default=1000.0, description="Storage fee sum that triggers an alert")
    storage_window_days: int = Field(default=7, description="Trailing window for storage fees")
    seo_drop_threshold: int = Field(default=10, description="Positions lost before an SEO drop alert")
    seo_window_days: int = Field(default=7, description="Trailing window for SEO snapshots")
    min_keyword_length: int = Field(default=4, description="Shortest campaign token compared for conflicts")
    campaign_window_days: Optional[int] = Field(
        default=None, ge=1, description="Trailing window of ad stats compared for conflicts; all history when unset"
    )
    dedup_policy: str = Field(default="none", description="none or unresolved")

    @field_validator("dedup_policy")
    @classmethod
    def validate_dedup_policy(cls, v: str) -> str:
        """Validate dedup policy value"""
        allowed = ["none", "unresolved"]
        if v.lower() not in allowed:
            raise ValueError(f"Dedup policy must be one of: {allowed}")
        return v.lower()


class MarketplaceSettings(BaseSettings):
    """Marketplace API client configuration"""

    model_config = SettingsConfigDict(env_prefix="MARKETPLACE_")

    mode: str = Field(default="demo", description="demo (generated catalogs) or live (token checks hit the API)")
    http_timeout_seconds: float = Field(default=15.0, description="HTTP timeout for marketplace calls")
    http_retries: int = Field(default=2, description="Retries after the first attempt")
    wb_api_url: str = Field(default="https://suppliers-api.wildberries.ru", description="Wildberries API base")
    ozon_api_url: str = Field(default="https://api-seller.ozon.ru", description="Ozon API base")
    ym_api_url: str = Field(default="https://api.partner.market.yandex.ru", description="Yandex Market API base")


class NotificationSettings(BaseSettings):
    """Telegram notification configuration"""

    model_config = SettingsConfigDict(env_prefix="TELEGRAM_")

    bot_token: Optional[SecretStr] = Field(default=None, description="Telegram bot token")
    api_url: str = Field(default="https://api.telegram.org", description="Telegram Bot API base")
    timeout_seconds: float = Field(default=10.0, description="Delivery timeout")
    dispatch_lookback_hours: int = Field(default=24, description="Undelivered alerts older than this are no longer dispatched")


class RetentionSettings(BaseSettings):
    """Data retention configuration"""

    model_config = SettingsConfigDict(env_prefix="RETENTION_")

    days: int = Field(default=90, description="Age after which resolved alerts and history are purged")


class SchedulerSettings(BaseSettings):
    """Cron triggers for scheduled jobs"""

    model_config = SettingsConfigDict(env_prefix="SCHEDULE_")

    timezone: str = Field(default="Europe/Moscow", description="Timezone of cron triggers")
    sync_cron: str = Field(default="0 * * * *", description="Hourly marketplace sync")
    alerts_cron: str = Field(default="0 */4 * * *", description="Alert generation and dispatch")
    daily_report_cron: str = Field(default="0 9 * * *", description="Daily report")
    weekly_report_cron: str = Field(default="0 10 * * 1", description="Weekly report")
    cleanup_cron: str = Field(default="0 2 * * *", description="Retention sweep")


class MonitoringSettings(BaseSettings):
    """Monitoring and Observability Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")

    enable_metrics: bool = Field(default=True, alias="ENABLE_METRICS", description="Expose /metrics")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="marketos-analytics", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # API Server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API host")
    api_port: int = Field(default=8000, alias="API_PORT", description="API port")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    marketplace: MarketplaceSettings = Field(default_factory=MarketplaceSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.app_env == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
