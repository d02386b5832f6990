"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings so that every deployment knob (renewal interval,
policy flags, database, collaborator plugins) is validated once at startup
and then handed to the engine as explicit values. Nothing below is read as
process-wide state by the domain code: main.py turns these settings into a
RenewalPolicy and concrete adapters.

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so RENEWAL__RENEWAL_INTERVAL_DAYS
maps to renewal.renewal_interval_days, DATABASE__HOST to database.host, etc.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cert_renewer.renewal import RenewalPolicy

# Resolve the .env file relative to the project root (two levels above this file).
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection for managed-item storage.

    Accepts either DATABASE__DSN or the individual components; the DSN wins
    when both are present and is always populated after construction.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )
    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build the DSN from components when no full DSN was given."""
        if self.dsn is not None:
            return self
        missing = [f for f, v in [
            ("DATABASE__HOST", self.host),
            ("DATABASE__NAME", self.name),
            ("DATABASE__USERNAME", self.username),
            ("DATABASE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError("Set DATABASE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn validator
        return self.dsn.get_secret_value()


class RenewalSettings(BaseModel):
    """
    Renewal pass policy.

    renewal_interval_days=0 renews every included item on every pass, which
    is useful when testing against a staging CA.
    """

    renewal_interval_days: int = Field(default=30, ge=0)
    auto_renew_only: bool = Field(
        default=True,
        description="Only process items flagged for auto-renewal",
    )
    skip_stopped_endpoints: bool = Field(
        default=False,
        description="Skip due items whose endpoint is confirmed stopped",
    )
    identifier_reuse: bool = Field(
        default=False,
        description="Reuse unexpired valid/pending provider identifiers instead of re-validating",
    )

    def to_policy(self) -> RenewalPolicy:
        return RenewalPolicy(
            auto_renew_only=self.auto_renew_only,
            renewal_interval_days=self.renewal_interval_days,
            skip_stopped_endpoints=self.skip_stopped_endpoints,
        )


class SchedulerSettings(BaseModel):
    """
    When renewal passes run, as a standard 5-field cron expression.

    Format: minute hour day-of-month month day-of-week
      "0 3 * * *"    — daily at 03:00 (default)
      "0 */12 * * *" — every 12 hours
    """

    cron: str = Field(
        default="0 3 * * *",
        description="Cron expression (5 fields: minute hour dom month dow)",
    )

    @field_validator("cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        """Reject expressions that don't have exactly 5 space-separated fields."""
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()


class PluginSettings(BaseModel):
    """
    Dotted import paths ("package.module:factory") of the collaborators that
    speak the ACME protocol and administer the web server. Each must name a
    zero-argument callable returning the adapter.
    """

    vault_client: str = Field(description="Factory for the VaultClient port")
    binding_administrator: str = Field(description="Factory for the BindingAdministrator port")


class NotificationSettings(BaseModel):
    """Failure notification webhook; notifications are off when unset."""

    webhook_url: str | None = Field(default=None)


class CertificateStoreSettings(BaseModel):
    pfx_password: SecretStr | None = Field(default=None, description="Password for PKCS#12 artifacts")


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings
    plugins: PluginSettings
    renewal: RenewalSettings = Field(default_factory=lambda: RenewalSettings())
    scheduler: SchedulerSettings = Field(default_factory=lambda: SchedulerSettings())
    notifications: NotificationSettings = Field(default_factory=lambda: NotificationSettings())
    certificate_store: CertificateStoreSettings = Field(
        default_factory=lambda: CertificateStoreSettings()
    )

    http_timeout_seconds: int = Field(default=10, ge=1)
    run_on_startup: bool = Field(default=True)
    log_level: str = Field(default="INFO")
