"""Bridge configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings

GHL_OAUTH_SCOPES = (
    "contacts.readonly",
    "contacts.write",
    "opportunities.readonly",
    "opportunities.write",
    "calendars.readonly",
    "calendars.write",
    "calendars/events.readonly",
    "calendars/events.write",
    "conversations.readonly",
    "conversations.write",
    "conversations/message.readonly",
    "conversations/message.write",
    "invoices.readonly",
    "invoices.write",
    "products.readonly",
    "products.write",
    "users.readonly",
    "users.write",
    "locations.readonly",
    "workflows.readonly",
)


class BridgeSettings(BaseSettings):
    environment: str = "development"
    app_title: str = "GHL Bridge"
    database_url: str = "sqlite+aiosqlite:///ghl_bridge.db"
    echo_sql: bool = False
    log_level: str = "INFO"
    dashboard_url: str = "http://localhost:3000"

    # OAuth (Marketplace app)
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = "http://localhost:8000/auth/ghl/callback"
    auth_url: str = "https://marketplace.gohighlevel.com/oauth/chooselocation"
    token_url: str = "https://services.leadconnectorhq.com/oauth/token"
    token_expiry_buffer_seconds: int = 300
    http_timeout_seconds: float = 30.0

    # Upstream API
    api_base_url: str = "https://services.leadconnectorhq.com"
    api_version: str = "2021-07-28"
    rate_limit_burst: int = 100
    rate_limit_window_seconds: float = 10.0
    rate_limit_daily: int = 200_000
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    default_retry_after_seconds: int = 10

    # Inbound webhooks
    webhook_secret: str | None = None
    webhook_signature_header: str = "X-GHL-Signature"
    security_fail_closed: bool = False

    # Sync scheduling
    sync_page_size: int = 100
    appointment_window_days: int = 30
    cron_secret: str | None = None
    cron_max_tasks: int = 5
    cron_time_budget_seconds: float = 50.0
    reconcile_time_budget_seconds: float = 270.0
    reconcile_discrepancy_ratio: float = 0.1
    soft_delete_retention_days: int = 90
    sync_log_retention_days: int = 30
    initial_sync_lease_seconds: int = 600
    sync_lease_seconds: int = 900

    # Dashboard sessions
    auth_secret: str = ""
    auth_cookie_name: str = "ghl_bridge_session"
    auth_session_ttl_seconds: int = 86400

    model_config = {"env_prefix": "GHL_", "env_file": ".env", "extra": "ignore"}

    @property
    def scopes(self) -> list[str]:
        return list(GHL_OAUTH_SCOPES)

    @property
    def oauth_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in {"dev", "development", "local"}


settings = BridgeSettings()
