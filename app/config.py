"""Application configuration"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Database
    database_url: str = "sqlite:///./taskbridge.db"

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"

    # Webhook shared secrets (one per provider).
    # When a secret is unset/empty, deliveries for that provider are not authenticated.
    jira_webhook_secret: Optional[str] = None
    github_webhook_secret: Optional[str] = None
    azure_devops_webhook_secret: Optional[str] = None

    # Providers time out deliveries after a few seconds; past this budget the
    # link lookup gives up and the delivery is acknowledged as unmatched.
    webhook_time_budget_seconds: float = 5.0

    # Outbound provider REST calls
    provider_timeout_seconds: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = False

    def webhook_secret_for(self, provider: str) -> Optional[str]:
        """Configured webhook secret for a provider (None when auth is disabled)."""
        name = getattr(provider, "value", provider)
        value = getattr(self, f"{name}_webhook_secret", None)
        return value or None


settings = Settings()
