"""Application configuration."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost/gridwatch"
    DATABASE_ECHO: bool = False

    # Application
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Polling
    POLL_INTERVAL_SECONDS: int = 60
    ALERT_TIMEZONE: str = "Asia/Kolkata"

    # SMS (MSG91)
    MSG91_AUTH_KEY: str = ""
    MSG91_SENDER_ID: str = ""
    MSG_TEMPLATE_ID: str = ""

    # Email
    EMAIL_FROM: str = "Gridwatch <alerts@gridwatch.local>"
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None

    @property
    def console_mode(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def smtp_config(self) -> Optional[dict]:
        if not (self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD):
            return None
        return {
            "host": self.SMTP_HOST,
            "port": self.SMTP_PORT,
            "username": self.SMTP_USER,
            "password": self.SMTP_PASSWORD,
            "from_email": self.EMAIL_FROM,
        }

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )


settings = Settings()
