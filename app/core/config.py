from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "local"
    APP_NAME: str = "Experience Booking API"
    # Comma-separated origins for CORS (e.g. https://shop.example.com,https://admin.example.com). If empty, uses localhost defaults.
    CORS_ORIGINS: str = ""
    LOG_LEVEL: str = "INFO"

    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    DATABASE_URL: str = "sqlite:///./booking.db"

    @field_validator("DATABASE_URL", mode="after")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Render and others give postgres://; SQLAlchemy expects postgresql+psycopg2://."""
        if v and v.startswith("postgres://"):
            return "postgresql+psycopg2://" + v[11:]
        return v
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_TIMEZONE: str = "UTC"

    # Capacity holds and waitlist claims
    HOLD_TTL_MINUTES: int = 15
    WAITLIST_CLAIM_WINDOW_MINUTES: int = 30
    IN_PROGRESS_WINDOW_HOURS: int = 4

    # Notification collaborator (JSON webhook). If empty, notifications are only logged.
    NOTIFY_WEBHOOK_URL: str = ""
    NOTIFY_WEBHOOK_TOKEN: str = ""
    NOTIFY_TIMEOUT_SECONDS: int = 10


settings = Settings()
