from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str

    # Auth
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 30

    REDIS_URL: str = "redis://localhost:6379/0"

    # Payments
    STRIPE_SECRET_KEY:     str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    PLATFORM_FEE_PERCENT:  float = 5.0
    CURRENCY:              str = "AED"

    # Scheduling
    VENUE_TIMEZONE: str = "Asia/Dubai"
    DEFAULT_FREE_CANCELLATION_HOURS: int = 24
    BULK_PUBLISH_MAX_WEEKS: int = 12

    # Push notifications
    PUSH_ENABLED: bool = True
    PUSH_API_URL: str = "https://exp.host/--/api/v2/push/send"


settings = Settings()
