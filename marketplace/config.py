from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str
    # Used to sign and verify the bearer tokens issued at login
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # --- STRIPE ---
    STRIPE_SECRET_KEY: str
    STRIPE_WEBHOOK_SECRET: str
    STRIPE_CURRENCY: str = "usd"

    # --- KAFKA ---
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_NOTIFICATION_TOPIC: str = "notifications"

    REDIS_URL: str = "redis://redis:6379/0"

    # --- EMAIL ---
    EMAIL_API_URL: str = "https://api.email.local/v1/send"
    EMAIL_API_KEY: str = ""
    EMAIL_FROM: str = "no-reply@marketplace.local"

    PASSWORD_RESET_TOKEN_TTL_MINUTES: int = 30
    OUTBOX_POLL_INTERVAL_SECONDS: int = 5

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")


settings = Settings()
