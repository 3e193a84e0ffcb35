from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Database
    DATABASE_URL: str = "sqlite:///./database.db"
    DB_LOCK_TIMEOUT_SECONDS: float = 10.0
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10

    # Stripe (card channel)
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    CURRENCY: str = "jpy"

    # Wallet channel
    WALLET_DEDUP_WINDOW_SECONDS: int = 300

    # Mail notifications (unset SMTP_HOST disables mail)
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SECONDS: float = 10.0
    MAIL_FROM: Optional[str] = None
    MAIL_TO: Optional[str] = None

    # Admin report gate
    ADMIN_USERNAME: str = "admin"
    ADMIN_PASSWORD_HASH: Optional[str] = None

    # Application
    APP_NAME: str = "Paystock"
    APP_VERSION: str = "1.0.0"
    SEED_CATALOG: bool = True


settings = Settings()
