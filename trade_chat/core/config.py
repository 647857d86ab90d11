"""Configuration management."""
import os
from typing import Optional, Dict
from decimal import Decimal
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv(override=False)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )

    # Database
    database_url: str = os.getenv("DATABASE_URL") or os.getenv("TEST_DATABASE_URL", "sqlite:///./trade_chat.db")
    db_timeout_seconds: float = float(os.getenv("DB_TIMEOUT_SECONDS", "5"))

    # API
    api_secret_key: str = os.getenv("API_SECRET_KEY", "dev-secret-key-change-in-production")

    # JWT Authentication
    jwt_secret: str = os.getenv("JWT_SECRET", os.getenv("API_SECRET_KEY", "dev-jwt-secret-change-in-production"))
    jwt_issuer: str = os.getenv("JWT_ISSUER", "trade-chat")
    jwt_audience: str = os.getenv("JWT_AUDIENCE", "trade-chat")
    jwt_exp_minutes: int = int(os.getenv("JWT_EXP_MINUTES", "60"))

    # Dev Auth (demo-only)
    enable_dev_auth: bool = os.getenv("ENABLE_DEV_AUTH", "false").lower() == "true"

    # Test Auth Bypass (pytest only)
    test_auth_bypass: bool = os.getenv("PYTEST_CURRENT_TEST", "").strip() != "" and os.getenv("TEST_AUTH_BYPASS", "false").lower() == "true"

    # Quotes
    quote_provider: str = os.getenv("QUOTE_PROVIDER", "finnhub")  # "finnhub" or "static"
    finnhub_api_key: Optional[str] = os.getenv("FINNHUB_API_KEY")
    quote_timeout_seconds: float = float(os.getenv("QUOTE_TIMEOUT_SECONDS", "5"))
    static_quotes: str = os.getenv("STATIC_QUOTES", "AAPL:150,MSFT:410,TSLA:200,GOOG:170,AMZN:180,META:500,NFLX:600")

    @property
    def static_quotes_map(self) -> Dict[str, Decimal]:
        """Parse STATIC_QUOTES ("AAPL:150,TSLA:200") into a price table."""
        prices = {}
        for pair in self.static_quotes.split(","):
            if ":" not in pair:
                continue
            symbol, price = pair.split(":", 1)
            if symbol.strip():
                prices[symbol.strip().upper()] = Decimal(price.strip())
        return prices

    # Confirmation flow
    pending_trade_ttl_seconds: int = int(os.getenv("PENDING_TRADE_TTL_SECONDS", "300"))
    max_pin_attempts: int = int(os.getenv("MAX_PIN_ATTEMPTS", "3"))
    pin_min_length: int = int(os.getenv("PIN_MIN_LENGTH", "4"))
    pin_max_length: int = int(os.getenv("PIN_MAX_LENGTH", "8"))
    session_idle_seconds: int = int(os.getenv("SESSION_IDLE_SECONDS", "3600"))

    # Change notifications
    notifier_webhook_url: Optional[str] = os.getenv("NOTIFIER_WEBHOOK_URL")
    notifier_timeout_seconds: float = float(os.getenv("NOTIFIER_TIMEOUT_SECONDS", "5"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    def validate_quote_provider(self) -> None:
        """Validate quote_provider. Called at startup."""
        if self.quote_provider not in ("finnhub", "static"):
            raise ValueError(
                f"Invalid QUOTE_PROVIDER='{self.quote_provider}'. "
                f"Supported: 'finnhub', 'static'."
            )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton. Used for test isolation."""
    global _settings
    _settings = None
