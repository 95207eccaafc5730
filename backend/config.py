"""Application configuration using pydantic-settings."""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite:///./wallet_pnl.db"

    # CoinGecko price feed
    COINGECKO_API_URL: str = "https://api.coingecko.com/api/v3"
    COINGECKO_API_KEY: str = ""
    # Extra asset_id -> CoinGecko coin id mappings, e.g. '{"SP...token-abtc": "bitcoin"}'
    COINGECKO_ID_OVERRIDES: dict[str, str] = {}

    # Price cache contract
    PRICE_CACHE_TTL_SECONDS: int = 60
    PRICE_MAX_STALE_SECONDS: int = 900
    PRICE_TIMEOUT_SECONDS: float = 10.0

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @field_validator("PRICE_CACHE_TTL_SECONDS", "PRICE_MAX_STALE_SECONDS")
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("price cache windows must be >= 0 seconds")
        return v

    @field_validator("PRICE_TIMEOUT_SECONDS")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("PRICE_TIMEOUT_SECONDS must be > 0")
        return v


settings = Settings()
