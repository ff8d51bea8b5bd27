"""
Centralized configuration management.
All environment variables and settings are defined here.
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = Field(default="QuantoDa Subscription Analyzer", alias="APP_NAME")
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    public_base_url: str = Field(default="http://localhost:8000", alias="PUBLIC_BASE_URL")

    # Gemini
    gemini_api_key: str = Field(..., alias="GEMINI_API_KEY")
    gemini_api_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        alias="GEMINI_API_URL"
    )
    gemini_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_MODEL")
    gemini_timeout: int = Field(default=30, alias="GEMINI_TIMEOUT")
    llm_max_retries: int = Field(default=3, alias="LLM_MAX_RETRIES")

    # Processing
    classification_timeout: float = Field(default=45.0, alias="CLASSIFICATION_TIMEOUT")
    max_statement_chars: int = Field(default=30000, alias="MAX_STATEMENT_CHARS")

    # Credits / payments
    initial_credits: int = Field(default=1, alias="INITIAL_CREDITS")
    credits_per_purchase: int = Field(default=3, alias="CREDITS_PER_PURCHASE")
    abacatepay_api_key: Optional[str] = Field(default=None, alias="ABACATEPAY_API_KEY")
    abacatepay_api_url: str = Field(default="https://api.abacatepay.com/v1", alias="ABACATEPAY_API_URL")
    product_price_cents: int = Field(default=2990, alias="PRODUCT_PRICE_CENTS")

    # Storage
    temp_storage_path: str = Field(default="files", alias="STORAGE_PATH")
    database_path: str = Field(default="quantoda.db", alias="DATABASE_PATH")

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level is one of the standard levels."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v_upper

    @validator("port")
    def validate_port(cls, v):
        """Validate port is in valid range."""
        if not (1 <= v <= 65535):
            raise ValueError("Port must be between 1 and 65535")
        return v

    @validator("max_statement_chars")
    def validate_max_statement_chars(cls, v):
        """Keep the prompt payload inside upstream request limits."""
        if v < 1000:
            raise ValueError("Max statement chars must be at least 1000")
        if v > 200000:
            raise ValueError("Max statement chars should not exceed 200000")
        return v

    @validator("classification_timeout")
    def validate_classification_timeout(cls, v):
        if v <= 0:
            raise ValueError("Classification timeout must be positive")
        return v

    @validator("llm_max_retries", "credits_per_purchase")
    def validate_positive(cls, v):
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @validator("initial_credits")
    def validate_initial_credits(cls, v):
        if v < 0:
            raise ValueError("Initial credits cannot be negative")
        return v

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        Path(self.temp_storage_path).mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.ensure_directories()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (useful for testing)."""
    global _settings
    _settings = None
