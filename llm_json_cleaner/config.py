"""Application configuration using pydantic-settings."""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    port: int = 8080
    host: str = "0.0.0.0"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "text"

    # Rate Limiting
    rate_limit_per_hour: int = 1000

    # CORS
    cors_origins: str = "*"  # Comma-separated origins or "*" for all

    # Request limits
    max_input_chars: int = 1_000_000

    # Repair engine
    extractor_max_candidates: int = 64
    default_recipe_mode: Optional[str] = None  # None = pick per input
    recipe_timeout_ms: Optional[int] = None  # None = use the recipe's own limit
    small_input_threshold: int = 100
    large_input_threshold: int = 50_000

    # Performance thresholds (seconds)
    slow_request_threshold: float = 2.0
    very_slow_request_threshold: float = 5.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Get list of CORS origins."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]


# Global settings instance
settings = Settings()
