"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        description="Async SQLAlchemy connection string for the cache and record store",
    )

    # Geocoding
    geocoder_default_provider: Literal["nominatim", "mapbox"] = Field(
        default="nominatim",
        description="Provider used for the primary, alternate-address and postal-code tiers",
    )
    geocoder_timeout: float = Field(
        default=30.0,
        description="Hard timeout in seconds for a single provider call",
        gt=0,
    )
    geocoder_max_retries: int = Field(
        default=3,
        description="Attempts per fallback tier on rate limiting or transient errors",
        gt=0,
    )
    geocoder_retry_base_delay_ms: int = Field(
        default=1000,
        description="Base delay for exponential backoff, in milliseconds",
        gt=0,
    )
    geocoder_country_code: str = Field(
        default="br",
        description="ISO country code used to filter provider results",
    )
    geocoder_country_name: str = Field(
        default="Brasil",
        description="Country name appended to record-expanded and postal-code queries",
    )

    # Nominatim (OpenStreetMap)
    geocoder_user_agent: str = Field(
        default="CredenciamentoApp/1.0",
        description="Client identification string required by the Nominatim usage policy",
    )
    geocoder_nominatim_email: str = Field(
        default="",
        description="Contact email sent to Nominatim",
    )

    # Mapbox
    geocoder_mapbox_api_key: str | None = Field(
        default=None,
        description="Mapbox access token (enables the alternate-provider tier)",
    )

    # Postal-code directory
    postal_code_directory_url: str = Field(
        default="https://viacep.com.br/ws",
        description="Base URL of the postal-code (CEP) directory",
    )

    @field_validator("geocoder_user_agent")
    @classmethod
    def validate_user_agent(cls, v: str) -> str:
        if not v.strip():
            msg = "geocoder_user_agent must not be empty"
            raise ValueError(msg)
        return v.strip()

    @field_validator("postal_code_directory_url")
    @classmethod
    def validate_postal_code_directory_url(cls, v: str) -> str:
        if not v.startswith("https://"):
            msg = "postal_code_directory_url must use HTTPS"
            raise ValueError(msg)
        return v.rstrip("/")

    # Backfill
    backfill_batch_size: int = Field(
        default=50,
        description="Facilities processed per backfill run",
        gt=0,
    )
    backfill_max_attempts: int = Field(
        default=5,
        description="Skip facilities that already failed this many times",
        gt=0,
    )
    backfill_delay_seconds: float = Field(
        default=1.1,
        description="Pause between consecutive resolutions during backfill",
        ge=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def cors_origin_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        if not self.cors_origins.strip():
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
