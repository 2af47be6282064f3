"""Application configuration."""

from typing import Literal
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Deployment
    environment: Literal["development", "test", "production"] = Field(
        default="development",
        description="Deployment mode. Production requires the durable storage backend."
    )
    public_base_url: str = Field(
        default="http://localhost:8000",
        description="Public base URL of this server, used for /storage asset links"
    )

    # OpenAI Settings (vision-capable chat completions)
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o", description="Vision-capable model name")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        description="Chat completions endpoint"
    )
    openai_max_tokens: int = Field(default=8192, description="Maximum completion tokens")
    openai_timeout: float = Field(default=120.0, description="Vision call timeout in seconds")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./sitelog.db",
        description="Database connection URL"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # Storage: Bunny CDN (durable backend) with local filesystem fallback
    storage_root: str = Field(default="storage", description="Local filesystem storage root")
    bunny_storage_zone_name: str | None = Field(default=None, description="Bunny storage zone")
    bunny_storage_api_key: str | None = Field(default=None, description="Bunny storage AccessKey")
    bunny_cdn_pull_zone_url: str | None = Field(default=None, description="Bunny pull zone URL")
    bunny_storage_hostname: str = Field(
        default="storage.bunnycdn.com",
        description="Bunny storage API hostname (region specific)"
    )
    storage_timeout: float = Field(default=30.0, description="Durable backend timeout in seconds")

    @property
    def bunny_configured(self) -> bool:
        """Whether all durable backend credentials are present."""
        return bool(
            self.bunny_storage_zone_name
            and self.bunny_storage_api_key
            and self.bunny_cdn_pull_zone_url
        )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    # Image ingestion
    image_max_dimension: int = Field(default=1920, description="Resize photos to fit this box")
    image_jpeg_quality: int = Field(default=85, description="JPEG quality for stored photos")

    # PDF rendering
    pdf_engine: Literal["weasyprint", "chromium"] = Field(
        default="weasyprint",
        description="Headless HTML-to-PDF engine"
    )
    chromium_path: str | None = Field(
        default=None,
        description="Chromium executable; discovered on PATH when unset"
    )
    render_timeout: float = Field(default=60.0, description="PDF render timeout in seconds")

    # Email (SMTP)
    smtp_host: str = Field(default="smtp.gmail.com", description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_user: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_from: str = Field(default="noreply@sitelog.app", description="Sender address")
    smtp_use_tls: bool = Field(default=True, description="Issue STARTTLS before login")
    smtp_timeout: float = Field(default=30.0, description="SMTP timeout in seconds")

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    # Automation webhook
    webhook_url: str | None = Field(default=None, description="Outbound automation webhook URL")
    webhook_timeout: float = Field(default=30.0, description="Webhook timeout in seconds")

    # Branding
    platform_name: str = Field(default="SiteLog", description="Platform name shown in documents")
    platform_logo_path: str = Field(
        default="assets/platform-logo.png",
        description="Storage reference of the platform logo"
    )
    default_brand_color: str = Field(default="#E8764B", description="Fallback brand color")

    # Pipeline
    pipeline_workers: int = Field(default=2, description="Concurrent pipeline workers")

    # Development Settings
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("image_max_dimension", "pipeline_workers", "openai_max_tokens")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate integer is positive."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @field_validator("openai_timeout", "render_timeout", "storage_timeout", "webhook_timeout", "smtp_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeouts are bounded and positive."""
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v

    @field_validator("image_jpeg_quality")
    @classmethod
    def validate_jpeg_quality(cls, v: int) -> int:
        """Validate JPEG quality is within Pillow's useful range."""
        if not 1 <= v <= 95:
            raise ValueError("image_jpeg_quality must be between 1 and 95")
        return v

    @field_validator("default_brand_color")
    @classmethod
    def validate_brand_color(cls, v: str) -> str:
        """Validate hex color."""
        if len(v) != 7 or not v.startswith("#"):
            raise ValueError("default_brand_color must be a hex color like #E8764B")
        int(v[1:], 16)
        return v

    @model_validator(mode="after")
    def validate_bunny_settings(self) -> "Settings":
        """Reject a half-configured durable backend."""
        bunny_fields = [
            self.bunny_storage_zone_name,
            self.bunny_storage_api_key,
            self.bunny_cdn_pull_zone_url,
        ]
        if any(bunny_fields) and not all(bunny_fields):
            raise ValueError(
                "bunny_storage_zone_name, bunny_storage_api_key and "
                "bunny_cdn_pull_zone_url must be set together"
            )
        return self


# Global settings instance
settings = Settings()
