"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
"""

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

    # Local layout
    public_dir: str = Field(
        default="./public",
        description="Directory that asset request paths are rooted at",
    )
    views_dir: str = Field(
        default="./views",
        description="Directory scanned for CDN(...) references in templates",
    )
    template_extensions: str = Field(
        default=".html,.jinja2,.j2,.jade,.ejs,.pug",
        description="Comma-separated template file extensions to scan",
    )

    @property
    def template_extension_list(self) -> list[str]:
        """Parse template extensions string into a list of dotted, lowercase suffixes."""
        if not self.template_extensions.strip():
            return []
        return [
            e if e.startswith(".") else f".{e}"
            for e in (p.strip().lower() for p in self.template_extensions.split(","))
            if e
        ]

    # Publishing behaviour
    production: bool = Field(
        default=False,
        description="Publish to object storage and render CDN URLs",
    )
    continue_on_failure: bool = Field(
        default=False,
        description="Upload original bytes when minification or optimization fails",
    )
    disable_walk: bool = Field(
        default=False,
        description="Skip scanning the views directory for asset references",
    )
    cache_file: str | None = Field(
        default=None,
        description="Manifest file written after a publish; a non-empty file skips the next run",
    )
    debug_temp_dir: str | None = Field(
        default=None,
        description="Directory to store unminified script bundles for debugging",
    )
    publish_concurrency: int = Field(
        default=8,
        description="Maximum number of assets published concurrently",
        gt=0,
    )
    upload_max_attempts: int = Field(
        default=5,
        description="Total upload attempts per asset before giving up",
        gt=0,
    )
    upload_retry_base_delay: float = Field(
        default=1.0,
        description="Base delay in seconds for exponential upload backoff",
        ge=0,
    )

    # External optimizers
    optipng_path: str = Field(default="optipng", description="Path to the optipng binary")
    jpegtran_path: str = Field(default="jpegtran", description="Path to the jpegtran binary")

    # CDN
    cdn_domain: str | None = Field(
        default=None,
        description="CDN domain assets are served from (e.g. d1234.cloudfront.net)",
    )
    cdn_ssl: Literal["relative"] | bool = Field(
        default=True,
        description="Render CDN links as https (true), http (false) or protocol-relative ('relative')",
    )
    cdn_prefix: str = Field(
        default="",
        description="Key prefix within the bucket (e.g. a CloudFront origin path)",
    )
    cdn_append_prefix: bool = Field(
        default=True,
        description="Also append the key prefix to rendered CDN URLs",
    )

    @field_validator("cdn_prefix")
    @classmethod
    def validate_cdn_prefix(cls, v: str) -> str:
        if ".." in v.split("/"):
            msg = "cdn_prefix must not contain '..' segments"
            raise ValueError(msg)
        return v

    # S3-Compatible Object Storage
    s3_bucket: str | None = Field(default=None, description="Bucket name")
    s3_access_key_id: str | None = Field(default=None, description="Access key ID")
    s3_secret_access_key: str | None = Field(default=None, description="Secret access key")
    s3_region: str | None = Field(default=None, description="Bucket region")
    s3_endpoint_url: str | None = Field(
        default=None,
        description="Endpoint override for S3-compatible stores (R2, MinIO)",
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

    @model_validator(mode="after")
    def validate_production_options(self) -> "Settings":
        if not self.production:
            return self
        required = {
            "cdn_domain": self.cdn_domain,
            "s3_bucket": self.s3_bucket,
            "s3_access_key_id": self.s3_access_key_id,
            "s3_secret_access_key": self.s3_secret_access_key,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            msg = f"missing option(s) required in production: {', '.join(missing)}"
            raise ValueError(msg)
        return self


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
