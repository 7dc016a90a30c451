"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from constants import SECONDS_PER_DAY


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)

    # Security
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Database Configuration (upload metadata)
    database_url: str = Field(default="sqlite+aiosqlite:///./data/photos.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=5, ge=1, le=100)
    database_max_overflow: int = Field(default=10, ge=0, le=100)

    # Download links
    download_token_secret: str = Field(min_length=32)
    download_link_validity_days: int = Field(default=7, ge=1, le=90)
    max_photo_selection: int = Field(default=50, ge=1, le=500)
    public_base_url: str = Field(default="http://localhost:3000")

    # Archive cache
    archive_cache_dir: str = Field(default="./data/archive-cache")
    archive_retention_seconds: int = Field(default=3600, ge=60)
    archive_janitor_interval: int = Field(default=3600, ge=10)
    max_concurrent_builds: int = Field(default=3, ge=1, le=32)
    item_fetch_timeout: float = Field(default=30.0, ge=1.0, le=300.0)
    archive_compression_level: int = Field(default=6, ge=0, le=9)
    archive_name_prefix: str = Field(default="photos", min_length=1, max_length=64)

    # Object storage (AWS S3 or DigitalOcean Spaces)
    s3_bucket_name: Optional[str] = Field(default=None)
    s3_region: str = Field(default="us-east-1")
    s3_endpoint: Optional[str] = Field(default=None)
    s3_access_key_id: Optional[str] = Field(default=None)
    s3_secret_access_key: Optional[str] = Field(default=None)
    s3_url_expiry: int = Field(default=3600, ge=60, le=604800)

    # Email delivery (Resend preferred, SMTP fallback)
    resend_api_key: Optional[str] = Field(default=None)
    email_from: Optional[str] = Field(default=None)
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_secure: bool = Field(default=False)
    smtp_user: Optional[str] = Field(default=None)
    smtp_pass: Optional[str] = Field(default=None)
    email_timeout: int = Field(default=10, ge=1, le=120)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                if db_path and db_path != ":memory:":
                    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("public_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def download_link_validity_seconds(self) -> int:
        return self.download_link_validity_days * SECONDS_PER_DAY

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.debug

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
    }
