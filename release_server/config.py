from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process configuration, read once from the environment at startup."""

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")

    # Storage backend: local | r2 | s3
    storage_backend: str = "local"
    data_dir: str = "./data"

    # Cloud bucket binding (R2 via its S3-compatible account endpoint)
    releases_bucket: str | None = None
    r2_account_id: str | None = None
    r2_endpoint: str | None = None

    # S3-compatible API
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = Field(default=None, repr=False)
    aws_region: str = "us-east-1"
    s3_bucket: str = "lightshell-releases"
    s3_endpoint: str | None = None
    s3_prefix: str = ""

    # Credentials
    api_key: str | None = Field(default=None, repr=False)
    ed25519_public_key: str | None = None

    base_url: str = "http://localhost:8080"
    port: int = 8080

    # Flask-Limiter limit strings
    rate_limit_latest: str = "60 per minute"
    rate_limit_download: str = "30 per minute"
    rate_limit_api: str = "100 per hour"

    audit_ip_salt: str = Field(default="", repr=False)
    log_level: str = "INFO"

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("storage_backend")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        return value.strip().lower()
