from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Loading priority (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values below
    """

    # Environment
    environment: str = "development"
    debug: bool = False

    # Application
    app_name: str = "Short Link Service"
    app_version: str = "1.0.0"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    base_url: str = "http://127.0.0.1:8000"  # Prefix of every shortLink

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # Link store
    link_store_backend: str = "sqlalchemy"  # Options: "sqlalchemy", "redis", "memory"
    database_url: str = "sqlite:///./shortlinks.db"
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "shortlink"
    redis_expiry_grace_seconds: int = 300  # Redis keys outlive expires_at by this much
    store_timeout_seconds: float = 5.0

    # Short code allocation
    short_code_strategy: str = "secure"  # Options: "secure", "random"
    short_code_length: int = 6
    short_code_min_length: int = 4
    short_code_max_length: int = 20
    short_code_max_retries: int = 5  # Draws per length tier
    short_code_length_tiers: int = 3
    max_create_attempts: int = 3  # Retries when a generated code loses a write race

    # Validity (minutes)
    default_validity_minutes: int = 30
    max_validity_minutes: int = 525600  # One year

    # Pagination of click listings
    default_page_limit: int = 50
    max_page_limit: int = 1000

    # Click capture
    header_max_length: int = 500

    # Geo-IP lookup
    geo_backend: str = "null"  # Options: "http", "null"
    geo_lookup_url: str = "http://ip-api.com/json/{ip}?fields=status,countryCode"
    geo_timeout_seconds: float = 2.0

    # Audit log sink
    audit_enabled: bool = False
    audit_auth_url: Optional[str] = None
    audit_logs_url: Optional[str] = None
    audit_email: Optional[str] = None
    audit_name: Optional[str] = None
    audit_roll_no: Optional[str] = None
    audit_access_code: Optional[str] = None
    audit_client_id: Optional[str] = None
    audit_client_secret: Optional[str] = None
    audit_stack: str = "backend"
    audit_timeout_seconds: float = 5.0
    audit_max_retries: int = 3
    audit_backoff_base_seconds: float = 1.0
    audit_token_ttl_seconds: int = 3000  # Cache tokens for 50 minutes
    audit_token_refresh_margin_seconds: int = 60

    # Expiry sweeper (stores without native TTL)
    expiry_sweep_enabled: bool = True
    expiry_sweep_interval_seconds: int = 60

    # Pydantic v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


# Create settings instance
settings = Settings()
