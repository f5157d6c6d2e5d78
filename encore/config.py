"""Application configuration from environment variables."""

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = Field(
        default="sqlite:///./encore.db",
        description="SQLAlchemy connection string",
    )
    database_echo: bool = Field(default=False, description="Log SQL queries")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/server.log", description="Path to server log file")

    # API
    api_title: str = Field(default="Encore Finance API", description="API title")
    api_version: str = Field(default="0.1.0", description="API version")

    # Uploads
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, description="Attachment size cap")
    allowed_upload_types: list[str] = Field(
        default=["image/jpeg", "image/png", "image/jpg", "application/pdf"],
        description="Accepted attachment content types",
    )

    # Attachment storage (tried in order)
    storage_providers: list[str] = Field(
        default=["supabase", "cloudinary"],
        description="Ordered storage providers; later entries are fallbacks",
    )
    storage_max_attempts: int = Field(
        default=2, description="Upload attempts per provider before falling back"
    )
    storage_retry_delay_seconds: float = Field(
        default=0.5, description="Base delay between upload attempts"
    )
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_key: str = Field(default="", description="Supabase service key")
    supabase_bucket: str = Field(
        default="financial-documents", description="Supabase storage bucket"
    )
    cloudinary_cloud_name: str = Field(default="", description="Cloudinary cloud name")
    cloudinary_upload_preset: str = Field(
        default="", description="Unsigned Cloudinary upload preset"
    )
    cloudinary_api_key: str = Field(default="", description="Cloudinary API key")
    cloudinary_api_secret: str = Field(default="", description="Cloudinary API secret")

    # Locale
    locale: str = Field(default="en_US", description="Locale for money formatting")
    timezone: str | None = Field(
        default=None, description="IANA timezone for business hours (default: system)"
    )

    # Anomaly detection
    anomaly_z_threshold: float = Field(default=2.5, description="Amount outlier z-score")
    anomaly_z_high_threshold: float = Field(
        default=3.5, description="Amount z-score escalated to high severity"
    )
    anomaly_frequency_min_total: int = Field(
        default=10, description="Minimum transactions per user before frequency check"
    )
    anomaly_frequency_window_hours: int = Field(default=24, description="Frequency window")
    anomaly_frequency_window_count: int = Field(
        default=5, description="Transactions within the window that trigger a flag"
    )
    anomaly_business_hour_start: int = Field(default=9, description="First business hour")
    anomaly_business_hour_end: int = Field(default=17, description="Last business hour")
    anomaly_user_multiplier: float = Field(
        default=3.0, description="Multiple of the user's mean amount that is flagged"
    )


# Global settings instance
settings = Settings()
