"""Application configuration using pydantic-settings.

Backend engines take explicit constructor arguments first and fall back to
these settings, so a signing pipeline can be configured purely from the
environment or a `.env` file.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug logging")
    log_level: str = Field(default="INFO", description="Log level name")

    # ======================
    # AWS KMS
    # ======================
    aws_region: str = Field(default="us-east-1", description="AWS region for KMS calls")
    aws_kms_endpoint_url: Optional[str] = Field(
        default=None, description="Override KMS endpoint (e.g. a local KMS emulator)"
    )

    # ======================
    # GCP Cloud KMS
    # ======================
    gcp_kms_endpoint: Optional[str] = Field(
        default=None, description="Override Cloud KMS API endpoint"
    )
    gcp_project: Optional[str] = Field(default=None, description="GCP project for key import")
    gcp_location: str = Field(default="global", description="GCP location for key import")
    gcp_key_ring: Optional[str] = Field(default=None, description="GCP key ring for key import")

    # ======================
    # PKCS#11 HSM
    # ======================
    pkcs11_lib: Optional[str] = Field(default=None, description="Path to PKCS#11 library")
    pkcs11_token_label: Optional[str] = Field(default=None, description="HSM token label")
    pkcs11_pin: Optional[str] = Field(default=None, description="HSM user PIN")

    # ======================
    # Key import
    # ======================
    import_job_poll_interval: float = Field(
        default=1.0, description="Initial delay between import job state checks (seconds)"
    )
    import_job_max_poll_interval: float = Field(
        default=10.0, description="Upper bound for the import job poll delay (seconds)"
    )
    import_job_timeout: float = Field(
        default=300.0, description="Give up waiting for an import job after this many seconds"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "log_level": self.log_level,
            "aws": {
                "region": self.aws_region,
                "endpoint_url": self.aws_kms_endpoint_url or "(default)",
            },
            "gcp": {
                "endpoint": self.gcp_kms_endpoint or "(default)",
                "project": self.gcp_project or "(not set)",
                "location": self.gcp_location,
                "key_ring": self.gcp_key_ring or "(not set)",
            },
            "pkcs11": {
                "lib": self.pkcs11_lib or "(not set)",
                "token_label": self.pkcs11_token_label or "(not set)",
                "pin": "***" if self.pkcs11_pin else "(not set)",
            },
            "import": {
                "poll_interval": self.import_job_poll_interval,
                "max_poll_interval": self.import_job_max_poll_interval,
                "timeout": self.import_job_timeout,
            },
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
