"""
Application Settings.

Centralizes all configuration via .env / environment variables.
"""

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    # --- App ---
    env: str = "development"
    debug: bool = False
    api_host: str = "0.0.0.0"
    api_port: int = 8003
    log_level: str = "INFO"

    # --- Database ---
    database_url: str = "sqlite:///ekyc_documents.db"

    # --- Uploads ---
    max_file_size: int = 10 * 1024 * 1024
    allowed_file_types: str = "image/jpeg,image/png,application/pdf"
    presigned_url_expiry: int = 3600
    enable_image_optimization: bool = True

    # --- Verification ---
    enable_document_verification: bool = False
    use_verification_provider: bool = True
    verification_api_url: str = ""
    verification_api_key: str = ""
    verification_timeout_seconds: float = 30.0
    verification_min_quality: float = 0.7
    basic_verification_pass_ratio: float = 0.75
    verification_workers: int = 4

    # --- Storage (MinIO / S3) ---
    minio_endpoint: str = "localhost:9000"
    minio_access_key: str = ""
    minio_secret_key: str = ""
    minio_bucket: str = "ekyc-documents"
    minio_secure: bool = False
    minio_region: str = "us-east-1"
    storage_server_side_encryption: bool = False

    # --- Auth ---
    jwt_secret: str = ""
    jwt_algorithm: str = "HS256"
    admin_role: str = "admin"

    # --- Quality Gate ---
    blur_threshold: float = 100.0
    brightness_min: int = 50
    brightness_max: int = 220
    min_resolution: int = 640
    min_doc_area_ratio: float = 0.05

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @property
    def allowed_mime_types(self) -> frozenset[str]:
        return frozenset(t.strip().lower() for t in self.allowed_file_types.split(",") if t.strip())

    @property
    def verification_provider_configured(self) -> bool:
        """True when the external authenticity service may be used."""
        return bool(
            self.use_verification_provider
            and self.verification_api_url
            and self.verification_api_key
        )


@lru_cache
def get_settings() -> Settings:
    """Settings singleton."""
    return Settings()
