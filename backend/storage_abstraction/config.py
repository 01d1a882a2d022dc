"""
Configuration for the Storage Abstraction service
"""
import os
from pathlib import Path
from typing import Any, Dict, Union

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


# Resolve project root (three levels up: backend/storage_abstraction/config.py -> repo root)
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Load environment variables from local files before Pydantic reads them.
# .env.local overrides .env.
load_dotenv(BASE_DIR / ".env", override=False)
load_dotenv(BASE_DIR / ".env.local", override=True)


class Settings(BaseSettings):
    """Application settings"""

    model_config = SettingsConfigDict(
        case_sensitive=True,
        extra='ignore'
    )

    # App Configuration
    ENV: str = os.getenv("ENV", "development")
    DEBUG: bool = os.getenv("DEBUG", "True").lower() == "true"
    API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
    API_PORT: int = int(os.getenv("API_PORT", "8000"))
    API_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    MAX_FILE_SIZE_MB: int = int(os.getenv("MAX_FILE_SIZE_MB", "100"))

    # Single descriptor, e.g. "s3://key:secret@eu-west-1/photos".
    # Takes precedence over the per-backend settings below.
    STORAGE_URL: str = os.getenv("STORAGE_URL", "")

    # Supported backends: 'local', 'gcs', 's3', 'b2'
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "local")
    STORAGE_BUCKET_NAME: str = os.getenv("STORAGE_BUCKET_NAME", "")

    # Use local storage when the configured backend's SDK is missing
    STORAGE_AUTO_FALLBACK: bool = os.getenv("STORAGE_AUTO_FALLBACK", "false").lower() == "true"

    # Local Storage Configuration
    LOCAL_STORAGE_PATH: str = os.getenv("LOCAL_STORAGE_PATH", "./.local_storage")

    # GCS Configuration
    GCS_PROJECT_ID: str = os.getenv("GCS_PROJECT_ID", "")
    GCS_CREDENTIALS_PATH: str = os.getenv("GCS_CREDENTIALS_PATH", "")

    # S3 Configuration
    S3_REGION_NAME: str = os.getenv("S3_REGION_NAME", "")
    S3_ENDPOINT_URL: str = os.getenv("S3_ENDPOINT_URL", "")
    AWS_ACCESS_KEY_ID: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    AWS_SECRET_ACCESS_KEY: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")

    # Backblaze B2 Configuration
    B2_APPLICATION_KEY_ID: str = os.getenv("B2_APPLICATION_KEY_ID", "")
    B2_APPLICATION_KEY: str = os.getenv("B2_APPLICATION_KEY", "")
    B2_REGION: str = os.getenv("B2_REGION", "")

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024

    @property
    def storage_config(self) -> Union[str, Dict[str, Any]]:
        """Connection descriptor handed to StorageFactory; parsed and validated there."""
        if self.STORAGE_URL:
            return self.STORAGE_URL

        backend_type = self.STORAGE_BACKEND.lower()
        config: Dict[str, Any] = {
            'type': backend_type,
            'bucket_name': self.STORAGE_BUCKET_NAME or None,
        }

        if backend_type == 'local':
            config['directory'] = self.LOCAL_STORAGE_PATH

        elif backend_type == 'gcs':
            config['key_filename'] = self.GCS_CREDENTIALS_PATH or None
            config['project_id'] = self.GCS_PROJECT_ID or None

        elif backend_type == 's3':
            config['access_key_id'] = self.AWS_ACCESS_KEY_ID or None
            config['secret_access_key'] = self.AWS_SECRET_ACCESS_KEY or None
            config['region'] = self.S3_REGION_NAME or None
            config['endpoint_url'] = self.S3_ENDPOINT_URL or None

        elif backend_type == 'b2':
            config['application_key_id'] = self.B2_APPLICATION_KEY_ID
            config['application_key'] = self.B2_APPLICATION_KEY
            config['region'] = self.B2_REGION or None

        return config


settings = Settings()
