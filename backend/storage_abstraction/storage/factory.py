"""
Storage Factory for Creating Storage Backends

This module implements the Factory pattern for creating storage backend instances
from a connection descriptor. Vendor backends are imported lazily so that only
the SDK of the configured backend has to be installed. Optionally falls back to
local storage when that SDK is missing.
"""
import importlib
import logging
from typing import Dict, List, Optional, Type

from storage_abstraction.storage.base import BackendError, ConfigValidationError, StorageBackend
from storage_abstraction.storage.config_parser import StorageType, parse_config

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_PATH = "./.local_storage"

# type tag -> (module, class) for lazy imports
_BACKEND_MODULES = {
    StorageType.LOCAL: ("storage_abstraction.storage.local_backend", "LocalStorageBackend"),
    StorageType.GCS: ("storage_abstraction.storage.gcs_backend", "GCSStorageBackend"),
    StorageType.S3: ("storage_abstraction.storage.s3_backend", "S3StorageBackend"),
    StorageType.B2: ("storage_abstraction.storage.b2_backend", "B2StorageBackend"),
}


class StorageFactory:
    """
    Factory for creating storage backend instances.

    Supports:
    - Local (Local filesystem)
    - GCS (Google Cloud Storage)
    - S3 (Amazon S3 and S3-compatible stores)
    - B2 (Backblaze B2)
    """

    # Registry of available backends
    _backends: Dict[str, Type[StorageBackend]] = {}

    @classmethod
    def register_backend(cls, backend_type: str, backend_class: Type[StorageBackend]):
        """
        Register a storage backend implementation.

        Args:
            backend_type: Backend identifier (e.g., 'gcs', 's3', 'local')
            backend_class: Backend class implementing StorageBackend
        """
        cls._backends[backend_type.lower()] = backend_class
        logger.debug(f"📦 Registered storage backend: {backend_type}")

    @classmethod
    def available_types(cls) -> List[str]:
        """Type tags that can be requested, whether or not their SDK is loaded yet."""
        return sorted(set(_BACKEND_MODULES) | set(cls._backends))

    @classmethod
    def get_backend_class(cls, backend_type: str) -> Type[StorageBackend]:
        """
        Raises:
            ConfigValidationError: If the type is unknown
            BackendError: If the backend's SDK can not be imported
        """
        backend_type = backend_type.lower()
        if backend_type not in cls._backends:
            cls._load_backend(backend_type)
        return cls._backends[backend_type]

    @classmethod
    def create_backend(cls, config, auto_fallback: bool = False) -> StorageBackend:
        """
        Create a storage backend instance.

        The backend is only constructed here; authorization happens on
        `init()` (or implicitly on first use).

        Args:
            config: URL-like string, mapping or config model
            auto_fallback: If True, use local storage when the SDK of the
                requested backend is not installed

        Returns:
            StorageBackend instance

        Raises:
            ConfigMismatchError / ConfigValidationError: If the config is unusable
            BackendError: If the backend can not be loaded and auto_fallback is False
        """
        parsed = parse_config(config)

        try:
            backend_class = cls.get_backend_class(parsed.type)
        except BackendError as e:
            if auto_fallback and parsed.type != StorageType.LOCAL:
                logger.warning(f"⚠️  {e.message}")
                logger.warning("🔄 Falling back to local storage...")
                return cls.create_backend(
                    {"type": StorageType.LOCAL, "directory": DEFAULT_LOCAL_PATH, "bucket_name": parsed.bucket_name}
                )
            raise

        backend = backend_class(parsed)
        logger.info(f"🏗️  Storage backend '{parsed.type}' created")
        return backend

    @classmethod
    def _load_backend(cls, backend_type: str):
        """Dynamically load a storage backend."""
        if backend_type not in _BACKEND_MODULES:
            raise ConfigValidationError(
                f"Unknown storage backend: {backend_type}. "
                f"Available: {', '.join(cls.available_types())}",
                {"type": backend_type}
            )

        module_name, class_name = _BACKEND_MODULES[backend_type]
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            logger.error(f"⚠️  Could not load {backend_type} backend: {e}")
            raise BackendError(
                f"Backend '{backend_type}' is not available. "
                f"Check dependencies or configuration.",
                {"type": backend_type},
                original=e
            )
        cls.register_backend(backend_type, getattr(module, class_name))

    @classmethod
    def create_from_settings(cls, settings, auto_fallback: Optional[bool] = None) -> StorageBackend:
        """
        Create storage backend from application settings/environment.

        This is the recommended way to initialize storage in your application.

        Args:
            settings: Application settings object with storage configuration
            auto_fallback: Overrides settings.STORAGE_AUTO_FALLBACK

        Returns:
            StorageBackend instance
        """
        if auto_fallback is None:
            auto_fallback = getattr(settings, "STORAGE_AUTO_FALLBACK", False)

        logger.info(f"🏗️  Initializing storage backend: {settings.STORAGE_BACKEND}")
        return cls.create_backend(settings.storage_config, auto_fallback=auto_fallback)
