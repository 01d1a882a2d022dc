"""
Storage Configuration and Initialization

This module builds the application's storage manager from the settings.
The manager is created on first use, so importing this module has no side
effects and a broken configuration surfaces where storage is first needed.

Usage:
    from storage_abstraction.storage_config import get_storage_manager

    storage = get_storage_manager()
    await storage.init()
"""
import logging
from functools import lru_cache

from storage_abstraction.config import settings
from storage_abstraction.storage import StorageFactory, StorageManager

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_storage_manager() -> StorageManager:
    """Process-wide StorageManager for the configured backend."""
    logger.info("🏗️  Initializing configurable storage system...")
    try:
        backend = StorageFactory.create_from_settings(settings)
    except Exception as e:
        logger.error(f"❌ Failed to initialize storage system: {e}")
        raise

    storage = StorageManager(backend)
    logger.info(f"✅ Storage system ready: {storage.get_info()}")
    return storage


__all__ = ['get_storage_manager']
