"""
Configurable Storage System

This package provides an async storage abstraction layer that supports
multiple storage backends (Local, GCS, S3, Backblaze B2) with seamless
switching via configuration.

Design Patterns Used:
- Strategy Pattern: Different storage backends implement the same interface
- Factory Pattern: StorageFactory creates appropriate backend based on configuration
- Facade Pattern: StorageManager forwards to exactly one backend

Quick Start:
    from storage_abstraction.storage import StorageManager

    storage = StorageManager({"type": "local", "directory": "./data"})
    await storage.init()
    await storage.select_bucket("photos")
    await storage.add_file_from_buffer(b"Hello World", "hello.txt")
    files = await storage.list_files()       # [("hello.txt", 11)]

Architecture:
    - storage.config_parser: Connection descriptors -> validated config models
    - storage.base: Abstract StorageBackend interface and shared lifecycle
    - storage.cache: BucketState bookkeeping
    - storage.streams: Async readable returned by get_file_as_readable
    - storage.local_backend / gcs_backend / s3_backend / b2_backend: Implementations
    - storage.factory: Factory for creating storage backends
    - storage.manager: Facade used by the application
"""

from storage_abstraction.storage.base import (
    BackendError,
    BucketNotFoundError,
    ConfigError,
    ConfigMismatchError,
    ConfigValidationError,
    InvalidNameError,
    NoBucketSelectedError,
    NotInitializedError,
    ObjectNotFoundError,
    StorageBackend,
    StorageError,
    StorageNotFoundError,
    TransferError,
    normalize_key,
    slugify_bucket_name,
)
from storage_abstraction.storage.cache import BucketInfo, BucketState, StoredFile
from storage_abstraction.storage.config_parser import (
    B2Config,
    GCSConfig,
    LocalConfig,
    S3Config,
    StorageConfig,
    StorageType,
    parse_config,
)
from storage_abstraction.storage.factory import StorageFactory
from storage_abstraction.storage.manager import StorageManager
from storage_abstraction.storage.streams import ObjectStream

__all__ = [
    # Base classes and exceptions
    'StorageBackend',
    'StorageError',
    'ConfigError',
    'ConfigMismatchError',
    'ConfigValidationError',
    'InvalidNameError',
    'NotInitializedError',
    'NoBucketSelectedError',
    'StorageNotFoundError',
    'BucketNotFoundError',
    'ObjectNotFoundError',
    'TransferError',
    'BackendError',
    'normalize_key',
    'slugify_bucket_name',

    # Config
    'StorageType',
    'StorageConfig',
    'LocalConfig',
    'GCSConfig',
    'S3Config',
    'B2Config',
    'parse_config',

    # State and streams
    'BucketInfo',
    'BucketState',
    'StoredFile',
    'ObjectStream',

    # Factory and Manager
    'StorageFactory',
    'StorageManager',
]

__version__ = '1.0.0'
