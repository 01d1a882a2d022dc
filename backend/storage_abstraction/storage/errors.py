"""
Storage Error Hierarchy

Every failure leaving the storage layer is a StorageError subclass. Backends
translate vendor exceptions into these before they reach callers, so code on
top of StorageManager never has to know which SDK is underneath.
"""
from typing import Any, Dict, Optional


class StorageError(Exception):
    """Base exception for all storage-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(StorageError):
    """Exception raised when a storage configuration can not be used."""
    pass


class ConfigMismatchError(ConfigError):
    """Exception raised when a config is meant for another backend type."""
    pass


class ConfigValidationError(ConfigError):
    """Exception raised when a config is malformed or misses required fields."""
    pass


class InvalidNameError(StorageError):
    """Exception raised when a bucket name or key slugifies to nothing usable."""
    pass


class NotInitializedError(StorageError):
    """Exception raised when an operation needs init() to have run first."""
    pass


class NoBucketSelectedError(StorageError):
    """Exception raised when a file operation runs without a selected bucket."""

    def __init__(self, message: str = "Please select a bucket first", details=None) -> None:
        super().__init__(message, details)


class StorageNotFoundError(StorageError):
    """Exception raised when requested bucket/object is not found."""
    pass


class BucketNotFoundError(StorageNotFoundError):
    pass


class ObjectNotFoundError(StorageNotFoundError):
    pass


class BucketAlreadyExistsError(StorageError):
    """
    Raised by backend hooks when the vendor reports the bucket already exists
    and is owned by the caller. Never escapes StorageBackend.create_bucket.
    """
    pass


class TransferError(StorageError):
    """Exception raised when reading the source or writing the sink of a transfer fails."""
    pass


class BackendError(StorageError):
    """Opaque passthrough of a vendor/transport fault, keeping its message."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        original: Optional[BaseException] = None
    ) -> None:
        super().__init__(message, details)
        self.original = original
