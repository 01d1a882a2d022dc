"""
Abstract Storage Interface

This module defines the contract every storage backend honours. The public
coroutines (init, create_bucket, add_file_from_path, ...) live here and carry
the lifecycle rules shared by all backends:

- init() runs once; other remote operations trigger it implicitly
- bucket names and keys are slugified before use
- file operations need a selected bucket and fail fast without one
- "already exists" on create and "not found" on delete count as success
- vendor faults are translated into the StorageError hierarchy

Concrete backends only implement the protected `_hooks`, each wrapping a
blocking SDK call with `self._call(...)` so it runs off the event loop.

Design Pattern: Strategy Pattern + Template Method
"""
import asyncio
import inspect
import io
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, List, Optional, Tuple, Union

from slugify import slugify

from storage_abstraction.storage.cache import BucketInfo, BucketState, StoredFile
from storage_abstraction.storage.config_parser import parse_config
from storage_abstraction.storage.errors import (
    BackendError,
    BucketAlreadyExistsError,
    BucketNotFoundError,
    ConfigError,
    ConfigMismatchError,
    ConfigValidationError,
    InvalidNameError,
    NoBucketSelectedError,
    NotInitializedError,
    ObjectNotFoundError,
    StorageError,
    StorageNotFoundError,
    TransferError,
)
from storage_abstraction.storage.streams import (
    ObjectStream,
    SourceReader,
    iter_async_reader,
    spool_async_iterable,
    tell_or_none,
)

logger = logging.getLogger(__name__)

# Allowed characters per key segment; everything else becomes "-"
KEY_SEGMENT_PATTERN = r"[^-a-z0-9_.]+"

# S3 and GCS both cap bucket names at 63 characters
MAX_BUCKET_NAME_LENGTH = 63

DEFAULT_LIST_LIMIT = 1000


def slugify_bucket_name(name: str) -> str:
    """Lower-case ASCII bucket name made of [a-z0-9-]."""
    if name is None:
        raise InvalidNameError("Can not use `None` as bucket name")
    slug = slugify(str(name), max_length=MAX_BUCKET_NAME_LENGTH)
    if not slug:
        raise InvalidNameError(f"Bucket name {name!r} is empty after normalization", {"bucket": name})
    return slug


def normalize_key(key: str) -> str:
    """
    Slugify every path segment of a key and join them with "/".

    "My Folder/Ünïcode name.jpg" -> "my-folder/unicode-name.jpg"
    """
    if key is None:
        raise InvalidNameError("Can not use `None` as file key")

    segments = []
    for segment in str(key).replace("\\", "/").split("/"):
        if not segment:
            continue
        slug = slugify(segment, regex_pattern=KEY_SEGMENT_PATTERN)
        if slug in ("", ".", ".."):
            raise InvalidNameError(f"Invalid path segment {segment!r} in key {key!r}", {"key": key})
        segments.append(slug)

    if not segments:
        raise InvalidNameError(f"File key {key!r} is empty after normalization", {"key": key})
    return "/".join(segments)


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    All storage implementations (Local, GCS, S3, B2, ...) inherit from this
    class so callers get identical semantics whichever backend is configured.
    """

    # Type tag matched against the config ('local', 'gcs', 's3', 'b2')
    backend_type: str = ""

    def __init__(self, config):
        """
        Args:
            config: URL-like string, mapping or config model for this backend

        Raises:
            ConfigMismatchError: If the config names another backend type
            ConfigValidationError: If the config is incomplete
        """
        self.config = parse_config(config, expected_type=self.backend_type)
        self.state = BucketState()
        self._initialized = False

        if self.config.bucket_name:
            self.state.select(slugify_bucket_name(self.config.bucket_name))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def init(self) -> bool:
        """
        Authorize against the backend. Safe to call repeatedly.

        Returns:
            True once the backend is usable

        Raises:
            BackendError: If authorization fails
        """
        if self._initialized:
            return True

        await self._authorize()
        self._initialized = True
        logger.info(f"✅ Storage backend '{self.backend_type}' initialized")
        return True

    async def test(self) -> str:
        """
        Lightweight connectivity check.

        Returns:
            "ok"

        Raises:
            NotInitializedError: If init() was never called
            BackendError: If the backend can not be reached
        """
        if not self._initialized:
            raise NotInitializedError(
                "storage has not been initialized yet; call init() first",
                {"type": self.backend_type}
            )
        await self._check_connection()
        return "ok"

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            await self.init()

    # ------------------------------------------------------------------
    # Buckets
    # ------------------------------------------------------------------

    def get_selected_bucket(self) -> Optional[str]:
        return self.state.selected_bucket

    async def create_bucket(self, name: str) -> str:
        """
        Create a bucket unless it already exists.

        Args:
            name: Bucket name; slugified before use

        Returns:
            The normalized bucket name

        Raises:
            InvalidNameError: If the name is empty after normalization
            BackendError: On genuine backend failures (auth, quota, ...)
        """
        bucket = slugify_bucket_name(name)
        if self.state.has_bucket(bucket):
            return bucket

        await self._ensure_initialized()
        if await self._bucket_exists(bucket):
            self.state.remember_bucket(bucket)
            return bucket

        try:
            metadata = await self._create_bucket(bucket)
        except BucketAlreadyExistsError:
            logger.debug(f"Bucket '{bucket}' already owned by caller, treating as created")
            metadata = None

        self.state.remember_bucket(bucket, metadata)
        logger.info(f"🪣 Created bucket '{bucket}' on {self.backend_type}")
        return bucket

    async def select_bucket(self, name: Optional[str]) -> Optional[str]:
        """
        Make `name` the bucket that file operations target, creating it if
        needed. `None` clears the selection.

        On failure the previous selection is kept and the error propagates.
        """
        if name is None:
            self.state.select(None)
            return None

        bucket = await self.create_bucket(name)
        self.state.select(bucket)
        return bucket

    async def list_buckets(self) -> List[str]:
        """Refresh the bucket cache from the backend and return the names in backend order."""
        await self._ensure_initialized()
        listing = await self._list_buckets()
        return self.state.merge_buckets(listing)

    async def clear_bucket(self, name: Optional[str] = None) -> None:
        """
        Delete every file in the named (or selected) bucket.

        Raises:
            NoBucketSelectedError: If no name is given and none is selected
            BucketNotFoundError: If the bucket does not exist
        """
        bucket = self._target_bucket(name)
        await self._ensure_initialized()

        if not await self._bucket_exists(bucket):
            self.state.forget_bucket(bucket)
            raise BucketNotFoundError(f"Bucket {bucket} does not exist", {"bucket": bucket})

        await self._clear_bucket(bucket)
        if bucket == self.state.selected_bucket:
            self.state.clear_files()
        logger.info(f"🧹 Cleared bucket '{bucket}'")

    async def delete_bucket(self, name: Optional[str] = None) -> None:
        """
        Empty and remove the named (or selected) bucket. Removing a bucket
        that is already gone succeeds. Deleting the selected bucket unsets
        the selection.
        """
        bucket = self._target_bucket(name)
        await self._ensure_initialized()

        if await self._bucket_exists(bucket):
            await self._clear_bucket(bucket)
            try:
                await self._delete_bucket(bucket)
            except BucketNotFoundError:
                logger.debug(f"Bucket '{bucket}' disappeared while deleting it")
            logger.info(f"🗑️  Deleted bucket '{bucket}'")
        else:
            logger.debug(f"Bucket '{bucket}' does not exist, nothing to delete")

        self.state.evict_bucket(bucket)

    def _target_bucket(self, name: Optional[str]) -> str:
        if name:
            return slugify_bucket_name(name)
        return self._require_bucket()

    def _require_bucket(self) -> str:
        if self.state.selected_bucket is None:
            raise NoBucketSelectedError(details={"type": self.backend_type})
        return self.state.selected_bucket

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def add_file_from_path(self, source_path: Union[str, Path], target_key: str) -> str:
        """
        Upload a local file.

        Returns:
            The normalized key the file was stored under

        Raises:
            NoBucketSelectedError: If no bucket is selected
            TransferError: If the source can not be read or the write fails
        """
        bucket = self._require_bucket()
        key = normalize_key(target_key)
        await self.create_bucket(bucket)

        try:
            size = (await asyncio.to_thread(os.stat, source_path)).st_size
            handle = await asyncio.to_thread(open, source_path, "rb")
        except OSError as e:
            raise TransferError(
                f"Could not read source file {source_path}: {e.strerror or e}",
                {"source": str(source_path), "key": key}
            )

        try:
            return await self._transfer(bucket, key, handle, size)
        finally:
            await asyncio.to_thread(handle.close)

    async def add_file_from_buffer(self, data: bytes, target_key: str) -> str:
        """Upload an in-memory buffer. Returns the normalized key."""
        bucket = self._require_bucket()
        key = normalize_key(target_key)
        await self.create_bucket(bucket)

        with io.BytesIO(bytes(data)) as handle:
            return await self._transfer(bucket, key, handle, len(data))

    async def add_file_from_readable(self, stream, target_key: str) -> str:
        """
        Upload from a readable source.

        Args:
            stream: Binary file object with a blocking or async .read(), or an
                async iterable of bytes such as an ObjectStream
            target_key: Destination key; slugified per segment

        Returns:
            The normalized key

        The caller keeps ownership of file objects; async iterables are
        consumed and closed.
        """
        bucket = self._require_bucket()
        key = normalize_key(target_key)
        await self.create_bucket(bucket)

        read = None if isinstance(stream, ObjectStream) else getattr(stream, "read", None)
        if read is not None and inspect.iscoroutinefunction(read):
            spool = await self._spool(iter_async_reader(stream), key)
        elif read is not None:
            return await self._transfer(bucket, key, stream, None)
        elif hasattr(stream, "__aiter__"):
            try:
                spool = await self._spool(stream, key)
            finally:
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
        else:
            raise TypeError(f"Unsupported readable of type {type(stream).__name__}")

        try:
            size = spool.seek(0, io.SEEK_END)
            spool.seek(0)
            return await self._transfer(bucket, key, spool, size)
        finally:
            spool.close()

    async def _spool(self, source, key: str) -> BinaryIO:
        try:
            return await spool_async_iterable(source)
        except StorageError:
            raise
        except Exception as e:
            raise TransferError(f"Failed to read source for {key}: {e}", {"key": key})

    async def _transfer(self, bucket: str, key: str, handle: BinaryIO, size: Optional[int]) -> str:
        logger.info(f"⬆️  Uploading {key} to {self.backend_type}://{bucket}")
        start = tell_or_none(handle)
        try:
            stored = await self._upload(bucket, key, SourceReader(handle, key), size)
        except StorageNotFoundError as e:
            # Not-found on upload means the bucket was deleted elsewhere; the cached entry is stale
            self.state.forget_bucket(bucket)
            if start is None:
                self._transfer_failed(bucket, key, e)
                raise
            logger.warning(f"⚠️ Bucket '{bucket}' is gone, recreating it before retrying {key}")
            stored = await self._retry_transfer(bucket, key, handle, size, start)
        except StorageError as e:
            self._transfer_failed(bucket, key, e)
            raise

        if bucket == self.state.selected_bucket:
            if stored is not None:
                self.state.remember_file(stored)
            else:
                self.state.forget_file(key)
        return key

    async def _retry_transfer(
        self,
        bucket: str,
        key: str,
        handle: BinaryIO,
        size: Optional[int],
        start: int
    ) -> Optional[StoredFile]:
        try:
            await self.create_bucket(bucket)
            await asyncio.to_thread(handle.seek, start)
            return await self._upload(bucket, key, SourceReader(handle, key), size)
        except StorageError as e:
            self._transfer_failed(bucket, key, e)
            raise

    def _transfer_failed(self, bucket: str, key: str, error: StorageError) -> None:
        # State of the remote object is unknown after a failed transfer
        self.state.forget_file(key)
        logger.error(f"❌ Upload of {key} to {bucket} failed: {error}")

    async def remove_file(self, key: str) -> None:
        """Delete a file; removing a file that does not exist succeeds."""
        bucket = self._require_bucket()
        key = normalize_key(key)
        await self._ensure_initialized()

        try:
            await self._delete_object(bucket, key)
        except ObjectNotFoundError:
            logger.debug(f"File {key} not found in {bucket}, nothing to remove")

        self.state.forget_file(key)

    async def list_files(
        self,
        limit: int = DEFAULT_LIST_LIMIT,
        page_token: Optional[str] = None
    ) -> List[Tuple[str, int]]:
        """
        List files of the selected bucket as (key, size) pairs.

        Args:
            limit: Maximum number of entries to return
            page_token: Continuation token from a previous call
                (see introspect("next_page_token")); None starts over

        Raises:
            NoBucketSelectedError: If no bucket is selected
            BucketNotFoundError: If the selected bucket does not exist
        """
        bucket = self._require_bucket()
        limit = max(1, int(limit))
        await self._ensure_initialized()

        try:
            files, next_token = await self._list_objects(bucket, limit, page_token)
        except BucketNotFoundError:
            self.state.forget_bucket(bucket)
            raise
        page = self.state.merge_files(files, next_token, replace=page_token is None)
        return [(stored.key, stored.size) for stored in page]

    async def size_of(self, key: str) -> int:
        """
        Raises:
            ObjectNotFoundError: If the file does not exist
        """
        bucket = self._require_bucket()
        key = normalize_key(key)
        await self._ensure_initialized()
        return await self._object_size(bucket, key)

    async def get_file_as_readable(
        self,
        key: str,
        start: int = 0,
        end: Optional[int] = None
    ) -> ObjectStream:
        """
        Open a file for streaming.

        Args:
            key: File key
            start: First byte to read
            end: Last byte to read, inclusive (None = until the end)

        Returns:
            ObjectStream; close it (or use `async with`) when done early

        Raises:
            ObjectNotFoundError: If the file does not exist
            ValueError: If the range is invalid
        """
        bucket = self._require_bucket()
        key = normalize_key(key)
        start = start or 0
        if start < 0 or (end is not None and end < start):
            raise ValueError(f"Invalid byte range {start}-{end}")
        await self._ensure_initialized()

        if not await self._object_exists(bucket, key):
            raise ObjectNotFoundError(
                f"File {key} could not be retrieved from bucket {bucket}",
                {"bucket": bucket, "key": key}
            )

        handle = await self._open_read(bucket, key, start, end)
        length = end - start + 1 if end is not None else None
        return ObjectStream(handle, key, length=length)

    async def download_file(self, key: str, destination_dir: Union[str, Path]) -> str:
        """Stream a file to `<destination_dir>/<key>`. Returns the local path."""
        stream = await self.get_file_as_readable(key)
        target = Path(destination_dir) / stream.key

        async with stream:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            sink = await asyncio.to_thread(open, target, "wb")
            try:
                async for chunk in stream:
                    await asyncio.to_thread(sink.write, chunk)
            except OSError as e:
                raise TransferError(f"Failed to write {target}: {e}", {"key": stream.key})
            finally:
                await asyncio.to_thread(sink.close)
        return str(target)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def describe(self) -> Dict[str, Any]:
        """Diagnostic snapshot of the backend state. Never contains credentials."""
        return {
            "type": self.backend_type,
            "bucket_name": self.state.selected_bucket,
            "initialized": self._initialized,
            "buckets": list(self.state.buckets),
            "cached_files": len(self.state.files),
            "next_page_token": self.state.next_page_token,
        }

    # ------------------------------------------------------------------
    # Vendor calls
    # ------------------------------------------------------------------

    async def _call(self, func: Callable, *args, _details: Optional[Dict[str, Any]] = None, **kwargs):
        """Run a blocking SDK call in a worker thread and translate its errors."""
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except StorageError:
            raise
        except Exception as e:
            raise self._map_error(e, _details or {}) from e

    def _map_error(self, exc: Exception, details: Dict[str, Any]) -> StorageError:
        """Translate a vendor exception. Backends extend this for their SDK."""
        return BackendError(str(exc), details, original=exc)

    @abstractmethod
    async def _authorize(self) -> None:
        """Build clients and authenticate."""

    @abstractmethod
    async def _check_connection(self) -> None:
        """Cheapest call that proves the backend is reachable."""

    @abstractmethod
    async def _bucket_exists(self, bucket: str) -> bool:
        pass

    @abstractmethod
    async def _create_bucket(self, bucket: str) -> Optional[Dict[str, Any]]:
        """
        Create the bucket and return its metadata.

        Raises:
            BucketAlreadyExistsError: If the vendor says the caller already owns it
        """

    @abstractmethod
    async def _list_buckets(self) -> List[BucketInfo]:
        pass

    @abstractmethod
    async def _clear_bucket(self, bucket: str) -> None:
        pass

    @abstractmethod
    async def _delete_bucket(self, bucket: str) -> None:
        """Remove an empty bucket."""

    @abstractmethod
    async def _upload(
        self,
        bucket: str,
        key: str,
        source: BinaryIO,
        size: Optional[int]
    ) -> Optional[StoredFile]:
        """Stream `source` into `bucket/key`; return what is known about the stored file."""

    @abstractmethod
    async def _delete_object(self, bucket: str, key: str) -> None:
        """
        Raises:
            ObjectNotFoundError: If the object does not exist
        """

    @abstractmethod
    async def _list_objects(
        self,
        bucket: str,
        limit: int,
        page_token: Optional[str]
    ) -> Tuple[List[StoredFile], Optional[str]]:
        """Return one page of files and the token for the next page (None when done)."""

    @abstractmethod
    async def _object_size(self, bucket: str, key: str) -> int:
        pass

    @abstractmethod
    async def _object_exists(self, bucket: str, key: str) -> bool:
        pass

    @abstractmethod
    async def _open_read(self, bucket: str, key: str, start: int, end: Optional[int]) -> BinaryIO:
        """Return a blocking reader positioned at `start`."""


__all__ = [
    "StorageBackend",
    "slugify_bucket_name",
    "normalize_key",
    "StorageError",
    "ConfigError",
    "ConfigMismatchError",
    "ConfigValidationError",
    "InvalidNameError",
    "NotInitializedError",
    "NoBucketSelectedError",
    "StorageNotFoundError",
    "BucketNotFoundError",
    "ObjectNotFoundError",
    "BucketAlreadyExistsError",
    "TransferError",
    "BackendError",
]
