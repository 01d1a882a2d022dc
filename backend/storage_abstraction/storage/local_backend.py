"""
Local Filesystem Storage Backend Implementation

This module implements the StorageBackend interface for local filesystem storage.
Buckets are sub-directories of the configured directory and keys map 1:1 onto
the file tree below them. Perfect for development, testing, and edge
deployments without cloud dependencies.
"""
import logging
import mimetypes
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from storage_abstraction.storage.base import (
    BackendError,
    BucketAlreadyExistsError,
    BucketNotFoundError,
    ObjectNotFoundError,
    StorageBackend,
    StorageError,
    TransferError,
)
from storage_abstraction.storage.cache import BucketInfo, StoredFile
from storage_abstraction.storage.config_parser import StorageType
from storage_abstraction.storage.streams import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)


class LocalStorageBackend(StorageBackend):
    """
    Local filesystem storage backend implementation.

    Features:
    - No external dependencies
    - Fast local access
    - Mirrors cloud storage interface, bucket per directory
    """

    backend_type = StorageType.LOCAL

    def __init__(self, config):
        """
        Initialize local storage backend.

        Args:
            config: LocalConfig, mapping or "local://<directory>?bucket_name=..."
        """
        super().__init__(config)
        self.base_path = Path(self.config.directory).expanduser().resolve()

    def _bucket_path(self, bucket: str) -> Path:
        return self.base_path / bucket

    def _get_full_path(self, bucket: str, key: str) -> Path:
        """
        Convert bucket + key to full local path.

        Raises:
            StorageError: If the key resolves outside the bucket directory
        """
        bucket_path = self._bucket_path(bucket)
        full_path = bucket_path / key.lstrip("/")

        # Ensure the path is within the bucket (security check)
        try:
            full_path.resolve().relative_to(bucket_path.resolve())
        except ValueError:
            raise StorageError(
                f"Invalid path: {key} resolves outside bucket directory",
                {"bucket": bucket, "key": key}
            )

        return full_path

    def _stored_file(self, bucket: str, path: Path) -> StoredFile:
        stat = path.stat()
        key = path.relative_to(self._bucket_path(bucket)).as_posix()
        return StoredFile(
            key=key,
            size=stat.st_size,
            content_type=mimetypes.guess_type(path.name)[0],
            uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        )

    def describe(self) -> Dict[str, Any]:
        info = super().describe()
        info["directory"] = str(self.base_path)
        return info

    # Lifecycle

    async def _authorize(self) -> None:
        # No handshake; only make sure the root directory exists
        try:
            await self._call(self.base_path.mkdir, parents=True, exist_ok=True)
        except BackendError as e:
            raise BackendError(f"Failed to create local storage directory: {e}", original=e.original)
        logger.info(f"✅ Local storage initialized at: {self.base_path}")

    async def _check_connection(self) -> None:
        await self._call(self._health_check_sync)

    def _health_check_sync(self) -> None:
        if not self.base_path.is_dir():
            raise BackendError(f"Local storage directory {self.base_path} does not exist")

        # Try to create a test file
        test_file = self.base_path / ".health_check"
        test_file.touch()
        test_file.unlink()

    # Buckets

    async def _bucket_exists(self, bucket: str) -> bool:
        return await self._call(self._bucket_path(bucket).is_dir)

    async def _create_bucket(self, bucket: str) -> Optional[Dict[str, Any]]:
        path = self._bucket_path(bucket)
        try:
            await self._call(path.mkdir, parents=True, exist_ok=False)
        except BackendError as e:
            if isinstance(e.original, FileExistsError):
                raise BucketAlreadyExistsError(f"Bucket {bucket} already exists", {"bucket": bucket})
            raise
        return {"path": str(path)}

    async def _list_buckets(self) -> List[BucketInfo]:
        return await self._call(self._list_buckets_sync)

    def _list_buckets_sync(self) -> List[BucketInfo]:
        if not self.base_path.is_dir():
            return []
        return [
            BucketInfo(name=entry.name, metadata={"path": str(entry)})
            for entry in sorted(self.base_path.iterdir())
            if entry.is_dir()
        ]

    async def _clear_bucket(self, bucket: str) -> None:
        await self._call(self._clear_bucket_sync, bucket, _details={"bucket": bucket})

    def _clear_bucket_sync(self, bucket: str) -> None:
        bucket_path = self._bucket_path(bucket)
        if not bucket_path.is_dir():
            return
        for entry in bucket_path.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()

    async def _delete_bucket(self, bucket: str) -> None:
        try:
            await self._call(self._bucket_path(bucket).rmdir, _details={"bucket": bucket})
        except BackendError as e:
            if isinstance(e.original, FileNotFoundError):
                raise BucketNotFoundError(f"Bucket {bucket} does not exist", {"bucket": bucket})
            raise

    # Files

    async def _upload(
        self,
        bucket: str,
        key: str,
        source: BinaryIO,
        size: Optional[int]
    ) -> Optional[StoredFile]:
        target = self._get_full_path(bucket, key)
        return await self._call(self._write_sync, bucket, target, source, _details={"bucket": bucket, "key": key})

    def _write_sync(self, bucket: str, target: Path, source: BinaryIO) -> StoredFile:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as dest:
                shutil.copyfileobj(source, dest, DEFAULT_CHUNK_SIZE)
        except OSError as e:
            raise TransferError(f"Failed to write {target}: {e}", {"bucket": bucket})
        return self._stored_file(bucket, target)

    async def _delete_object(self, bucket: str, key: str) -> None:
        target = self._get_full_path(bucket, key)
        await self._call(self._delete_sync, bucket, key, target, _details={"bucket": bucket, "key": key})

    def _delete_sync(self, bucket: str, key: str, target: Path) -> None:
        if not target.is_file():
            raise ObjectNotFoundError(f"File not found: {key}", {"bucket": bucket, "key": key})
        target.unlink()

        # Prune directories left empty, up to the bucket itself
        bucket_path = self._bucket_path(bucket)
        parent = target.parent
        while parent != bucket_path and bucket_path in parent.parents:
            try:
                parent.rmdir()
            except OSError:
                break
            parent = parent.parent

    async def _list_objects(
        self,
        bucket: str,
        limit: int,
        page_token: Optional[str]
    ) -> Tuple[List[StoredFile], Optional[str]]:
        return await self._call(self._list_sync, bucket, limit, page_token, _details={"bucket": bucket})

    def _list_sync(
        self,
        bucket: str,
        limit: int,
        page_token: Optional[str]
    ) -> Tuple[List[StoredFile], Optional[str]]:
        bucket_path = self._bucket_path(bucket)
        if not bucket_path.is_dir():
            raise BucketNotFoundError(f"Bucket {bucket} does not exist", {"bucket": bucket})

        paths = sorted(
            (path for path in bucket_path.rglob("*") if path.is_file()),
            key=lambda path: path.relative_to(bucket_path).as_posix()
        )
        files = [self._stored_file(bucket, path) for path in paths]
        if page_token:
            files = [stored for stored in files if stored.key > page_token]

        page = files[:limit]
        next_token = page[-1].key if len(files) > limit else None
        return page, next_token

    async def _object_size(self, bucket: str, key: str) -> int:
        target = self._get_full_path(bucket, key)
        try:
            stat = await self._call(os.stat, target)
        except BackendError as e:
            if isinstance(e.original, FileNotFoundError):
                raise ObjectNotFoundError(f"File not found: {key}", {"bucket": bucket, "key": key})
            raise
        return stat.st_size

    async def _object_exists(self, bucket: str, key: str) -> bool:
        return await self._call(self._get_full_path(bucket, key).is_file)

    async def _open_read(self, bucket: str, key: str, start: int, end: Optional[int]) -> BinaryIO:
        target = self._get_full_path(bucket, key)
        return await self._call(self._open_sync, target, start, _details={"bucket": bucket, "key": key})

    def _open_sync(self, target: Path, start: int) -> BinaryIO:
        handle = open(target, "rb")
        if start:
            handle.seek(start)
        return handle
