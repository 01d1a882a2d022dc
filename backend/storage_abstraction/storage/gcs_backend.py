"""
Google Cloud Storage (GCS) Backend Implementation

This module implements the StorageBackend interface for Google Cloud Storage.
Supports both service account credentials and default application credentials.
"""
import logging
import mimetypes
import os
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

from google.api_core import exceptions as gcs_exceptions
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError
from google.cloud import storage
from google.oauth2 import service_account

from storage_abstraction.storage.base import (
    BackendError,
    BucketAlreadyExistsError,
    BucketNotFoundError,
    ObjectNotFoundError,
    StorageBackend,
    StorageError,
)
from storage_abstraction.storage.cache import BucketInfo, StoredFile
from storage_abstraction.storage.config_parser import StorageType

logger = logging.getLogger(__name__)


class GCSStorageBackend(StorageBackend):
    """
    Google Cloud Storage backend implementation.

    Features:
    - Automatic credential detection (key file, env var, default credentials)
    - Vendor errors mapped onto the storage error hierarchy
    - Ranged, seekable reads through blob.open()
    """

    backend_type = StorageType.GCS

    def __init__(self, config):
        """
        Initialize GCS storage backend.

        Args:
            config: GCSConfig, mapping or "gcs://<key_filename>:<project_id>@<bucket>"
        """
        super().__init__(config)
        self.client = None

    # Lifecycle

    async def _authorize(self) -> None:
        self.client = await self._call(self._initialize_client)

    def _initialize_client(self) -> storage.Client:
        """Initialize GCS client with appropriate credentials."""
        key_filename = self.config.key_filename
        project_id = self.config.project_id
        credentials_env = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")

        # Method 1: Credentials file from the config
        if key_filename:
            if not os.path.exists(key_filename):
                raise BackendError(f"GCS credentials file not found: {key_filename}")
            credentials = service_account.Credentials.from_service_account_file(key_filename)
            logger.info(f"🔷 Using GCS credentials file: {key_filename}")
            return storage.Client(credentials=credentials, project=project_id or credentials.project_id)

        # Method 2: GOOGLE_APPLICATION_CREDENTIALS / default application credentials
        try:
            if credentials_env:
                logger.info(f"🔷 Using GOOGLE_APPLICATION_CREDENTIALS: {credentials_env}")
            else:
                logger.info("🔷 Attempting to use default application credentials for GCS...")
            return storage.Client(project=project_id)
        except DefaultCredentialsError as e:
            raise BackendError(
                f"Could not authenticate to GCS. Tried credentials file, "
                f"environment variable and default credentials. Error: {e}",
                original=e
            )

    async def _check_connection(self) -> None:
        await self._call(lambda: list(self.client.list_buckets(max_results=1)))

    # Buckets

    async def _bucket_exists(self, bucket: str) -> bool:
        return await self._call(self.client.bucket(bucket).exists, _details={"bucket": bucket})

    async def _create_bucket(self, bucket: str) -> Optional[Dict[str, Any]]:
        location = self.config.options.get("location")
        created = await self._call(
            self.client.create_bucket, bucket, location=location, _details={"bucket": bucket}
        )
        return {
            "id": created.id,
            "location": created.location,
            "storage_class": created.storage_class,
        }

    async def _list_buckets(self) -> List[BucketInfo]:
        return await self._call(
            lambda: [
                BucketInfo(
                    name=b.name,
                    metadata={"id": b.id, "location": b.location, "storage_class": b.storage_class}
                )
                for b in self.client.list_buckets()
            ]
        )

    async def _clear_bucket(self, bucket: str) -> None:
        await self._call(self._clear_bucket_sync, bucket, _details={"bucket": bucket})

    def _clear_bucket_sync(self, bucket: str) -> None:
        blobs = list(self.client.list_blobs(bucket))
        if blobs:
            # Blobs deleted concurrently are fine
            self.client.bucket(bucket).delete_blobs(blobs, on_error=lambda blob: None)

    async def _delete_bucket(self, bucket: str) -> None:
        await self._call(self.client.bucket(bucket).delete, _details={"bucket": bucket})

    # Files

    async def _upload(
        self,
        bucket: str,
        key: str,
        source: BinaryIO,
        size: Optional[int]
    ) -> Optional[StoredFile]:
        blob = self.client.bucket(bucket).blob(key)
        await self._call(
            blob.upload_from_file,
            source,
            size=size,
            content_type=mimetypes.guess_type(key)[0],
            _details={"bucket": bucket, "key": key}
        )
        return self._stored_file(blob)

    async def _delete_object(self, bucket: str, key: str) -> None:
        blob = self.client.bucket(bucket).blob(key)
        await self._call(blob.delete, _details={"bucket": bucket, "key": key})

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
        iterator = self.client.list_blobs(bucket, max_results=limit, page_token=page_token)
        files = [self._stored_file(blob) for blob in iterator]
        return files, iterator.next_page_token

    async def _object_size(self, bucket: str, key: str) -> int:
        blob = await self._call(self.client.bucket(bucket).get_blob, key, _details={"bucket": bucket, "key": key})
        if blob is None:
            raise ObjectNotFoundError(f"File not found in GCS: {key}", {"bucket": bucket, "key": key})
        return int(blob.size)

    async def _object_exists(self, bucket: str, key: str) -> bool:
        blob = self.client.bucket(bucket).blob(key)
        return await self._call(blob.exists, _details={"bucket": bucket, "key": key})

    async def _open_read(self, bucket: str, key: str, start: int, end: Optional[int]) -> BinaryIO:
        blob = self.client.bucket(bucket).blob(key)
        return await self._call(self._open_sync, blob, start, _details={"bucket": bucket, "key": key})

    def _open_sync(self, blob, start: int) -> BinaryIO:
        reader = blob.open("rb")
        if start:
            reader.seek(start)
        return reader

    @staticmethod
    def _stored_file(blob) -> StoredFile:
        return StoredFile(
            key=blob.name,
            size=int(blob.size or 0),
            content_type=blob.content_type,
            content_hash=blob.md5_hash,
            uploaded_at=blob.time_created
        )

    def _map_error(self, exc: Exception, details: Dict[str, Any]) -> StorageError:
        if isinstance(exc, gcs_exceptions.NotFound):
            if "key" in details:
                return ObjectNotFoundError(f"File not found in GCS: {details['key']}", details)
            return BucketNotFoundError(f"GCS bucket not found: {details.get('bucket')}", details)
        if isinstance(exc, gcs_exceptions.Conflict) and "already own" in str(exc).lower():
            # 409 'You already own this bucket. Please select another name.'
            return BucketAlreadyExistsError(str(exc), details)
        if isinstance(exc, (gcs_exceptions.GoogleAPICallError, GoogleAuthError)):
            logger.error(f"❌ GCS error: {exc}")
            return BackendError(getattr(exc, "message", None) or str(exc), details, original=exc)
        return super()._map_error(exc, details)
