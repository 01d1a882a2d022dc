"""
Amazon S3 Backend Implementation

This module implements the StorageBackend interface for S3 and S3-compatible
stores (MinIO, R2, ...) through boto3. Set `endpoint_url` for non-AWS hosts.
"""
import logging
import mimetypes
from typing import Any, BinaryIO, Dict, List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

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

# S3 returns at most this many keys per list call / deletes per batch
S3_PAGE_SIZE = 1000

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}


class S3StorageBackend(StorageBackend):
    """Amazon S3 backend implementation."""

    backend_type = StorageType.S3
    vendor = "S3"

    def __init__(self, config):
        """
        Initialize S3 storage backend.

        Args:
            config: S3Config, mapping or "s3://<key_id>:<secret>@<region>/<bucket>"
        """
        super().__init__(config)
        self.client = None

    # Lifecycle

    async def _authorize(self) -> None:
        self.client = await self._call(boto3.client, "s3", **self._client_options())
        logger.info(f"🔶 {self.vendor} client ready (region={self.config.region or 'default'})")

    def _client_options(self) -> Dict[str, Any]:
        return {
            "region_name": self.config.region,
            "endpoint_url": self.config.endpoint_url,
            "aws_access_key_id": self.config.access_key_id,
            "aws_secret_access_key": self.config.secret_access_key,
        }

    async def _check_connection(self) -> None:
        await self._call(self.client.list_buckets)

    # Buckets

    async def _bucket_exists(self, bucket: str) -> bool:
        try:
            await self._call(self.client.head_bucket, Bucket=bucket, _details={"bucket": bucket})
        except BucketNotFoundError:
            return False
        return True

    async def _create_bucket(self, bucket: str) -> Optional[Dict[str, Any]]:
        params: Dict[str, Any] = {"Bucket": bucket}
        if self.config.region and self.config.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.config.region}
        response = await self._call(self.client.create_bucket, _details={"bucket": bucket}, **params)
        return {"location": response.get("Location"), "region": self.config.region}

    async def _list_buckets(self) -> List[BucketInfo]:
        response = await self._call(self.client.list_buckets)
        return [
            BucketInfo(name=b["Name"], metadata={"created": b.get("CreationDate")})
            for b in response.get("Buckets", [])
        ]

    async def _clear_bucket(self, bucket: str) -> None:
        await self._call(self._clear_bucket_sync, bucket, _details={"bucket": bucket})

    def _clear_bucket_sync(self, bucket: str) -> None:
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, PaginationConfig={"PageSize": S3_PAGE_SIZE}):
            objects = [{"Key": item["Key"]} for item in page.get("Contents", [])]
            if objects:
                self.client.delete_objects(Bucket=bucket, Delete={"Objects": objects, "Quiet": True})

    async def _delete_bucket(self, bucket: str) -> None:
        await self._call(self.client.delete_bucket, Bucket=bucket, _details={"bucket": bucket})

    # Files

    async def _upload(
        self,
        bucket: str,
        key: str,
        source: BinaryIO,
        size: Optional[int]
    ) -> Optional[StoredFile]:
        details = {"bucket": bucket, "key": key}
        extra_args = {}
        content_type = mimetypes.guess_type(key)[0]
        if content_type:
            extra_args["ContentType"] = content_type

        await self._call(
            self.client.upload_fileobj, source, bucket, key, ExtraArgs=extra_args or None, _details=details
        )
        head = await self._call(self.client.head_object, Bucket=bucket, Key=key, _details=details)
        return StoredFile(
            key=key,
            size=int(head["ContentLength"]),
            content_type=head.get("ContentType"),
            content_hash=head.get("ETag", "").strip('"') or None,
            uploaded_at=head.get("LastModified")
        )

    async def _delete_object(self, bucket: str, key: str) -> None:
        # S3 reports success for keys that don't exist
        await self._call(self.client.delete_object, Bucket=bucket, Key=key, _details={"bucket": bucket, "key": key})

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
        files: List[StoredFile] = []
        token = page_token
        while len(files) < limit:
            params: Dict[str, Any] = {"Bucket": bucket, "MaxKeys": min(S3_PAGE_SIZE, limit - len(files))}
            if token:
                params["ContinuationToken"] = token
            response = self.client.list_objects_v2(**params)
            for item in response.get("Contents", []):
                files.append(StoredFile(
                    key=item["Key"],
                    size=int(item["Size"]),
                    content_hash=item.get("ETag", "").strip('"') or None,
                    uploaded_at=item.get("LastModified")
                ))
            token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
            if token is None:
                break
        return files, token

    async def _object_size(self, bucket: str, key: str) -> int:
        head = await self._call(self.client.head_object, Bucket=bucket, Key=key, _details={"bucket": bucket, "key": key})
        return int(head["ContentLength"])

    async def _object_exists(self, bucket: str, key: str) -> bool:
        try:
            await self._call(self.client.head_object, Bucket=bucket, Key=key, _details={"bucket": bucket, "key": key})
        except ObjectNotFoundError:
            return False
        return True

    async def _open_read(self, bucket: str, key: str, start: int, end: Optional[int]) -> BinaryIO:
        params: Dict[str, Any] = {"Bucket": bucket, "Key": key}
        if start or end is not None:
            params["Range"] = f"bytes={start}-{'' if end is None else end}"
        response = await self._call(self.client.get_object, _details={"bucket": bucket, "key": key}, **params)
        return response["Body"]

    def _map_error(self, exc: Exception, details: Dict[str, Any]) -> StorageError:
        if isinstance(exc, ClientError):
            error = exc.response.get("Error", {})
            code = str(error.get("Code", ""))
            message = error.get("Message") or str(exc)

            if code == "BucketAlreadyOwnedByYou":
                return BucketAlreadyExistsError(message, details)
            if code == "NoSuchBucket" or (code in _NOT_FOUND_CODES and "key" not in details):
                return BucketNotFoundError(f"{self.vendor} bucket not found: {details.get('bucket')}", details)
            if code in _NOT_FOUND_CODES:
                return ObjectNotFoundError(f"File not found in {self.vendor}: {details['key']}", details)

            logger.error(f"❌ {self.vendor} error {code}: {message}")
            return BackendError(message, dict(details, code=code), original=exc)

        if isinstance(exc, BotoCoreError):
            logger.error(f"❌ {self.vendor} transport error: {exc}")
            return BackendError(str(exc), details, original=exc)
        return super()._map_error(exc, details)
