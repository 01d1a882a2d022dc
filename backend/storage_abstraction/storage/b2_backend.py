"""
Backblaze B2 Backend Implementation

B2 speaks the S3 protocol, so this backend reuses the boto3 plumbing of
S3StorageBackend and only changes what differs on B2:

- the endpoint is derived from the account region
- bucket names are global; only buckets we own count as "already exists"
- buckets are versioned, so deletes remove every version of a key
"""
import logging
from typing import Any, Dict, Optional

from storage_abstraction.storage.base import (
    BackendError,
    BucketAlreadyExistsError,
    BucketNotFoundError,
)
from storage_abstraction.storage.config_parser import StorageType
from storage_abstraction.storage.s3_backend import S3_PAGE_SIZE, S3StorageBackend

logger = logging.getLogger(__name__)

DEFAULT_B2_REGION = "us-west-004"
B2_ENDPOINT_TEMPLATE = "https://s3.{region}.backblazeb2.com"

# B2 bucket types and the canned ACL that creates them
BUCKET_TYPE_ACLS = {
    "allPrivate": "private",
    "allPublic": "public-read",
}
DEFAULT_BUCKET_TYPE = "allPrivate"


class B2StorageBackend(S3StorageBackend):
    """
    Backblaze B2 backend implementation.

    Config: B2Config, mapping or "b2://<application_key_id>:<application_key>@<bucket>?region=<region>"
    """

    backend_type = StorageType.B2
    vendor = "B2"

    @property
    def region(self) -> str:
        return self.config.region or DEFAULT_B2_REGION

    def _client_options(self) -> Dict[str, Any]:
        return {
            "region_name": self.region,
            "endpoint_url": self.config.endpoint_url or B2_ENDPOINT_TEMPLATE.format(region=self.region),
            "aws_access_key_id": self.config.application_key_id,
            "aws_secret_access_key": self.config.application_key,
        }

    async def _authorize(self) -> None:
        await super()._authorize()

        # Cache the configured bucket when it already exists; a missing one
        # is created on first use.
        selected = self.state.selected_bucket
        if selected and await self._bucket_exists(selected):
            self.state.remember_bucket(selected, {"region": self.region})

    # Buckets

    async def _bucket_exists(self, bucket: str) -> bool:
        try:
            await self._call(self.client.head_bucket, Bucket=bucket, _details={"bucket": bucket})
        except BucketNotFoundError:
            return False
        except BackendError as e:
            # B2 answers HEAD on a bucket of another account with 403
            if e.details.get("code") == "403":
                return False
            raise
        return True

    async def _create_bucket(self, bucket: str) -> Optional[Dict[str, Any]]:
        bucket_type = self.config.options.get("bucket_type", DEFAULT_BUCKET_TYPE)
        acl = BUCKET_TYPE_ACLS.get(bucket_type)
        if acl is None:
            raise BackendError(
                f"Unsupported B2 bucket type: {bucket_type}",
                {"bucket": bucket, "bucket_type": bucket_type}
            )

        try:
            await self._call(self.client.create_bucket, Bucket=bucket, ACL=acl, _details={"bucket": bucket})
        except BackendError as e:
            if e.details.get("code") != "BucketAlreadyExists":
                raise
            # Bucket names are global on B2; only ours counts as "already exists"
            if await self._bucket_exists(bucket):
                raise BucketAlreadyExistsError(e.message, {"bucket": bucket})
            raise
        return {"bucket_type": bucket_type, "region": self.region}

    def _clear_bucket_sync(self, bucket: str) -> None:
        # Every version has to go, not only the latest ones, or B2 refuses to delete the bucket
        paginator = self.client.get_paginator("list_object_versions")
        for page in paginator.paginate(Bucket=bucket, PaginationConfig={"PageSize": S3_PAGE_SIZE}):
            self._delete_versions(bucket, page)

    # Files

    async def _delete_object(self, bucket: str, key: str) -> None:
        await self._call(self._delete_sync, bucket, key, _details={"bucket": bucket, "key": key})

    def _delete_sync(self, bucket: str, key: str) -> None:
        deleted = 0
        paginator = self.client.get_paginator("list_object_versions")
        for page in paginator.paginate(Bucket=bucket, Prefix=key, PaginationConfig={"PageSize": S3_PAGE_SIZE}):
            deleted += self._delete_versions(bucket, page, key=key)
            # Versions are listed in key order; past our key only longer keys sharing the prefix remain
            listed = [item["Key"] for item in page.get("Versions", []) + page.get("DeleteMarkers", [])]
            if any(listed_key > key for listed_key in listed):
                break
        logger.debug(f"Removed {deleted} version(s) of {key} from B2 bucket {bucket}")

    def _delete_versions(self, bucket: str, listing: Dict[str, Any], key: Optional[str] = None) -> int:
        objects = [
            {"Key": item["Key"], "VersionId": item["VersionId"]}
            for item in listing.get("Versions", []) + listing.get("DeleteMarkers", [])
            if key is None or item["Key"] == key
        ]
        if objects:
            self.client.delete_objects(Bucket=bucket, Delete={"Objects": objects, "Quiet": True})
        return len(objects)
