"""Tests for the S3 backend against moto's in-memory S3."""

import boto3
import pytest
from moto import mock_aws

from storage_abstraction.storage import (
    BackendError,
    BucketNotFoundError,
    ConfigValidationError,
    ObjectNotFoundError,
    StorageManager,
)
from storage_abstraction.storage.s3_backend import S3StorageBackend

REGION = "us-east-1"


@pytest.fixture
def aws_credentials(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", REGION)


@pytest.fixture
def mocked_aws(aws_credentials):
    with mock_aws():
        yield boto3.client("s3", region_name=REGION)


@pytest.fixture
def s3_backend(mocked_aws):
    return S3StorageBackend(f"s3://testing:testing@{REGION}/test-bucket")


@pytest.mark.asyncio()
async def test_end_to_end_scenario(s3_backend, image_path):
    assert await s3_backend.init() is True
    assert await s3_backend.test() == "ok"
    assert await s3_backend.create_bucket("test-bucket") == "test-bucket"

    await s3_backend.add_file_from_path(image_path, "image1.jpg")
    assert await s3_backend.list_files() == [("image1.jpg", 32201)]

    await s3_backend.remove_file("image1.jpg")
    assert await s3_backend.list_files() == []


@pytest.mark.asyncio()
async def test_create_bucket_is_idempotent(s3_backend, mocked_aws):
    await s3_backend.create_bucket("Test Bucket")
    # Fresh cache forces the remote existence check
    s3_backend.state.forget_bucket("test-bucket")
    await s3_backend.create_bucket("test-bucket")

    names = [b["Name"] for b in mocked_aws.list_buckets()["Buckets"]]
    assert names == ["test-bucket"]
    assert await s3_backend.list_buckets() == ["test-bucket"]


@pytest.mark.asyncio()
async def test_upload_metadata_and_content_type(s3_backend, mocked_aws, image_path):
    await s3_backend.add_file_from_path(image_path, "photos/image1.jpg")

    head = mocked_aws.head_object(Bucket="test-bucket", Key="photos/image1.jpg")
    assert head["ContentType"] == "image/jpeg"

    stored = s3_backend.state.files["photos/image1.jpg"]
    assert stored.size == 32201
    assert stored.content_hash


@pytest.mark.asyncio()
async def test_round_trip_and_range(s3_backend):
    data = bytes(range(256)) * 64
    await s3_backend.add_file_from_buffer(data, "blob.bin")

    stream = await s3_backend.get_file_as_readable("blob.bin")
    assert await stream.read_all() == data

    stream = await s3_backend.get_file_as_readable("blob.bin", 10, 19)
    assert await stream.read_all() == data[10:20]

    stream = await s3_backend.get_file_as_readable("blob.bin", start=len(data) - 5)
    assert await stream.read_all() == data[-5:]


@pytest.mark.asyncio()
async def test_missing_objects(s3_backend):
    await s3_backend.create_bucket("test-bucket")

    with pytest.raises(ObjectNotFoundError):
        await s3_backend.size_of("nope.jpg")
    with pytest.raises(ObjectNotFoundError):
        await s3_backend.get_file_as_readable("nope.jpg")

    await s3_backend.remove_file("nope.jpg")
    await s3_backend.remove_file("nope.jpg")


@pytest.mark.asyncio()
async def test_listing_pagination(s3_backend):
    for index in range(5):
        await s3_backend.add_file_from_buffer(b"x" * index, f"file-{index}.txt")

    first = await s3_backend.list_files(limit=3)
    assert [key for key, _ in first] == ["file-0.txt", "file-1.txt", "file-2.txt"]
    token = s3_backend.describe()["next_page_token"]
    assert token

    second = await s3_backend.list_files(limit=3, page_token=token)
    assert second == [("file-3.txt", 3), ("file-4.txt", 4)]
    assert s3_backend.describe()["next_page_token"] is None


@pytest.mark.asyncio()
async def test_clear_and_delete_bucket(s3_backend, mocked_aws):
    await s3_backend.add_file_from_buffer(b"a", "a.txt")
    await s3_backend.add_file_from_buffer(b"b", "sub/b.txt")

    await s3_backend.clear_bucket()
    assert await s3_backend.list_files() == []

    await s3_backend.delete_bucket()
    assert s3_backend.get_selected_bucket() is None
    assert mocked_aws.list_buckets()["Buckets"] == []

    await s3_backend.delete_bucket("test-bucket")


@pytest.mark.asyncio()
async def test_clear_missing_bucket(s3_backend):
    with pytest.raises(BucketNotFoundError):
        await s3_backend.clear_bucket("missing-bucket")


@pytest.mark.asyncio()
async def test_listing_a_vanished_bucket(s3_backend, mocked_aws):
    await s3_backend.create_bucket("test-bucket")
    mocked_aws.delete_bucket(Bucket="test-bucket")

    with pytest.raises(BucketNotFoundError):
        await s3_backend.list_files()
    assert not s3_backend.state.has_bucket("test-bucket")


@pytest.mark.asyncio()
async def test_upload_after_bucket_was_deleted_elsewhere(s3_backend, mocked_aws):
    await s3_backend.add_file_from_buffer(b"a", "a.txt")
    mocked_aws.delete_object(Bucket="test-bucket", Key="a.txt")
    mocked_aws.delete_bucket(Bucket="test-bucket")

    assert await s3_backend.add_file_from_buffer(b"b", "b.txt") == "b.txt"

    assert [b["Name"] for b in mocked_aws.list_buckets()["Buckets"]] == ["test-bucket"]
    assert await s3_backend.list_files() == [("b.txt", 1)]


@pytest.mark.asyncio()
async def test_vendor_faults_become_backend_errors(s3_backend, mocked_aws):
    await s3_backend.add_file_from_buffer(b"a", "a.txt")

    # S3 refuses to delete a bucket that still holds objects
    with pytest.raises(BackendError) as exc_info:
        await s3_backend._delete_bucket("test-bucket")
    assert exc_info.value.details["code"] == "BucketNotEmpty"


def test_credentials_must_come_in_pairs():
    with pytest.raises(ConfigValidationError):
        S3StorageBackend({"type": "s3", "access_key_id": "only-one", "bucket_name": "b"})


@pytest.mark.asyncio()
async def test_manager_with_s3(mocked_aws, image_path):
    storage = StorageManager({"type": "s3", "region": REGION, "bucket_name": "managed"})

    await storage.add_file_from_path(image_path, "image1.jpg")

    assert storage.introspect("type") == "s3"
    assert await storage.size_of("image1.jpg") == 32201
