"""Tests for the HTTP layer, served by the local backend."""

import pytest
from fastapi import HTTPException, status
from fastapi.testclient import TestClient

from storage_abstraction.config import settings
from storage_abstraction.main import app
from storage_abstraction.routes.storage import get_storage, parse_range_header
from storage_abstraction.storage import StorageManager

API = f"{settings.API_PREFIX}/storage"


def make_client(storage: StorageManager):
    app.dependency_overrides[get_storage] = lambda: storage
    return TestClient(app)


@pytest.fixture
def client(storage):
    with make_client(storage) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def unselected_client(storage_dir):
    with make_client(StorageManager({"type": "local", "directory": str(storage_dir)})) as client:
        yield client
    app.dependency_overrides.clear()


def upload(client, data, location=None, filename="image1.jpg"):
    form = {"location": location} if location else {}
    return client.post(f"{API}/files", files={"file": (filename, data, "image/jpeg")}, data=form)


def test_root(client):
    response = client.get("/")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["status"] == "operational"


def test_health(client):
    response = client.get(f"{settings.API_PREFIX}/health")

    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {
        "status": "healthy",
        "storage": "ok",
        "max_file_size_mb": settings.MAX_FILE_SIZE_MB,
    }


def test_storage_info(client, storage_dir):
    response = client.get(API)

    assert response.status_code == status.HTTP_200_OK
    info = response.json()
    assert info["type"] == "local"
    assert info["bucket_name"] == "local-bucket"
    assert info["directory"] == str(storage_dir.resolve())
    assert info["initialized"] is True


def test_storage_types(client):
    response = client.get(f"{API}/types")

    assert response.json() == {"types": ["b2", "gcs", "local", "s3"], "active": "local"}


def test_file_lifecycle(client, image_path):
    data = image_path.read_bytes()

    response = upload(client, data)
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"bucket": "local-bucket", "key": "image1.jpg"}

    response = upload(client, data, location="Holiday/Beach Photo.jpg")
    assert response.json()["key"] == "holiday/beach-photo.jpg"

    response = client.get(f"{API}/buckets/local-bucket/files")
    assert response.json() == {
        "bucket": "local-bucket",
        "files": [
            {"key": "holiday/beach-photo.jpg", "size": 32201},
            {"key": "image1.jpg", "size": 32201},
        ],
        "next_page_token": None,
    }

    response = client.get(f"{API}/sizes/holiday/beach-photo.jpg")
    assert response.json() == {"key": "holiday/beach-photo.jpg", "size": 32201}

    response = client.get(f"{API}/files/image1.jpg")
    assert response.status_code == status.HTTP_200_OK
    assert response.headers["content-type"] == "image/jpeg"
    assert response.headers["accept-ranges"] == "bytes"
    assert response.content == data

    response = client.delete(f"{API}/files/image1.jpg")
    assert response.json() == {"bucket": "local-bucket", "key": "image1.jpg"}

    response = client.get(f"{API}/buckets/local-bucket/files")
    assert [entry["key"] for entry in response.json()["files"]] == ["holiday/beach-photo.jpg"]


def test_list_files_pagination(client):
    for name in ("a.txt", "b.txt", "c.txt"):
        upload(client, b"x", location=name)

    first = client.get(f"{API}/buckets/local-bucket/files", params={"limit": 2}).json()
    assert [entry["key"] for entry in first["files"]] == ["a.txt", "b.txt"]
    assert first["next_page_token"]

    second = client.get(
        f"{API}/buckets/local-bucket/files",
        params={"limit": 2, "page_token": first["next_page_token"]}
    ).json()
    assert [entry["key"] for entry in second["files"]] == ["c.txt"]
    assert second["next_page_token"] is None


def test_ranged_download(client, image_path):
    data = image_path.read_bytes()
    upload(client, data)

    response = client.get(f"{API}/files/image1.jpg", headers={"Range": "bytes=100-199"})

    assert response.status_code == status.HTTP_206_PARTIAL_CONTENT
    assert response.headers["content-range"] == "bytes 100-199/32201"
    assert response.content == data[100:200]

    response = client.get(f"{API}/files/image1.jpg", headers={"Range": "bytes=-10"})
    assert response.content == data[-10:]


def test_unsatisfiable_range(client, image_path):
    upload(client, image_path.read_bytes())

    response = client.get(f"{API}/files/image1.jpg", headers={"Range": "bytes=50000-"})

    assert response.status_code == status.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE
    body = response.json()
    assert body["error"] == "HTTPException"
    assert body["details"] == {"status_code": 416}


def test_parse_range_header():
    assert parse_range_header("bytes=0-9", 100) == (0, 9)
    assert parse_range_header("bytes=90-", 100) == (90, 99)
    assert parse_range_header("bytes=95-200", 100) == (95, 99)
    assert parse_range_header("bytes=-5", 100) == (95, 99)

    for value in ("items=0-9", "bytes=0-9,20-29", "bytes=abc", "bytes=9-0", "bytes=100-"):
        with pytest.raises(HTTPException) as exc_info:
            parse_range_header(value, 100)
        assert exc_info.value.status_code == 416


def test_missing_file_is_404(client):
    client.post(f"{API}/buckets/local-bucket")

    response = client.get(f"{API}/files/image2.jpg")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    body = response.json()
    assert body["error"] == "ObjectNotFoundError"
    assert body["details"]["key"] == "image2.jpg"


def test_upload_without_selected_bucket(unselected_client):
    response = upload(unselected_client, b"data")

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json() == {
        "error": "NoBucketSelectedError",
        "message": "Please select a bucket first",
        "details": {"type": "local"},
    }


def test_upload_too_large(client, monkeypatch):
    monkeypatch.setattr(settings, "MAX_FILE_SIZE_MB", 0)

    response = upload(client, b"data")

    assert response.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    assert response.json()["error"] == "HTTPException"
    assert response.json()["message"]


def test_bucket_routes(client):
    response = client.put(f"{API}/buckets/Other Bucket/select")
    assert response.json() == {"bucket": "other-bucket", "selected": "other-bucket"}

    upload(client, b"data", location="a.txt")
    assert client.get(f"{API}/buckets").json() == {"buckets": ["other-bucket"]}

    response = client.post(f"{API}/buckets/scratch")
    assert response.json() == {"bucket": "scratch", "selected": "other-bucket"}

    response = client.delete(f"{API}/buckets/other-bucket/files")
    assert response.status_code == status.HTTP_200_OK
    assert client.get(f"{API}/buckets/other-bucket/files").json()["files"] == []

    response = client.delete(f"{API}/buckets/other-bucket")
    assert response.json() == {"bucket": "other-bucket", "selected": None}
    assert client.get(f"{API}/buckets").json() == {"buckets": ["scratch"]}


def test_clear_missing_bucket_is_404(client):
    response = client.delete(f"{API}/buckets/nowhere/files")

    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert response.json()["error"] == "BucketNotFoundError"


def test_invalid_bucket_name_is_400(client):
    response = client.post(f"{API}/buckets/%21%21%21")

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"] == "InvalidNameError"


def test_invalid_query_is_422_with_error_body(client):
    response = client.get(f"{API}/buckets/local-bucket/files", params={"limit": 0})

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
    body = response.json()
    assert body["error"] == "ValidationError"
    assert body["message"] == "Request validation failed"
    assert body["details"]["errors"][0]["loc"] == ["query", "limit"]


def test_key_ending_in_size_downloads(client):
    upload(client, b"report", location="docs/size")

    response = client.get(f"{API}/files/docs/size")
    assert response.status_code == status.HTTP_200_OK
    assert response.content == b"report"

    response = client.get(f"{API}/sizes/docs/size")
    assert response.json() == {"key": "docs/size", "size": 6}
