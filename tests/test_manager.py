"""Tests for the StorageManager facade and the StorageFactory."""

import importlib
from types import SimpleNamespace

import pytest

from storage_abstraction.storage import (
    BackendError,
    ConfigValidationError,
    NoBucketSelectedError,
    StorageFactory,
    StorageManager,
)
from storage_abstraction.storage.local_backend import LocalStorageBackend


@pytest.mark.asyncio()
async def test_manager_forwards_to_backend(storage, image_path):
    assert await storage.init() is True
    assert await storage.test() == "ok"

    await storage.create_bucket("local-bucket")
    await storage.add_file_from_path(image_path, "image1.jpg")
    await storage.add_file_from_path(image_path, "subdir/renamed.jpg")
    assert await storage.list_files() == [("image1.jpg", 32201), ("subdir/renamed.jpg", 32201)]

    await storage.remove_file("subdir/renamed.jpg")
    await storage.remove_file("subdir/renamed.jpg")
    assert await storage.list_files() == [("image1.jpg", 32201)]

    stream = await storage.get_file_as_readable("image1.jpg")
    assert await stream.read_all() == image_path.read_bytes()
    assert await storage.size_of("image1.jpg") == 32201


@pytest.mark.asyncio()
async def test_manager_bucket_operations(storage):
    assert await storage.select_bucket("Holiday Photos") == "holiday-photos"
    assert storage.get_selected_bucket() == "holiday-photos"
    assert "holiday-photos" in await storage.list_buckets()

    await storage.add_file_from_buffer(b"data", "a.txt")
    await storage.clear_bucket()
    assert await storage.list_files() == []

    await storage.delete_bucket()
    assert storage.get_selected_bucket() is None
    with pytest.raises(NoBucketSelectedError):
        await storage.list_files()


def test_introspect(storage, storage_dir):
    assert storage.introspect("type") == "local"
    assert storage.introspect("bucket_name") == "local-bucket"
    assert storage.introspect("directory") == str(storage_dir.resolve())
    assert storage.introspect("no-such-field") is None

    info = storage.introspect()
    assert info["type"] == "local"
    assert info["initialized"] is False


def test_introspect_never_exposes_credentials():
    storage = StorageManager("b2://key-id:super-secret@my-bucket")

    info = storage.introspect()

    assert "super-secret" not in repr(info)
    assert "key-id" not in repr(info)
    assert info["type"] == "b2"
    assert info["bucket_name"] == "my-bucket"


def test_get_info(storage):
    assert storage.get_backend_type() == "local"
    assert storage.get_info() == {
        "backend_type": "local",
        "initialized": False,
        "selected_bucket": "local-bucket",
    }


def test_manager_accepts_backend_instance(local_backend):
    storage = StorageManager(local_backend)
    assert storage.backend is local_backend


def test_manager_accepts_url(tmp_path):
    storage = StorageManager(f"local://{tmp_path}?bucket_name=photos")
    assert isinstance(storage.backend, LocalStorageBackend)
    assert storage.get_selected_bucket() == "photos"


def test_factory_rejects_unknown_type():
    with pytest.raises(ConfigValidationError):
        StorageFactory.create_backend({"type": "azure", "account": "x"})


def test_factory_lists_types():
    assert StorageFactory.available_types() == ["b2", "gcs", "local", "s3"]


@pytest.fixture
def missing_vendor_sdk(monkeypatch):
    """Make every backend module but the local one fail to import."""
    real_import = importlib.import_module

    def import_module(name):
        if not name.endswith("local_backend"):
            raise ImportError(f"No module named {name!r}")
        return real_import(name)

    monkeypatch.setattr(StorageFactory, "_backends", {})
    monkeypatch.setattr(
        "storage_abstraction.storage.factory.importlib",
        SimpleNamespace(import_module=import_module)
    )


def test_factory_reports_missing_sdk(missing_vendor_sdk):
    with pytest.raises(BackendError):
        StorageFactory.create_backend("b2://key-id:app-key@my-bucket")


def test_factory_falls_back_to_local(missing_vendor_sdk):
    backend = StorageFactory.create_backend("b2://key-id:app-key@my-bucket", auto_fallback=True)

    assert isinstance(backend, LocalStorageBackend)
    assert backend.get_selected_bucket() == "my-bucket"


def test_create_from_settings(storage_dir):
    settings = SimpleNamespace(
        STORAGE_BACKEND="local",
        STORAGE_AUTO_FALLBACK=False,
        storage_config={"type": "local", "directory": str(storage_dir), "bucket_name": "from-settings"}
    )

    backend = StorageFactory.create_from_settings(settings)

    assert isinstance(backend, LocalStorageBackend)
    assert backend.get_selected_bucket() == "from-settings"
