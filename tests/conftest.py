from pathlib import Path

import pytest

from storage_abstraction.storage import StorageManager
from storage_abstraction.storage.local_backend import LocalStorageBackend

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"
IMAGE_PATH = FIXTURES_DIR / "image1.jpg"
IMAGE_SIZE = 32201


@pytest.fixture
def image_path() -> Path:
    return IMAGE_PATH


@pytest.fixture
def storage_dir(tmp_path) -> Path:
    return tmp_path / "storage"


@pytest.fixture
def local_config(storage_dir) -> dict:
    return {"type": "local", "directory": str(storage_dir), "bucket_name": "local-bucket"}


@pytest.fixture
def local_backend(local_config) -> LocalStorageBackend:
    return LocalStorageBackend(local_config)


@pytest.fixture
def storage(local_config) -> StorageManager:
    return StorageManager(local_config)
