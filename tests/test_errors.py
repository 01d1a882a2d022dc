import pytest

from storage_abstraction.main import error_status, jsonable_details
from storage_abstraction.storage import (
    BackendError,
    BucketNotFoundError,
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


def test_hierarchy():
    assert issubclass(BucketNotFoundError, StorageNotFoundError)
    assert issubclass(ObjectNotFoundError, StorageNotFoundError)
    for error_class in (ConfigMismatchError, NotInitializedError, TransferError, BackendError):
        assert issubclass(error_class, StorageError)


def test_message_and_details():
    error = ObjectNotFoundError("File not found: a.jpg", {"bucket": "b", "key": "a.jpg"})

    assert str(error) == "File not found: a.jpg"
    assert error.message == "File not found: a.jpg"
    assert error.details == {"bucket": "b", "key": "a.jpg"}
    assert TransferError("boom").details == {}


def test_no_bucket_selected_default_message():
    assert NoBucketSelectedError().message == "Please select a bucket first"


def test_backend_error_keeps_original():
    original = RuntimeError("quota exceeded")
    error = BackendError(str(original), original=original)

    assert error.original is original
    assert error.message == "quota exceeded"


@pytest.mark.parametrize(
    "error, expected",
    [
        (ConfigValidationError("bad"), 400),
        (InvalidNameError("bad"), 400),
        (NotInitializedError("bad"), 400),
        (NoBucketSelectedError(), 400),
        (BucketNotFoundError("gone"), 404),
        (ObjectNotFoundError("gone"), 404),
        (BackendError("vendor"), 502),
        (TransferError("disk"), 500),
    ],
)
def test_error_status(error, expected):
    assert error_status(error) == expected


def test_jsonable_details():
    assert jsonable_details({"key": "a.jpg", "size": 3, "path": object}) == {
        "key": "a.jpg",
        "size": 3,
        "path": str(object),
    }
