from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Dict[str, Any] = {}


class StorageInfo(BaseModel):
    type: str
    bucket_name: Optional[str] = None
    directory: Optional[str] = None
    initialized: bool
    buckets: List[str] = []


class StorageTypes(BaseModel):
    types: List[str]
    active: str


class BucketList(BaseModel):
    buckets: List[str]


class BucketResult(BaseModel):
    bucket: str
    selected: Optional[str] = None


class FileEntry(BaseModel):
    key: str
    size: int


class FileList(BaseModel):
    bucket: str
    files: List[FileEntry]
    next_page_token: Optional[str] = None


class FileResult(BaseModel):
    bucket: str
    key: str


class FileSize(BaseModel):
    key: str
    size: int


class HealthStatus(BaseModel):
    status: str
    storage: str
    max_file_size_mb: int
