"""
Storage Routes
Bucket and file management on top of the configured storage backend
"""
import logging
import mimetypes
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from storage_abstraction.config import settings
from storage_abstraction.schemas import (
    BucketList,
    BucketResult,
    ErrorResponse,
    FileEntry,
    FileList,
    FileResult,
    FileSize,
    StorageInfo,
    StorageTypes,
)
from storage_abstraction.storage import StorageFactory, StorageManager, normalize_key, slugify_bucket_name
from storage_abstraction.storage_config import get_storage_manager

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/storage",
    tags=["storage"],
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    }
)


def get_storage() -> StorageManager:
    return get_storage_manager()


def parse_range_header(value: str, size: int) -> Tuple[int, int]:
    """
    Resolve a single `bytes=start-end` range against the object size.

    Returns:
        (start, end) with `end` inclusive

    Raises:
        HTTPException(416): If the range is malformed or unsatisfiable
    """
    unit, _, byte_range = value.partition("=")
    if unit.strip().lower() != "bytes" or "," in byte_range:
        raise HTTPException(status_code=416, detail=f"Unsupported range: {value}")

    first, sep, last = byte_range.strip().partition("-")
    try:
        if not sep:
            raise ValueError(byte_range)
        if first == "":
            # Suffix range: the last N bytes
            length = int(last)
            start, end = max(size - length, 0), size - 1
        else:
            start = int(first)
            end = min(int(last), size - 1) if last else size - 1
    except ValueError:
        raise HTTPException(status_code=416, detail=f"Invalid range: {value}")

    if start < 0 or start >= size or end < start:
        raise HTTPException(status_code=416, detail=f"Range not satisfiable: {value}")
    return start, end


@router.get("", response_model=StorageInfo)
async def get_storage_info(storage: StorageManager = Depends(get_storage)):
    """Backend type, selected bucket, local directory and known buckets"""
    await storage.init()
    buckets = await storage.list_buckets()
    return StorageInfo(
        type=storage.introspect("type"),
        bucket_name=storage.introspect("bucket_name"),
        directory=storage.introspect("directory"),
        initialized=storage.introspect("initialized"),
        buckets=buckets
    )


@router.get("/types", response_model=StorageTypes)
async def get_storage_types(storage: StorageManager = Depends(get_storage)):
    return StorageTypes(types=StorageFactory.available_types(), active=storage.get_backend_type())


@router.get("/buckets", response_model=BucketList)
async def list_buckets(storage: StorageManager = Depends(get_storage)):
    return BucketList(buckets=await storage.list_buckets())


@router.post("/buckets/{name}", response_model=BucketResult)
async def create_bucket(name: str, storage: StorageManager = Depends(get_storage)):
    bucket = await storage.create_bucket(name)
    return BucketResult(bucket=bucket, selected=storage.get_selected_bucket())


@router.put("/buckets/{name}/select", response_model=BucketResult)
async def select_bucket(name: str, storage: StorageManager = Depends(get_storage)):
    bucket = await storage.select_bucket(name)
    logger.info(f"✅ Selected bucket: {bucket}")
    return BucketResult(bucket=bucket, selected=bucket)


@router.delete("/buckets/{name}/files", response_model=BucketResult)
async def clear_bucket(name: str, storage: StorageManager = Depends(get_storage)):
    await storage.clear_bucket(name)
    return BucketResult(bucket=slugify_bucket_name(name), selected=storage.get_selected_bucket())


@router.delete("/buckets/{name}", response_model=BucketResult)
async def delete_bucket(name: str, storage: StorageManager = Depends(get_storage)):
    await storage.delete_bucket(name)
    return BucketResult(bucket=slugify_bucket_name(name), selected=storage.get_selected_bucket())


@router.get("/buckets/{name}/files", response_model=FileList)
async def list_files(
    name: str,
    limit: int = Query(1000, ge=1, le=10000),
    page_token: Optional[str] = Query(None),
    storage: StorageManager = Depends(get_storage)
):
    """
    Select the bucket and list one page of its files.

    Pass the returned `next_page_token` back as `page_token` for the next page.
    """
    bucket = await storage.select_bucket(name)
    files = await storage.list_files(limit=limit, page_token=page_token)
    return FileList(
        bucket=bucket,
        files=[FileEntry(key=key, size=size) for key, size in files],
        next_page_token=storage.introspect("next_page_token")
    )


@router.post("/files", response_model=FileResult)
async def upload_file(
    file: UploadFile = File(...),
    location: Optional[str] = Form(None),
    storage: StorageManager = Depends(get_storage)
):
    """
    Upload into the selected bucket

    - **file**: File contents
    - **location**: Target key (defaults to the uploaded file name)
    """
    if file.size is not None and file.size > settings.max_file_size_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {file.size / 1024 / 1024:.2f} MB (max {settings.MAX_FILE_SIZE_MB} MB)"
        )

    target = location or file.filename
    if not target:
        raise HTTPException(status_code=400, detail="No target location given")

    try:
        key = await storage.add_file_from_readable(file.file, target)
    finally:
        await file.close()

    logger.info(f"✅ Uploaded {file.filename} as {key}")
    return FileResult(bucket=storage.get_selected_bucket(), key=key)


@router.get("/sizes/{key:path}", response_model=FileSize)
async def get_file_size(key: str, storage: StorageManager = Depends(get_storage)):
    size = await storage.size_of(key)
    return FileSize(key=normalize_key(key), size=size)


@router.get("/files/{key:path}")
async def download_file(
    key: str,
    range_header: Optional[str] = Header(None, alias="Range"),
    storage: StorageManager = Depends(get_storage)
):
    """Stream a file from the selected bucket. Honours a single `Range: bytes=start-end`."""
    size = await storage.size_of(key)
    media_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
    headers = {"Accept-Ranges": "bytes"}

    if range_header:
        start, end = parse_range_header(range_header, size)
        stream = await storage.get_file_as_readable(key, start, end)
        status_code = 206
        headers["Content-Range"] = f"bytes {start}-{end}/{size}"
        headers["Content-Length"] = str(end - start + 1)
    else:
        stream = await storage.get_file_as_readable(key)
        status_code = 200
        headers["Content-Length"] = str(size)

    return StreamingResponse(
        stream,
        status_code=status_code,
        media_type=media_type,
        headers=headers,
        background=BackgroundTask(stream.aclose)
    )


@router.delete("/files/{key:path}", response_model=FileResult)
async def remove_file(key: str, storage: StorageManager = Depends(get_storage)):
    await storage.remove_file(key)
    return FileResult(bucket=storage.get_selected_bucket(), key=normalize_key(key))
