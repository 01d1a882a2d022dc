import logging

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storage_abstraction.config import settings
from storage_abstraction.routes.storage import get_storage, router as storage_router
from storage_abstraction.schemas import HealthStatus
from storage_abstraction.storage import (
    BackendError,
    ConfigError,
    InvalidNameError,
    NoBucketSelectedError,
    NotInitializedError,
    StorageError,
    StorageManager,
    StorageNotFoundError,
)

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="Storage Abstraction API",
    description="One API for local, GCS, S3 and Backblaze B2 storage",
    version="1.0.0",
    docs_url=f"{settings.API_PREFIX}/docs",
    redoc_url=f"{settings.API_PREFIX}/redoc"
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(storage_router, prefix=settings.API_PREFIX)


def error_status(exc: StorageError) -> int:
    if isinstance(exc, (ConfigError, InvalidNameError, NotInitializedError, NoBucketSelectedError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, StorageNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, BackendError):
        return status.HTTP_502_BAD_GATEWAY
    # TransferError and anything unexpected
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def jsonable_details(details: dict) -> dict:
    return {key: value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
            for key, value in details.items()}


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError) -> JSONResponse:
    """Errors are returned as data: {"error", "message", "details"}"""
    status_code = error_status(exc)
    logger.error(f"❌ {type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "message": exc.message,
            "details": jsonable_details(exc.details),
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Same error shape for the HTTP-level failures raised by the routes (413, 416, ...)"""
    logger.warning(f"⚠️ HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTPException",
            "message": str(exc.detail),
            "details": {"status_code": exc.status_code},
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning(f"⚠️ Invalid request on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


@app.on_event("startup")
async def startup_event():
    logger.info(f"API running at {settings.API_HOST}:{settings.API_PORT}")
    logger.info(f"Docs available at {settings.API_PREFIX}/docs")


@app.get("/")
async def root():
    return {
        "message": "Storage Abstraction API",
        "version": "1.0.0",
        "docs": f"{settings.API_PREFIX}/docs",
        "status": "operational"
    }


@app.get(f"{settings.API_PREFIX}/health", response_model=HealthStatus)
async def health_check(storage: StorageManager = Depends(get_storage)):
    await storage.init()
    return HealthStatus(
        status="healthy",
        storage=await storage.test(),
        max_file_size_mb=settings.MAX_FILE_SIZE_MB
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "storage_abstraction.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
