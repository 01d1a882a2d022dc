"""
Async byte streams on top of blocking file-like objects.

Vendor SDKs and the local filesystem hand out blocking readers; ObjectStream
turns one into an async iterator of chunks whose handle is released once the
data runs out, on any read error, or on aclose().
"""
import asyncio
import logging
import tempfile
from typing import AsyncIterable, AsyncIterator, BinaryIO, Callable, Optional

from storage_abstraction.storage.errors import TransferError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024

# Spooled uploads stay in memory up to this size, then move to a temp file
SPOOL_MAX_SIZE = 8 * 1024 * 1024


class ObjectStream:
    """
    Readable returned by StorageBackend.get_file_as_readable.

    Usage:
        async with await storage.get_file_as_readable("a.jpg") as stream:
            async for chunk in stream:
                sink.write(chunk)
    """

    def __init__(
        self,
        handle: BinaryIO,
        key: str,
        length: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        on_close: Optional[Callable[[], None]] = None
    ):
        """
        Args:
            handle: Blocking binary reader, already positioned at the first byte
            key: Object key, used in error messages
            length: Maximum number of bytes to hand out (None = until EOF)
            chunk_size: Size of the chunks produced by iteration
            on_close: Extra cleanup run after the handle is closed
        """
        self.key = key
        self._handle = handle
        self._remaining = length
        self._chunk_size = chunk_size
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int = -1) -> bytes:
        """Read up to `size` bytes (-1 reads one chunk). Returns b'' at the end."""
        if self._closed:
            return b""

        wanted = self._chunk_size if size is None or size < 0 else size
        if self._remaining is not None:
            wanted = min(wanted, self._remaining)
        if wanted == 0:
            await self.aclose()
            return b""

        try:
            data = await asyncio.to_thread(self._handle.read, wanted)
        except asyncio.CancelledError:
            await self.aclose()
            raise
        except Exception as e:
            await self.aclose()
            raise TransferError(f"Failed to read {self.key}: {e}", {"key": self.key})

        if not data:
            await self.aclose()
            return b""

        if self._remaining is not None:
            self._remaining -= len(data)
        return data

    async def read_all(self) -> bytes:
        """Drain the stream into memory."""
        parts = []
        async for chunk in self:
            parts.append(chunk)
        return b"".join(parts)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await asyncio.to_thread(self._close_sync)
        except Exception as e:
            logger.warning(f"⚠️ Error while closing stream for {self.key}: {e}")

    def _close_sync(self) -> None:
        try:
            self._handle.close()
        finally:
            if self._on_close is not None:
                self._on_close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def __aenter__(self) -> "ObjectStream":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


async def spool_async_iterable(source: AsyncIterable[bytes]) -> BinaryIO:
    """
    Copy an async byte iterable into a rewound SpooledTemporaryFile.

    Vendor upload calls want a blocking file object; spooling keeps memory
    bounded for large sources. The caller owns (and must close) the result.
    """
    spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)
    try:
        async for chunk in source:
            if chunk:
                await asyncio.to_thread(spool.write, chunk)
        spool.seek(0)
    except BaseException:
        spool.close()
        raise
    return spool


async def iter_async_reader(reader, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Chunks of an object whose `read(size)` is a coroutine (aiofiles handles, StreamReader, ...)"""
    while True:
        chunk = await reader.read(chunk_size)
        if not chunk:
            return
        yield chunk


def tell_or_none(handle) -> Optional[int]:
    """Current position of a seekable handle, None when it can not be rewound"""
    try:
        if hasattr(handle, "seekable") and not handle.seekable():
            return None
        return handle.tell()
    except (AttributeError, OSError, ValueError):
        return None


class SourceReader:
    """
    File-like wrapper handed to vendor upload calls.

    Failures while reading the caller's source surface as TransferError
    instead of whatever the SDK would wrap them in.
    """

    def __init__(self, handle: BinaryIO, key: str):
        self._handle = handle
        self._key = key

    def read(self, size: int = -1) -> bytes:
        try:
            return self._handle.read(size)
        except TransferError:
            raise
        except Exception as e:
            raise TransferError(f"Failed to read source for {self._key}: {e}", {"key": self._key})

    def readable(self) -> bool:
        return True

    def __getattr__(self, name):
        return getattr(self._handle, name)
