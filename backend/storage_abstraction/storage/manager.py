"""
Storage Manager - Facade for Storage Access

This module provides the StorageManager that wraps exactly one storage backend,
chosen once from its configuration, and exposes the same API for the entire
application.
"""
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from storage_abstraction.storage.base import DEFAULT_LIST_LIMIT, StorageBackend
from storage_abstraction.storage.factory import StorageFactory
from storage_abstraction.storage.streams import ObjectStream


class StorageManager:
    """
    Storage manager that provides a unified interface to the storage backend.

    Every call is forwarded unchanged to the backend built from `config`; the
    backend never changes for the lifetime of the manager.

    Usage:
        storage = StorageManager("local://./data?bucket_name=photos")
        await storage.init()
        await storage.add_file_from_path("./image1.jpg", "image1.jpg")
        files = await storage.list_files()
    """

    def __init__(self, config, auto_fallback: bool = False):
        """
        Args:
            config: URL-like string, mapping, config model, or an already
                constructed StorageBackend
            auto_fallback: Passed on to StorageFactory.create_backend
        """
        if isinstance(config, StorageBackend):
            self._backend = config
        else:
            self._backend = StorageFactory.create_backend(config, auto_fallback=auto_fallback)

    @property
    def backend(self) -> StorageBackend:
        """Get the underlying storage backend."""
        return self._backend

    # Delegate all methods to the backend

    async def init(self) -> bool:
        return await self._backend.init()

    async def test(self) -> str:
        return await self._backend.test()

    async def create_bucket(self, name: str) -> str:
        return await self._backend.create_bucket(name)

    async def select_bucket(self, name: Optional[str]) -> Optional[str]:
        return await self._backend.select_bucket(name)

    def get_selected_bucket(self) -> Optional[str]:
        return self._backend.get_selected_bucket()

    async def list_buckets(self) -> List[str]:
        return await self._backend.list_buckets()

    async def clear_bucket(self, name: Optional[str] = None) -> None:
        await self._backend.clear_bucket(name)

    async def delete_bucket(self, name: Optional[str] = None) -> None:
        await self._backend.delete_bucket(name)

    async def add_file_from_path(self, source_path: Union[str, Path], target_key: str) -> str:
        return await self._backend.add_file_from_path(source_path, target_key)

    async def add_file_from_buffer(self, data: bytes, target_key: str) -> str:
        return await self._backend.add_file_from_buffer(data, target_key)

    async def add_file_from_readable(self, stream, target_key: str) -> str:
        return await self._backend.add_file_from_readable(stream, target_key)

    async def remove_file(self, key: str) -> None:
        await self._backend.remove_file(key)

    async def list_files(
        self,
        limit: int = DEFAULT_LIST_LIMIT,
        page_token: Optional[str] = None
    ) -> List[Tuple[str, int]]:
        return await self._backend.list_files(limit, page_token)

    async def size_of(self, key: str) -> int:
        return await self._backend.size_of(key)

    async def get_file_as_readable(
        self,
        key: str,
        start: int = 0,
        end: Optional[int] = None
    ) -> ObjectStream:
        return await self._backend.get_file_as_readable(key, start, end)

    async def download_file(self, key: str, destination_dir: Union[str, Path]) -> str:
        return await self._backend.download_file(key, destination_dir)

    # Diagnostics

    def introspect(self, key: Optional[str] = None) -> Any:
        """
        Read internal state for tooling and tests.

        Args:
            key: Single field to return ('type', 'bucket_name', 'directory',
                'initialized', 'buckets', 'cached_files', 'next_page_token');
                None returns all of them

        Returns:
            The field value (None for fields the backend doesn't have), or
            a dict of all fields. Credentials are never included.
        """
        info = self._backend.describe()
        if key is None:
            return info
        return info.get(key)

    def get_backend_type(self) -> str:
        """Get the type of storage backend being used."""
        return self._backend.backend_type

    def get_info(self) -> Dict[str, Any]:
        """
        Get information about the storage backend.

        Returns:
            Dictionary with backend information
        """
        return {
            "backend_type": self._backend.backend_type,
            "initialized": self._backend.initialized,
            "selected_bucket": self._backend.get_selected_bucket(),
        }
