"""
Bucket/File Bookkeeping

In-memory mirror of what a backend last saw remotely. It only exists to skip
redundant "does this bucket exist" round-trips and to feed introspection;
remote calls stay the source of truth.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class BucketInfo:
    """A bucket as last reported by the backend."""

    name: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredFile:
    """
    A stored object as last reported by the backend.

    Only `key` and `size` are guaranteed; the rest is filled in where the
    vendor hands it out with the listing or upload response.
    """

    key: str
    size: int
    content_type: Optional[str] = None
    content_hash: Optional[str] = None
    uploaded_at: Optional[datetime] = None


@dataclass
class BucketState:
    """
    Per-backend cache of buckets, listed files and the selected bucket.

    `files` always describes the selected bucket; switching the selection
    drops it.
    """

    buckets: Dict[str, BucketInfo] = field(default_factory=dict)
    files: Dict[str, StoredFile] = field(default_factory=dict)
    selected_bucket: Optional[str] = None
    next_page_token: Optional[str] = None

    # Buckets

    def has_bucket(self, name: str) -> bool:
        return name in self.buckets

    def remember_bucket(self, name: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.buckets[name] = BucketInfo(name=name, metadata=dict(metadata or {}))

    def merge_buckets(self, listing: Iterable[BucketInfo]) -> List[str]:
        """Replace the bucket map with a fresh remote listing, keeping its order."""
        self.buckets = {bucket.name: bucket for bucket in listing}
        return list(self.buckets)

    def forget_bucket(self, name: str) -> None:
        self.buckets.pop(name, None)

    def evict_bucket(self, name: str) -> None:
        """Drop a deleted bucket, unselecting it if it was selected."""
        self.buckets.pop(name, None)
        if self.selected_bucket == name:
            self.select(None)

    # Selection

    def select(self, name: Optional[str]) -> None:
        if name != self.selected_bucket:
            self.files = {}
            self.next_page_token = None
        self.selected_bucket = name

    # Files

    def merge_files(
        self,
        listing: Iterable[StoredFile],
        next_page_token: Optional[str] = None,
        replace: bool = True
    ) -> List[StoredFile]:
        """
        Fold one page of a remote file listing into the cache.

        A first page (`replace=True`) replaces what was known; continuation
        pages are appended.
        """
        page = list(listing)
        if replace:
            self.files = {}
        for stored in page:
            self.files[stored.key] = stored
        self.next_page_token = next_page_token
        return page

    def remember_file(self, stored: StoredFile) -> None:
        self.files[stored.key] = stored

    def forget_file(self, key: str) -> None:
        self.files.pop(key, None)

    def clear_files(self) -> None:
        self.files = {}
        self.next_page_token = None
