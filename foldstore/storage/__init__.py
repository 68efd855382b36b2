"""
Object store adapters.

``make_store`` picks the backend from settings: ``gcs`` (default), ``fs``
(rooted at ``DATA_ROOT``) or ``memory``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    JSON_CONTENT_TYPE,
    NDJSON_CONTENT_TYPE,
    ObjectMetadata,
    ObjectStore,
    Preconditions,
    WriteResult,
    dumps_json,
    read_json,
    stat_or_none,
    write_json,
)
from .fs import FsObjectStore
from .memory import MemoryObjectStore

if TYPE_CHECKING:
    from ..config import Settings


def make_store(settings: "Settings") -> ObjectStore:
    backend = settings.storage_backend
    if backend == "fs":
        return FsObjectStore(settings.data_root)
    if backend == "memory":
        return MemoryObjectStore()
    if not settings.data_bucket:
        raise ValueError("DATA_BUCKET is required for the gcs storage backend")

    from .gcs import GcsObjectStore

    return GcsObjectStore(settings.data_bucket, project=settings.gcp_project)


__all__ = [
    "FsObjectStore",
    "JSON_CONTENT_TYPE",
    "MemoryObjectStore",
    "NDJSON_CONTENT_TYPE",
    "ObjectMetadata",
    "ObjectStore",
    "Preconditions",
    "WriteResult",
    "dumps_json",
    "make_store",
    "read_json",
    "stat_or_none",
    "write_json",
]
