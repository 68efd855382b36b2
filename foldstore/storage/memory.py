"""
Process-local object store with exact GCS precondition semantics.

Every write starts a new generation drawn from a store-wide counter and
resets metageneration to 1, as GCS does on object overwrite.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone

from ..errors import ObjectNotFound
from .base import (
    JSON_CONTENT_TYPE,
    ObjectMetadata,
    Preconditions,
    WriteResult,
    check_preconditions,
)


@dataclass
class _Entry:
    data: bytes
    meta: ObjectMetadata


class MemoryObjectStore:
    def __init__(self) -> None:
        self._objects: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._next_generation = 1

    def read(self, name: str) -> bytes:
        with self._lock:
            entry = self._objects.get(name)
        if entry is None:
            raise ObjectNotFound(f"no such object: {name}", name=name)
        return entry.data

    def write(
        self,
        name: str,
        data: bytes,
        *,
        content_type: str = JSON_CONTENT_TYPE,
        preconditions: Preconditions | None = None,
    ) -> WriteResult:
        with self._lock:
            current = self._objects.get(name)
            check_preconditions(name, current.meta if current else None, preconditions)

            generation = self._next_generation
            self._next_generation += 1
            meta = ObjectMetadata(
                name=name,
                generation=generation,
                metageneration=1,
                size=len(data),
                updated=datetime.now(timezone.utc),
                content_type=content_type,
            )
            self._objects[name] = _Entry(data=bytes(data), meta=meta)
        return WriteResult(name=name, generation=meta.generation, metageneration=meta.metageneration)

    def stat(self, name: str) -> ObjectMetadata:
        with self._lock:
            entry = self._objects.get(name)
        if entry is None:
            raise ObjectNotFound(f"no such object: {name}", name=name)
        return entry.meta

    def list(self, prefix: str) -> list[str]:
        with self._lock:
            return sorted(n for n in self._objects if n.startswith(prefix))

    def delete(self, name: str, *, preconditions: Preconditions | None = None) -> bool:
        with self._lock:
            current = self._objects.get(name)
            if current is None:
                return False
            check_preconditions(name, current.meta, preconditions)
            del self._objects[name]
        return True

    def __len__(self) -> int:
        return len(self._objects)
