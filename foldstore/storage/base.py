"""
Object store contract.

Every backend exposes read/write/stat/list/delete over flat object names
(``env/dev/snapshots/ventures/v1.json``) with GCS-style optimistic
concurrency:

- ``if_generation_match=0``: the object must not exist (write-once).
- ``if_generation_match=N``: the live object must be generation N.
- ``if_metageneration_match=N``: the live object's metadata generation must be N.

A failed precondition raises :class:`PreconditionFailed`; callers decide
whether that is a lost race or a defect.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from ..errors import ObjectNotFound, PreconditionFailed

JSON_CONTENT_TYPE = "application/json"
NDJSON_CONTENT_TYPE = "application/x-ndjson"


@dataclass(frozen=True)
class Preconditions:
    if_generation_match: int | None = None
    if_metageneration_match: int | None = None

    @classmethod
    def absent(cls) -> "Preconditions":
        """Write only if the object does not exist."""
        return cls(if_generation_match=0)

    @classmethod
    def unchanged(cls, meta: "ObjectMetadata") -> "Preconditions":
        """Write only if the object is still the one described by `meta`."""
        return cls(if_generation_match=meta.generation, if_metageneration_match=meta.metageneration)

    @classmethod
    def for_current(cls, meta: "ObjectMetadata | None") -> "Preconditions":
        return cls.absent() if meta is None else cls.unchanged(meta)

    def is_empty(self) -> bool:
        return self.if_generation_match is None and self.if_metageneration_match is None


@dataclass(frozen=True)
class WriteResult:
    name: str
    generation: int
    metageneration: int

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "generation": self.generation, "metageneration": self.metageneration}


@dataclass(frozen=True)
class ObjectMetadata:
    name: str
    generation: int
    metageneration: int
    size: int
    updated: datetime | None = None
    content_type: str | None = None


@runtime_checkable
class ObjectStore(Protocol):
    """Uniform interface over conditional-write-capable blob stores."""

    def read(self, name: str) -> bytes:
        """Return the object's bytes or raise ObjectNotFound."""
        ...

    def write(
        self,
        name: str,
        data: bytes,
        *,
        content_type: str = JSON_CONTENT_TYPE,
        preconditions: Preconditions | None = None,
    ) -> WriteResult:
        """Write the object, honoring preconditions. Raises PreconditionFailed."""
        ...

    def stat(self, name: str) -> ObjectMetadata:
        """Return object metadata or raise ObjectNotFound."""
        ...

    def list(self, prefix: str) -> list[str]:
        """Return object names under `prefix`, sorted."""
        ...

    def delete(self, name: str, *, preconditions: Preconditions | None = None) -> bool:
        """Delete the object. Returns False when it was already absent."""
        ...


# -----------------------------------------------------------------------------
# Helpers shared by every stage
# -----------------------------------------------------------------------------


def dumps_json(doc: Any) -> bytes:
    return json.dumps(doc, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def read_json(store: ObjectStore, name: str) -> Any:
    """
    Read and parse a JSON object.

    Raises:
        ObjectNotFound: the object does not exist.
        ValueError: the object is not valid JSON.
    """
    raw = store.read(name)
    return json.loads(raw.decode("utf-8"))


def write_json(
    store: ObjectStore,
    name: str,
    doc: Any,
    *,
    preconditions: Preconditions | None = None,
) -> WriteResult:
    return store.write(name, dumps_json(doc), content_type=JSON_CONTENT_TYPE, preconditions=preconditions)


def stat_or_none(store: ObjectStore, name: str) -> ObjectMetadata | None:
    try:
        return store.stat(name)
    except ObjectNotFound:
        return None


def check_preconditions(name: str, current: ObjectMetadata | None, preconditions: Preconditions | None) -> None:
    """
    Evaluate preconditions against the live object's metadata.

    Backends call this while holding whatever exclusion they have.
    """
    if preconditions is None or preconditions.is_empty():
        return

    gen = preconditions.if_generation_match
    if gen is not None:
        if gen == 0:
            if current is not None:
                raise PreconditionFailed(f"object exists: {name}", name=name)
        elif current is None or current.generation != gen:
            raise PreconditionFailed(f"generation mismatch for {name}", name=name)

    metagen = preconditions.if_metageneration_match
    if metagen is not None:
        if current is None or current.metageneration != metagen:
            raise PreconditionFailed(f"metageneration mismatch for {name}", name=name)


__all__ = [
    "JSON_CONTENT_TYPE",
    "NDJSON_CONTENT_TYPE",
    "ObjectMetadata",
    "ObjectStore",
    "Preconditions",
    "WriteResult",
    "check_preconditions",
    "dumps_json",
    "read_json",
    "stat_or_none",
    "write_json",
]
