"""
Google Cloud Storage object store.

Compare-and-swap callers pass both the observed generation and the observed
metageneration. An overwrite creates a new generation whose metageneration
starts again at 1, so a metageneration precondition on its own would accept
a concurrent overwrite.
"""

from __future__ import annotations

from typing import Any

from google.api_core import exceptions as gexc
from google.cloud import storage

from ..errors import ObjectNotFound, PreconditionFailed, StoreUnavailable
from .base import JSON_CONTENT_TYPE, ObjectMetadata, Preconditions, WriteResult


def _precondition_kwargs(preconditions: Preconditions | None) -> dict[str, int]:
    kwargs: dict[str, int] = {}
    if preconditions is None:
        return kwargs
    if preconditions.if_generation_match is not None:
        kwargs["if_generation_match"] = preconditions.if_generation_match
    if preconditions.if_metageneration_match is not None:
        kwargs["if_metageneration_match"] = preconditions.if_metageneration_match
    return kwargs


class GcsObjectStore:
    def __init__(self, bucket: str, *, client: Any = None, project: str | None = None):
        if not bucket:
            raise ValueError("bucket name is required")
        self.bucket_name = bucket
        self.client = client if client is not None else storage.Client(project=project)
        self.bucket = self.client.bucket(bucket)

    def read(self, name: str) -> bytes:
        try:
            return self.bucket.blob(name).download_as_bytes()
        except gexc.NotFound as e:
            raise ObjectNotFound(f"no such object: {name}", name=name) from e
        except gexc.GoogleAPICallError as e:
            raise StoreUnavailable(f"read failed for {name}: {e}", name=name) from e

    def write(
        self,
        name: str,
        data: bytes,
        *,
        content_type: str = JSON_CONTENT_TYPE,
        preconditions: Preconditions | None = None,
    ) -> WriteResult:
        blob = self.bucket.blob(name)
        try:
            blob.upload_from_string(data, content_type=content_type, **_precondition_kwargs(preconditions))
        except gexc.PreconditionFailed as e:
            raise PreconditionFailed(f"precondition failed for {name}", name=name) from e
        except gexc.GoogleAPICallError as e:
            raise StoreUnavailable(f"write failed for {name}: {e}", name=name) from e
        return WriteResult(name=name, generation=int(blob.generation or 0), metageneration=int(blob.metageneration or 0))

    def stat(self, name: str) -> ObjectMetadata:
        try:
            blob = self.bucket.get_blob(name)
        except gexc.GoogleAPICallError as e:
            raise StoreUnavailable(f"stat failed for {name}: {e}", name=name) from e
        if blob is None:
            raise ObjectNotFound(f"no such object: {name}", name=name)
        return ObjectMetadata(
            name=name,
            generation=int(blob.generation),
            metageneration=int(blob.metageneration),
            size=int(blob.size or 0),
            updated=blob.updated,
            content_type=blob.content_type,
        )

    def list(self, prefix: str) -> list[str]:
        try:
            return sorted(b.name for b in self.client.list_blobs(self.bucket_name, prefix=prefix))
        except gexc.GoogleAPICallError as e:
            raise StoreUnavailable(f"list failed for {prefix}: {e}", name=prefix) from e

    def delete(self, name: str, *, preconditions: Preconditions | None = None) -> bool:
        try:
            self.bucket.blob(name).delete(**_precondition_kwargs(preconditions))
        except gexc.NotFound:
            return False
        except gexc.PreconditionFailed as e:
            raise PreconditionFailed(f"precondition failed for {name}", name=name) from e
        except gexc.GoogleAPICallError as e:
            raise StoreUnavailable(f"delete failed for {name}: {e}", name=name) from e
        return True
