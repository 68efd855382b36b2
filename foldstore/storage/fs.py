"""
Local filesystem object store.

Objects live at ``<root>/<name>``. Writes are atomic (write to a temp file,
then rename). Write-once (``if_generation_match=0``) is enforced exclusively
by hard-linking the temp file into place, which fails if the target exists.
Other preconditions are checked against the current stat without
exclusion, so concurrent compare-and-swap writers are not fully serialized
on this backend.

Generation is the file's ``st_mtime_ns``; metageneration is always 1.
"""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

from ..errors import ObjectNotFound, PreconditionFailed, StoreUnavailable
from .base import (
    JSON_CONTENT_TYPE,
    ObjectMetadata,
    Preconditions,
    WriteResult,
    check_preconditions,
)

TEMP_SUFFIX = ".tmp"


class FsObjectStore:
    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, name: str) -> Path:
        parts = name.split("/")
        if not name or name.startswith("/") or any(p in ("", ".", "..") for p in parts):
            raise ValueError(f"invalid object name: {name!r}")
        return self.root.joinpath(*parts)

    def _meta(self, name: str, path: Path) -> ObjectMetadata:
        st = path.stat()
        return ObjectMetadata(
            name=name,
            generation=st.st_mtime_ns,
            metageneration=1,
            size=st.st_size,
            updated=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def read(self, name: str) -> bytes:
        path = self._path(name)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise ObjectNotFound(f"no such object: {name}", name=name) from e
        except IsADirectoryError as e:
            raise ObjectNotFound(f"not an object: {name}", name=name) from e
        except OSError as e:
            raise StoreUnavailable(f"read failed for {name}: {e}", name=name) from e

    def write(
        self,
        name: str,
        data: bytes,
        *,
        content_type: str = JSON_CONTENT_TYPE,
        preconditions: Preconditions | None = None,
    ) -> WriteResult:
        path = self._path(name)
        temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}{TEMP_SUFFIX}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            temp_path.write_bytes(data)
            if preconditions is not None and preconditions.if_generation_match == 0:
                try:
                    os.link(temp_path, path)
                except FileExistsError as e:
                    raise PreconditionFailed(f"object exists: {name}", name=name) from e
                finally:
                    temp_path.unlink(missing_ok=True)
            else:
                check_preconditions(name, self._stat_or_none(name, path), preconditions)
                os.replace(temp_path, path)
            meta = self._meta(name, path)
        except OSError as e:
            temp_path.unlink(missing_ok=True)
            raise StoreUnavailable(f"write failed for {name}: {e}", name=name) from e
        except PreconditionFailed:
            temp_path.unlink(missing_ok=True)
            raise
        return WriteResult(name=name, generation=meta.generation, metageneration=meta.metageneration)

    def _stat_or_none(self, name: str, path: Path) -> ObjectMetadata | None:
        try:
            return self._meta(name, path)
        except FileNotFoundError:
            return None

    def stat(self, name: str) -> ObjectMetadata:
        path = self._path(name)
        try:
            if not path.is_file():
                raise FileNotFoundError(name)
            return self._meta(name, path)
        except FileNotFoundError as e:
            raise ObjectNotFound(f"no such object: {name}", name=name) from e
        except OSError as e:
            raise StoreUnavailable(f"stat failed for {name}: {e}", name=name) from e

    def list(self, prefix: str) -> list[str]:
        # The prefix may end mid-segment (".../_index_shard="), so walk from
        # its last complete directory and filter by string prefix.
        head, sep, _ = prefix.rpartition("/")
        base = self.root.joinpath(*head.split("/")) if sep and head else self.root
        if not base.is_dir():
            return []

        names: list[str] = []
        for dirpath, _dirnames, filenames in os.walk(base):
            for filename in filenames:
                if filename.endswith(TEMP_SUFFIX):
                    continue
                rel = Path(dirpath, filename).relative_to(self.root).as_posix()
                if rel.startswith(prefix):
                    names.append(rel)
        names.sort()
        return names

    def delete(self, name: str, *, preconditions: Preconditions | None = None) -> bool:
        path = self._path(name)
        current = self._stat_or_none(name, path)
        if current is None:
            return False
        check_preconditions(name, current, preconditions)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreUnavailable(f"delete failed for {name}: {e}", name=name) from e
        return True
