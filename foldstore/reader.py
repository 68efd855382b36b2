"""
Manifest listing.

Sharded NDJSON manifests are preferred. When no shard yields a record the
reader falls back to the per-id manifest objects. Malformed shard lines and
unreadable per-id objects are skipped; they never fail the listing.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterator

from loguru import logger

from .errors import ObjectNotFound, StoreUnavailable
from .manifest import ManifestRecord
from .paths import SHARD_SUFFIX, manifest_prefix, shard_prefix
from .storage import ObjectStore, read_json
from .util import parse_since, try_parse_timestamp


def iter_ndjson(text: str) -> Iterator[tuple[int, Any]]:
    """
    Yield ``(line_number, record)`` for each parseable line.

    Blank lines are ignored; malformed lines and non-object records are
    logged and skipped.
    """
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except ValueError:
            logger.bind(line=lineno).warning("skipping malformed manifest line")
            continue
        if not isinstance(record, dict):
            logger.bind(line=lineno).warning("skipping non-object manifest line")
            continue
        yield lineno, record


def _is_recent(record: ManifestRecord, since: datetime | None) -> bool:
    if since is None:
        return True
    updated = try_parse_timestamp(record.get("updated_at"))
    return updated is not None and updated >= since


class ManifestReader:
    def __init__(self, store: ObjectStore):
        self.store = store

    def list(
        self,
        env: str,
        entity: str,
        *,
        since: datetime | str | None = None,
        limit: int | None = None,
    ) -> list[ManifestRecord]:
        """
        List manifest records for one entity kind.

        Args:
            env: Environment
            entity: Entity kind
            since: Only records with ``updated_at`` at or after this instant
                (RFC 3339 or a relative duration such as ``7d``)
            limit: Maximum number of records (None or 0 for no limit)
        """
        since_dt = parse_since(since) if isinstance(since, str) else since
        records = self.list_from_shards(env, entity, since=since_dt, limit=limit)
        if records:
            return records
        return self.list_from_per_id(env, entity, since=since_dt, limit=limit)

    def list_from_shards(
        self,
        env: str,
        entity: str,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[ManifestRecord]:
        out: list[ManifestRecord] = []
        for name in self.store.list(shard_prefix(env, entity)):
            if not name.endswith(SHARD_SUFFIX):
                continue
            try:
                text = self.store.read(name).decode("utf-8")
            except (ObjectNotFound, StoreUnavailable, UnicodeDecodeError) as e:
                logger.bind(object=name, error=str(e)).warning("skipping unreadable manifest shard")
                continue
            for _lineno, record in iter_ndjson(text):
                if not _is_recent(record, since):
                    continue
                out.append(record)
                if limit and len(out) >= limit:
                    return out
        return out

    def list_from_per_id(
        self,
        env: str,
        entity: str,
        *,
        since: datetime | None = None,
        limit: int | None = None,
    ) -> list[ManifestRecord]:
        out: list[ManifestRecord] = []
        for name in self.store.list(manifest_prefix(env, entity)):
            if not name.endswith(".json"):
                continue
            try:
                record = read_json(self.store, name)
            except (ObjectNotFound, StoreUnavailable, ValueError) as e:
                logger.bind(object=name, error=str(e)).warning("skipping unreadable manifest")
                continue
            if not isinstance(record, dict) or not _is_recent(record, since):
                continue
            out.append(record)
            if limit and len(out) >= limit:
                break
        return out
