"""
Manifest compactor.

Folds per-id manifests into NDJSON shards keyed by ``shard_key(id)``.

A full rebuild rewrites every shard from the per-id manifests and removes
shards that no longer hold any record. A partial rebuild (``since``) reads
only manifests updated since then and merges them by id into the shards
they belong to. Every shard write is compare-and-swap against the shard
as it was read.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from loguru import logger

from .errors import ObjectNotFound, StoreUnavailable
from .manifest import ManifestRecord
from .paths import SHARD_SUFFIX, manifest_prefix, shard_key, shard_path, shard_prefix
from .reader import iter_ndjson
from .storage import NDJSON_CONTENT_TYPE, ObjectStore, Preconditions, read_json, stat_or_none
from .util import parse_since, try_parse_timestamp


@dataclass
class CompactionReport:
    env: str
    entity: str
    mode: Literal["full", "partial"]
    collected: int = 0
    shards: dict[str, int] = field(default_factory=dict)
    removed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "env": self.env,
            "entity": self.entity,
            "mode": self.mode,
            "collected": self.collected,
            "shards": dict(self.shards),
            "removed": list(self.removed),
        }


def render_ndjson(records: list[ManifestRecord]) -> bytes:
    lines = [json.dumps(r, ensure_ascii=False, separators=(",", ":")) for r in records]
    return ("\n".join(lines) + ("\n" if lines else "")).encode("utf-8")


class ManifestCompactor:
    def __init__(self, store: ObjectStore):
        self.store = store

    def collect(self, env: str, entity: str, since: datetime | None = None) -> list[ManifestRecord]:
        records: list[ManifestRecord] = []
        for name in self.store.list(manifest_prefix(env, entity)):
            if not name.endswith(".json"):
                continue
            try:
                record = read_json(self.store, name)
            except (ObjectNotFound, ValueError) as e:
                logger.bind(object=name, error=str(e)).warning("skipping unreadable manifest")
                continue
            if not isinstance(record, dict) or not isinstance(record.get("id"), str):
                continue
            if since is not None:
                updated = try_parse_timestamp(record.get("updated_at"))
                if updated is None or updated < since:
                    continue
            records.append(record)
        return records

    def compact(
        self,
        env: str,
        entity: str,
        *,
        shard_count: int = 256,
        since: str | datetime | None = None,
    ) -> CompactionReport:
        """
        Rebuild the manifest shards for one entity kind.

        Raises:
            PreconditionFailed: a shard changed while it was being rebuilt.
            StoreUnavailable: the store failed.
        """
        since_dt = parse_since(since) if isinstance(since, str) else since
        report = CompactionReport(env=env, entity=entity, mode="full" if since_dt is None else "partial")
        records = self.collect(env, entity, since_dt)
        report.collected = len(records)

        groups: dict[str, list[ManifestRecord]] = {}
        for record in records:
            groups.setdefault(shard_key(record["id"], shard_count), []).append(record)

        for key in sorted(groups):
            path = shard_path(env, entity, key)
            report.shards[key] = self._write_shard(path, groups[key], merge=since_dt is not None)

        if since_dt is None:
            report.removed = self._remove_empty_shards(env, entity, keep={shard_path(env, entity, k) for k in groups})

        logger.bind(stage="compactor", env=env, entity=entity, shards=len(report.shards)).info("manifest shards compacted")
        return report

    def _write_shard(self, path: str, changed: list[ManifestRecord], *, merge: bool) -> int:
        meta = stat_or_none(self.store, path)
        by_id: dict[str, ManifestRecord] = {}
        if merge and meta is not None:
            try:
                text = self.store.read(path).decode("utf-8")
            except ObjectNotFound as e:
                raise StoreUnavailable(f"shard vanished during compaction: {path}", name=path) from e
            for _lineno, record in iter_ndjson(text):
                if isinstance(record.get("id"), str):
                    by_id[record["id"]] = record
        for record in changed:
            by_id[record["id"]] = record

        records = list(by_id.values())
        self.store.write(
            path,
            render_ndjson(records),
            content_type=NDJSON_CONTENT_TYPE,
            preconditions=Preconditions.for_current(meta),
        )
        return len(records)

    def _remove_empty_shards(self, env: str, entity: str, *, keep: set[str]) -> list[str]:
        removed: list[str] = []
        for name in self.store.list(shard_prefix(env, entity)):
            if name.endswith(SHARD_SUFFIX) and name not in keep and self.store.delete(name):
                removed.append(name)
        return removed
