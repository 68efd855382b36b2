"""Tests for manifest listing and shard compaction."""

from __future__ import annotations

import pytest

from foldstore.compactor import ManifestCompactor, render_ndjson
from foldstore.paths import manifest_path, shard_key, shard_path, shard_prefix
from foldstore.reader import ManifestReader, iter_ndjson
from foldstore.storage import write_json


def _manifest(store, id: str, updated_at: str = "2026-01-10T12:00:00.000Z", **fields) -> dict:
    record = {"id": id, "ptr": f"env/dev/snapshots/ventures/{id}.json", "updated_at": updated_at, **fields}
    write_json(store, manifest_path("dev", "venture", id), record)
    return record


def _ids(records) -> list[str]:
    return sorted(r["id"] for r in records)


# -----------------------------------------------------------------------------
# Reader
# -----------------------------------------------------------------------------


def test_iter_ndjson_skips_bad_lines() -> None:
    text = '{"id": "a"}\n\nnot json\n[1, 2]\n{"id": "b"}\n'
    assert [(n, r["id"]) for n, r in iter_ndjson(text)] == [(1, "a"), (5, "b")]


def test_per_id_fallback(store) -> None:
    _manifest(store, "v1")
    _manifest(store, "v2")
    store.write("env/dev/manifests/ventures/by-id/broken.json", b"{nope")

    assert _ids(ManifestReader(store).list("dev", "venture")) == ["v1", "v2"]


def test_shards_are_preferred(store) -> None:
    _manifest(store, "v1")
    ManifestCompactor(store).compact("dev", "venture", shard_count=1)
    _manifest(store, "v2")

    assert _ids(ManifestReader(store).list("dev", "venture")) == ["v1"]


def test_malformed_shard_lines_are_skipped(store) -> None:
    store.write(shard_path("dev", "venture", "0"), b'{"id":"v1"}\n{oops\n{"id":"v2"}\n')
    assert _ids(ManifestReader(store).list("dev", "venture")) == ["v1", "v2"]


def test_since_and_limit(store) -> None:
    _manifest(store, "v1", "2026-01-01T00:00:00Z")
    _manifest(store, "v2", "2026-02-01T00:00:00Z")
    _manifest(store, "v3", "2026-03-01T00:00:00Z")
    reader = ManifestReader(store)

    assert _ids(reader.list("dev", "venture", since="2026-02-01T00:00:00Z")) == ["v2", "v3"]
    assert len(reader.list("dev", "venture", limit=2)) == 2
    assert len(reader.list("dev", "venture", limit=0)) == 3


def test_relative_since(store) -> None:
    _manifest(store, "old", "2000-01-01T00:00:00Z")
    _manifest(store, "fresh", "2999-01-01T00:00:00Z")
    assert _ids(ManifestReader(store).list("dev", "venture", since="7d")) == ["fresh"]


def test_bad_since_raises(store) -> None:
    with pytest.raises(ValueError):
        ManifestReader(store).list("dev", "venture", since="yesterday-ish")


def test_empty_listing(store) -> None:
    assert ManifestReader(store).list("prod", "idea") == []


# -----------------------------------------------------------------------------
# Compactor
# -----------------------------------------------------------------------------


def test_render_ndjson() -> None:
    assert render_ndjson([]) == b""
    assert render_ndjson([{"id": "a"}, {"id": "b"}]) == b'{"id":"a"}\n{"id":"b"}\n'


def test_full_compaction(store) -> None:
    for id in ("v1", "v2", "v3"):
        _manifest(store, id)

    report = ManifestCompactor(store).compact("dev", "venture", shard_count=4)

    assert report.mode == "full"
    assert report.collected == 3
    assert sum(report.shards.values()) == 3
    for id in ("v1", "v2", "v3"):
        text = store.read(shard_path("dev", "venture", shard_key(id, 4))).decode("utf-8")
        assert f'"id":"{id}"' in text


def test_full_compaction_removes_empty_shards(store) -> None:
    _manifest(store, "v1")
    _manifest(store, "v2")
    compactor = ManifestCompactor(store)
    first = compactor.compact("dev", "venture", shard_count=256)
    old_shards = sorted(shard_path("dev", "venture", k) for k in first.shards)

    report = compactor.compact("dev", "venture", shard_count=1)

    assert sorted(report.removed) == old_shards
    assert store.list(shard_prefix("dev", "venture")) == [shard_path("dev", "venture", "0")]


def test_compacting_nothing_clears_shards(store) -> None:
    store.write(shard_path("dev", "venture", "ab"), b'{"id":"gone"}\n')
    report = ManifestCompactor(store).compact("dev", "venture")
    assert report.collected == 0
    assert store.list(shard_prefix("dev", "venture")) == []


def test_partial_compaction_merges_by_id(store) -> None:
    _manifest(store, "v1", title="old")
    _manifest(store, "v2")
    compactor = ManifestCompactor(store)
    compactor.compact("dev", "venture", shard_count=1)

    _manifest(store, "v1", "2026-03-01T00:00:00Z", title="new")
    _manifest(store, "v3", "2026-03-02T00:00:00Z")
    report = compactor.compact("dev", "venture", shard_count=1, since="2026-02-01T00:00:00Z")

    assert report.mode == "partial"
    assert report.collected == 2
    assert report.shards == {"0": 3}
    assert report.removed == []
    records = {r["id"]: r for r in ManifestReader(store).list("dev", "venture")}
    assert records["v1"]["title"] == "new"
    assert set(records) == {"v1", "v2", "v3"}
