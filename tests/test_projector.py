"""Tests for the manifest and index projector."""

from __future__ import annotations

from foldstore.errors import StoreUnavailable
from foldstore.projector import Projector
from foldstore.storage import read_json, write_json

SNAPSHOT = "env/dev/snapshots/ventures/v1.json"
MANIFEST = "env/dev/manifests/ventures/by-id/v1.json"


def _commit(store, doc) -> str:
    name = f"env/{doc['env']}/snapshots/ventures/{doc['id']}.json"
    write_json(store, name, doc)
    return name


def test_projects_manifest_and_pointers(store, make_doc) -> None:
    name = _commit(store, make_doc(title="Acme", status="active", lead="Jane"))

    outcome = Projector(store).handle(name)

    assert not outcome.skipped
    assert outcome.result["manifest"] == MANIFEST
    assert read_json(store, MANIFEST)["title"] == "Acme"
    assert store.list("env/dev/indices/") == [
        "env/dev/indices/ventures/by-lead/jane/v1.json",
        "env/dev/indices/ventures/by-status/active/v1.json",
    ]


def test_changed_value_removes_old_pointer(store, make_doc) -> None:
    projector = Projector(store)
    projector.handle(_commit(store, make_doc(status="idea")))

    outcome = projector.handle(_commit(store, make_doc(status="active", updated_at="2026-01-11T00:00:00Z")))

    assert outcome.result["removed"] == ["env/dev/indices/ventures/by-status/idea/v1.json"]
    assert store.list("env/dev/indices/ventures/by-status/") == ["env/dev/indices/ventures/by-status/active/v1.json"]


def test_dropped_attribute_removes_pointer(store, make_doc) -> None:
    projector = Projector(store)
    projector.handle(_commit(store, make_doc(lead="Jane", milestones=[{"dueDate": "2026-05-01"}])))

    projector.handle(_commit(store, make_doc(updated_at="2026-01-11T00:00:00Z")))

    assert store.list("env/dev/indices/") == []


def test_cleanup_leaves_other_ids_alone(store, make_doc) -> None:
    projector = Projector(store)
    projector.handle(_commit(store, make_doc(id="v2", status="idea")))
    projector.handle(_commit(store, make_doc(status="idea")))
    projector.handle(_commit(store, make_doc(status="active", updated_at="2026-01-11T00:00:00Z")))

    assert store.list("env/dev/indices/ventures/by-status/") == [
        "env/dev/indices/ventures/by-status/active/v1.json",
        "env/dev/indices/ventures/by-status/idea/v2.json",
    ]


def test_manifest_only_projection(store, make_doc) -> None:
    outcome = Projector(store).project(make_doc(status="active"), indices=False)
    assert outcome.result["pointers"] == []
    assert store.list("env/dev/") == [MANIFEST]


def test_skips(store, make_doc) -> None:
    projector = Projector(store)
    assert projector.handle("env/dev/ventures/v1/history/x.json").reason == "not_snapshot"
    assert projector.handle(SNAPSHOT).reason == "read_failed"

    write_json(store, SNAPSHOT, make_doc(id="v9"))
    assert projector.handle(SNAPSHOT).reason == "envelope_mismatch"


def test_store_failure_is_retryable(store, make_doc) -> None:
    class FailingIndexWrites:
        def __init__(self, inner):
            self.inner = inner

        def __getattr__(self, attr):
            return getattr(self.inner, attr)

        def write(self, name, data, **kwargs):
            if "/indices/" in name:
                raise StoreUnavailable("down", name=name)
            return self.inner.write(name, data, **kwargs)

    name = _commit(store, make_doc(status="active"))
    outcome = Projector(FailingIndexWrites(store)).handle(name)

    assert outcome.reason == "write_failed"
    assert outcome.retryable


CAP_TABLES = "env/dev/indices/cap_tables/by-venture/"


def test_moved_cap_table_leaves_no_pointer_behind(store, make_doc) -> None:
    projector = Projector(store)
    projector.project(make_doc(entity="cap_table", id="c1", ventureId="A"))

    outcome = projector.project(make_doc(entity="cap_table", id="c1", ventureId="B", updated_at="2026-01-11T00:00:00Z"))

    assert outcome.result["removed"] == [f"{CAP_TABLES}A.json"]
    assert store.list(CAP_TABLES) == [f"{CAP_TABLES}B.json"]
    assert read_json(store, f"{CAP_TABLES}B.json")["id"] == "c1"


def test_cap_table_cleanup_keeps_other_cap_tables(store, make_doc) -> None:
    projector = Projector(store)
    projector.project(make_doc(entity="cap_table", id="c1", ventureId="A"))
    projector.project(make_doc(entity="cap_table", id="c2", ventureId="A"))
    projector.project(make_doc(entity="cap_table", id="c3", ventureId="C"))

    outcome = projector.project(make_doc(entity="cap_table", id="c1", ventureId="B", updated_at="2026-01-11T00:00:00Z"))

    assert outcome.result["removed"] == []
    assert store.list(CAP_TABLES) == [f"{CAP_TABLES}A.json", f"{CAP_TABLES}B.json", f"{CAP_TABLES}C.json"]
    assert read_json(store, f"{CAP_TABLES}A.json")["id"] == "c2"


def test_cap_table_cleanup_skips_rewritten_pointer(store, make_doc) -> None:
    projector = Projector(store)
    projector.project(make_doc(entity="cap_table", id="c1", ventureId="A"))
    stale = f"{CAP_TABLES}A.json"
    read = store.read

    def read_then_rewrite(name: str) -> bytes:
        data = read(name)
        if name == stale:
            write_json(store, stale, {"id": "c2", "ventureId": "A"})
        return data

    store.read = read_then_rewrite
    outcome = projector.project(make_doc(entity="cap_table", id="c1", ventureId="B", updated_at="2026-01-11T00:00:00Z"))
    del store.read

    assert outcome.result["removed"] == []
    assert read_json(store, stale)["id"] == "c2"
