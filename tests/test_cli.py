"""
Tests for the CLI commands.

The run_* functions are exercised directly against an fs-backed store;
the click group is checked for option handling and exit codes.
"""

from __future__ import annotations

import json
import shutil
from pathlib import Path

import pytest
from click.testing import CliRunner

from foldstore.cli import cli
from foldstore.commands.compact_cmd import run_compact
from foldstore.commands.history_cmd import prepare_document, run_seed_dir, run_write_history
from foldstore.commands.list_cmd import run_list
from foldstore.commands.rebuild_cmd import rebuild_entity, run_rebuild
from foldstore.commands.rules_cmd import run_rules_check
from foldstore.config import Settings
from foldstore.storage import FsObjectStore, read_json

RULES_TOML = """
[[rules]]
id = "low-mrr"

[rules.match]
entity = "venture"
conditions = [
    { path = "metrics.mrr", op = "lt", value = 1000 },
    { path = "status", op = "eq", value = "active" },
]

[rules.action]
channel = "log"
severity = "warn"
"""


@pytest.fixture
def fs_settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_backend="fs",
        data_root=tmp_path / "data",
        schemas_dir=tmp_path / "schemas",
        log_json=False,
    )


def _write(path: Path, doc) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


# -----------------------------------------------------------------------------
# write-history and seed-dir
# -----------------------------------------------------------------------------


def test_prepare_document_fills_envelope() -> None:
    doc = prepare_document({"title": "Acme", "created_at": "2025-12-01T00:00:00Z"}, "venture", "acme", "dev")
    assert doc["id"] == "acme" and doc["entity"] == "venture" and doc["env"] == "dev"
    assert doc["schema_version"] == "1.0.0"
    assert doc["created_at"] == "2025-12-01T00:00:00Z"
    assert doc["title"] == "Acme"


def test_prepare_document_rejects_mismatch() -> None:
    with pytest.raises(ValueError, match="does not match"):
        prepare_document({"id": "other"}, "venture", "acme", "dev")


def test_write_history_materializes(fs_settings, tmp_path: Path, capsys) -> None:
    doc_file = _write(tmp_path / "acme.json", {"title": "Acme", "status": "active"})

    exit_code = run_write_history(fs_settings, "dev", "venture", "acme", doc_file)

    assert exit_code == 0
    store = FsObjectStore(fs_settings.data_root)
    assert read_json(store, "env/dev/snapshots/ventures/acme.json")["title"] == "Acme"
    assert store.list("env/dev/indices/") == ["env/dev/indices/ventures/by-status/active/acme.json"]
    assert "Appended" in capsys.readouterr().err


def test_write_history_without_snapshot(fs_settings, tmp_path: Path) -> None:
    doc_file = _write(tmp_path / "acme.json", {"title": "Acme"})

    assert run_write_history(fs_settings, "dev", "venture", "acme", doc_file, snapshot=False) == 0

    store = FsObjectStore(fs_settings.data_root)
    assert len(store.list("env/dev/ventures/acme/history/")) == 1
    assert store.list("env/dev/snapshots/") == []


def test_write_history_rejects_bad_input(fs_settings, tmp_path: Path) -> None:
    not_object = _write(tmp_path / "list.json", [1, 2])
    mismatch = _write(tmp_path / "other.json", {"env": "prod"})

    assert run_write_history(fs_settings, "dev", "venture", "acme", not_object) == 1
    assert run_write_history(fs_settings, "dev", "venture", "acme", mismatch) == 1


def test_write_history_schema_failure(fs_settings, tmp_path: Path, capsys) -> None:
    _write(fs_settings.schemas_dir / "venture" / "v1.0.0.schema.json", {"type": "object", "required": ["title"]})
    doc_file = _write(tmp_path / "acme.json", {"status": "active"})

    assert run_write_history(fs_settings, "dev", "venture", "acme", doc_file) == 1
    assert "Invalid document" in capsys.readouterr().err
    assert FsObjectStore(fs_settings.data_root).list("env/") == []


def test_seed_dir(fs_settings, tmp_path: Path) -> None:
    root = tmp_path / "seed"
    _write(root / "ventures" / "acme.json", {"title": "Acme", "status": "active"})
    _write(root / "idea" / "i1.json", {"id": "idea-1", "stage": "validation"})
    _write(root / "unknown" / "x.json", {"title": "ignored"})

    assert run_seed_dir(fs_settings, "dev", root) == 0

    store = FsObjectStore(fs_settings.data_root)
    assert store.list("env/dev/snapshots/") == [
        "env/dev/snapshots/ideas/idea-1.json",
        "env/dev/snapshots/ventures/acme.json",
    ]


def test_seed_dir_reports_failures(fs_settings, tmp_path: Path) -> None:
    root = tmp_path / "seed"
    _write(root / "ventures" / "good.json", {"title": "Good"})
    _write(root / "ventures" / "bad.json", ["not", "an", "object"])

    assert run_seed_dir(fs_settings, "dev", root, snapshots=False) == 1
    assert len(FsObjectStore(fs_settings.data_root).list("env/dev/ventures/")) == 1


# -----------------------------------------------------------------------------
# list, compact and rebuild
# -----------------------------------------------------------------------------


@pytest.fixture
def seeded(fs_settings, tmp_path: Path) -> Settings:
    root = tmp_path / "seed"
    _write(root / "ventures" / "acme.json", {"title": "Acme", "status": "active", "lead": "Jane"})
    _write(root / "ventures" / "beta.json", {"title": "Beta", "status": "idea"})
    assert run_seed_dir(fs_settings, "dev", root) == 0
    return fs_settings


def test_list_json(seeded, capsys) -> None:
    capsys.readouterr()
    assert run_list(seeded, "dev", "venture", output_json=True) == 0
    items = json.loads(capsys.readouterr().out)["items"]
    assert sorted(i["id"] for i in items) == ["acme", "beta"]


def test_list_table_and_limit(seeded, capsys) -> None:
    capsys.readouterr()
    assert run_list(seeded, "dev", "venture", limit=1) == 0
    assert "1 record(s)" in capsys.readouterr().err


def test_list_invalid_since(seeded) -> None:
    assert run_list(seeded, "dev", "venture", since="whenever") == 1


def test_compact_then_list(seeded, capsys) -> None:
    assert run_compact(seeded, "dev", "venture", 4) == 0
    shards = list((seeded.data_root / "env" / "dev" / "manifests" / "ventures").glob("_index_shard=*.ndjson"))
    assert shards

    capsys.readouterr()
    run_list(seeded, "dev", "venture", output_json=True)
    assert len(json.loads(capsys.readouterr().out)["items"]) == 2


def test_compact_rejects_bad_arguments(seeded) -> None:
    assert run_compact(seeded, "dev", "venture", 0) == 1
    assert run_compact(seeded, "dev", "venture", 4, since="whenever") == 1


def test_rebuild_indices_restores_pointers(seeded) -> None:
    shutil.rmtree(seeded.data_root / "env" / "dev" / "indices")

    assert run_rebuild(seeded, "dev", "venture", indices=True) == 0

    store = FsObjectStore(seeded.data_root)
    assert "env/dev/indices/ventures/by-lead/jane/acme.json" in store.list("env/dev/indices/")


def test_rebuild_manifests_only(seeded) -> None:
    shutil.rmtree(seeded.data_root / "env" / "dev" / "indices")
    shutil.rmtree(seeded.data_root / "env" / "dev" / "manifests")

    assert run_rebuild(seeded, "dev", "all", indices=False) == 0

    store = FsObjectStore(seeded.data_root)
    assert len(store.list("env/dev/manifests/ventures/by-id/")) == 2
    assert store.list("env/dev/indices/") == []


def test_rebuild_entity_counts_unreadable_snapshots(seeded) -> None:
    store = FsObjectStore(seeded.data_root)
    store.write("env/dev/snapshots/ventures/broken.json", b"{nope")
    projected, skipped, _removed = rebuild_entity(store, "dev", "venture", indices=True)
    assert (projected, skipped) == (2, 1)


# -----------------------------------------------------------------------------
# rules check
# -----------------------------------------------------------------------------


def test_rules_check_json(tmp_path: Path, make_doc, capsys) -> None:
    rules_file = tmp_path / "rules.toml"
    rules_file.write_text(RULES_TOML, encoding="utf-8")
    snapshot_file = _write(tmp_path / "snap.json", make_doc(status="active", metrics={"mrr": 400}))

    assert run_rules_check(rules_file, snapshot_file, output_json=True) == 0

    [result] = json.loads(capsys.readouterr().out)
    assert result["ruleId"] == "low-mrr"
    assert result["triggered"] is True
    assert result["failed"] == []


def test_rules_check_quiet(tmp_path: Path, make_doc, capsys) -> None:
    rules_file = tmp_path / "rules.toml"
    rules_file.write_text(RULES_TOML, encoding="utf-8")
    snapshot_file = _write(tmp_path / "snap.json", make_doc(status="paused", metrics={"mrr": 400}))

    assert run_rules_check(rules_file, snapshot_file) == 0
    assert "quiet" in capsys.readouterr().err


def test_rules_check_invalid_file(tmp_path: Path, make_doc) -> None:
    rules_file = _write(tmp_path / "rules.json", {"id": "x", "match": {"entity": "spaceship"}})
    snapshot_file = _write(tmp_path / "snap.json", make_doc())
    assert run_rules_check(rules_file, snapshot_file) == 1


# -----------------------------------------------------------------------------
# Click group
# -----------------------------------------------------------------------------


def test_gcs_backend_needs_bucket() -> None:
    result = CliRunner().invoke(cli, ["list", "--entity", "venture"])
    assert result.exit_code == 2


def test_rules_commands_need_no_bucket(tmp_path: Path, make_doc) -> None:
    rules_file = tmp_path / "rules.toml"
    rules_file.write_text(RULES_TOML, encoding="utf-8")
    snapshot_file = _write(tmp_path / "snap.json", make_doc())

    result = CliRunner().invoke(cli, ["rules", "check", "--rules", str(rules_file), "--snapshot", str(snapshot_file)])
    assert result.exit_code == 0


def test_watch_requires_fs_backend() -> None:
    result = CliRunner().invoke(cli, ["--backend", "memory", "watch"])
    assert result.exit_code == 1


def test_cli_write_and_list(tmp_path: Path) -> None:
    doc_file = _write(tmp_path / "acme.json", {"title": "Acme"})
    data_root = tmp_path / "data"
    runner = CliRunner()

    written = runner.invoke(
        cli,
        ["--backend", "fs", "--data-root", str(data_root), "write-history", "--entity", "venture", "--id", "acme", "--file", str(doc_file)],
    )
    assert written.exit_code == 0

    listed = runner.invoke(cli, ["--backend", "fs", "--data-root", str(data_root), "list", "--entity", "venture"])
    assert listed.exit_code == 0
    assert (data_root / "env" / "dev" / "manifests" / "ventures" / "by-id" / "acme.json").is_file()


def test_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "foldstore" in result.output
