"""History commands - append documents as history events."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from ..config import Settings
from ..envelope import Document, ENTITY_BY_SEGMENT, SEGMENTS, new_envelope
from ..errors import IdentifierCollision, StoreError
from ..outcome import StageOutcome
from ..pipeline import Pipeline
from ..validation import SchemaRegistry, validate_candidate


def prepare_document(body: dict[str, Any], entity: str, entity_id: str, env: str) -> Document:
    """
    Fill in the envelope of `body` for a new history event.

    Raises:
        ValueError: the body names a different id, entity or env.
    """
    for key, expected in (("id", entity_id), ("entity", entity), ("env", env)):
        if key in body and body[key] != expected:
            raise ValueError(f"document {key} {body[key]!r} does not match {expected!r}")

    base = new_envelope(entity_id, entity, env, schema_version=str(body.get("schema_version") or "1.0.0"))
    doc = {**body, **base}
    if body.get("created_at"):
        doc["created_at"] = body["created_at"]
    return doc


def outcome_table(outcomes: list[StageOutcome], *, title: str = "Pipeline") -> Table:
    table = Table(title=title)
    table.add_column("Stage", style="cyan", no_wrap=True)
    table.add_column("Result")
    table.add_column("Detail", style="dim")

    for outcome in outcomes:
        if outcome.skipped:
            style = "red" if outcome.retryable else "yellow"
            result = f"[{style}]skipped: {outcome.reason}[/{style}]"
            detail = outcome.error or ""
        else:
            result = "[green]done[/green]"
            detail = ", ".join(f"{k}={_short(v)}" for k, v in outcome.result.items())
        table.add_row(outcome.stage, result, detail)
    return table


def _short(value: Any) -> str:
    if isinstance(value, list):
        return str(len(value))
    return str(value)


def _append(
    console: Console,
    pipeline: Pipeline,
    registry: SchemaRegistry,
    doc: Document,
    *,
    cascade: bool,
) -> list[StageOutcome] | None:
    result = validate_candidate(doc, registry)
    if not result.valid:
        console.print(f"[red]Invalid document {doc.get('entity')}/{doc.get('id')}:[/red]")
        for error in result.errors:
            console.print(f"  - {error}")
        return None

    try:
        written, outcomes = pipeline.ingest(doc, cascade=cascade)
    except (IdentifierCollision, StoreError) as e:
        console.print(f"[red]Write failed:[/red] {e}")
        return None

    console.print(f"[green]Appended[/green] {written.name}")
    return outcomes


def run_write_history(
    settings: Settings,
    env: str,
    entity: str,
    entity_id: str,
    doc_file: Path,
    *,
    snapshot: bool = True,
) -> int:
    """Append one document as a history event. Returns exit code."""
    console = Console(stderr=True)

    try:
        body = json.loads(doc_file.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        console.print(f"[red]Cannot read {doc_file}:[/red] {e}")
        return 1
    if not isinstance(body, dict):
        console.print(f"[red]{doc_file} must contain a JSON object[/red]")
        return 1

    try:
        doc = prepare_document(body, entity, entity_id, env)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    pipeline = Pipeline.from_settings(settings)
    outcomes = _append(console, pipeline, SchemaRegistry(settings.schemas_dir), doc, cascade=snapshot)
    if outcomes is None:
        return 1
    if outcomes:
        console.print(outcome_table(outcomes))
    return 0


def run_seed_dir(settings: Settings, env: str, root: Path, *, snapshots: bool = True) -> int:
    """
    Append every ``<root>/<entity>/*.json`` document.

    Directory names may be entity kinds (``venture``) or their path
    segments (``ventures``). Ids default to the file stem.
    """
    console = Console(stderr=True)
    pipeline = Pipeline.from_settings(settings)
    registry = SchemaRegistry(settings.schemas_dir)

    appended = 0
    failed = 0
    for entity_dir in sorted(p for p in root.iterdir() if p.is_dir()):
        entity = entity_dir.name if entity_dir.name in SEGMENTS else ENTITY_BY_SEGMENT.get(entity_dir.name)
        if entity is None:
            console.print(f"[yellow]Skipping unknown entity directory: {entity_dir.name}[/yellow]")
            continue

        for doc_file in sorted(entity_dir.glob("*.json")):
            try:
                body = json.loads(doc_file.read_text(encoding="utf-8"))
                if not isinstance(body, dict):
                    raise ValueError("not a JSON object")
                doc = prepare_document(body, entity, str(body.get("id") or doc_file.stem), env)
            except (OSError, ValueError) as e:
                console.print(f"[red]{doc_file}:[/red] {e}")
                failed += 1
                continue

            outcomes = _append(console, pipeline, registry, doc, cascade=snapshots)
            if outcomes is None:
                failed += 1
                continue
            appended += 1
            for outcome in outcomes:
                if outcome.skipped and outcome.retryable:
                    console.print(f"  [red]{outcome.stage}: {outcome.reason}[/red] {outcome.error or ''}")

    console.print()
    console.print(f"Seeded {appended} document(s), {failed} failed")
    return 1 if failed else 0
