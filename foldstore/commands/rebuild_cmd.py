"""Rebuild commands - re-project existing snapshots."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from ..config import Settings
from ..envelope import ENTITY_KINDS
from ..errors import ObjectNotFound
from ..paths import snapshot_prefix
from ..projector import Projector
from ..storage import ObjectStore, make_store, read_json


def rebuild_entity(store: ObjectStore, env: str, entity: str, *, indices: bool) -> tuple[int, int, int]:
    """
    Re-project every snapshot of one entity kind.

    Returns:
        (projected, skipped, pointers removed)
    """
    projector = Projector(store)
    projected = skipped = removed = 0

    for name in store.list(snapshot_prefix(env, entity)):
        if not name.endswith(".json"):
            continue
        try:
            snapshot = read_json(store, name)
        except (ObjectNotFound, ValueError):
            skipped += 1
            continue
        outcome = projector.project(snapshot, name=name, indices=indices)
        if outcome.skipped:
            skipped += 1
            continue
        projected += 1
        removed += len(outcome.result.get("removed", []))
    return projected, skipped, removed


def run_rebuild(settings: Settings, env: str, entity: str, *, indices: bool) -> int:
    console = Console(stderr=True)
    store = make_store(settings)
    kinds = list(ENTITY_KINDS) if entity == "all" else [entity]

    table = Table(title="Indices rebuilt" if indices else "Manifests rebuilt")
    table.add_column("Entity", style="cyan")
    table.add_column("Projected", justify="right")
    table.add_column("Skipped", justify="right")
    if indices:
        table.add_column("Stale pointers removed", justify="right")

    total_skipped = 0
    for kind in kinds:
        projected, skipped, removed = rebuild_entity(store, env, kind, indices=indices)
        total_skipped += skipped
        row = [kind, str(projected), str(skipped)]
        if indices:
            row.append(str(removed))
        table.add_row(*row)

    console.print(table)
    if total_skipped:
        console.print(f"[yellow]{total_skipped} snapshot(s) could not be projected[/yellow]")
    return 0
