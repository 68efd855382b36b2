"""List command - read manifest records."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table

from ..config import Settings
from ..reader import ManifestReader
from ..storage import make_store

COLUMNS = ("id", "updated_at", "title", "status")


def run_list(
    settings: Settings,
    env: str,
    entity: str,
    *,
    since: str | None = None,
    limit: int | None = None,
    output_json: bool = False,
) -> int:
    console = Console(stderr=True)
    reader = ManifestReader(make_store(settings))
    try:
        records = reader.list(env, entity, since=since, limit=limit)
    except ValueError as e:
        console.print(f"[red]Invalid --since:[/red] {e}")
        return 1

    if output_json:
        print(json.dumps({"items": records}, indent=2, ensure_ascii=False))
        return 0

    table = Table(title=f"{env}/{entity}")
    for column in COLUMNS:
        table.add_column(column, style="cyan" if column == "id" else None, no_wrap=column == "id")
    for record in records:
        table.add_row(*(str(record.get(column) or "") for column in COLUMNS))
    Console().print(table)
    console.print(f"{len(records)} record(s)")
    return 0
