"""Compact command - fold manifests into NDJSON shards."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from ..compactor import ManifestCompactor
from ..config import Settings
from ..errors import PreconditionFailed, StoreUnavailable
from ..storage import make_store


def run_compact(settings: Settings, env: str, entity: str, shard_count: int, since: str | None = None) -> int:
    console = Console(stderr=True)
    if shard_count < 1:
        console.print("[red]--shards must be at least 1[/red]")
        return 1

    compactor = ManifestCompactor(make_store(settings))
    try:
        report = compactor.compact(env, entity, shard_count=shard_count, since=since)
    except ValueError as e:
        console.print(f"[red]Invalid --since:[/red] {e}")
        return 1
    except PreconditionFailed as e:
        console.print(f"[red]Shard changed during compaction, rerun:[/red] {e}")
        return 1
    except StoreUnavailable as e:
        console.print(f"[red]Store failure:[/red] {e}")
        return 1

    table = Table(title=f"Compaction: {env}/{entity} ({report.mode})")
    table.add_column("Shard", style="cyan")
    table.add_column("Records", justify="right")
    for key, count in sorted(report.shards.items()):
        table.add_row(key, str(count))
    console.print(table)
    console.print(f"Collected {report.collected} manifest(s)")
    if report.removed:
        console.print(f"Removed {len(report.removed)} empty shard(s)")
    return 0
