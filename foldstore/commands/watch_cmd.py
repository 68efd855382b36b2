"""Watch command - drive the pipeline from filesystem changes."""

from __future__ import annotations

from rich.console import Console

from ..config import Settings
from ..outcome import StageOutcome
from ..pipeline import Pipeline
from ..watcher import run_watch_loop


def run_watch(settings: Settings) -> int:
    """
    Watch the data root and process changed objects until interrupted.

    Each change runs only the stage it triggers; the snapshot write itself
    produces the next filesystem event.
    """
    console = Console(stderr=True)
    if settings.storage_backend != "fs":
        console.print("[red]watch needs the fs backend (--backend fs)[/red]")
        return 1

    pipeline = Pipeline.from_settings(settings)
    root = settings.data_root

    console.print(f"[bold]Watching[/bold] {root}")
    console.print("[dim]Press Ctrl+C to stop watching[/dim]")
    console.print()

    def on_outcome(name: str, outcome: StageOutcome) -> None:
        if outcome.skipped:
            if outcome.reason in {"not_history", "not_snapshot", "stale_update", "no_rules", "no_target"}:
                return
            style = "red" if outcome.retryable else "yellow"
            console.print(f"[{style}]{outcome.stage}[/{style}] {name}: {outcome.reason}")
        else:
            console.print(f"[green]{outcome.stage}[/green] {name}")

    run_watch_loop(root, lambda name: pipeline.process(name, cascade=False), on_outcome)
    console.print()
    console.print("[dim]Stopped watching[/dim]")
    return 0
