"""CLI entrypoint for foldstore."""

import sys
from pathlib import Path

import click

from . import __version__
from .envelope import ENVIRONMENTS, SEGMENTS

ENTITY_CHOICES = sorted(SEGMENTS)


def _settings(ctx: click.Context):
    return ctx.obj["settings"]


@click.group()
@click.version_option(__version__, prog_name="foldstore")
@click.option(
    "--backend",
    type=click.Choice(["gcs", "fs", "memory"]),
    default=None,
    help="Object store backend (defaults to STORAGE_BACKEND, then gcs)",
)
@click.option("--bucket", default=None, help="Bucket name for the gcs backend (defaults to DATA_BUCKET)")
@click.option(
    "--data-root",
    type=click.Path(file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Root directory for the fs backend (defaults to DATA_ROOT)",
)
@click.option("--env", "env", type=click.Choice(list(ENVIRONMENTS)), default="dev", show_default=True)
@click.option("--log-level", default=None, help="Log level (defaults to LOG_LEVEL, then INFO)")
@click.pass_context
def cli(
    ctx: click.Context,
    backend: str | None,
    bucket: str | None,
    data_root: Path | None,
    env: str,
    log_level: str | None,
) -> None:
    """foldstore - event-sourced materialization over an object store.

    Append history, fold it into snapshots, and project manifests,
    indices and alerts.
    """
    from .config import Settings
    from .log import configure_logging

    ctx.ensure_object(dict)
    overrides: dict[str, object] = {}
    if backend:
        overrides["storage_backend"] = backend
    if bucket:
        overrides["data_bucket"] = bucket
    if data_root:
        overrides["data_root"] = data_root
    if log_level:
        overrides["log_level"] = log_level.upper()

    settings = Settings.from_env().model_copy(update=overrides)
    if settings.storage_backend == "gcs" and not settings.data_bucket and ctx.invoked_subcommand != "rules":
        raise click.UsageError("The gcs backend needs a bucket. Pass --bucket or set DATA_BUCKET.")

    configure_logging(settings.log_level, json_logs=False)
    ctx.obj["settings"] = settings
    ctx.obj["env"] = env


@cli.command("write-history")
@click.option("--entity", type=click.Choice(ENTITY_CHOICES), required=True)
@click.option("--id", "entity_id", required=True, help="Entity id")
@click.option(
    "--file",
    "doc_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="JSON document body",
)
@click.option(
    "--snapshot/--no-snapshot",
    default=True,
    show_default=True,
    help="Run the pipeline on the new event",
)
@click.pass_context
def write_history(ctx: click.Context, entity: str, entity_id: str, doc_file: Path, snapshot: bool) -> None:
    """Validate a document and append it as a history event.

    Missing envelope fields are filled in; an existing ``updated_at`` is
    replaced with the current time.

    Examples:

        foldstore --backend fs write-history --entity venture --id acme --file acme.json
    """
    from .commands.history_cmd import run_write_history

    exit_code = run_write_history(
        _settings(ctx),
        ctx.obj["env"],
        entity,
        entity_id,
        doc_file,
        snapshot=snapshot,
    )
    sys.exit(exit_code)


@cli.command("seed-dir")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    required=True,
    help="Directory with <entity>/*.json documents",
)
@click.option("--snapshots/--no-snapshots", default=True, show_default=True)
@click.pass_context
def seed_dir(ctx: click.Context, root: Path, snapshots: bool) -> None:
    """Append every document under ROOT/<entity>/ as a history event."""
    from .commands.history_cmd import run_seed_dir

    exit_code = run_seed_dir(_settings(ctx), ctx.obj["env"], root, snapshots=snapshots)
    sys.exit(exit_code)


@cli.command("rebuild-manifests")
@click.option("--entity", type=click.Choice([*ENTITY_CHOICES, "all"]), default="all", show_default=True)
@click.pass_context
def rebuild_manifests(ctx: click.Context, entity: str) -> None:
    """Rewrite per-id manifests from the current snapshots."""
    from .commands.rebuild_cmd import run_rebuild

    exit_code = run_rebuild(_settings(ctx), ctx.obj["env"], entity, indices=False)
    sys.exit(exit_code)


@cli.command("rebuild-indices")
@click.option("--entity", type=click.Choice([*ENTITY_CHOICES, "all"]), default="all", show_default=True)
@click.pass_context
def rebuild_indices(ctx: click.Context, entity: str) -> None:
    """Re-project current snapshots: manifests, index pointers and cleanup."""
    from .commands.rebuild_cmd import run_rebuild

    exit_code = run_rebuild(_settings(ctx), ctx.obj["env"], entity, indices=True)
    sys.exit(exit_code)


@cli.command()
@click.option("--entity", type=click.Choice(ENTITY_CHOICES), required=True)
@click.option("--shards", type=int, default=None, help="Shard count (defaults to MANIFEST_SHARDS, then 256)")
@click.option("--since", default=None, help="Only merge manifests updated since (e.g. 24h, 2026-01-01T00:00:00Z)")
@click.pass_context
def compact(ctx: click.Context, entity: str, shards: int | None, since: str | None) -> None:
    """Fold per-id manifests into NDJSON shards.

    Without --since every shard is rebuilt from scratch and shards that
    end up empty are removed. With --since, changed records are merged
    into the existing shards.
    """
    from .commands.compact_cmd import run_compact

    settings = _settings(ctx)
    exit_code = run_compact(settings, ctx.obj["env"], entity, shards or settings.manifest_shards, since)
    sys.exit(exit_code)


@cli.command("list")
@click.option("--entity", type=click.Choice(ENTITY_CHOICES), required=True)
@click.option("--since", default=None, help="Only records updated at or after this instant")
@click.option("--limit", type=int, default=None)
@click.option("--json", "output_json", is_flag=True, help="Output records as JSON")
@click.pass_context
def list_cmd(ctx: click.Context, entity: str, since: str | None, limit: int | None, output_json: bool) -> None:
    """List manifest records for an entity kind."""
    from .commands.list_cmd import run_list

    exit_code = run_list(_settings(ctx), ctx.obj["env"], entity, since=since, limit=limit, output_json=output_json)
    sys.exit(exit_code)


@cli.group()
def rules() -> None:
    """Alert rule commands."""
    pass


@rules.command("check")
@click.option(
    "--rules",
    "rules_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Rule file (.toml or .json)",
)
@click.option(
    "--snapshot",
    "snapshot_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="Snapshot document (.json)",
)
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
def rules_check(rules_file: Path, snapshot_file: Path, output_json: bool) -> None:
    """Evaluate a rule file against a snapshot without writing alerts.

    Exits 1 when the rule file is invalid, 0 otherwise.
    """
    from .commands.rules_cmd import run_rules_check

    exit_code = run_rules_check(rules_file, snapshot_file, output_json=output_json)
    sys.exit(exit_code)


@cli.command()
@click.option("--app", "app_name", type=click.Choice(["pipeline", "edge"]), default="pipeline", show_default=True)
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", type=int, default=None, help="Port (defaults to PORT, then 8080)")
@click.pass_context
def serve(ctx: click.Context, app_name: str, host: str, port: int | None) -> None:
    """Serve the push handlers or the edge API with uvicorn."""
    from .commands.serve_cmd import run_serve

    settings = _settings(ctx)
    exit_code = run_serve(settings, app_name, host, port or settings.port)
    sys.exit(exit_code)


@cli.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Run the pipeline on changes under the data root (fs backend only).

    This is a blocking command; press Ctrl+C to stop.
    """
    from .commands.watch_cmd import run_watch

    exit_code = run_watch(_settings(ctx))
    sys.exit(exit_code)


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
