"""
Stage wiring.

:class:`Pipeline` owns one instance of every stage over a shared store.
Deployed, each stage is driven by its own push subscription. Locally,
``process`` routes a changed object name to the stage(s) it triggers and,
with ``cascade``, feeds a committed snapshot straight to the downstream
stages in place of the second notification.
"""

from __future__ import annotations

from typing import Callable

from .config import Settings
from .envelope import Document
from .feed import SearchFeed
from .history import HistoryWrite, HistoryWriter
from .outcome import StageOutcome
from .paths import parse_history_path, parse_snapshot_path
from .projector import Projector
from .rules import AlertDispatcher, RulesEngine
from .secrets import SecretsProvider, default_provider
from .snapshot import SnapshotBuilder
from .storage import ObjectStore, make_store
from .ulid import UlidGenerator

STAGES = ("snapshot-builder", "projector", "rules-engine", "search-feed")


class Pipeline:
    def __init__(
        self,
        store: ObjectStore,
        *,
        settings: Settings | None = None,
        provider: SecretsProvider | None = None,
        ulids: UlidGenerator | None = None,
    ):
        settings = settings or Settings(storage_backend="memory")
        provider = provider or default_provider(settings.gcp_project)
        self.store = store
        self.settings = settings
        self.writer = HistoryWriter(store, ulids or UlidGenerator())
        self.snapshots = SnapshotBuilder(store)
        self.projector = Projector(store)
        self.rules = RulesEngine(
            store,
            AlertDispatcher(
                provider,
                fallback_target=settings.alerts_webhook_url,
                timeout=settings.http_timeout_seconds,
            ),
        )
        self.feed = SearchFeed(
            store,
            provider,
            target=settings.search_feed_target,
            fallback_target=settings.alerts_webhook_url,
            timeout=settings.http_timeout_seconds,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Pipeline":
        return cls(make_store(settings), settings=settings)

    def handler(self, stage: str) -> Callable[[str], StageOutcome]:
        handlers: dict[str, Callable[[str], StageOutcome]] = {
            "snapshot-builder": self.snapshots.handle,
            "projector": self.projector.handle,
            "rules-engine": self.rules.handle,
            "search-feed": self.feed.handle,
        }
        try:
            return handlers[stage]
        except KeyError:
            raise ValueError(f"unknown stage: {stage!r}") from None

    def downstream(self, snapshot_name: str) -> list[StageOutcome]:
        return [
            self.projector.handle(snapshot_name),
            self.rules.handle(snapshot_name),
            self.feed.handle(snapshot_name),
        ]

    def process(self, name: str, *, cascade: bool = True) -> list[StageOutcome]:
        """Run every stage that a change to `name` triggers."""
        if parse_history_path(name) is not None:
            outcome = self.snapshots.handle(name)
            outcomes = [outcome]
            if cascade and not outcome.skipped:
                outcomes.extend(self.downstream(outcome.result["snapshot"]))
            return outcomes
        if parse_snapshot_path(name) is not None:
            return self.downstream(name)
        return []

    def ingest(self, doc: Document, *, cascade: bool = True) -> tuple[HistoryWrite, list[StageOutcome]]:
        """Append a history event and, with `cascade`, materialize it."""
        written = self.writer.append(doc)
        outcomes = self.process(written.name) if cascade else []
        return written, outcomes
