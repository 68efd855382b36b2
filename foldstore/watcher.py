"""
Local change feed for the filesystem backend.

Stands in for storage notifications when running against ``DATA_ROOT``:
every created, modified or moved-in object is debounced and handed to the
pipeline as an object name, one stage hop at a time.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable

from loguru import logger
from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .outcome import StageOutcome
from .storage.fs import TEMP_SUFFIX


class StoreEventHandler(FileSystemEventHandler):
    """
    Turns file events under a data root into object names.

    - Only ``.json`` and ``.ndjson`` objects are relevant
    - Temp files and hidden paths are ignored
    - A burst of events for one path is delivered once
    """

    RELEVANT_EXTENSIONS = {".json", ".ndjson"}
    DEBOUNCE_SECONDS = 0.2

    def __init__(
        self,
        root: Path,
        process: Callable[[str], list[StageOutcome]],
        on_outcome: Callable[[str, StageOutcome], None] | None = None,
    ):
        super().__init__()
        self.root = Path(root).resolve()
        self.process = process
        self.on_outcome = on_outcome

        # object name -> time of last event
        self.pending: dict[str, float] = {}
        self._lock = threading.Lock()

    def object_name(self, path: str) -> str | None:
        """Map a filesystem path to its object name, or None if not relevant."""
        p = Path(path)
        if p.name.endswith(TEMP_SUFFIX) or p.suffix.lower() not in self.RELEVANT_EXTENSIONS:
            return None
        try:
            rel = p.resolve().relative_to(self.root)
        except ValueError:
            return None
        if any(part.startswith(".") for part in rel.parts):
            return None
        return rel.as_posix()

    def _mark(self, path: str) -> None:
        name = self.object_name(path)
        if name is not None:
            with self._lock:
                self.pending[name] = time.time()

    def flush_pending(self, *, force: bool = False) -> int:
        """Process names whose debounce window has passed. Returns how many ran."""
        now = time.time()
        with self._lock:
            ready = sorted(
                name for name, stamp in self.pending.items() if force or now - stamp >= self.DEBOUNCE_SECONDS
            )
            for name in ready:
                del self.pending[name]
        for name in ready:
            for outcome in self.process(name):
                if self.on_outcome:
                    self.on_outcome(name, outcome)
        return len(ready)

    def on_created(self, event: FileCreatedEvent) -> None:
        if not event.is_directory:
            self._mark(event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:
        if not event.is_directory:
            self._mark(event.src_path)

    def on_moved(self, event: FileMovedEvent) -> None:
        # Atomic replaces land here as temp -> final.
        if not event.is_directory:
            self._mark(event.dest_path)


def watch_store(
    root: Path,
    process: Callable[[str], list[StageOutcome]],
    on_outcome: Callable[[str, StageOutcome], None] | None = None,
) -> tuple[Observer, StoreEventHandler]:
    """
    Start watching a data root.

    Returns:
        Tuple of (observer, handler). Call observer.stop() to stop watching.
    """
    root.mkdir(parents=True, exist_ok=True)
    handler = StoreEventHandler(root, process, on_outcome)
    observer = Observer()
    observer.schedule(handler, str(root), recursive=True)
    observer.start()
    logger.bind(root=str(root)).info("watching data root")
    return observer, handler


def run_watch_loop(
    root: Path,
    process: Callable[[str], list[StageOutcome]],
    on_outcome: Callable[[str, StageOutcome], None] | None = None,
) -> None:
    """Run the watch loop until interrupted."""
    observer, handler = watch_store(root, process, on_outcome)

    try:
        while True:
            time.sleep(0.5)
            handler.flush_pending()
    except KeyboardInterrupt:
        observer.stop()

    observer.join()
