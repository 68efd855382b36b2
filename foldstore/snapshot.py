"""
Snapshot builder.

Folds a newly written history event into the entity's snapshot:

1. Parse the history name into (env, entity, id); anything else is skipped.
2. Read the event body and check its envelope against the name.
3. Apply minor-additive migration and compaction.
4. Stat and read the current snapshot (absent means first snapshot).
5. Skip as ``stale_update`` when the current ``updated_at`` is not older.
6. Write with the observed generation/metageneration as preconditions, or
   write-once when absent. A failed precondition is a ``conflict``.

There is no in-process retry. Conflicts and transient failures are
reported so the delivery mechanism redelivers, and the redelivery reads
fresh metadata.
"""

from __future__ import annotations

from loguru import logger

from .envelope import Document, validate_envelope
from .errors import ObjectNotFound, PreconditionFailed, StoreUnavailable
from .migrate import prepare_snapshot
from .outcome import StageOutcome
from .paths import EntityRef, parse_history_path, snapshot_path
from .storage import ObjectStore, Preconditions, read_json, stat_or_none, write_json
from .util import parse_timestamp, try_parse_timestamp

STAGE = "snapshot-builder"


class SnapshotBuilder:
    def __init__(self, store: ObjectStore):
        self.store = store

    def handle(self, name: str) -> StageOutcome:
        """Process one history-object notification."""
        log = logger.bind(stage=STAGE, object=name)

        ref = parse_history_path(name)
        if ref is None:
            log.debug("not a history object")
            return StageOutcome.skip(STAGE, name, "not_history")

        try:
            candidate = read_json(self.store, name)
        except (ObjectNotFound, StoreUnavailable) as e:
            log.bind(error=str(e)).error("history read failed")
            return StageOutcome.skip(STAGE, name, "read_failed", error=str(e))
        except ValueError as e:
            log.bind(error=str(e)).warning("history object is not valid JSON")
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error=str(e))

        problems = validate_envelope(candidate)
        if problems:
            log.bind(problems=problems).warning("history object has an invalid envelope")
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error="; ".join(problems))

        if (candidate["env"], candidate["entity"], candidate["id"]) != (ref.env, ref.entity, ref.id):
            log.warning("history envelope does not match its path")
            return StageOutcome.skip(STAGE, name, "envelope_mismatch")

        return self.apply(ref, prepare_snapshot(candidate), source=name)

    def apply(self, ref: EntityRef, candidate: Document, *, source: str | None = None) -> StageOutcome:
        """
        Commit `candidate` as the snapshot for `ref` unless it is stale.

        Args:
            ref: Entity identity
            candidate: Migrated and compacted snapshot body
            source: Name of the history object being applied (for logs)

        Returns:
            StageOutcome; on success ``result`` carries the snapshot name,
            generation and metageneration.
        """
        path = snapshot_path(ref.env, ref.entity, ref.id)
        name = source or path
        log = logger.bind(stage=STAGE, object=name, snapshot=path)
        candidate_updated = parse_timestamp(candidate["updated_at"])

        try:
            meta = stat_or_none(self.store, path)
            current = read_json(self.store, path) if meta is not None else None
        except (ObjectNotFound, StoreUnavailable) as e:
            # Missing after a successful stat is a transient read failure.
            log.bind(error=str(e)).error("snapshot read failed")
            return StageOutcome.skip(STAGE, name, "read_failed", error=str(e))
        except ValueError as e:
            log.bind(error=str(e)).warning("current snapshot is not valid JSON; replacing it")
            current = None

        if isinstance(current, dict):
            current_updated = try_parse_timestamp(current.get("updated_at"))
            if current_updated is not None and current_updated >= candidate_updated:
                log.bind(current=current.get("updated_at"), candidate=candidate["updated_at"]).info("stale update")
                return StageOutcome.skip(STAGE, name, "stale_update", snapshot=path)

        try:
            result = write_json(self.store, path, candidate, preconditions=Preconditions.for_current(meta))
        except PreconditionFailed:
            log.warning("snapshot write lost a race")
            return StageOutcome.skip(STAGE, name, "conflict", snapshot=path)
        except StoreUnavailable as e:
            log.bind(error=str(e)).error("snapshot write failed")
            return StageOutcome.skip(STAGE, name, "write_failed", error=str(e))

        log.bind(generation=result.generation).info("snapshot committed")
        return StageOutcome.done(
            STAGE,
            name,
            snapshot=path,
            generation=result.generation,
            metageneration=result.metageneration,
        )
