"""
Manifest and index projector.

Triggered by a snapshot write. The projector always reads the snapshot as
it is now (not as it was when the notification was sent), so late or
redelivered notifications converge on the latest state.

After writing fresh pointers it lists every index family declared for the
entity kind and deletes this id's pointers that are not in the fresh set.
A value that changed, or an attribute that disappeared, leaves nothing
behind.
"""

from __future__ import annotations

from loguru import logger

from .envelope import Document, validate_envelope
from .errors import EnvelopeError, ObjectNotFound, PreconditionFailed, StoreUnavailable
from .indices import build_index_pointers, family_prefixes
from .manifest import manifest_from_snapshot
from .outcome import StageOutcome
from .paths import manifest_path, parse_snapshot_path, venture_cap_table_prefix
from .storage import ObjectStore, Preconditions, read_json, stat_or_none, write_json

STAGE = "projector"


class Projector:
    def __init__(self, store: ObjectStore):
        self.store = store

    def handle(self, name: str) -> StageOutcome:
        log = logger.bind(stage=STAGE, object=name)

        ref = parse_snapshot_path(name)
        if ref is None:
            log.debug("not a snapshot object")
            return StageOutcome.skip(STAGE, name, "not_snapshot")

        try:
            snapshot = read_json(self.store, name)
        except (ObjectNotFound, StoreUnavailable) as e:
            log.bind(error=str(e)).error("snapshot read failed")
            return StageOutcome.skip(STAGE, name, "read_failed", error=str(e))
        except ValueError as e:
            log.bind(error=str(e)).warning("snapshot is not valid JSON")
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error=str(e))

        problems = validate_envelope(snapshot)
        if problems:
            log.bind(problems=problems).warning("snapshot has an invalid envelope")
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error="; ".join(problems))
        if (snapshot["env"], snapshot["entity"], snapshot["id"]) != (ref.env, ref.entity, ref.id):
            log.warning("snapshot envelope does not match its path")
            return StageOutcome.skip(STAGE, name, "envelope_mismatch")

        return self.project(snapshot, name=name)

    def project(self, snapshot: Document, *, name: str | None = None, indices: bool = True) -> StageOutcome:
        """
        Write the manifest and index pointers for `snapshot`, then clean up.

        With ``indices=False`` only the manifest is written.

        Returns:
            StageOutcome with ``manifest``, ``pointers`` and ``removed``.
        """
        try:
            manifest = manifest_from_snapshot(snapshot)
        except EnvelopeError as e:
            return StageOutcome.skip(STAGE, name or "", "invalid_envelope", error=str(e))

        env, entity, id = manifest["env"], manifest["entity"], manifest["id"]
        name = name or manifest["ptr"]
        log = logger.bind(stage=STAGE, object=name, entity=entity, id=id)
        mpath = manifest_path(env, entity, id)
        plans = build_index_pointers(snapshot) if indices else []

        try:
            write_json(self.store, mpath, manifest)
            for plan in plans:
                write_json(self.store, plan.path, plan.pointer)
            removed = self.cleanup(env, entity, id, keep={p.path for p in plans}) if indices else []
        except StoreUnavailable as e:
            log.bind(error=str(e)).error("projection failed")
            return StageOutcome.skip(STAGE, name, "write_failed", error=str(e))

        log.bind(pointers=len(plans), removed=len(removed)).info("projected snapshot")
        return StageOutcome.done(
            STAGE,
            name,
            manifest=mpath,
            pointers=[p.path for p in plans],
            removed=removed,
        )

    def cleanup(self, env: str, entity: str, id: str, *, keep: set[str]) -> list[str]:
        """Delete this id's pointers under any family value not in `keep`."""
        if entity == "cap_table":
            return self.cleanup_cap_tables(env, id, keep=keep)
        target = f"{id}.json"
        removed: list[str] = []
        for prefix in family_prefixes(env, entity):
            for obj in self.store.list(prefix):
                parts = obj[len(prefix) :].split("/")
                if len(parts) != 2 or parts[1] != target or obj in keep:
                    continue
                if self.store.delete(obj):
                    removed.append(obj)
        return removed

    def cleanup_cap_tables(self, env: str, id: str, *, keep: set[str]) -> list[str]:
        """
        Delete per-venture pointers that still name this cap table.

        Pointers are keyed by venture, so ownership is read from the stored
        pointer. Deletes are conditional on the generation that was read; a
        pointer another cap table rewrote in the meantime is left alone.
        """
        removed: list[str] = []
        for obj in self.store.list(venture_cap_table_prefix(env)):
            if obj in keep:
                continue
            meta = stat_or_none(self.store, obj)
            if meta is None:
                continue
            try:
                pointer = read_json(self.store, obj)
            except ObjectNotFound:
                continue
            except ValueError:
                logger.bind(stage=STAGE, object=obj).warning("cap table pointer is not valid JSON")
                continue
            if not isinstance(pointer, dict) or pointer.get("id") != id:
                continue
            try:
                if self.store.delete(obj, preconditions=Preconditions.unchanged(meta)):
                    removed.append(obj)
            except PreconditionFailed:
                continue
        return removed
