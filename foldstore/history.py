"""
History writer.

History is append-only: each mutation is a full copy of the entity body,
written once under a fresh ULID-stamped name. A write that finds its name
already taken raises :class:`IdentifierCollision` and is never retried.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from .envelope import Document, require_envelope
from .errors import IdentifierCollision, PreconditionFailed
from .paths import history_path
from .storage import ObjectStore, Preconditions, write_json
from .ulid import UlidGenerator
from .util import utcnow


@dataclass(frozen=True)
class HistoryWrite:
    name: str
    env: str
    entity: str
    id: str
    ulid: str
    generation: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "env": self.env,
            "entity": self.entity,
            "id": self.id,
            "ulid": self.ulid,
            "generation": self.generation,
        }


class HistoryWriter:
    def __init__(
        self,
        store: ObjectStore,
        ulids: UlidGenerator,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.ulids = ulids
        self.clock = clock

    def append(self, doc: Document) -> HistoryWrite:
        """
        Append one history event.

        Args:
            doc: Complete entity body with a valid envelope

        Returns:
            The written object's name and identity.

        Raises:
            EnvelopeError: the envelope is missing or invalid.
            IdentifierCollision: the generated name already exists.
        """
        env = require_envelope(doc)
        at = self.clock()
        ulid = self.ulids.generate(int(at.timestamp() * 1000))
        name = history_path(env.env, env.entity, env.id, at, ulid)

        try:
            result = write_json(self.store, name, doc, preconditions=Preconditions.absent())
        except PreconditionFailed as e:
            logger.bind(stage="history", object=name).critical("history path collision")
            raise IdentifierCollision(name) from e

        logger.bind(stage="history", object=name, entity=env.entity, id=env.id).debug("history event appended")
        return HistoryWrite(
            name=name,
            env=env.env,
            entity=env.entity,
            id=env.id,
            ulid=ulid,
            generation=result.generation,
        )
