"""
Search feed.

Fire-and-forget: each committed snapshot is announced to the configured
target as ``{id, entity, env, updated_at, ptr}``. Delivery failures are
logged and acknowledged; there is no retry.
"""

from __future__ import annotations

import httpx
from loguru import logger

from .errors import EnvelopeError, ObjectNotFound, StoreUnavailable
from .manifest import manifest_from_snapshot
from .outcome import StageOutcome
from .paths import parse_snapshot_path
from .secrets import SecretsProvider, resolve_target
from .storage import ObjectStore, read_json

STAGE = "search-feed"

FEED_FIELDS = ("id", "entity", "env", "updated_at", "ptr")


class SearchFeed:
    def __init__(
        self,
        store: ObjectStore,
        provider: SecretsProvider,
        *,
        target: str | None = None,
        fallback_target: str | None = None,
        client: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self.store = store
        self.provider = provider
        self.target = target
        self.fallback_target = fallback_target
        self.client = client
        self.timeout = timeout

    def handle(self, name: str) -> StageOutcome:
        log = logger.bind(stage=STAGE, object=name)
        if parse_snapshot_path(name) is None:
            return StageOutcome.skip(STAGE, name, "not_snapshot")

        try:
            snapshot = read_json(self.store, name)
        except (ObjectNotFound, StoreUnavailable) as e:
            log.bind(error=str(e)).error("snapshot read failed")
            return StageOutcome.skip(STAGE, name, "read_failed", error=str(e))
        except ValueError as e:
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error=str(e))

        try:
            manifest = manifest_from_snapshot(snapshot)
        except EnvelopeError as e:
            return StageOutcome.skip(STAGE, name, "invalid_envelope", error=str(e))
        payload = {key: manifest[key] for key in FEED_FIELDS}

        try:
            url = resolve_target(self.target, self.provider, fallback=self.fallback_target)
        except Exception as e:
            log.bind(error=repr(e)).exception("search feed target lookup failed")
            return StageOutcome.done(STAGE, name, delivered=False, payload=payload)
        if not url:
            return StageOutcome.skip(STAGE, name, "no_target")

        try:
            if self.client is not None:
                response = self.client.post(url, json=payload)
            else:
                response = httpx.post(url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.bind(error=str(e)).error("search feed delivery failed")
            return StageOutcome.done(STAGE, name, delivered=False, payload=payload)

        log.info("search feed delivered")
        return StageOutcome.done(STAGE, name, delivered=True, payload=payload)
