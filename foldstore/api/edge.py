"""
Edge API.

    GET  /v1/{entity}?env=&since=&limit=   manifest listing
    GET  /v1/{entity}/{id}?env=            current snapshot
    POST /v1/internal/history              append a history event

Roles come from the comma-separated ``X-Roles`` header (identity is
established upstream). Authorization denials are 403 with the decision's
reason; validation failures are 400 with the error list.

Usage:
    uvicorn --factory foldstore.api.edge:create_app
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..config import Settings
from ..envelope import ENTITY_BY_SEGMENT, ENVIRONMENTS, SEGMENTS
from ..errors import IdentifierCollision, ObjectNotFound
from ..history import HistoryWriter
from ..log import cloud_trace, configure_logging
from ..paths import snapshot_path
from ..rbac import enforce_rbac, parse_roles
from ..reader import ManifestReader
from ..storage import ObjectStore, make_store, read_json
from ..ulid import UlidGenerator
from ..validation import SchemaRegistry, validate_candidate


def resolve_entity(value: str) -> str | None:
    """Accept an entity kind (``venture``) or its path segment (``ventures``)."""
    if value in SEGMENTS:
        return value
    return ENTITY_BY_SEGMENT.get(value)


def _error(status: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": error, **extra}, status_code=status)


def create_app(
    store: ObjectStore | None = None,
    settings: Settings | None = None,
    *,
    ulids: UlidGenerator | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, json_logs=settings.log_json)
    if store is None and (settings.storage_backend != "gcs" or settings.data_bucket):
        store = make_store(settings)

    reader = ManifestReader(store) if store is not None else None
    writer = HistoryWriter(store, ulids or UlidGenerator()) if store is not None else None
    registry = SchemaRegistry(settings.schemas_dir)

    app = FastAPI(title="foldstore edge", version="0.1.0")

    def trace_of(request: Request) -> str | None:
        return cloud_trace(request.headers.get("x-cloud-trace-context"), settings.gcp_project)

    @app.get("/v1/{entity}")
    async def list_entities(
        entity: str,
        request: Request,
        env: str = "prod",
        since: str | None = None,
        limit: int | None = None,
    ) -> JSONResponse:
        if store is None or reader is None:
            return _error(500, "bucket_not_configured")
        kind = resolve_entity(entity)
        if kind is None:
            return _error(404, "not_found")
        if env not in ENVIRONMENTS:
            return _error(400, "invalid_env")
        if limit is not None and limit < 0:
            return _error(400, "invalid_limit")
        decision = enforce_rbac(parse_roles(request.headers.get("x-roles")), kind, "GET", env)
        if not decision.allowed:
            return _error(403, "forbidden", reason=decision.reason)

        try:
            items = await run_in_threadpool(reader.list, env, kind, since=since, limit=limit)
        except ValueError:
            return _error(400, "invalid_since")
        logger.bind(trace=trace_of(request), entity=kind, env=env, count=len(items)).info("api list")
        return JSONResponse({"items": items})

    @app.get("/v1/{entity}/{id}")
    async def get_entity(entity: str, id: str, request: Request, env: str = "prod") -> JSONResponse:
        if store is None:
            return _error(500, "bucket_not_configured")
        kind = resolve_entity(entity)
        if kind is None or env not in ENVIRONMENTS or "/" in id:
            return _error(404, "not_found")
        decision = enforce_rbac(parse_roles(request.headers.get("x-roles")), kind, "GET", env)
        if not decision.allowed:
            return _error(403, "forbidden", reason=decision.reason)

        try:
            doc = await run_in_threadpool(read_json, store, snapshot_path(env, kind, id))
        except (ObjectNotFound, ValueError):
            return _error(404, "not_found")
        logger.bind(trace=trace_of(request), entity=kind, id=id, env=env).info("api get")
        return JSONResponse(doc)

    @app.post("/v1/internal/history")
    async def write_history(request: Request) -> JSONResponse:
        if store is None or writer is None:
            return _error(500, "bucket_not_configured")
        trace = trace_of(request)
        try:
            body = json.loads((await request.body()).decode("utf-8") or "{}")
        except ValueError:
            return _error(400, "invalid_json")
        if not isinstance(body, dict):
            return _error(400, "invalid_json")

        entity = str(body.get("entity") or "")
        env = str(body.get("env") or "")
        decision = enforce_rbac(parse_roles(request.headers.get("x-roles")), entity or None, "POST", env or None)
        if not decision.allowed:
            return _error(403, "forbidden", reason=decision.reason)

        result = validate_candidate(body, registry)
        if not result.valid:
            return _error(400, "schema_validation_failed", details=result.to_dict())

        try:
            written = await run_in_threadpool(writer.append, body)
        except IdentifierCollision as e:
            logger.bind(trace=trace, object=e.name).critical("history identifier collision")
            return _error(500, "identifier_collision")

        logger.bind(trace=trace, object=written.name, entity=written.entity, id=written.id).success("api history write")
        return JSONResponse({"accepted": True, "name": written.name}, status_code=202)

    return app
