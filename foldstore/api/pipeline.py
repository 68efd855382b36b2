"""
Push endpoints for the pipeline stages.

    POST /pubsub/push/{stage}   stage in snapshot-builder, projector,
                                rules-engine, search-feed
    GET  /health

Status codes drive redelivery: 2xx acknowledges, anything else is
redelivered. Conflicts (409) and transient store failures (503) are the
only outcomes that ask for redelivery. Malformed bodies are acknowledged
and logged.

Usage:
    uvicorn --factory foldstore.api.pipeline:create_app
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool

from ..config import Settings
from ..errors import MalformedNotification
from ..log import cloud_trace, configure_logging
from ..notifications import parse_push
from ..outcome import StageOutcome
from ..pipeline import STAGES, Pipeline


def status_for(outcome: StageOutcome) -> int:
    if outcome.skipped and outcome.reason == "conflict":
        return 409
    if outcome.retryable:
        return 503
    return 200


def create_app(pipeline: Pipeline | None = None, settings: Settings | None = None) -> FastAPI:
    settings = settings or (pipeline.settings if pipeline is not None else Settings.from_env())
    configure_logging(settings.log_level, json_logs=settings.log_json)
    pipeline = pipeline or Pipeline.from_settings(settings)

    app = FastAPI(title="foldstore pipeline", version="0.1.0")
    app.state.pipeline = pipeline

    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "stages": list(STAGES)}

    @app.post("/pubsub/push/{stage}")
    async def push(stage: str, request: Request) -> Response:
        if stage not in STAGES:
            return JSONResponse({"error": "unknown_stage", "stage": stage}, status_code=404)

        trace = cloud_trace(request.headers.get("x-cloud-trace-context"), settings.gcp_project)
        log = logger.bind(stage=stage, trace=trace)

        raw = await request.body()
        try:
            notification = parse_push(json.loads(raw.decode("utf-8")) if raw else {})
        except (ValueError, MalformedNotification) as e:
            log.bind(error=str(e)).error("malformed push body")
            return JSONResponse({"ok": True, "skipped": True, "error": str(e)}, status_code=200)

        if notification is None:
            return Response(status_code=204)

        outcome = await run_in_threadpool(pipeline.handler(stage), notification.name)
        status = status_for(outcome)
        log.bind(object=notification.name, message_id=notification.message_id, result=outcome.to_dict()).info(
            f"{stage} processed event"
        )
        return JSONResponse({"ok": status == 200, "result": outcome.to_dict()}, status_code=status)

    return app
