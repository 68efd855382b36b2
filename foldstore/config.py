"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Mapping

from pydantic import BaseModel, Field

StorageBackend = Literal["gcs", "fs", "memory"]

_TRUE = {"1", "true", "yes", "on"}


def _flag(value: str | None, default: bool) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUE


class Settings(BaseModel):
    storage_backend: StorageBackend = "gcs"
    data_bucket: str | None = None
    data_root: Path = Path(".data")
    schemas_dir: Path = Path("schemas")
    manifest_shards: int = Field(default=256, ge=1)
    search_feed_target: str | None = None
    alerts_webhook_url: str | None = None
    gcp_project: str | None = None
    log_level: str = "INFO"
    log_json: bool = True
    port: int = 8080
    http_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        def get(key: str) -> str | None:
            value = env.get(key)
            return value if value else None

        values: dict[str, object] = {
            "storage_backend": (get("STORAGE_BACKEND") or "gcs").lower(),
            "data_bucket": get("DATA_BUCKET"),
            "data_root": Path(get("DATA_ROOT") or ".data"),
            "schemas_dir": Path(get("SCHEMAS_DIR") or "schemas"),
            "search_feed_target": get("SEARCH_FEED_TARGET"),
            "alerts_webhook_url": get("ALERTS_WEBHOOK_URL"),
            "gcp_project": get("GOOGLE_CLOUD_PROJECT") or get("GCP_PROJECT"),
            "log_level": (get("LOG_LEVEL") or "INFO").upper(),
            "log_json": _flag(get("LOG_JSON"), True),
        }
        if get("MANIFEST_SHARDS"):
            values["manifest_shards"] = int(env["MANIFEST_SHARDS"])
        if get("PORT"):
            values["port"] = int(env["PORT"])
        if get("HTTP_TIMEOUT_SECONDS"):
            values["http_timeout_seconds"] = float(env["HTTP_TIMEOUT_SECONDS"])
        return cls(**values)
