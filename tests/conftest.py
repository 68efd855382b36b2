"""Pytest configuration and fixtures."""

from __future__ import annotations

from typing import Any, Callable

import pytest

from foldstore.config import Settings
from foldstore.pipeline import Pipeline
from foldstore.secrets import CompositeSecretsProvider, EnvSecretsProvider
from foldstore.storage import MemoryObjectStore
from foldstore.ulid import UlidGenerator

FOLDSTORE_ENV_VARS = (
    "STORAGE_BACKEND",
    "DATA_BUCKET",
    "DATA_ROOT",
    "SCHEMAS_DIR",
    "MANIFEST_SHARDS",
    "SEARCH_FEED_TARGET",
    "ALERTS_WEBHOOK_URL",
    "GOOGLE_CLOUD_PROJECT",
    "GCP_PROJECT",
    "LOG_LEVEL",
    "LOG_JSON",
    "PORT",
    "HTTP_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the developer's environment out of Settings.from_env()."""
    for name in FOLDSTORE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store() -> MemoryObjectStore:
    """Empty in-memory object store."""
    return MemoryObjectStore()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Memory-backed settings with plain-text logs and no delivery targets."""
    return Settings(storage_backend="memory", schemas_dir=tmp_path / "schemas", log_json=False)


@pytest.fixture
def ulids() -> UlidGenerator:
    """Generator with a fixed clock and zero randomness."""
    return UlidGenerator(clock=lambda: 1_767_225_600.0, random_bytes=lambda n: bytes(n))


@pytest.fixture
def pipeline(store: MemoryObjectStore, settings: Settings) -> Pipeline:
    """Pipeline over the memory store with env-only secret resolution."""
    return Pipeline(store, settings=settings, provider=CompositeSecretsProvider([EnvSecretsProvider({})]))


@pytest.fixture
def make_doc() -> Callable[..., dict[str, Any]]:
    """Factory for documents with a complete envelope."""

    def _make(
        entity: str = "venture",
        id: str = "v1",
        env: str = "dev",
        updated_at: str = "2026-01-10T12:00:00.000Z",
        created_at: str = "2026-01-01T00:00:00.000Z",
        **fields: Any,
    ) -> dict[str, Any]:
        return {
            "id": id,
            "entity": entity,
            "env": env,
            "schema_version": "1.0.0",
            "created_at": created_at,
            "updated_at": updated_at,
            **fields,
        }

    return _make
