"""
JSON Schema validation at the write boundary.

Schemas are looked up per entity kind and schema version:

    <schemas_dir>/<entity>/v<version>.schema.json
    <schemas_dir>/<entity>/<version>.schema.json

A candidate with no registered schema is still held to the envelope rules.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from jsonschema import Draft202012Validator
from jsonschema.validators import validator_for
from loguru import logger

from .envelope import validate_envelope


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "errors": list(self.errors)}


class SchemaValidator(Protocol):
    def validate(self, schema: dict[str, Any], instance: Any) -> ValidationResult: ...


class JsonSchemaValidator:
    """Full JSON Schema validation; the draft comes from ``$schema`` (default 2020-12)."""

    def validate(self, schema: dict[str, Any], instance: Any) -> ValidationResult:
        cls = validator_for(schema, default=Draft202012Validator)
        cls.check_schema(schema)
        validator = cls(schema)
        errors = []
        for error in sorted(validator.iter_errors(instance), key=lambda e: e.json_path):
            errors.append(f"{error.json_path}: {error.message}")
        return ValidationResult(valid=not errors, errors=errors)


class SchemaRegistry:
    def __init__(self, root: Path):
        self.root = Path(root)
        self._cache: dict[Path, dict[str, Any]] = {}

    def candidates(self, entity: str, version: str) -> list[Path]:
        base = self.root / entity
        plain = version[1:] if version.startswith("v") else version
        return [base / f"v{plain}.schema.json", base / f"{plain}.schema.json"]

    def lookup(self, entity: str, version: str) -> dict[str, Any] | None:
        """Return the schema for (entity, version), or None when none is registered."""
        if not entity or not version or "/" in entity or "/" in version or ".." in version:
            return None
        for path in self.candidates(entity, version):
            if path in self._cache:
                return self._cache[path]
            if path.is_file():
                schema = json.loads(path.read_text(encoding="utf-8"))
                self._cache[path] = schema
                return schema
        return None


def validate_candidate(
    doc: Any,
    registry: SchemaRegistry,
    validator: SchemaValidator | None = None,
) -> ValidationResult:
    """
    Validate a history candidate: envelope first, then its entity schema.
    """
    problems = validate_envelope(doc)
    if problems:
        return ValidationResult(valid=False, errors=problems)

    schema = registry.lookup(doc["entity"], doc["schema_version"])
    if schema is None:
        logger.bind(entity=doc["entity"], schema_version=doc["schema_version"]).warning(
            "no schema registered; envelope checks only"
        )
        return ValidationResult(valid=True)
    return (validator or JsonSchemaValidator()).validate(schema, doc)
