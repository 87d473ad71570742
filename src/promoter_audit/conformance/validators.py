"""Layered validation for promoter-audit wire formats.

This module provides conformance validation combining:
1. Pydantic model validation (primary layer)
2. JSON Schema validation (optional secondary layer)
3. For registry push payloads, the decoder's semantic rules

The validator gracefully degrades if jsonschema is unavailable, unless
strict=True is specified.
"""

from __future__ import annotations

import importlib.resources
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from promoter_audit.events import PushEnvelope, RegistryPushPayload, validate_payload
from promoter_audit.models import ValidationError
from promoter_audit.registry import ManifestList


@dataclass(frozen=True)
class ModelViolation:
    """A violation detected by Pydantic model validation."""

    field: str
    message: str
    violation_type: str
    input_value: object


@dataclass(frozen=True)
class SchemaViolation:
    """A violation detected by JSON Schema validation."""

    json_path: str
    message: str
    validator: str
    validator_value: object
    schema_path: Tuple[Union[str, int], ...]


@dataclass(frozen=True)
class ConformanceResult:
    """Result of layered conformance validation."""

    valid: bool
    model_violations: Tuple[ModelViolation, ...]
    schema_violations: Tuple[SchemaViolation, ...]
    schema_check_skipped: bool
    kind: str
    semantic_error: Optional[str] = None


_KIND_TO_MODEL: Dict[str, Type[BaseModel]] = {
    "RegistryPushPayload": RegistryPushPayload,
    "PushEnvelope": PushEnvelope,
    "ManifestList": ManifestList,
}

_KIND_TO_SCHEMA: Dict[str, str] = {
    "RegistryPushPayload": "registry_push_payload.schema.json",
    "PushEnvelope": "push_envelope.schema.json",
    "ManifestList": "manifest_list.schema.json",
}


def _validate_with_model(
    payload: Dict[str, Any],
    model_class: Type[BaseModel],
) -> Tuple[Tuple[ModelViolation, ...], Optional[BaseModel]]:
    try:
        return (), model_class.model_validate(payload)
    except PydanticValidationError as e:
        violations = []
        for error in e.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            violations.append(
                ModelViolation(
                    field=field_path,
                    message=error["msg"],
                    violation_type=error["type"],
                    input_value=error.get("input"),
                )
            )
        return tuple(violations), None


def _validate_with_schema(
    payload: Dict[str, Any],
    schema_name: str,
    strict: bool,
) -> Tuple[Tuple[SchemaViolation, ...], bool]:
    """Validate payload using JSON Schema.

    Returns:
        Tuple of (violations, skipped) where skipped indicates validation
        did not run because jsonschema is not installed.

    Raises:
        ImportError: If strict=True and jsonschema is unavailable.
    """
    try:
        from jsonschema import Draft202012Validator
    except ImportError:
        if strict:
            raise ImportError(
                "jsonschema is required for strict conformance validation. "
                "Install with: pip install 'promoter-audit[conformance]'"
            )
        return ((), True)

    schema_file = importlib.resources.files("promoter_audit.schemas").joinpath(schema_name)
    schema = json.loads(schema_file.read_text(encoding="utf-8"))

    validator = Draft202012Validator(schema)
    violations = []
    for error in validator.iter_errors(payload):
        json_path = "$" + "".join(
            f"[{p}]" if isinstance(p, int) else f".{p}" for p in error.absolute_path
        )
        violations.append(
            SchemaViolation(
                json_path=json_path,
                message=error.message,
                validator=str(error.validator),
                validator_value=error.validator_value,
                schema_path=tuple(error.absolute_schema_path),
            )
        )
    return (tuple(violations), False)


def validate_document(
    kind: str,
    payload: Dict[str, Any],
    strict: bool = False,
) -> ConformanceResult:
    """Validate a wire document against its contract.

    Args:
        kind: ``"RegistryPushPayload"``, ``"PushEnvelope"`` or ``"ManifestList"``.
        payload: The decoded JSON document.
        strict: If True, require jsonschema and fail if unavailable.

    Raises:
        ValueError: If kind is not recognized.
        ImportError: If strict=True and jsonschema is unavailable.
    """
    if kind not in _KIND_TO_MODEL:
        raise ValueError(
            f"Unknown document kind: {kind!r}. "
            f"Known kinds: {list(_KIND_TO_MODEL.keys())}"
        )

    model_violations, model = _validate_with_model(payload, _KIND_TO_MODEL[kind])
    schema_violations, schema_skipped = _validate_with_schema(
        payload, _KIND_TO_SCHEMA[kind], strict
    )

    semantic_error: Optional[str] = None
    if isinstance(model, RegistryPushPayload):
        try:
            validate_payload(model)
        except ValidationError as exc:
            semantic_error = str(exc)

    valid = (
        not model_violations
        and (not schema_violations or schema_skipped)
        and semantic_error is None
    )

    return ConformanceResult(
        valid=valid,
        model_violations=model_violations,
        schema_violations=schema_violations,
        schema_check_skipped=schema_skipped,
        kind=kind,
        semantic_error=semantic_error,
    )
