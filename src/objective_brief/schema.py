"""JSON Schemas for the payloads the model is asked to return."""

from __future__ import annotations

from typing import Any, Dict, Iterable

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from .errors import InvalidFormat

TRENDING_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Trending news list",
    "type": "array",
    "items": {
        "type": "object",
        "required": ["title"],
        "properties": {
            "title": {"type": "string"},
            "summary": {"type": ["string", "null"]},
        },
    },
}

OBJECTIVITY_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "Objective synthesis",
    "type": "object",
    "properties": {
        "summary": {"type": ["string", "null"]},
        "sources": {
            "type": ["array", "null"],
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "summary": {"type": ["string", "null"]},
                },
            },
        },
    },
}

_TRENDING_VALIDATOR = Draft202012Validator(TRENDING_SCHEMA)
_OBJECTIVITY_VALIDATOR = Draft202012Validator(OBJECTIVITY_SCHEMA)


def format_errors(errors: Iterable[ValidationError]) -> str:
    """Turn jsonschema errors into a concise human-readable string."""
    parts = []
    for err in errors:
        location = ".".join(str(piece) for piece in err.absolute_path) or "<root>"
        parts.append(f"{location}: {err.message}")
    return "; ".join(parts)


def _validate(validator: Draft202012Validator, payload: Any, *, label: str) -> Any:
    errors = sorted(validator.iter_errors(payload), key=lambda e: list(e.absolute_path))
    if errors:
        raise InvalidFormat(f"Invalid {label} format: {format_errors(errors)}")
    return payload


def validate_trending_payload(payload: Any) -> list:
    """Raise InvalidFormat unless payload is an array of {title, summary} objects."""
    return _validate(_TRENDING_VALIDATOR, payload, label="trending news")


def validate_objectivity_payload(payload: Any) -> dict:
    """Raise InvalidFormat unless payload is a {summary, sources[]} object."""
    return _validate(_OBJECTIVITY_VALIDATOR, payload, label="objectivity")
