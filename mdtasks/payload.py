"""Payload validation helpers for task endpoints."""

from __future__ import annotations

from typing import Any

from mdtasks.errors import TaskError


def _ensure_payload_dict(payload: Any) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise TaskError(
            "Payload must be an object.",
            {"type": type(payload).__name__},
            code="INVALID_TYPE",
        )
    return payload


def _reject_unknown_fields(payload: dict[str, Any], allowed_fields: set[str]) -> None:
    unknown_fields = sorted(set(payload) - allowed_fields)
    if unknown_fields:
        raise TaskError(
            "Unknown fields are not allowed.",
            {"fields": unknown_fields},
            code="UNKNOWN_FIELD",
        )


def _require_fields(payload: dict[str, Any], required: list[str]) -> None:
    missing = [name for name in required if name not in payload]
    if missing:
        raise TaskError(
            f"{' and '.join(missing)} {'is' if len(missing) == 1 else 'are'} required.",
            {"fields": missing},
            code="MISSING_FIELDS",
        )


def _optional_string(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TaskError(
            f"{key} must be a string.",
            {key: str(value), "type": type(value).__name__},
            code="INVALID_TYPE",
        )
    return value.strip() or None


def _required_string(payload: dict[str, Any], key: str) -> str:
    value = _optional_string(payload, key)
    if value is None:
        raise TaskError(
            f"{key} must be a non-empty string.",
            {"fields": [key]},
            code="MISSING_FIELDS",
        )
    return value


def _string_list(payload: dict[str, Any], key: str) -> list[str]:
    value = payload.get(key, [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise TaskError(
            f"{key} must be an array of strings.",
            {key: str(value)},
            code="INVALID_TYPE",
        )
    return value
