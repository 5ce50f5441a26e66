"""Encode and decode Firestore REST typed values."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any

_FRACTION_RE = re.compile(r"\.(\d+)")


class DocumentCodecError(ValueError):
    """Raised when a value cannot be mapped to or from the wire format."""


def encode_fields(fields: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Return a Firestore ``fields`` map for plain Python values."""

    return {name: encode_value(value) for name, value in fields.items()}


def decode_fields(fields: dict[str, dict[str, Any]] | None) -> dict[str, Any]:
    """Return plain Python values for a Firestore ``fields`` map."""

    return {name: decode_value(value) for name, value in (fields or {}).items()}


def encode_value(value: Any) -> dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, Enum):
        return encode_value(value.value)
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields({str(key): item for key, item in value.items()})}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    raise DocumentCodecError(f"Unsupported field value type: {type(value).__name__}")


def decode_value(value: dict[str, Any]) -> Any:
    if not isinstance(value, dict) or len(value) != 1:
        raise DocumentCodecError(f"Malformed typed value: {value!r}")
    kind, raw = next(iter(value.items()))
    if kind == "nullValue":
        return None
    if kind == "booleanValue":
        return bool(raw)
    if kind in {"integerValue", "doubleValue"}:
        try:
            return int(raw) if kind == "integerValue" else float(raw)
        except (TypeError, ValueError) as exc:
            raise DocumentCodecError(f"Invalid {kind}: {raw!r}") from exc
    if kind in {"stringValue", "referenceValue"}:
        return str(raw)
    if kind == "timestampValue":
        return parse_timestamp(raw)
    if kind in {"mapValue", "arrayValue"}:
        if raw is not None and not isinstance(raw, dict):
            raise DocumentCodecError(f"Malformed {kind}: {raw!r}")
        if kind == "mapValue":
            return decode_fields((raw or {}).get("fields"))
        return [decode_value(item) for item in (raw or {}).get("values", [])]
    raise DocumentCodecError(f"Unsupported typed value kind: {kind}")


def format_timestamp(value: datetime) -> str:
    """RFC 3339 in UTC with a trailing ``Z``; naive values are taken as UTC."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(raw: str) -> datetime:
    """Parse RFC 3339, truncating nanosecond precision to microseconds."""

    text = str(raw).strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda match: "." + match.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise DocumentCodecError(f"Invalid timestamp: {raw!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def document_id(name: str) -> str:
    """Last path segment of a document resource name."""

    return name.rstrip("/").rsplit("/", 1)[-1]
