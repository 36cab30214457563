"""
Event metadata parsing.

Backend triggers store `system_events.metadata` either as a JSON object or as
a JSON-encoded string. Parsing never raises: the outcome is a MetadataResult
that carries either the parsed mapping or the reason it was rejected.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class MetadataParseError:
    reason: str
    raw_type: str


@dataclass(frozen=True)
class MetadataResult:
    value: dict[str, Any] = field(default_factory=dict)
    error: MetadataParseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or_empty(self) -> dict[str, Any]:
        """Parsed metadata, or an empty dict when parsing failed."""
        return dict(self.value) if self.ok else {}


def parse_metadata(raw: Any, event_id: Any = None) -> MetadataResult:
    """
    Parse raw event metadata into a mapping.

    None/empty → ok with {}. Strings are JSON-decoded and must decode to an
    object. Mappings are shallow-copied. Anything else is rejected.
    Rejections are logged here so callers can fall back silently.
    """
    if raw is None or raw == "":
        return MetadataResult()

    if isinstance(raw, dict):
        return MetadataResult(value=dict(raw))

    if isinstance(raw, (str, bytes)):
        try:
            decoded = json.loads(raw)
        except (TypeError, ValueError) as exc:
            return _reject(f"invalid JSON: {exc}", raw, event_id)
        if decoded is None:
            return MetadataResult()
        if not isinstance(decoded, dict):
            return _reject(f"expected JSON object, got {type(decoded).__name__}", raw, event_id)
        return MetadataResult(value=decoded)

    return _reject(f"unsupported metadata type {type(raw).__name__}", raw, event_id)


def _reject(reason: str, raw: Any, event_id: Any) -> MetadataResult:
    error = MetadataParseError(reason=reason, raw_type=type(raw).__name__)
    logger.warning("intelligence.metadata_parse_failed", event_id=str(event_id), reason=reason)
    return MetadataResult(error=error)


# ── Typed field access ─────────────────────────────────────────────────


def meta_number(meta: dict[str, Any], key: str) -> float | None:
    """Finite float for `key`, accepting numeric strings; None otherwise."""
    value = meta.get(key)
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return parsed if math.isfinite(parsed) else None


def meta_text(meta: dict[str, Any], key: str) -> str | None:
    value = meta.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_currency(text: str | None) -> float | None:
    """Parse strings like "$1,250.50" into 1250.5."""
    if not text:
        return None
    cleaned = "".join(ch for ch in str(text) if ch.isdigit() or ch in ".-")
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None
