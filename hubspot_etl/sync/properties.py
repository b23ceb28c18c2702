"""Defensive readers over raw HubSpot JSON records."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_TAG_RE = re.compile(r"<.*?>", re.DOTALL)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime (naive values are assumed UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_properties(record: Any) -> dict[str, Any]:
    if not isinstance(record, dict):
        return {}
    props = record.get("properties")
    return props if isinstance(props, dict) else {}


def get_hubspot_id(record: Any) -> str | None:
    """Read the record ``id``, which HubSpot sends as either a string or a number."""
    if not isinstance(record, dict):
        return None
    return to_str(record.get("id"))


def to_str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value)
    return text if text.strip() else None


def get_str(props: dict[str, Any], name: str) -> str | None:
    return to_str(props.get(name))


def first_str(props: dict[str, Any], *names: str) -> str | None:
    for name in names:
        value = get_str(props, name)
        if value is not None:
            return value
    return None


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO-8601 strings and epoch-millisecond numbers into aware UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)):
        return _from_epoch_ms(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.lstrip("-").isdigit():
        return _from_epoch_ms(int(text))
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _from_epoch_ms(value: int | float) -> datetime | None:
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def get_datetime(props: dict[str, Any], *names: str) -> datetime | None:
    for name in names:
        parsed = parse_datetime(props.get(name))
        if parsed is not None:
            return parsed
    return None


def get_decimal(props: dict[str, Any], name: str) -> Decimal | None:
    raw = props.get(name)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None


def get_int(props: dict[str, Any], name: str) -> int | None:
    raw = props.get(name)
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(Decimal(str(raw).strip()))
    except (InvalidOperation, ValueError):
        return None


def get_bool(props: dict[str, Any], name: str) -> bool | None:
    raw = props.get(name)
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in {"true", "1", "yes"}:
        return True
    if text in {"false", "0", "no"}:
        return False
    return None


def strip_html(value: str | None) -> str | None:
    """Turn an HTML fragment into plain text; ``<br>`` becomes a newline."""
    if value is None:
        return None
    text = _BR_RE.sub("\n", value)
    text = _TAG_RE.sub("", text).strip()
    return text or None
