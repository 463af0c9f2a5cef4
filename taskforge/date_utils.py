"""Shared date normalization helpers.

Both stores keep timestamps as ISO-8601 text; these helpers make mixed
inputs comparable.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _format_datetime_utc(value: datetime) -> str:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def _parse_datetime_token(token: str) -> datetime | None:
    cleaned = token.strip()
    if not cleaned:
        return None
    try:
        return datetime.fromisoformat(cleaned.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in ("%Y/%m/%d", "%m/%d/%Y", "%Y-%m-%d %H:%M:%S"):
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def normalize_iso_date(value: Any) -> str:
    """Convert mixed date inputs into comparable ISO strings ("" if unparseable)."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return _format_datetime_utc(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        token = value.strip()
        if not token:
            return ""
        if _DATE_ONLY_RE.match(token):
            try:
                return date.fromisoformat(token).isoformat()
            except ValueError:
                return ""
        parsed_dt = _parse_datetime_token(token)
        if parsed_dt:
            return _format_datetime_utc(parsed_dt)
        return ""
    return ""


def iso_to_epoch(value: Any) -> float:
    token = normalize_iso_date(value)
    if not token:
        return 0.0
    if _DATE_ONLY_RE.match(token):
        return datetime.fromisoformat(token).replace(tzinfo=timezone.utc).timestamp()
    parsed_dt = _parse_datetime_token(token)
    if not parsed_dt:
        return 0.0
    dt = parsed_dt if parsed_dt.tzinfo else parsed_dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).timestamp()


def is_past(value: Any, *, now: datetime | None = None) -> bool:
    epoch = iso_to_epoch(value)
    if epoch <= 0:
        return False
    reference = (now or datetime.now(timezone.utc)).timestamp()
    return epoch < reference


def hours_between(start: Any, end: Any) -> float | None:
    start_epoch = iso_to_epoch(start)
    end_epoch = iso_to_epoch(end)
    if start_epoch <= 0 or end_epoch <= 0 or end_epoch < start_epoch:
        return None
    return (end_epoch - start_epoch) / 3600.0
