"""Timestamp helpers shared by the task model, the graph and the update check."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    # Hand-edited documents may carry naive timestamps; treat them as UTC.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _timestamp_key(value: Any) -> datetime:
    """Sortable form of an ISO timestamp; unparseable values sort first."""
    return _parse_iso(value) or _EPOCH
