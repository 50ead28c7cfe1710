"""Timestamp helpers shared by the store-facing modules."""

from __future__ import annotations

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value) -> datetime | None:
    """Parse a Supabase timestamp (ISO string or datetime) into an aware datetime.

    PostgREST returns ``timestamptz`` columns as ISO strings, sometimes with a
    trailing ``Z`` that ``fromisoformat`` did not accept before Python 3.11.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
