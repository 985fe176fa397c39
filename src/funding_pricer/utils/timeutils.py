"""
Time helpers.

All timestamps inside the application are timezone-aware UTC. Values coming
from Cafe24 are normalized here, at the ingestion boundary.
"""

from datetime import datetime, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return ``value`` as an aware UTC datetime.

    Naive values are taken to be UTC already; this is what SQLite hands back
    for columns that were written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_provider_timestamp(
    value: Union[str, datetime, None],
    provider_tz: timezone,
) -> Optional[datetime]:
    """
    Parse a timestamp returned by the OAuth provider.

    Cafe24 sends ISO-8601 strings such as ``2025-01-01T12:00:00.000`` with no
    offset; those are wall-clock times in ``provider_tz``. Values that already
    carry ``Z`` or an explicit offset are respected as-is.

    Returns:
        Aware UTC datetime, or None for empty input

    Raises:
        ValueError: If the string is not ISO-8601
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=provider_tz)
    return parsed.astimezone(timezone.utc)
