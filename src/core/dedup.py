"""Deduplication helpers (core domain).

The identity cache itself lives in an adapter; the eviction policy is kept
here so it can be tested without touching the filesystem.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

MS_PER_HOUR = 3600 * 1000


def parse_iso(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""

    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def cleanup_due(last_cleanup_ms: Any, now_ms: int, interval_minutes: float) -> bool:
    """Return whether the opportunistic TTL sweep should run on this write."""

    try:
        last = int(last_cleanup_ms or 0)
    except (TypeError, ValueError):
        last = 0
    return now_ms - last > interval_minutes * 60 * 1000


def evict_expired(records: dict[str, dict], now_ms: int, ttl_hours: float) -> list[str]:
    """Delete records whose ``processedAt`` is older than the TTL.

    Records without a readable ``processedAt`` are kept; they will be
    overwritten the next time their identity is processed. Returns the evicted
    identities.
    """

    ttl_ms = ttl_hours * MS_PER_HOUR
    evicted: list[str] = []
    for email_id, record in list(records.items()):
        processed_at = parse_iso(record.get("processedAt") if isinstance(record, dict) else None)
        if processed_at is None:
            continue
        age_ms = now_ms - int(processed_at.timestamp() * 1000)
        if age_ms > ttl_ms:
            del records[email_id]
            evicted.append(email_id)
    return evicted
