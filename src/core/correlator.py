"""DOWN/UP alert correlation (core domain).

Uptime monitors send a ``DOWN alert`` when a check fails and an ``UP alert``
once it recovers. A DOWN alert followed later by an UP alert for the same
service no longer needs a human, so callers can suppress it.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, Optional

from core.dedup import parse_iso
from core.models import CorrelationItem

_SERVICE_PATTERN = re.compile(r"(?:DOWN|UP) alert:\s*(.+?)\s+is\s+(?:DOWN|UP)", re.IGNORECASE)
_DOWN = re.compile(r"DOWN alert", re.IGNORECASE)
_UP = re.compile(r"UP alert", re.IGNORECASE)


def extract_alert_service(subject: str) -> Optional[str]:
    """Return the monitored service named in an alert subject.

    ``"DOWN alert: API (api.example.com) is DOWN"`` -> ``"API (api.example.com)"``.
    The token is returned verbatim; it is only ever compared for equality.
    """

    match = _SERVICE_PATTERN.search(subject or "")
    return match.group(1) if match else None


def parse_alert_time(value: str) -> Optional[datetime]:
    """Parse an RFC 2822 ``Date`` header or an ISO timestamp."""

    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        parsed = parse_iso(value)
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def find_suppressible(items: Iterable[CorrelationItem], classification: str = "ops-alerts") -> set[str]:
    """Return identities of DOWN alerts resolved by a strictly later UP alert."""

    downs: list[tuple[CorrelationItem, str, datetime]] = []
    ups: list[tuple[str, datetime]] = []
    for item in items:
        if item.classification != classification:
            continue
        service = extract_alert_service(item.subject)
        when = parse_alert_time(item.date)
        if service is None or when is None:
            continue
        if _DOWN.search(item.subject):
            downs.append((item, service, when))
        if _UP.search(item.subject):
            ups.append((service, when))

    suppressible: set[str] = set()
    for down, service, down_time in downs:
        if any(up_service == service and up_time > down_time for up_service, up_time in ups):
            suppressible.add(down.email_id)
    return suppressible
