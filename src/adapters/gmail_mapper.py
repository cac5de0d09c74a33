"""Gmail-to-core message mapping adapter.

This keeps Gmail API payload details out of the triage cycle. Malformed
payloads map to empty values instead of raising.
"""

from __future__ import annotations

import base64
import binascii
from email.header import decode_header, make_header
from typing import Any, Iterable, Optional

from core.addresses import extract_email
from core.models import MessageMeta


def extract_header(message: dict[str, Any], name: str) -> str:
    """Return a header value by case-insensitive name, or an empty string."""

    headers = (message.get("payload") or {}).get("headers") or []
    wanted = name.lower()
    for header in headers:
        if str(header.get("name", "")).lower() == wanted:
            return str(header.get("value") or "")
    return ""


def _decode_mime_header(value: str) -> str:
    """Decode RFC 2047 encoded words such as ``=?utf-8?b?...?=``."""

    if not value:
        return ""
    try:
        return str(make_header(decode_header(value)))
    except (LookupError, UnicodeDecodeError, ValueError):
        return value


def _decode_data(data: Optional[str]) -> str:
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, ValueError):
        return ""
    return raw.decode("utf-8", errors="replace")


def _first_part(parts: Iterable[dict[str, Any]], mime_type: str) -> Optional[str]:
    for part in parts:
        data = (part.get("body") or {}).get("data")
        if part.get("mimeType") == mime_type and data:
            return data
    return None


def extract_body(message: dict[str, Any]) -> str:
    """Extract a readable body from a ``format=full`` Gmail message.

    Preference order: single-part body, ``text/plain`` part, ``text/html``
    part, then ``text/plain`` one level down in nested multiparts.
    """

    payload = message.get("payload")
    if not payload:
        return ""

    data = (payload.get("body") or {}).get("data")
    if data:
        return _decode_data(data)

    parts = payload.get("parts") or []
    for mime_type in ("text/plain", "text/html"):
        found = _first_part(parts, mime_type)
        if found:
            return _decode_data(found)

    for part in parts:
        nested = _first_part(part.get("parts") or [], "text/plain")
        if nested:
            return _decode_data(nested)
    return ""


def build_metadata(email_id: str, message: dict[str, Any]) -> MessageMeta:
    """Build a core MessageMeta from a ``format=metadata`` Gmail message."""

    return MessageMeta(
        email_id=email_id,
        sender=extract_email(_decode_mime_header(extract_header(message, "From"))),
        recipient=extract_email(_decode_mime_header(extract_header(message, "To"))),
        subject=_decode_mime_header(extract_header(message, "Subject")),
        date=extract_header(message, "Date"),
    )


def build_search_query(search_query: str, since: Optional[int]) -> str:
    """Combine the configured search with the checkpoint bound."""

    query = (search_query or "").strip()
    if since is None:
        return query
    bound = f"after:{int(since)}"
    return f"{query} {bound}" if query else bound
