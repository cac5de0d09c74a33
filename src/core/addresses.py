"""Helpers for working with mail addresses and address patterns."""

from __future__ import annotations

import re

_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")

WILDCARD = "*"
DOMAIN_WILDCARD_PREFIX = "*@"


def extract_email(header_value: str) -> str:
    """Return the bare address from a header such as ``Name <addr@host>``."""

    if not header_value:
        return ""
    match = _ANGLE_ADDRESS.search(header_value)
    return match.group(1) if match else header_value


def normalize_address(header_value: str) -> str:
    """Strip any display name and lowercase the address."""

    return extract_email(header_value).strip().lower()


def domain_of(address: str) -> str:
    """Return the lowercased part after ``@``, or an empty string."""

    _, sep, domain = normalize_address(address).partition("@")
    return domain if sep else ""


def address_matches(pattern: str, address: str) -> bool:
    """Check a normalized address against an exact or ``*@domain`` pattern.

    ``*`` matches anything, including an empty address.
    """

    if pattern == WILDCARD:
        return True
    if pattern.startswith(DOMAIN_WILDCARD_PREFIX):
        domain = pattern[len(DOMAIN_WILDCARD_PREFIX) :].lower()
        return address.endswith("@" + domain)
    return pattern.lower() == address
