"""Sender allow-list filter (core domain)."""

from __future__ import annotations

from typing import Iterable

from core.addresses import domain_of, normalize_address


def is_whitelisted(
    sender: str,
    allowed_domains: Iterable[str],
    allowed_addresses: Iterable[str],
) -> bool:
    """Return whether the sender passes the configured allow-lists.

    Both lists empty means no filtering is configured, so everything passes.
    """

    domains = {d.strip().lower() for d in allowed_domains or () if d}
    addresses = {a.strip().lower() for a in allowed_addresses or () if a}
    if not domains and not addresses:
        return True

    address = normalize_address(sender or "")
    if address in addresses:
        return True
    return domain_of(address) in domains
