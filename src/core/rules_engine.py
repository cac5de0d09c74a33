"""Rule compilation and matching logic (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from core.addresses import address_matches, normalize_address
from core.config import ConfigError

ACTIONS = ("classify", "route", "escalate", "skip")


@dataclass(frozen=True)
class Rule:
    """Compiled rule used by the triage cycle.

    ``sender``/``recipient`` hold the raw ``from``/``to`` patterns (``None``
    means unconstrained) and ``subject_keywords`` is already lowercased.
    """

    name: str
    action: str
    sender: Optional[str] = None
    recipient: Optional[str] = None
    subject_keywords: tuple[str, ...] = ()
    assign_to: Optional[str] = None
    model: Optional[str] = None


def _pattern(rule_name: str, match: dict, key: str) -> Optional[str]:
    value = match.get(key)
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Rule {rule_name!r}: match.{key} must be a non-empty string")
    return value.strip()


def build_rules(rules_config: Iterable[dict]) -> List[Rule]:
    """Validate rule configs and normalize them into ``Rule`` objects.

    Order is preserved because list position is the rule's priority. Disabled
    rules are dropped; everything else must be well formed or the whole rule
    set is rejected with ``ConfigError``.
    """

    compiled: List[Rule] = []
    seen_names: set[str] = set()
    for index, rule in enumerate(rules_config or []):
        if not isinstance(rule, dict):
            raise ConfigError(f"Rule #{index} must be an object")
        if not rule.get("enabled", True):
            continue

        name = rule.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"Rule #{index} is missing a name")
        if name in seen_names:
            raise ConfigError(f"Duplicate rule name: {name!r}")
        seen_names.add(name)

        action = rule.get("action", "classify")
        if action not in ACTIONS:
            raise ConfigError(f"Rule {name!r}: unsupported action {action!r}")

        match = rule.get("match") or {}
        if not isinstance(match, dict):
            raise ConfigError(f"Rule {name!r}: match must be an object")

        keywords = match.get("subjectContains") or []
        if not isinstance(keywords, list) or not all(isinstance(k, str) for k in keywords):
            raise ConfigError(f"Rule {name!r}: match.subjectContains must be a list of strings")

        compiled.append(
            Rule(
                name=name,
                action=action,
                sender=_pattern(name, match, "from"),
                recipient=_pattern(name, match, "to"),
                subject_keywords=tuple(k.lower() for k in keywords if k),
                assign_to=rule.get("assignTo"),
                model=rule.get("model"),
            )
        )
    return compiled


def _rule_holds(rule: Rule, sender: str, recipient: str, subject: str) -> bool:
    if rule.sender is not None and not address_matches(rule.sender, sender):
        return False
    if rule.recipient is not None and not address_matches(rule.recipient, recipient):
        return False
    if rule.subject_keywords and not any(k in subject for k in rule.subject_keywords):
        return False
    return True


def match_rule(
    sender: str,
    subject: str,
    recipient: str,
    rules: Optional[Sequence[Rule]],
) -> Optional[Rule]:
    """Return the first rule whose constraints all hold, or ``None``.

    Matching logic:
    - Addresses are compared case-insensitively with display names stripped.
    - ``*@domain`` is a suffix check on ``@domain``; ``*`` matches anything.
    - Subject keywords match on any case-insensitive substring hit.
    """

    sender_address = normalize_address(sender or "")
    recipient_address = normalize_address(recipient or "")
    lowered_subject = (subject or "").lower()

    for rule in rules or ():
        if _rule_holds(rule, sender_address, recipient_address, lowered_subject):
            return rule
    return None
