"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any provider-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class MessageMeta:
    """Header-level view of one inbox message."""

    email_id: str
    sender: str
    recipient: str
    subject: str
    date: str


@dataclass(frozen=True)
class Decision:
    """Outcome of matching one message against the rule set."""

    classification: str
    action: str
    assigned_to: Optional[str]
    model: Optional[str]
    rule_name: Optional[str]

    @property
    def needs_action(self) -> bool:
        return self.action in ("route", "escalate")


@dataclass(frozen=True)
class TriageEntry:
    """Append-only record of one classification decision."""

    timestamp: str
    email_id: str
    sender: str
    recipient: str
    subject: str
    received_at: str
    classification: str
    action: str
    assigned_to: Optional[str]
    model: Optional[str]
    escalated: bool
    processed_at: str
    shadow: bool = False
    token_cost: int = 0

    def to_record(self) -> dict[str, Any]:
        """Serialise using the on-disk field names."""
        return {
            "timestamp": self.timestamp,
            "emailId": self.email_id,
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "receivedAt": self.received_at,
            "classification": self.classification,
            "action": self.action,
            "assignedTo": self.assigned_to,
            "model": self.model,
            "escalated": self.escalated,
            "processedAt": self.processed_at,
            "tokenCost": self.token_cost,
            "shadow": self.shadow,
        }


@dataclass(frozen=True)
class QueueItem:
    """Work item handed to the downstream automation consumer."""

    email_id: str
    sender: str
    recipient: str
    subject: str
    received_at: str
    classification: str
    action: str
    assigned_to: Optional[str]
    model: Optional[str]
    body: str
    queued_at: str

    def to_record(self) -> dict[str, Any]:
        return {
            "emailId": self.email_id,
            "from": self.sender,
            "to": self.recipient,
            "subject": self.subject,
            "receivedAt": self.received_at,
            "classification": self.classification,
            "action": self.action,
            "assignedTo": self.assigned_to,
            "model": self.model,
            "body": self.body,
            "queuedAt": self.queued_at,
        }


@dataclass(frozen=True)
class CorrelationItem:
    """Minimal view of a classified alert used for DOWN/UP correlation."""

    email_id: str
    classification: str
    subject: str
    date: str

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "CorrelationItem":
        # Queue items and log entries share these field names.
        return cls(
            email_id=str(record.get("emailId") or ""),
            classification=str(record.get("classification") or ""),
            subject=str(record.get("subject") or ""),
            date=str(record.get("receivedAt") or record.get("date") or ""),
        )


def summary_for(meta: MessageMeta, action: str, classification: Optional[str] = None) -> dict[str, Any]:
    """Return the outcome summary stored in a dedup record."""

    summary: dict[str, Any] = {"from": meta.sender, "subject": meta.subject, "action": action}
    if classification is not None:
        summary["classification"] = classification
    return summary

