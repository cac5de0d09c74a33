"""Ports (interfaces) used by the triage cycle.

Ports define the minimal contracts for the inbox transport, the state stores
and the notifier so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence

from core.models import MessageMeta, QueueItem, TriageEntry


class InboxPort(Protocol):
    """Inbox transport operations required by the cycle."""

    async def list_new_messages(self, since: Optional[int], search_filter: str) -> Sequence[str]:
        ...

    async def fetch_metadata(self, email_id: str) -> MessageMeta:
        ...

    async def fetch_body(self, email_id: str) -> str:
        ...


class DedupPort(Protocol):
    def is_processed(self, email_id: str) -> bool:
        ...

    def mark_processed(self, email_id: str, summary: dict[str, Any]) -> None:
        ...


class CheckpointPort(Protocol):
    def load(self) -> Optional[int]:
        ...

    def advance(self, epoch_seconds: int) -> int:
        ...


class ActionQueuePort(Protocol):
    def enqueue(self, item: QueueItem) -> bool:
        ...

    def mark_done(self, email_id: str) -> None:
        ...

    def is_pending(self, email_id: str) -> bool:
        ...

    def list_pending(self) -> list[dict[str, Any]]:
        ...

    def cleanup(self, stale_minutes: float, done_retention_hours: float) -> tuple[int, int]:
        ...


class TriageLogPort(Protocol):
    def append(self, entry: TriageEntry) -> None:
        ...

    def read_since(self, cutoff_iso: str) -> list[dict[str, Any]]:
        ...

    def prune(self, retention_days: float) -> int:
        ...


class NotifierPort(Protocol):
    """Notification operations required by the cycle."""

    def notify(self, item: QueueItem) -> None:
        ...
