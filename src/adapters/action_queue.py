"""File-system action queue.

One ``<id>.json`` file per pending work item and one ``<id>.json.done``
marker per handled item. The external automation process polls the directory,
so every write is atomic and an identity with a done marker is never written
again.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Callable

from adapters.file_state import atomic_write_json, atomic_write_text
from core.models import QueueItem

LOGGER = logging.getLogger(__name__)

ITEM_SUFFIX = ".json"
DONE_SUFFIX = ".json.done"


def _check_identity(email_id: str) -> str:
    if not email_id or email_id.startswith(".") or "/" in email_id or "\\" in email_id:
        raise ValueError(f"Unsafe queue identity: {email_id!r}")
    return email_id


class FileActionQueue:
    """Implements the core ActionQueuePort on a directory of JSON files."""

    def __init__(self, directory: str, clock: Callable[[], float] = time.time) -> None:
        self._dir = directory
        self._clock = clock

    @property
    def directory(self) -> str:
        return self._dir

    def _item_path(self, email_id: str) -> str:
        return os.path.join(self._dir, _check_identity(email_id) + ITEM_SUFFIX)

    def _done_path(self, email_id: str) -> str:
        return os.path.join(self._dir, _check_identity(email_id) + DONE_SUFFIX)

    def is_pending(self, email_id: str) -> bool:
        return os.path.exists(self._item_path(email_id))

    def is_done(self, email_id: str) -> bool:
        return os.path.exists(self._done_path(email_id))

    def enqueue(self, item: QueueItem) -> bool:
        """Persist a work item unless it is already pending or done."""

        if self.is_pending(item.email_id) or self.is_done(item.email_id):
            return False
        atomic_write_json(self._item_path(item.email_id), item.to_record())
        return True

    def mark_done(self, email_id: str) -> None:
        """Write the done marker, then drop the pending item. Best-effort."""

        try:
            done_path = self._done_path(email_id)
            item_path = self._item_path(email_id)
        except ValueError as exc:
            LOGGER.warning("Not marking %r done: %s", email_id, exc)
            return

        stamp = datetime.fromtimestamp(self._clock(), tz=timezone.utc).isoformat()
        try:
            atomic_write_text(done_path, stamp)
        except OSError as exc:
            LOGGER.warning("Could not write done marker for %s: %s", email_id, exc)
        try:
            os.unlink(item_path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.warning("Could not remove queue item for %s: %s", email_id, exc)

    def _entries(self, suffix: str) -> list[tuple[str, str]]:
        if not os.path.isdir(self._dir):
            return []
        entries = []
        for name in sorted(os.listdir(self._dir)):
            if not name.endswith(suffix) or name.startswith("."):
                continue
            # "<id>.json" must not pick up "<id>.json.done" and vice versa.
            if suffix == ITEM_SUFFIX and name.endswith(DONE_SUFFIX):
                continue
            entries.append((name[: -len(suffix)], os.path.join(self._dir, name)))
        return entries

    def list_pending(self) -> list[dict[str, Any]]:
        """Return the payload of every pending item that can be parsed."""

        items: list[dict[str, Any]] = []
        for email_id, path in self._entries(ITEM_SUFFIX):
            try:
                with open(path, "r", encoding="utf-8") as handle:
                    payload = json.load(handle)
            except FileNotFoundError:
                continue
            except (OSError, ValueError) as exc:
                LOGGER.warning("Skipping unreadable queue item %s: %s", path, exc)
                continue
            if isinstance(payload, dict):
                payload.setdefault("emailId", email_id)
                items.append(payload)
        return items

    def _age_seconds(self, path: str) -> float:
        return self._clock() - os.path.getmtime(path)

    def cleanup(self, stale_minutes: float = 5, done_retention_hours: float = 24) -> tuple[int, int]:
        """Auto-resolve stale pending items and purge expired done markers.

        Returns ``(resolved, purged)``.
        """

        resolved = 0
        for email_id, path in self._entries(ITEM_SUFFIX):
            try:
                stale = self._age_seconds(path) > stale_minutes * 60
            except OSError:
                continue
            if stale:
                self.mark_done(email_id)
                resolved += 1

        purged = 0
        for _, path in self._entries(DONE_SUFFIX):
            try:
                if self._age_seconds(path) > done_retention_hours * 3600:
                    os.unlink(path)
                    purged += 1
            except OSError:
                continue
        return resolved, purged
