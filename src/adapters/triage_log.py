"""Append-only JSON-lines triage log.

Every classification decision is one line. The log doubles as the history
the alert correlator scans, so reads tolerate partial or corrupt lines.
"""

from __future__ import annotations

import json
import logging
import os
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Optional

from adapters.file_state import atomic_write_text, ensure_parent
from core.dedup import parse_iso
from core.models import TriageEntry

LOGGER = logging.getLogger(__name__)

PRUNE_INTERVAL_SECONDS = 24 * 3600


class JsonlTriageLog:
    """Implements the core TriageLogPort."""

    def __init__(self, path: str, clock: Callable[[], float] = time.time) -> None:
        self._path = path
        self._clock = clock
        self._last_prune: Optional[float] = None

    @property
    def path(self) -> str:
        return self._path

    def append(self, entry: TriageEntry) -> None:
        ensure_parent(self._path)
        with open(self._path, "a", encoding="utf-8") as handle:
            handle.write(json.dumps(entry.to_record()) + "\n")

    def _records(self) -> Iterator[dict[str, Any]]:
        if not os.path.exists(self._path):
            return
        with open(self._path, "r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    record = json.loads(line)
                except ValueError:
                    continue
                if isinstance(record, dict):
                    yield record

    def read_all(self) -> list[dict[str, Any]]:
        return list(self._records())

    def read_since(self, cutoff_iso: str) -> list[dict[str, Any]]:
        """Return entries whose ``timestamp`` is at or after the cutoff."""

        cutoff = parse_iso(cutoff_iso)
        if cutoff is None:
            return self.read_all()
        results = []
        for record in self._records():
            stamp = parse_iso(record.get("timestamp"))
            if stamp is not None and stamp >= cutoff:
                results.append(record)
        return results

    def prune(self, retention_days: float) -> int:
        """Drop entries older than the retention window, at most once a day.

        Lines without a readable timestamp are kept. Returns how many entries
        were removed.
        """

        now = self._clock()
        if self._last_prune is not None and now - self._last_prune < PRUNE_INTERVAL_SECONDS:
            return 0
        self._last_prune = now
        if not os.path.exists(self._path):
            return 0

        cutoff = datetime.fromtimestamp(now, tz=timezone.utc) - timedelta(days=retention_days)
        kept: list[str] = []
        removed = 0
        with open(self._path, "r", encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                try:
                    stamp = parse_iso(json.loads(line).get("timestamp"))
                except (ValueError, AttributeError):
                    stamp = None
                if stamp is not None and stamp < cutoff:
                    removed += 1
                    continue
                kept.append(line if line.endswith("\n") else line + "\n")

        if removed:
            atomic_write_text(self._path, "".join(kept))
        return removed
