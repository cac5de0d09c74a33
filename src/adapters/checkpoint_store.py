"""Checkpoint file adapter.

Holds a single epoch-seconds integer: everything received after it still has
to be fetched. It only ever moves forward.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from adapters.file_state import atomic_write_text

LOGGER = logging.getLogger(__name__)


class FileCheckpointStore:
    """Implements the core CheckpointPort on top of a small text file."""

    def __init__(self, path: str) -> None:
        self._path = path

    def load(self) -> Optional[int]:
        """Return the stored checkpoint, or ``None`` on first run."""

        if not os.path.exists(self._path):
            return None
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                raw = handle.read().strip()
            return int(raw) if raw else None
        except (OSError, ValueError) as exc:
            LOGGER.warning("Checkpoint %s unreadable, polling without it: %s", self._path, exc)
            return None

    def advance(self, epoch_seconds: int) -> int:
        """Move the checkpoint to ``epoch_seconds`` unless that would go back."""

        current = self.load()
        if current is not None and epoch_seconds <= current:
            return current
        atomic_write_text(self._path, f"{int(epoch_seconds)}\n")
        return int(epoch_seconds)
