"""JSON file dedup store.

Implements the core DedupPort. The file layout is::

    {"emails": {"<id>": {"from": ..., "action": ..., "processedAt": ...}},
     "lastCleanup": <epoch ms>}
"""

from __future__ import annotations

import copy
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from adapters.file_state import atomic_write_json, load_json
from core.config import DedupConfig
from core.dedup import cleanup_due, evict_expired

LOGGER = logging.getLogger(__name__)


class JsonDedupStore:
    """Identity cache persisted as one atomically rewritten JSON document."""

    def __init__(
        self,
        path: str,
        config: Optional[DedupConfig] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = path
        self._config = config or DedupConfig()
        self._clock = clock
        self._state: Optional[dict[str, Any]] = None

    @property
    def path(self) -> str:
        return self._path

    def configure(self, config: DedupConfig) -> None:
        """Apply TTL settings from a freshly loaded config snapshot."""

        self._config = config

    def _load(self) -> dict[str, Any]:
        if self._state is None:
            now_ms = int(self._clock() * 1000)
            state = load_json(self._path, None, state_name="dedup")
            if not isinstance(state, dict) or not isinstance(state.get("emails"), dict):
                state = {"emails": {}, "lastCleanup": now_ms}
            self._state = state
        return self._state

    def is_processed(self, email_id: str) -> bool:
        return email_id in self._load()["emails"]

    def get(self, email_id: str) -> Optional[dict[str, Any]]:
        return self._load()["emails"].get(email_id)

    def __len__(self) -> int:
        return len(self._load()["emails"])

    def mark_processed(self, email_id: str, summary: dict[str, Any]) -> None:
        """Record an outcome and persist, sweeping expired records if due.

        On a failed write the in-memory state is rolled back so the message
        stays eligible for reprocessing.
        """

        state = self._load()
        previous = copy.deepcopy(state)

        now_ms = int(self._clock() * 1000)
        processed_at = datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc).isoformat()
        state["emails"][email_id] = {**summary, "processedAt": processed_at}

        if cleanup_due(state.get("lastCleanup"), now_ms, self._config.cleanup_interval_minutes):
            evicted = evict_expired(state["emails"], now_ms, self._config.ttl_hours)
            state["lastCleanup"] = now_ms
            if evicted:
                LOGGER.info("Dedup cleanup evicted %s records", len(evicted))

        try:
            atomic_write_json(self._path, state)
        except Exception:
            self._state = previous
            raise
