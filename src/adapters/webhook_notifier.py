"""Automation webhook notification adapter.

Posts one JSON payload per enqueued action item. Delivery is fire-and-forget:
the cycle never waits on it, failures are only logged and counted, and the
queue item stays pending either way.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request
from typing import Optional

from adapters.notification_formatting import build_payload
from core.config import WebhookConfig
from core.models import QueueItem
from core.stats import TriageStats

LOGGER = logging.getLogger(__name__)


class WebhookNotifier:
    """Notifier adapter that POSTs decision payloads to the automation hook."""

    def __init__(self, config: WebhookConfig, stats: Optional[TriageStats] = None) -> None:
        self._config = config
        self._stats = stats or TriageStats()
        self._tasks: set[asyncio.Task] = set()

    def configure(self, config: WebhookConfig) -> None:
        """Apply webhook settings from a freshly loaded config snapshot."""

        self._config = config

    @property
    def enabled(self) -> bool:
        return bool(self._config.enabled and self._config.hook_url)

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def _post(self, payload: dict) -> str:
        data = json.dumps(payload).encode("utf-8")
        request = urllib.request.Request(self._config.hook_url, data=data, method="POST")
        request.add_header("Content-Type", "application/json")
        if self._config.token:
            request.add_header("Authorization", f"Bearer {self._config.token}")
        # Blocking urllib is fine here: the call runs in a worker thread.
        try:
            with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
                return response.read().decode("utf-8", errors="replace")
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise RuntimeError(f"Webhook error {e.code}: {body}") from e

    async def send(self, item: QueueItem) -> Optional[str]:
        """Deliver one notification now. Returns ``None`` when disabled."""

        if not self.enabled:
            return None
        payload = build_payload(item, self._config.deliver_channel, self._config.message_format)
        return await asyncio.to_thread(self._post, payload)

    async def _deliver(self, item: QueueItem) -> None:
        try:
            await self.send(item)
        except asyncio.CancelledError:
            LOGGER.warning("Webhook delivery for %s cancelled", item.email_id)
            raise
        except Exception as exc:
            self._stats.notification_errors += 1
            LOGGER.error("Webhook delivery for %s failed: %s", item.email_id, exc)
            return
        self._stats.notifications_sent += 1
        LOGGER.info("Webhook notified for %s (%s)", item.email_id, item.action)

    def notify(self, item: QueueItem) -> None:
        """Schedule delivery in the background and return immediately."""

        if not self.enabled:
            return
        task = asyncio.get_running_loop().create_task(self._deliver(item))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight deliveries, cancelling whatever outlives the timeout.

        Returns the number of deliveries that were cancelled.
        """

        if not self._tasks:
            return 0
        wait_for = self._config.drain_seconds if timeout is None else timeout
        pending_tasks = set(self._tasks)
        _, pending = await asyncio.wait(pending_tasks, timeout=wait_for)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            LOGGER.warning("Dropped %s webhook deliveries on shutdown", len(pending))
        return len(pending)
