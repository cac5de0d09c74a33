"""Core triage cycle.

This module is integration-agnostic. It only relies on ports for the inbox,
the state stores and notifications, enabling other providers or storage
backends without changes here.

One cycle enforces a strict order per message:
1) Identity dedup (cheap, before any network call)
2) Metadata fetch
3) Sender whitelist
4) Rule match, deciding whether the body is needed
5) Triage log append
6) Action queue enqueue (route/escalate, not in shadow mode)
7) Dedup record write, which commits the message

The checkpoint only advances once every listed message has been committed;
a failed or deferred message holds it back so the next listing still sees it.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from core.config import TriageConfig
from core.correlator import find_suppressible
from core.models import CorrelationItem, Decision, MessageMeta, QueueItem, TriageEntry, summary_for
from core.ports import ActionQueuePort, CheckpointPort, DedupPort, InboxPort, NotifierPort, TriageLogPort
from core.rules_engine import match_rule
from core.stats import TriageStats, utc_now_iso
from core.whitelist import is_whitelisted

LOGGER = logging.getLogger(__name__)

NOT_WHITELISTED = "skipped-not-whitelisted"


def decide(meta: MessageMeta, config: TriageConfig) -> Decision:
    """Match one message against the snapshot's rules and fill in defaults."""

    rule = match_rule(meta.sender, meta.subject, meta.recipient, config.rules)
    if rule is None:
        return Decision(
            classification=config.default_classification,
            action="classify",
            assigned_to=None,
            model=config.default_model,
            rule_name=None,
        )
    return Decision(
        classification=rule.name,
        action=rule.action,
        assigned_to=rule.assign_to,
        model=rule.model or config.default_model,
        rule_name=rule.name,
    )


class TriageCycle:
    """Orchestrates fetching, dedup, matching, persistence and enqueueing."""

    def __init__(
        self,
        config_source: Callable[[], TriageConfig],
        inbox: InboxPort,
        dedup: DedupPort,
        checkpoint: CheckpointPort,
        queue: ActionQueuePort,
        triage_log: TriageLogPort,
        notifier: NotifierPort,
        stats: TriageStats,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config_source = config_source
        self._inbox = inbox
        self._dedup = dedup
        self._checkpoint = checkpoint
        self._queue = queue
        self._log = triage_log
        self._notifier = notifier
        self._stats = stats
        self._clock = clock
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> bool:
        """Run one cycle. Returns ``False`` when a cycle was already running."""

        if self._running:
            LOGGER.debug("Cycle already in progress, dropping tick")
            return False
        self._running = True
        try:
            await self._run_cycle()
        except Exception as exc:
            # Cycle-level failures (auth, listing) leave the process alive and
            # visible as degraded on the health endpoint.
            LOGGER.exception("Cycle error")
            self._stats.record_error(f"cycle: {exc}")
            self._stats.degraded = True
        finally:
            self._running = False
        return True

    async def _run_cycle(self) -> None:
        config = self._config_source()
        started = int(self._clock())
        since = self._checkpoint.load()

        listed = await self._inbox.list_new_messages(since, config.search_query)
        self._stats.last_check = utc_now_iso()
        self._stats.cycles += 1

        # Providers list newest first; process oldest first so related alerts
        # are logged in wall-clock order and a capped cycle leaves only the
        # newest messages for later.
        batch = list(reversed(list(listed)))
        if not batch:
            self._stats.empty_polls += 1

        pending_notifications: list[QueueItem] = []
        failures = 0
        attempted = 0
        deferred = 0
        for email_id in batch:
            if self._dedup.is_processed(email_id):
                self._stats.total_deduplicated += 1
                continue
            if attempted >= config.max_messages_per_cycle:
                deferred += 1
                continue
            attempted += 1
            try:
                item = await self._process_message(email_id, config)
            except Exception as exc:
                failures += 1
                LOGGER.exception("Error processing message %s", email_id)
                self._stats.record_error(f"{email_id}: {exc}")
                continue
            if item is not None:
                pending_notifications.append(item)

        if not config.shadow_mode:
            try:
                suppressed = self.resolve_suppressed_alerts(config)
            except Exception:
                LOGGER.exception("Alert correlation failed")
                suppressed = set()
            for item in pending_notifications:
                if item.email_id in suppressed:
                    LOGGER.info("Notification suppressed for %s (resolved alert)", item.email_id)
                    continue
                self._notifier.notify(item)
            self.housekeeping(config)

        # The listing is bounded by ``after:<checkpoint>``, so moving it past a
        # failed or deferred message would hide that message for good.
        if failures or deferred:
            checkpoint = self._checkpoint.load()
            LOGGER.warning(
                "Checkpoint held at %s: failures=%s deferred=%s",
                checkpoint,
                failures,
                deferred,
            )
        else:
            checkpoint = self._checkpoint.advance(started)
        self._stats.last_cycle_at = utc_now_iso()
        self._stats.degraded = False
        LOGGER.debug(
            "Cycle complete: messages=%s attempted=%s failures=%s deferred=%s checkpoint=%s",
            len(batch),
            attempted,
            failures,
            deferred,
            checkpoint,
        )

    async def _process_message(self, email_id: str, config: TriageConfig) -> Optional[QueueItem]:
        """Triage one message; returns the queued item when one was enqueued."""

        meta = await self._inbox.fetch_metadata(email_id)

        if not is_whitelisted(meta.sender, config.whitelisted_domains, config.whitelisted_addresses):
            self._dedup.mark_processed(email_id, summary_for(meta, NOT_WHITELISTED))
            self._stats.total_not_whitelisted += 1
            LOGGER.info("NOT WHITELISTED | %s | %s", meta.sender, meta.subject[:60])
            return None

        decision = decide(meta, config)
        acting = decision.needs_action and not config.shadow_mode
        body = await self._inbox.fetch_body(email_id) if acting else ""

        now = utc_now_iso()
        entry = TriageEntry(
            timestamp=now,
            email_id=email_id,
            sender=meta.sender,
            recipient=meta.recipient,
            subject=meta.subject,
            received_at=meta.date,
            classification=decision.classification,
            action=decision.action,
            assigned_to=decision.assigned_to,
            model=decision.model,
            escalated=decision.action == "escalate",
            processed_at=now,
            shadow=config.shadow_mode,
        )
        self._log.append(entry)

        item: Optional[QueueItem] = None
        if acting:
            candidate = QueueItem(
                email_id=email_id,
                sender=meta.sender,
                recipient=meta.recipient,
                subject=meta.subject,
                received_at=meta.date,
                classification=decision.classification,
                action=decision.action,
                assigned_to=decision.assigned_to,
                model=decision.model,
                body=body[: config.body_chars],
                queued_at=now,
            )
            if self._queue.enqueue(candidate):
                item = candidate
            else:
                LOGGER.info("Queue already holds %s, not re-enqueued", email_id)

        # The dedup record is the commit point: everything above is safe to
        # repeat if this write never happens.
        self._dedup.mark_processed(email_id, summary_for(meta, decision.action, decision.classification))

        self._stats.record_decision(decision.action, decision.rule_name)
        self._stats.last_email_at = now
        shadow = " (shadow)" if config.shadow_mode else ""
        LOGGER.info(
            "%s%s | %s | %s | rule=%s",
            decision.action.upper(),
            shadow,
            meta.sender,
            meta.subject[:60],
            decision.classification,
        )
        return item

    def resolve_suppressed_alerts(self, config: TriageConfig) -> set[str]:
        """Mark pending DOWN alerts done when a later UP alert exists.

        History comes from pending queue items plus triage log entries inside
        the lookback window, since the UP alert is often logged in a later
        cycle than its DOWN alert. Returns the identities marked done.
        """

        correlation = config.correlation
        if not correlation.enabled:
            return set()

        now = datetime.fromtimestamp(self._clock(), timezone.utc)
        cutoff = now - timedelta(hours=correlation.lookback_hours)
        records = self._queue.list_pending() + self._log.read_since(cutoff.isoformat())
        items = [CorrelationItem.from_record(record) for record in records]
        suppressible = find_suppressible(items, correlation.classification)

        resolved: set[str] = set()
        for email_id in sorted(suppressible):
            if not self._queue.is_pending(email_id):
                continue
            self._queue.mark_done(email_id)
            resolved.add(email_id)
            self._stats.total_suppressed += 1
            LOGGER.info("Suppressed resolved alert %s", email_id)
        return resolved

    def housekeeping(self, config: TriageConfig) -> None:
        """Queue cleanup and log retention; failures are logged, never raised."""

        try:
            resolved, purged = self._queue.cleanup(
                config.queue.stale_minutes,
                config.queue.done_retention_hours,
            )
            if resolved or purged:
                LOGGER.info("Queue cleanup: auto-resolved=%s purged-markers=%s", resolved, purged)
        except Exception:
            LOGGER.exception("Queue cleanup failed")

        if config.log_retention_days > 0:
            try:
                pruned = self._log.prune(config.log_retention_days)
                if pruned:
                    LOGGER.info("Triage log pruned %s entries", pruned)
            except Exception:
                LOGGER.exception("Triage log pruning failed")
