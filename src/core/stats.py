"""Process-wide triage counters.

Created once at startup, mutated only by the triage cycle and read by the
health server.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class TriageStats:
    started_at: str = field(default_factory=utc_now_iso)
    total_processed: int = 0
    total_classified: int = 0
    total_routed: int = 0
    total_escalated: int = 0
    total_skipped: int = 0
    total_not_whitelisted: int = 0
    total_deduplicated: int = 0
    total_suppressed: int = 0
    empty_polls: int = 0
    cycles: int = 0
    errors: int = 0
    notifications_sent: int = 0
    notification_errors: int = 0
    by_rule: Counter = field(default_factory=Counter)
    last_check: Optional[str] = None
    last_cycle_at: Optional[str] = None
    last_email_at: Optional[str] = None
    last_error: Optional[str] = None
    degraded: bool = False

    def record_decision(self, action: str, rule_name: Optional[str]) -> None:
        self.total_processed += 1
        if rule_name:
            self.by_rule[rule_name] += 1
        if action == "escalate":
            self.total_escalated += 1
        elif action == "route":
            self.total_routed += 1
        elif action == "skip":
            self.total_skipped += 1
        else:
            self.total_classified += 1

    def record_error(self, message: str) -> None:
        self.errors += 1
        self.last_error = message

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-ready copy of the counters."""

        return {
            "startedAt": self.started_at,
            "totalProcessed": self.total_processed,
            "totalClassified": self.total_classified,
            "totalRouted": self.total_routed,
            "totalEscalated": self.total_escalated,
            "totalSkipped": self.total_skipped,
            "totalNotWhitelisted": self.total_not_whitelisted,
            "totalDeduplicated": self.total_deduplicated,
            "totalSuppressed": self.total_suppressed,
            "emptyPolls": self.empty_polls,
            "cycles": self.cycles,
            "errors": self.errors,
            "notificationsSent": self.notifications_sent,
            "notificationErrors": self.notification_errors,
            "byRule": dict(self.by_rule),
            "lastCheck": self.last_check,
            "lastCycleAt": self.last_cycle_at,
            "lastEmailAt": self.last_email_at,
            "lastError": self.last_error,
            "status": "degraded" if self.degraded else "ok",
        }
