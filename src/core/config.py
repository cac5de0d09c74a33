"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from core.rules_engine import Rule


class ConfigError(ValueError):
    """Raised when the configuration file is missing or malformed."""


@dataclass(frozen=True)
class DedupConfig:
    """Deduplication settings for the identity cache."""

    ttl_hours: float = 168
    cleanup_interval_minutes: float = 60


@dataclass(frozen=True)
class QueueConfig:
    """Action queue housekeeping windows."""

    stale_minutes: float = 5
    done_retention_hours: float = 24


@dataclass(frozen=True)
class CorrelationConfig:
    """DOWN/UP alert correlation settings."""

    enabled: bool = True
    classification: str = "ops-alerts"
    lookback_hours: float = 24


@dataclass(frozen=True)
class WebhookConfig:
    """Downstream automation hook settings consumed by the notifier adapter."""

    enabled: bool = False
    hook_url: Optional[str] = None
    token: Optional[str] = None
    deliver_channel: str = "last"
    message_format: str = "text"
    timeout_seconds: float = 10
    drain_seconds: float = 5


@dataclass(frozen=True)
class TriageConfig:
    """Immutable configuration snapshot observed by exactly one cycle."""

    version: int
    rules: tuple["Rule", ...] = ()
    whitelisted_domains: tuple[str, ...] = ()
    whitelisted_addresses: tuple[str, ...] = ()
    search_query: str = "is:unread"
    check_interval_seconds: float = 60
    max_messages_per_cycle: int = 500
    shadow_mode: bool = False
    default_classification: str = "general"
    default_model: Optional[str] = None
    body_chars: int = 2000
    log_retention_days: float = 30
    dedup: DedupConfig = field(default_factory=DedupConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    correlation: CorrelationConfig = field(default_factory=CorrelationConfig)
    webhook: WebhookConfig = field(default_factory=WebhookConfig)
