"""Configuration loading for inbox triage.

All user-editable settings (rules, whitelist, dedup, queue, webhook) live in a
single JSON file for quick edits without touching Python. The file is
re-read whenever it changes; each cycle takes one immutable snapshot.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from core.config import (
    ConfigError,
    CorrelationConfig,
    DedupConfig,
    QueueConfig,
    TriageConfig,
    WebhookConfig,
)
from core.rules_engine import build_rules

LOGGER = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

DEFAULT_PORT = 8403
DEFAULT_TOKEN_ENV = "TRIAGE_WEBHOOK_TOKEN"


def config_path() -> str:
    """Return the config path, honouring ``EMAIL_TRIAGE_CONFIG``."""

    load_dotenv()
    return os.getenv("EMAIL_TRIAGE_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def server_port() -> int:
    load_dotenv()
    return int(os.getenv("EMAIL_TRIAGE_PORT", str(DEFAULT_PORT)))


def resolve_path(value: str, base_dir: str) -> str:
    """Expand ``~`` and resolve relative paths against the config directory."""

    expanded = os.path.expanduser(value)
    if not os.path.isabs(expanded):
        expanded = os.path.join(base_dir, expanded)
    return os.path.abspath(expanded)


@dataclass(frozen=True)
class StatePaths:
    """Filesystem locations resolved once at startup."""

    processed_file: str
    log_file: str
    checkpoint_file: str
    queue_dir: str
    credentials_path: Optional[str]
    token_path: Optional[str]


def load_json_config(path: str) -> dict:
    """Load the config file with a flat, user-friendly schema."""

    if not os.path.exists(path):
        raise ConfigError(f"Config file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as handle:
            raw = json.load(handle)
    except (OSError, ValueError) as exc:
        raise ConfigError(f"Config file {path} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")
    return raw


def _section(raw: Mapping[str, Any], name: str) -> dict:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section {name!r} must be an object")
    return value


def _string_list(section: dict, key: str) -> tuple[str, ...]:
    value = section.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{key} must be a list of strings")
    return tuple(v for v in value if v.strip())


def _number(section: dict, key: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(f"{key} must be a non-negative number")
    return value


def resolve_state_paths(raw: Mapping[str, Any], config_file: str) -> StatePaths:
    base_dir = os.path.dirname(os.path.abspath(config_file))
    gmail = _section(raw, "gmail")
    triage = _section(raw, "triage")

    def optional(key: str) -> Optional[str]:
        value = gmail.get(key)
        return resolve_path(value, base_dir) if value else None

    return StatePaths(
        processed_file=resolve_path(triage.get("processedFile", "./processed-emails.json"), base_dir),
        log_file=resolve_path(triage.get("logFile", "./email-triage.log"), base_dir),
        checkpoint_file=resolve_path(triage.get("checkpointFile", "./last-check.txt"), base_dir),
        queue_dir=resolve_path(triage.get("queueDir", "./action-queue"), base_dir),
        credentials_path=optional("credentialsPath"),
        token_path=optional("tokenPath"),
    )


def build_config(raw: Mapping[str, Any], version: int = 1, env: Optional[Mapping[str, str]] = None) -> TriageConfig:
    """Validate a raw config mapping and build an immutable snapshot."""

    env = os.environ if env is None else env
    gmail = _section(raw, "gmail")
    triage = _section(raw, "triage")
    models = _section(raw, "models")
    dedup = _section(raw, "dedup")
    queue = _section(raw, "actionQueue")
    correlation = _section(raw, "correlation")
    webhook = _section(raw, "webhook")

    token_env = webhook.get("tokenEnv", DEFAULT_TOKEN_ENV)
    token = env.get(token_env) if token_env else None

    webhook_config = WebhookConfig(
        enabled=bool(webhook.get("enabled", False)),
        hook_url=webhook.get("hookUrl"),
        token=token or webhook.get("token"),
        deliver_channel=webhook.get("deliverChannel", "last"),
        message_format=webhook.get("format", "text"),
        timeout_seconds=_number(webhook, "timeoutSeconds", 10),
        drain_seconds=_number(webhook, "drainSeconds", 5),
    )
    if webhook_config.enabled and not webhook_config.hook_url:
        raise ConfigError("webhook.hookUrl is required when the webhook is enabled")
    if webhook_config.message_format not in ("text", "markdown"):
        raise ConfigError("webhook.format must be 'text' or 'markdown'")

    return TriageConfig(
        version=version,
        rules=tuple(build_rules(triage.get("rules", []))),
        whitelisted_domains=_string_list(gmail, "whitelistedDomains"),
        whitelisted_addresses=_string_list(gmail, "whitelistedAddresses"),
        search_query=str(gmail.get("searchQuery", "is:unread")),
        check_interval_seconds=max(1.0, _number(gmail, "checkIntervalSeconds", 60)),
        max_messages_per_cycle=max(1, int(_number(gmail, "maxMessagesPerCycle", 500))),
        shadow_mode=bool(triage.get("shadowMode", False)),
        default_classification=str(triage.get("defaultClassification", "general")),
        default_model=models.get("classifier"),
        body_chars=int(_number(triage, "bodyChars", 2000)),
        log_retention_days=_number(triage, "logRetentionDays", 30),
        dedup=DedupConfig(
            ttl_hours=_number(dedup, "ttlHours", 168),
            cleanup_interval_minutes=_number(dedup, "cleanupIntervalMinutes", 60),
        ),
        queue=QueueConfig(
            stale_minutes=_number(queue, "staleMinutes", 5),
            done_retention_hours=_number(queue, "doneRetentionHours", 24),
        ),
        correlation=CorrelationConfig(
            enabled=bool(correlation.get("enabled", True)),
            classification=str(correlation.get("classification", "ops-alerts")),
            lookback_hours=_number(correlation, "lookbackHours", 24),
        ),
        webhook=webhook_config,
    )


class ConfigSource:
    """Hot-reloading config snapshot provider.

    ``current()`` re-reads the file when its mtime changes. A broken edit is
    logged and the last good snapshot stays in force; only the very first load
    is allowed to fail loudly.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._mtime: Optional[float] = None
        self._version = 0
        self._raw: dict = {}
        self._snapshot: Optional[TriageConfig] = None
        self.reload(strict=True)

    @property
    def path(self) -> str:
        return self._path

    @property
    def raw(self) -> dict:
        return self._raw

    def _file_mtime(self) -> Optional[float]:
        try:
            return os.path.getmtime(self._path)
        except OSError:
            return None

    def reload(self, strict: bool = False) -> TriageConfig:
        mtime = self._file_mtime()
        try:
            raw = load_json_config(self._path)
            snapshot = build_config(raw, version=self._version + 1)
        except ConfigError:
            if strict or self._snapshot is None:
                raise
            LOGGER.exception("Config reload failed, keeping version %s", self._version)
            self._mtime = mtime
            return self._snapshot

        self._version += 1
        self._raw = raw
        self._snapshot = snapshot
        self._mtime = mtime
        if self._version > 1:
            LOGGER.info("Config reloaded (version %s, %s rules)", self._version, len(snapshot.rules))
        return snapshot

    def current(self) -> TriageConfig:
        if self._snapshot is None or self._file_mtime() != self._mtime:
            return self.reload()
        return self._snapshot

    def __call__(self) -> TriageConfig:
        return self.current()
