from __future__ import annotations

import json
import os

import pytest

import settings
from core.config import ConfigError


def _write(path, data: dict, mtime: float | None = None) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))


def test_build_config_defaults() -> None:
    config = settings.build_config({}, env={})
    assert config.rules == ()
    assert config.search_query == "is:unread"
    assert config.check_interval_seconds == 60
    assert config.max_messages_per_cycle == 500
    assert config.shadow_mode is False
    assert config.dedup.ttl_hours == 168
    assert config.queue.stale_minutes == 5
    assert config.correlation.classification == "ops-alerts"
    assert config.webhook.enabled is False
    assert config.log_retention_days == 30


def test_build_config_reads_sections() -> None:
    raw = {
        "gmail": {"whitelistedDomains": ["example.com"], "searchQuery": "in:inbox", "checkIntervalSeconds": 30, "maxMessagesPerCycle": 25},
        "triage": {
            "shadowMode": True,
            "rules": [{"name": "vip", "match": {"from": "boss@co.com"}, "action": "escalate"}],
        },
        "models": {"classifier": "small"},
        "dedup": {"ttlHours": 24},
    }
    config = settings.build_config(raw, version=3, env={})
    assert config.version == 3
    assert config.whitelisted_domains == ("example.com",)
    assert config.search_query == "in:inbox"
    assert config.check_interval_seconds == 30
    assert config.max_messages_per_cycle == 25
    assert config.shadow_mode is True
    assert [rule.name for rule in config.rules] == ["vip"]
    assert config.default_model == "small"
    assert config.dedup.ttl_hours == 24


def test_webhook_token_prefers_environment() -> None:
    raw = {"webhook": {"enabled": True, "hookUrl": "http://127.0.0.1:1/hook", "token": "from-file"}}
    assert settings.build_config(raw, env={"TRIAGE_WEBHOOK_TOKEN": "from-env"}).webhook.token == "from-env"
    assert settings.build_config(raw, env={}).webhook.token == "from-file"


@pytest.mark.parametrize(
    "raw",
    [
        {"webhook": {"enabled": True}},
        {"webhook": {"format": "html"}},
        {"dedup": {"ttlHours": -1}},
        {"gmail": {"whitelistedDomains": "example.com"}},
        {"triage": []},
        {"triage": {"rules": [{"name": "x", "action": "delete"}]}},
    ],
)
def test_invalid_configs_are_rejected(raw) -> None:
    with pytest.raises(ConfigError):
        settings.build_config(raw, env={})


def test_state_paths_resolve_against_config_dir(tmp_path) -> None:
    config_file = tmp_path / "conf" / "config.json"
    raw = {"triage": {"queueDir": "./queue"}, "gmail": {"tokenPath": "token.json"}}
    paths = settings.resolve_state_paths(raw, str(config_file))
    assert paths.queue_dir == str(tmp_path / "conf" / "queue")
    assert paths.token_path == str(tmp_path / "conf" / "token.json")
    assert paths.processed_file == str(tmp_path / "conf" / "processed-emails.json")
    assert paths.credentials_path is None


def test_missing_or_invalid_file_fails_first_load(tmp_path) -> None:
    with pytest.raises(ConfigError):
        settings.ConfigSource(str(tmp_path / "absent.json"))
    broken = tmp_path / "broken.json"
    broken.write_text("{", encoding="utf-8")
    with pytest.raises(ConfigError):
        settings.ConfigSource(str(broken))


def test_config_source_reloads_on_change(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("TRIAGE_WEBHOOK_TOKEN", raising=False)
    path = tmp_path / "config.json"
    _write(path, {"triage": {"shadowMode": True}}, mtime=1_000_000)
    source = settings.ConfigSource(str(path))
    first = source()
    assert first.version == 1 and first.shadow_mode is True

    assert source() is first

    _write(path, {"triage": {"shadowMode": False}}, mtime=1_000_100)
    second = source()
    assert second.version == 2
    assert second.shadow_mode is False
    # Snapshots are immutable; the earlier one is untouched.
    assert first.shadow_mode is True


def test_broken_edit_keeps_last_good_snapshot(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("TRIAGE_WEBHOOK_TOKEN", raising=False)
    path = tmp_path / "config.json"
    _write(path, {"triage": {"rules": [{"name": "vip", "match": {"from": "a@b.com"}}]}}, mtime=1_000_000)
    source = settings.ConfigSource(str(path))

    path.write_text('{"triage": {"rules": [{"name": "vip"}, {"name": "vip"}]}}', encoding="utf-8")
    os.utime(path, (1_000_100, 1_000_100))
    snapshot = source()
    assert snapshot.version == 1
    assert [rule.name for rule in snapshot.rules] == ["vip"]

    _write(path, {"triage": {"rules": []}}, mtime=1_000_200)
    assert source().version == 2


def test_config_path_honours_environment(monkeypatch, tmp_path) -> None:
    monkeypatch.setattr(settings, "load_dotenv", lambda: None)
    monkeypatch.setenv("EMAIL_TRIAGE_CONFIG", str(tmp_path / "custom.json"))
    assert settings.config_path() == str(tmp_path / "custom.json")
    monkeypatch.setenv("EMAIL_TRIAGE_PORT", "9001")
    assert settings.server_port() == 9001
