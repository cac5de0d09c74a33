from __future__ import annotations

import json
import os
from datetime import datetime, timedelta, timezone

from adapters.checkpoint_store import FileCheckpointStore
from adapters.file_state import atomic_write_json, load_json
from adapters.triage_log import JsonlTriageLog
from core.models import TriageEntry

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _entry(email_id: str, when: datetime) -> TriageEntry:
    stamp = when.isoformat()
    return TriageEntry(
        timestamp=stamp,
        email_id=email_id,
        sender="a@b.com",
        recipient="me@b.com",
        subject="hello",
        received_at="Sat, 01 Jun 2024 11:59:00 +0000",
        classification="general",
        action="classify",
        assigned_to=None,
        model="default",
        escalated=False,
        processed_at=stamp,
    )


def test_atomic_write_json_leaves_no_temp_files(tmp_path) -> None:
    path = tmp_path / "nested" / "state.json"
    atomic_write_json(str(path), {"a": 1})
    atomic_write_json(str(path), {"a": 2})
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": 2}
    assert os.listdir(path.parent) == ["state.json"]


def test_load_json_defaults(tmp_path) -> None:
    assert load_json(str(tmp_path / "missing.json"), {"x": 1}) == {"x": 1}
    broken = tmp_path / "broken.json"
    broken.write_text("[", encoding="utf-8")
    assert load_json(str(broken), []) == []


def test_checkpoint_missing_file_is_none(tmp_path) -> None:
    assert FileCheckpointStore(str(tmp_path / "last-check.txt")).load() is None


def test_checkpoint_is_monotonic(tmp_path) -> None:
    store = FileCheckpointStore(str(tmp_path / "last-check.txt"))
    assert store.advance(1000) == 1000
    assert store.advance(900) == 1000
    assert store.load() == 1000
    assert store.advance(1200) == 1200
    assert (tmp_path / "last-check.txt").read_text(encoding="utf-8").strip() == "1200"


def test_checkpoint_corrupt_file_is_ignored(tmp_path) -> None:
    path = tmp_path / "last-check.txt"
    path.write_text("not a number", encoding="utf-8")
    store = FileCheckpointStore(str(path))
    assert store.load() is None
    assert store.advance(50) == 50


def test_triage_log_appends_json_lines(tmp_path) -> None:
    log = JsonlTriageLog(str(tmp_path / "email-triage.log"))
    log.append(_entry("m1", NOW))
    log.append(_entry("m2", NOW))

    lines = (tmp_path / "email-triage.log").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["emailId"] == "m1"
    assert json.loads(lines[1])["from"] == "a@b.com"


def test_triage_log_read_since_skips_garbage(tmp_path) -> None:
    path = tmp_path / "email-triage.log"
    log = JsonlTriageLog(str(path))
    log.append(_entry("old", NOW - timedelta(days=3)))
    with open(path, "a", encoding="utf-8") as handle:
        handle.write("{truncated\n")
    log.append(_entry("new", NOW))

    recent = log.read_since((NOW - timedelta(hours=24)).isoformat())
    assert [record["emailId"] for record in recent] == ["new"]


def test_triage_log_prune_respects_retention_and_interval(tmp_path) -> None:
    path = tmp_path / "email-triage.log"
    clock_value = [NOW.timestamp()]
    log = JsonlTriageLog(str(path), clock=lambda: clock_value[0])
    log.append(_entry("ancient", NOW - timedelta(days=40)))
    log.append(_entry("recent", NOW - timedelta(days=1)))

    assert log.prune(30) == 1
    assert [r["emailId"] for r in log.read_all()] == ["recent"]

    log.append(_entry("ancient2", NOW - timedelta(days=40)))
    # Pruning runs at most once a day.
    assert log.prune(30) == 0
    clock_value[0] += 25 * 3600
    assert log.prune(30) == 1
