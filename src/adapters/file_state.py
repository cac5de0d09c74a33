"""Atomic file primitives shared by every state store.

Each write goes to a temporary file in the target directory and is moved into
place with ``os.replace``, so readers (including the external queue consumer)
only ever observe a complete old or complete new file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from typing import Any

LOGGER = logging.getLogger(__name__)


def ensure_parent(path: str) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)


def atomic_write_text(path: str, text: str) -> None:
    """Replace ``path`` with ``text`` atomically. Errors propagate."""

    ensure_parent(path)
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def atomic_write_json(path: str, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, default=str))


def load_json(path: str, default: Any, *, state_name: str = "") -> Any:
    """Load JSON state, falling back to ``default`` when missing or corrupt."""

    if not os.path.exists(path):
        return default
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError) as exc:
        LOGGER.warning("State file %s (%s) unreadable, starting fresh: %s", path, state_name, exc)
        return default
