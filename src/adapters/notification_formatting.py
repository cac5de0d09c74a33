"""Shared notification formatting helpers.

Keeping formatting here prevents drift between the webhook payload and log
output and keeps messages consistent regardless of delivery channel.
"""

from __future__ import annotations

from typing import Any

from core.models import QueueItem

HOOK_NAME = "Email Triage"
SESSION_PREFIX = "hook:email-triage:"


def action_label(action: str) -> str:
    return "🚨 ESCALATION" if action == "escalate" else "📧 Action needed"


def _format_text(item: QueueItem) -> str:
    lines = [
        f"{action_label(item.action)}: New email from {item.sender}",
        f"Subject: {item.subject}",
    ]
    if item.assigned_to:
        lines.append(f"Assigned to: {item.assigned_to}")
    return "\n".join(lines)


def _format_markdown(item: QueueItem) -> str:
    def escape_md(value: str) -> str:
        for ch in r"*_[`":
            value = value.replace(ch, f"\\{ch}")
        return value

    lines = [
        f"**{action_label(item.action)}**",
        f"**From:** {escape_md(item.sender)}",
        f"**Subject:** {escape_md(item.subject)}",
        f"**Rule:** {escape_md(item.classification)}",
    ]
    if item.assigned_to:
        lines.append(f"**Assigned to:** {escape_md(item.assigned_to)}")
    return "\n".join(lines)


def format_notification(item: QueueItem, mode: str = "text") -> str:
    """Return the notification text formatted for the requested mode."""

    if mode == "text":
        return _format_text(item)
    if mode == "markdown":
        return _format_markdown(item)
    raise ValueError(f"Unsupported notification format: {mode}")


def build_payload(item: QueueItem, channel: str = "last", mode: str = "text") -> dict[str, Any]:
    """Return the JSON body posted to the automation hook."""

    return {
        "message": format_notification(item, mode),
        "name": HOOK_NAME,
        "sessionKey": f"{SESSION_PREFIX}{item.email_id}",
        "wakeMode": "now",
        "deliver": True,
        "channel": channel or "last",
    }
