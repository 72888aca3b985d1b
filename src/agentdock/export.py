"""Serialize threads and timelines: API payload dicts, Markdown and JSON export."""

import html
import json
import re
from datetime import datetime, timezone
from typing import Optional

from .core import (
    MESSAGE_KIND_TOOL,
    HealthCheckResult,
    MessageRecord,
    RuntimeState,
    SwitchContextSummary,
    ThreadRecord,
)


def thread_to_dict(thread: ThreadRecord, preview: Optional[str] = None) -> dict:
    data = {
        "id": thread.id,
        "providerId": thread.provider_id.value,
        "projectPath": thread.project_path,
        "title": thread.title,
        "tags": list(thread.tags),
        "createdAt": thread.created_at,
        "lastActiveAt": thread.last_active_at,
    }
    if preview is not None:
        data["lastMessagePreview"] = preview
    return data


def message_to_dict(message: MessageRecord) -> dict:
    return {
        "role": message.role,
        "content": message.content,
        "timestampMs": message.timestamp_ms,
        "kind": message.kind,
        "collapsed": message.collapsed,
    }


def runtime_state_to_dict(state: RuntimeState) -> dict:
    return {
        "agentAnswering": state.agent_answering,
        "lastEventKind": state.last_event_kind,
        "lastEventAtMs": state.last_event_at_ms,
    }


def health_to_dict(result: HealthCheckResult, installed: Optional[bool] = None) -> dict:
    data = {
        "providerId": result.provider_id.value,
        "status": result.status.value,
        "checkedAt": result.checked_at,
        "message": result.message,
    }
    if installed is not None:
        data["installed"] = installed
    return data


def context_summary_to_dict(summary: SwitchContextSummary) -> dict:
    return {
        "objective": summary.objective,
        "constraints": list(summary.constraints),
        "pendingTasks": list(summary.pending_tasks),
    }


def _format_ms(timestamp_ms: Optional[str | int]) -> Optional[str]:
    """Render an epoch-ms value as ``YYYY-MM-DD HH:MM`` UTC."""
    if timestamp_ms is None:
        return None
    try:
        value = int(timestamp_ms)
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _code_fence(body: str) -> str:
    """A backtick fence longer than any backtick run inside ``body``."""
    longest = max((len(run) for run in re.findall(r"`+", body)), default=0)
    return "`" * max(3, longest + 1)


def thread_to_markdown(thread: ThreadRecord, messages: list[MessageRecord]) -> str:
    """Export a thread and its timeline as clean Markdown.

    Tool records are folded into ``<details>`` blocks so the conversation
    itself stays readable.
    """
    lines = [f"# {thread.title}", ""]

    if thread.project_path and thread.project_path != ".":
        lines.append(f"**Project:** {thread.project_path}")
    lines.append(f"**Provider:** {thread.provider_id.value}")
    created = _format_ms(thread.created_at)
    if created:
        lines.append(f"**Created:** {created}")
    updated = _format_ms(thread.last_active_at)
    if updated:
        lines.append(f"**Last active:** {updated}")
    lines.append(f"**Messages:** {len(messages)}")
    lines.extend(["", "---", ""])

    for msg in messages:
        if msg.kind == MESSAGE_KIND_TOOL:
            summary, _, body = msg.content.partition("\n")
            lines.append("<details>")
            lines.append(f"<summary>{html.escape(summary)}</summary>")
            lines.append("")
            if body:
                fence = _code_fence(body)
                lines.append(fence)
                lines.append(body)
                lines.append(fence)
                lines.append("")
            lines.append("</details>")
            lines.append("")
            continue

        role_label = msg.role.capitalize()
        ts = _format_ms(msg.timestamp_ms)
        suffix = f" ({ts})" if ts else ""
        lines.append(f"## {role_label}{suffix}")
        lines.append("")
        lines.append(msg.content)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def thread_to_json(thread: ThreadRecord, messages: list[MessageRecord]) -> str:
    """Export a thread and its timeline as structured JSON."""
    data = {
        "thread": thread_to_dict(thread),
        "messages": [message_to_dict(m) for m in messages],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)
