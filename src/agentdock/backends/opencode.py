"""OpenCode transcript backend.

Reads OpenCode's JSON storage under <data>/storage/ (default
~/.local/share/opencode/storage/):
- session/<projectID>/<sessionID>.json: session record with id, title,
  directory, projectID, parentID and time.created/updated.
- project/<projectID>.json: project record whose ``worktree`` is used when
  a session has no ``directory``.
- message/<sessionID>/<messageID>.json: message record with role,
  time.created/completed and an optional summary.title.
- part/<messageID>/<partID>.json: ordered parts of a message. Types used
  here are text, reasoning, tool and step-finish.

Sessions with a parentID are sub-agent runs and are not listed.
"""

import json
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

from ..config import OPENCODE_BINARY_ENV, get_opencode_data_dir
from ..content import (
    block_type_of,
    extract_message_records,
    first_user_text,
    sanitize_text,
    summarize_tool_call,
    summarize_tool_output,
)
from ..core import (
    HealthStatus,
    MessageRecord,
    ProviderId,
    RuntimeState,
    SemanticEventKind,
    ThreadRecord,
)
from ..provider import ChatProvider
from ..runtime import Event, is_recent
from ..scan import collect_files, read_json, sorted_json_files
from ..timestamps import file_mtime_ms, now_ms, parse_timestamp_ms
from ..titles import clean_title, resolve_title

logger = logging.getLogger(__name__)

PART_EVENT_KINDS = {
    "reasoning": SemanticEventKind.AGENT_REASONING,
    "tool": SemanticEventKind.AGENT_TOOL,
    "text": SemanticEventKind.AGENT_MESSAGE,
    "step-finish": SemanticEventKind.TURN_COMPLETED,
}


@dataclass
class _MessageNode:
    id: str
    role: str
    created_ms: Optional[int]
    completed_ms: Optional[int]
    timestamp_ms: Optional[int]  # completed, else created
    sort_key: int
    summary_title: Optional[str] = None


class OpenCodeProvider(ChatProvider):
    """Provider for OpenCode sessions.

    Liveness is structural rather than event based: the agent is answering
    while its latest assistant message has no completion time and was
    created within the recency window.
    """

    provider_id = ProviderId.OPENCODE
    label = "OpenCode"
    binary_env = OPENCODE_BINARY_ENV
    default_binary = "opencode"

    def __init__(self, data_dir: Optional[Path] = None, cli_binary: Optional[str] = None):
        super().__init__(cli_binary)
        self._data_dir_override = data_dir

    def get_data_dir(self) -> Path:
        return get_opencode_data_dir(self._data_dir_override)

    def get_storage_path(self) -> Path:
        return self.get_data_dir() / "storage"

    def get_base_path(self) -> Path:
        return self.get_storage_path() / "session"

    def scan_threads(self) -> list[ThreadRecord]:
        worktrees = self._load_project_worktrees()
        threads = []
        for path in collect_files(self.get_base_path(), ".json"):
            thread = self._parse_session_file(path, worktrees)
            if thread is not None:
                threads.append(thread)
        return threads

    def load_messages(self, thread: ThreadRecord) -> list[MessageRecord]:
        records = []
        for node in self._load_message_nodes(thread.id):
            messages = []
            for part in self._load_parts(node.id):
                messages.extend(_part_to_messages(node, part))

            if not messages and node.role == "user" and node.summary_title:
                summary = sanitize_text(node.summary_title)
                if summary:
                    messages.append(MessageRecord.text("user", summary, node.timestamp_ms))

            records.extend(messages)
        return records

    def classify_events(self, thread: ThreadRecord) -> Iterator[Event]:
        for node in self._load_message_nodes(thread.id):
            yield from self._node_events(node)

    def load_runtime_state(self, thread: ThreadRecord, now: Optional[int] = None) -> RuntimeState:
        last_kind = None
        last_at = None
        in_progress_at = None

        for node in self._load_message_nodes(thread.id):
            for kind, timestamp in self._node_events(node):
                last_kind = kind
                if timestamp is not None:
                    last_at = timestamp

            if node.role == "assistant" and node.completed_ms is None:
                started = node.created_ms if node.created_ms is not None else node.timestamp_ms
                if started is not None:
                    in_progress_at = started

        if now is None:
            now = now_ms()

        return RuntimeState(
            agent_answering=is_recent(in_progress_at, now),
            last_event_kind=last_kind.value if last_kind is not None else None,
            last_event_at_ms=last_at,
        )

    def check_config(self, profile_name: str) -> tuple[HealthStatus, str]:
        sessions = self.get_base_path()
        if not sessions.is_dir():
            return (HealthStatus.DEGRADED,
                    f"OpenCode sessions directory not found at {sessions} (profile={profile_name})")
        return (HealthStatus.HEALTHY,
                f"OpenCode CLI reachable, sessions directory loaded ({profile_name})")

    def resume_invocation(self, thread_id: str) -> str:
        return f"{shlex.quote(self.cli_binary())} --session {shlex.quote(thread_id)}"

    # ── Private helpers ──────────────────────────────────────────────

    def _load_project_worktrees(self) -> dict[str, str]:
        """Map projectID to its worktree directory."""
        worktrees = {}
        for path in sorted_json_files(self.get_storage_path() / "project"):
            data = read_json(path)
            if not isinstance(data, dict):
                continue
            project_id = data.get("id")
            worktree = data.get("worktree")
            if isinstance(project_id, str) and isinstance(worktree, str):
                worktrees[project_id] = worktree
        return worktrees

    def _parse_session_file(self, path: Path, worktrees: dict[str, str]) -> Optional[ThreadRecord]:
        data = read_json(path)
        if not isinstance(data, dict):
            return None

        parent_id = data.get("parentID") or data.get("parentId")
        if isinstance(parent_id, str) and parent_id.strip():
            return None

        session_id = data.get("id")
        if not isinstance(session_id, str) or not session_id:
            session_id = path.stem

        project_path = data.get("directory")
        if not isinstance(project_path, str) or not project_path:
            project_id = data.get("projectID")
            project_path = worktrees.get(project_id, ".") if isinstance(project_id, str) else "."

        time = data.get("time") if isinstance(data.get("time"), dict) else {}
        created_ms = parse_timestamp_ms(time.get("created"))
        updated_ms = parse_timestamp_ms(time.get("updated"))
        sort_key = _first_present(updated_ms, created_ms, file_mtime_ms(path), 0)

        official = clean_title(data.get("title"))
        first_user = None if official else self._first_user_message(session_id)
        title = resolve_title(official, first_user, project_path, self.label, session_id)

        return ThreadRecord(
            id=session_id,
            provider_id=self.provider_id,
            project_path=project_path,
            title=title,
            tags=[self.provider_id.value],
            created_at=str(created_ms) if created_ms is not None else None,
            last_active_at=str(_first_present(updated_ms, created_ms, sort_key)),
            sort_key=sort_key,
            source_path=path,
        )

    def _first_user_message(self, session_id: str) -> Optional[str]:
        for node in self._load_message_nodes(session_id):
            if node.role != "user":
                continue
            for part in self._load_parts(node.id):
                if part.get("type") == "text":
                    text = first_user_text(part.get("text"))
                    if text:
                        return text
            if node.summary_title:
                return first_user_text(node.summary_title)
        return None

    def _load_message_nodes(self, session_id: str) -> list[_MessageNode]:
        message_dir = self.get_storage_path() / "message" / session_id
        paths = sorted(collect_files(message_dir, ".json"), key=lambda p: p.name)

        nodes = []
        for path in paths:
            node = _parse_message_file(path)
            if node is not None:
                nodes.append(node)
        nodes.sort(key=lambda n: n.sort_key)
        return nodes

    def _load_parts(self, message_id: str) -> list[dict]:
        parts = []
        for path in sorted_json_files(self.get_storage_path() / "part" / message_id):
            data = read_json(path)
            if isinstance(data, dict):
                parts.append(data)
        return parts

    def _node_events(self, node: _MessageNode) -> list[Event]:
        if node.role == "user":
            return [(SemanticEventKind.USER_MESSAGE, node.timestamp_ms)]
        if node.role != "assistant":
            return []

        events = []
        for part in self._load_parts(node.id):
            kind = PART_EVENT_KINDS.get(block_type_of(part))
            if kind is None:
                continue
            time = part.get("time") if isinstance(part.get("time"), dict) else {}
            timestamp = _first_present(
                parse_timestamp_ms(time.get("end")),
                parse_timestamp_ms(time.get("start")),
                node.timestamp_ms,
            )
            events.append((kind, timestamp))

        if not events:
            events.append((SemanticEventKind.AGENT_MESSAGE, node.timestamp_ms))
        return events


def _first_present(*values):
    for value in values:
        if value is not None:
            return value
    return None


def _parse_message_file(path: Path) -> Optional[_MessageNode]:
    data = read_json(path)
    if not isinstance(data, dict):
        return None

    message_id = data.get("id")
    if not isinstance(message_id, str) or not message_id:
        message_id = path.stem

    role = data.get("role")
    if not isinstance(role, str) or not role:
        role = "assistant"

    time = data.get("time") if isinstance(data.get("time"), dict) else {}
    created_ms = parse_timestamp_ms(time.get("created"))
    completed_ms = parse_timestamp_ms(time.get("completed"))
    timestamp_ms = _first_present(completed_ms, created_ms)

    summary = data.get("summary")
    summary_title = summary.get("title") if isinstance(summary, dict) else None

    return _MessageNode(
        id=message_id,
        role=role,
        created_ms=created_ms,
        completed_ms=completed_ms,
        timestamp_ms=timestamp_ms,
        sort_key=_first_present(timestamp_ms, file_mtime_ms(path), 0),
        summary_title=summary_title if isinstance(summary_title, str) else None,
    )


def _part_to_messages(node: _MessageNode, part: dict) -> list[MessageRecord]:
    part_type = block_type_of(part)
    if part_type in ("text", "reasoning"):
        return extract_message_records(node.role, part, node.timestamp_ms,
                                       include_reasoning=True)
    if part_type == "tool":
        return [MessageRecord.tool(node.role, summarize_tool_part(part), node.timestamp_ms)]
    return []


def summarize_tool_part(part: dict) -> str:
    """Render a tool part as its name, ``IN`` argument and ``OUT`` preview."""
    state = part.get("state") if isinstance(part.get("state"), dict) else {}
    summary = summarize_tool_call(part.get("tool"), state.get("input"))

    is_error = state.get("status") == "error"
    output = state.get("error") if is_error else state.get("output")
    if output is None:
        return summary

    raw = output if isinstance(output, str) else _dump(output)
    rendered = summarize_tool_output(raw, is_error)
    if rendered:
        return f"{summary}\n{rendered}"
    return summary


def _dump(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)
