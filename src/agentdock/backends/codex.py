"""Codex transcript backend.

Reads rollout files from <codex home>/sessions/ (default ~/.codex/sessions/),
nested by date: sessions/YYYY/MM/DD/rollout-*.jsonl. Thread renames are
appended to <codex home>/session_index.jsonl.

Every JSONL record has ``timestamp``, ``type`` and ``payload``:
- "session_meta": payload carries the session ``id`` and ``cwd``.
- "response_item": the model-facing history. Payload types are "message"
  (with ``role`` and typed ``content`` blocks), "reasoning", "function_call",
  "function_call_output", "custom_tool_call" and "custom_tool_call_output".
- "event_msg": UI events (user_message, agent_message, agent_reasoning,
  task_started, task_complete, turn_aborted). Used only for runtime state.
"""

import logging
import os
import shlex
from pathlib import Path
from typing import Iterator, Optional

from ..config import CODEX_BINARY_ENV, get_codex_home_dir
from ..content import (
    REASONING_BLOCK_TYPES,
    TOOL_CALL_BLOCK_TYPES,
    TOOL_RESULT_BLOCK_TYPES,
    block_type_of,
    extract_message_records,
    first_user_text,
)
from ..core import (
    HealthStatus,
    MessageRecord,
    ProviderId,
    SemanticEventKind,
    ThreadRecord,
)
from ..provider import ChatProvider
from ..runtime import CODEX_ANSWERING_KINDS, Event
from ..scan import collect_files, iter_jsonl
from ..timestamps import file_mtime_ms, parse_timestamp_ms
from ..titles import load_jsonl_title_index, resolve_title

logger = logging.getLogger(__name__)

EVENT_MSG_KINDS = {
    "user_message": SemanticEventKind.USER_MESSAGE,
    "agent_reasoning": SemanticEventKind.AGENT_REASONING,
    "agent_message": SemanticEventKind.AGENT_MESSAGE,
    "turn_aborted": SemanticEventKind.TURN_ABORTED,
    "task_started": SemanticEventKind.AGENT_PROGRESS,
    "task_complete": SemanticEventKind.TURN_COMPLETED,
}

# Payload types of response_item records that are shown in the timeline
# besides plain messages. Reasoning is listed so it is explicitly hidden.
HISTORY_ITEM_TYPES = TOOL_CALL_BLOCK_TYPES | TOOL_RESULT_BLOCK_TYPES | REASONING_BLOCK_TYPES


class CodexProvider(ChatProvider):
    """Provider for Codex CLI rollout transcripts."""

    provider_id = ProviderId.CODEX
    label = "Codex"
    binary_env = CODEX_BINARY_ENV
    default_binary = "codex"
    answering_kinds = CODEX_ANSWERING_KINDS

    def __init__(self, home_dir: Optional[Path] = None, cli_binary: Optional[str] = None):
        super().__init__(cli_binary)
        self._home_dir_override = home_dir

    def get_home_dir(self) -> Path:
        return get_codex_home_dir(self._home_dir_override)

    def get_base_path(self) -> Path:
        return self.get_home_dir() / "sessions"

    def session_index_path(self) -> Path:
        return self.get_home_dir() / "session_index.jsonl"

    def scan_threads(self) -> list[ThreadRecord]:
        official_titles = load_jsonl_title_index(
            self.session_index_path(),
            id_key="id",
            title_keys=("thread_name", "title"),
        )

        threads = []
        for path in collect_files(self.get_base_path(), ".jsonl"):
            thread = self._parse_thread_file(path, official_titles)
            if thread is not None:
                threads.append(thread)
        return threads

    def load_messages(self, thread: ThreadRecord) -> list[MessageRecord]:
        messages = []
        try:
            for entry in iter_jsonl(thread.source_path):
                if entry.get("type") != "response_item":
                    continue
                payload = entry.get("payload")
                if isinstance(payload, dict):
                    timestamp = parse_timestamp_ms(entry.get("timestamp"))
                    messages.extend(_response_item_to_messages(payload, timestamp))
        except OSError as e:
            logger.warning("Failed to read JSONL %s: %s", thread.source_path, e)
        return messages

    def classify_events(self, thread: ThreadRecord) -> Iterator[Event]:
        try:
            for entry in iter_jsonl(thread.source_path):
                kind = classify_entry(entry)
                if kind is not None:
                    yield kind, parse_timestamp_ms(entry.get("timestamp"))
        except OSError as e:
            logger.warning("Failed to read JSONL %s: %s", thread.source_path, e)

    def check_config(self, profile_name: str) -> tuple[HealthStatus, str]:
        sessions = self.get_base_path()
        if not sessions.is_dir():
            return (HealthStatus.DEGRADED,
                    f"Codex sessions directory not found at {sessions} (profile={profile_name})")
        if not os.access(sessions, os.R_OK | os.X_OK):
            return (HealthStatus.DEGRADED,
                    f"Codex sessions directory is not readable at {sessions} (profile={profile_name})")
        return (HealthStatus.HEALTHY,
                f"Codex CLI reachable, sessions directory loaded ({profile_name})")

    def resume_invocation(self, thread_id: str) -> str:
        return f"{shlex.quote(self.cli_binary())} resume {shlex.quote(thread_id)}"

    # ── Private helpers ──────────────────────────────────────────────

    def _parse_thread_file(self, path: Path, official_titles: dict[str, str]) -> Optional[ThreadRecord]:
        session_id = None
        project_path = None
        created_ms = None
        last_ms = None
        first_user = None
        sort_key = file_mtime_ms(path) or 0

        try:
            for entry in iter_jsonl(path):
                payload = entry.get("payload")
                if not isinstance(payload, dict):
                    payload = {}

                if entry.get("type") == "session_meta":
                    if session_id is None:
                        value = payload.get("id")
                        if isinstance(value, str) and value.strip():
                            session_id = value.strip()
                    if project_path is None:
                        value = payload.get("cwd")
                        if isinstance(value, str) and value.strip():
                            project_path = value.strip()

                timestamp = parse_timestamp_ms(entry.get("timestamp"))
                if timestamp is not None:
                    if created_ms is None:
                        created_ms = timestamp
                    last_ms = timestamp
                    sort_key = max(sort_key, timestamp)

                if first_user is None:
                    first_user = _user_text(entry.get("type"), payload)
        except OSError as e:
            logger.debug("Skipping unreadable transcript %s: %s", path, e)
            return None

        thread_id = session_id or path.stem
        project_path = project_path or "."
        title = resolve_title(official_titles.get(thread_id), first_user,
                              project_path, self.label, thread_id)

        return ThreadRecord(
            id=thread_id,
            provider_id=self.provider_id,
            project_path=project_path,
            title=title,
            tags=[self.provider_id.value],
            created_at=str(created_ms) if created_ms is not None else None,
            last_active_at=str(last_ms if last_ms is not None else sort_key),
            sort_key=sort_key,
            source_path=path,
        )


def _user_text(entry_type, payload: dict) -> Optional[str]:
    """User-authored text of a record, if it is a user prompt."""
    if entry_type == "response_item":
        if payload.get("type") == "message" and payload.get("role") == "user":
            return first_user_text(payload.get("content"))
    elif entry_type == "event_msg":
        if payload.get("type") == "user_message":
            return first_user_text(payload.get("message"))
    return None


def _response_item_to_messages(payload: dict, timestamp: Optional[int]) -> list[MessageRecord]:
    item_type = block_type_of(payload)

    if item_type == "message":
        role = payload.get("role")
        if not isinstance(role, str) or not role:
            role = "assistant"
        return extract_message_records(role, payload.get("content"), timestamp)

    if item_type in HISTORY_ITEM_TYPES:
        return extract_message_records("assistant", payload, timestamp)

    return []


def classify_entry(entry: dict) -> Optional[SemanticEventKind]:
    """Map one raw Codex record to its runtime event kind."""
    payload = entry.get("payload")
    if not isinstance(payload, dict):
        return None

    record_type = entry.get("type")
    payload_type = block_type_of(payload)

    if record_type == "event_msg":
        return EVENT_MSG_KINDS.get(payload_type)

    if record_type == "response_item":
        if payload_type in REASONING_BLOCK_TYPES:
            return SemanticEventKind.AGENT_REASONING
        if payload_type in TOOL_CALL_BLOCK_TYPES or payload_type in TOOL_RESULT_BLOCK_TYPES:
            return SemanticEventKind.AGENT_TOOL
        if payload_type == "message":
            if payload.get("role") == "user":
                return SemanticEventKind.USER_MESSAGE
            return SemanticEventKind.AGENT_MESSAGE

    return None
