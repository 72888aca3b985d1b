"""Claude Code transcript backend.

Reads transcripts from <config>/projects/ (default ~/.claude/projects/).
Each project directory holds one .jsonl file per session plus an optional
sessions-index.json carrying user-assigned titles. Files named ``agent-*``
are sub-agent side transcripts and are not threads of their own.

JSONL record shapes:
- "user" / "assistant": ``message.role`` + ``message.content``. Content is a
  string or a list of text / thinking / tool_use / tool_result blocks.
- "progress": the agent is streaming work; used only for runtime state.
- "queue-operation": a queued prompt was enqueued or dequeued.
- Records flagged ``isMeta`` or ``isSidechain`` are bookkeeping and never
  shown or used for titles.
"""

import json
import logging
import os
import shlex
from pathlib import Path
from typing import Iterator, Optional

from ..config import CLAUDE_BINARY_ENV, get_claude_config_dir
from ..content import (
    REASONING_BLOCK_TYPES,
    TOOL_CALL_BLOCK_TYPES,
    TOOL_RESULT_BLOCK_TYPES,
    content_block_types,
    extract_message_records,
    first_user_text,
    flatten_text,
)
from ..core import (
    HealthStatus,
    MessageRecord,
    ProviderId,
    SemanticEventKind,
    ThreadRecord,
)
from ..provider import ChatProvider
from ..runtime import CLAUDE_CODE_ANSWERING_KINDS, Event
from ..scan import collect_files, iter_jsonl
from ..timestamps import file_mtime_ms, parse_timestamp_ms
from ..titles import load_json_title_index, resolve_title

logger = logging.getLogger(__name__)

SIDE_AGENT_PREFIX = "agent-"
INTERRUPTED_MARKER = "[Request interrupted by user"


class ClaudeCodeProvider(ChatProvider):
    """Provider for Claude Code transcripts."""

    provider_id = ProviderId.CLAUDE_CODE
    label = "Claude"
    binary_env = CLAUDE_BINARY_ENV
    default_binary = "claude"
    answering_kinds = CLAUDE_CODE_ANSWERING_KINDS

    def __init__(self, config_dir: Optional[Path] = None, cli_binary: Optional[str] = None):
        super().__init__(cli_binary)
        self._config_dir_override = config_dir

    def get_config_dir(self) -> Path:
        return get_claude_config_dir(self._config_dir_override)

    def get_base_path(self) -> Path:
        return self.get_config_dir() / "projects"

    def settings_path(self) -> Path:
        """settings.json, else the legacy claude.json, else settings.json."""
        config_dir = self.get_config_dir()
        settings = config_dir / "settings.json"
        if settings.exists():
            return settings
        legacy = config_dir / "claude.json"
        if legacy.exists():
            return legacy
        return settings

    def scan_threads(self) -> list[ThreadRecord]:
        index_cache: dict[Path, dict[str, str]] = {}
        threads = []

        for path in collect_files(self.get_base_path(), ".jsonl"):
            if path.name.startswith(SIDE_AGENT_PREFIX):
                continue

            project_dir = path.parent
            if project_dir not in index_cache:
                index_cache[project_dir] = load_json_title_index(
                    project_dir / "sessions-index.json",
                    id_key="sessionId",
                    title_keys=("customTitle", "summary"),
                )

            thread = self._parse_thread_file(path, index_cache[project_dir])
            if thread is not None:
                threads.append(thread)

        return threads

    def load_messages(self, thread: ThreadRecord) -> list[MessageRecord]:
        messages = []
        try:
            for entry in iter_jsonl(thread.source_path):
                messages.extend(_entry_to_messages(entry))
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
        path = self.settings_path()
        if not path.exists():
            return (HealthStatus.DEGRADED,
                    f"Claude settings file not found at {path} (profile={profile_name})")

        try:
            settings = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning("Invalid Claude settings JSON at %s: %s", path, e)
            return HealthStatus.DEGRADED, f"Invalid Claude settings JSON at {path}: {e}"
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Failed to read Claude settings %s: %s", path, e)
            return HealthStatus.DEGRADED, f"Failed to read Claude settings {path}: {e}"

        auth_mode = detect_auth_mode(settings)
        return (HealthStatus.HEALTHY,
                f"Claude CLI reachable, settings loaded ({auth_mode}, profile={profile_name})")

    def resume_invocation(self, thread_id: str) -> str:
        return f"{shlex.quote(self.cli_binary())} --resume {shlex.quote(thread_id)}"

    # ── Private helpers ──────────────────────────────────────────────

    def _parse_thread_file(self, path: Path, official_titles: dict[str, str]) -> Optional[ThreadRecord]:
        """Single pass over one transcript collecting thread metadata.

        Returns None when the file cannot be read at all.
        """
        session_id = None
        project_path = None
        created_ms = None
        last_ms = None
        first_user = None
        sort_key = file_mtime_ms(path) or 0

        try:
            for entry in iter_jsonl(path):
                if session_id is None:
                    value = entry.get("sessionId")
                    if isinstance(value, str) and value.strip():
                        session_id = value.strip()

                if project_path is None:
                    value = entry.get("cwd")
                    if isinstance(value, str) and value.strip():
                        project_path = value.strip()

                timestamp = parse_timestamp_ms(entry.get("timestamp"))
                if timestamp is not None:
                    if created_ms is None:
                        created_ms = timestamp
                    last_ms = timestamp
                    sort_key = max(sort_key, timestamp)

                if first_user is None and _is_user_authored(entry):
                    first_user = first_user_text(entry["message"].get("content"))
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


def _is_bookkeeping(entry: dict) -> bool:
    return entry.get("isMeta") is True or entry.get("isSidechain") is True


def _is_user_authored(entry: dict) -> bool:
    if _is_bookkeeping(entry):
        return False
    message = entry.get("message")
    if not isinstance(message, dict):
        return False
    role = message.get("role") or entry.get("type")
    return role in ("user", "human")


def _entry_to_messages(entry: dict) -> list[MessageRecord]:
    """Convert one JSONL record into zero or more messages."""
    if _is_bookkeeping(entry):
        return []

    message = entry.get("message")
    if not isinstance(message, dict) or "content" not in message:
        return []

    role = message.get("role")
    if not isinstance(role, str) or not role:
        role = entry.get("type") if isinstance(entry.get("type"), str) else "unknown"

    timestamp = parse_timestamp_ms(entry.get("timestamp"))
    return extract_message_records(role, message["content"], timestamp)


def classify_entry(entry: dict) -> Optional[SemanticEventKind]:
    """Map one raw Claude Code record to its runtime event kind."""
    entry_type = entry.get("type")
    if entry_type == "progress":
        return SemanticEventKind.AGENT_PROGRESS
    if entry_type == "queue-operation":
        if entry.get("operation") == "dequeue":
            return SemanticEventKind.QUEUE_DEQUEUE
        return None
    if entry.get("isMeta") is True:
        return None

    message = entry.get("message")
    if not isinstance(message, dict):
        return None

    role = message.get("role") or entry_type
    content = message.get("content")
    block_types = content_block_types(content)

    if role in ("user", "human"):
        if block_types & TOOL_RESULT_BLOCK_TYPES:
            return SemanticEventKind.AGENT_TOOL
        if flatten_text(content).lstrip().startswith(INTERRUPTED_MARKER):
            return SemanticEventKind.TURN_ABORTED
        return SemanticEventKind.USER_MESSAGE

    if role == "assistant":
        if block_types & REASONING_BLOCK_TYPES:
            return SemanticEventKind.AGENT_REASONING
        if block_types & TOOL_CALL_BLOCK_TYPES:
            return SemanticEventKind.AGENT_TOOL
        return SemanticEventKind.AGENT_MESSAGE

    return None


def detect_auth_mode(settings) -> str:
    """Which credential Claude will use: auth_token, api_key or oauth_or_unknown."""
    env = settings.get("env") if isinstance(settings, dict) else None
    if not isinstance(env, dict):
        env = {}

    def configured(name: str) -> bool:
        value = env.get(name)
        if isinstance(value, str) and value.strip():
            return True
        return bool(os.environ.get(name, "").strip())

    if configured("ANTHROPIC_AUTH_TOKEN"):
        return "auth_token"
    if configured("ANTHROPIC_API_KEY"):
        return "api_key"
    return "oauth_or_unknown"
