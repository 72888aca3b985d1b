"""Abstract base class for agent transcript providers."""

import logging
import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Optional

from .config import get_cli_binary
from .content import build_preview, truncate_text
from .core import (
    MESSAGE_KIND_TEXT,
    HealthCheckResult,
    HealthStatus,
    MessageRecord,
    ProviderId,
    RuntimeState,
    SwitchContextSummary,
    ThreadRecord,
)
from .errors import ProviderError
from .runtime import Event, reduce_events
from .timestamps import now_ms

logger = logging.getLogger(__name__)


class ChatProvider(ABC):
    """Base class for agent CLI transcript backends.

    Each backend (Claude Code, Codex, OpenCode) knows how to scan its own
    on-disk store, flatten a thread into messages and classify its raw
    records for the liveness signal. Everything else (filtering, lookup,
    health probing, launch commands) is shared here.

    Providers hold only their configuration. Every call re-reads the disk.
    """

    provider_id: ProviderId
    label: str  # human name used in messages and fallback titles
    binary_env: str
    default_binary: str
    answering_kinds: frozenset = frozenset()

    def __init__(self, cli_binary: Optional[str] = None):
        self._cli_binary_override = cli_binary

    @property
    def name(self) -> str:
        return self.provider_id.value

    def cli_binary(self) -> str:
        return get_cli_binary(self.binary_env, self.default_binary, self._cli_binary_override)

    @abstractmethod
    def get_base_path(self) -> Path:
        """Return the root directory of this provider's transcript store."""
        ...

    def is_available(self) -> bool:
        return self.get_base_path().is_dir()

    @abstractmethod
    def scan_threads(self) -> list[ThreadRecord]:
        """Parse every visible thread in the store, in no particular order."""
        ...

    @abstractmethod
    def load_messages(self, thread: ThreadRecord) -> list[MessageRecord]:
        """Flatten one thread's transcript into messages, in append order."""
        ...

    @abstractmethod
    def classify_events(self, thread: ThreadRecord) -> Iterable[Event]:
        """Yield (kind, timestamp_ms) for each classifiable raw record."""
        ...

    @abstractmethod
    def check_config(self, profile_name: str) -> tuple[HealthStatus, str]:
        """Inspect config / session storage once the CLI is known to exist."""
        ...

    @abstractmethod
    def resume_invocation(self, thread_id: str) -> str:
        """The shell command that reopens ``thread_id`` in this CLI."""
        ...

    def load_runtime_state(self, thread: ThreadRecord, now: Optional[int] = None) -> RuntimeState:
        return reduce_events(self.classify_events(thread), self.answering_kinds, now)

    # ── Public operations ────────────────────────────────────────────

    def list_threads(self, project_path: Optional[str] = None) -> list[ThreadRecord]:
        threads = self.scan_threads()
        if project_path is not None:
            threads = [t for t in threads if t.project_path.startswith(project_path)]
        threads.sort(key=lambda t: t.sort_key, reverse=True)
        return threads

    def find_thread(self, thread_id: str) -> ThreadRecord:
        for thread in self.scan_threads():
            if thread.id == thread_id:
                return thread
        raise ProviderError.thread_not_found(self.label, thread_id)

    def get_thread_messages(self, thread_id: str) -> list[MessageRecord]:
        return self.load_messages(self.find_thread(thread_id))

    def get_thread_runtime_state(self, thread_id: str, now: Optional[int] = None) -> RuntimeState:
        return self.load_runtime_state(self.find_thread(thread_id), now)

    def last_message_preview(self, thread: ThreadRecord) -> Optional[str]:
        return build_preview(self.load_messages(thread))

    def summarize_switch_context(self, thread_id: str) -> SwitchContextSummary:
        """Summarize a thread so another agent can pick up where it stopped."""
        thread = self.find_thread(thread_id)
        user_messages = [
            m for m in self.load_messages(thread)
            if m.role == "user" and m.kind == MESSAGE_KIND_TEXT
        ]

        objective = ""
        if user_messages:
            objective = truncate_text(user_messages[0].content, 180)
        if not objective:
            objective = f"Continue {self.label} thread {thread_id}"

        constraints = ["Preserve existing project constraints and coding style."]
        if thread.project_path != ".":
            constraints.append(f"Use project directory: {thread.project_path}")

        if user_messages:
            latest = truncate_text(user_messages[-1].content, 140)
            pending = [f"Continue from latest request: {latest}"]
        else:
            pending = [f"Resume {self.label} thread {thread_id}"]

        return SwitchContextSummary(objective=objective, constraints=constraints,
                                    pending_tasks=pending)

    # ── CLI probing and launch commands ──────────────────────────────

    def ensure_cli_reachable(self) -> None:
        """Run ``<binary> --version``; raise if the CLI cannot be spawned."""
        binary = self.cli_binary()
        try:
            subprocess.run(
                [binary, "--version"],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
        except FileNotFoundError:
            raise ProviderError.cli_not_found(self.label, binary)
        except OSError as e:
            raise ProviderError.cli_failed(self.label, binary, e)

    def health_check(self, profile_name: str = "default",
                     project_path: Optional[str] = None) -> HealthCheckResult:
        """Best-effort probe of the CLI binary and its local configuration.

        A missing binary reports ``offline``; missing or broken config
        reports ``degraded``. Only a spawn failure other than "not found"
        raises.
        """
        checked_at = str(now_ms())
        try:
            self.ensure_cli_reachable()
        except ProviderError as e:
            if e.retryable:
                raise
            return HealthCheckResult(self.provider_id, HealthStatus.OFFLINE, checked_at, e.message)

        status, message = self.check_config(profile_name)
        return HealthCheckResult(self.provider_id, status, checked_at, message)

    def resume_command(self, thread_id: str, project_path: Optional[str] = None) -> str:
        """Build the terminal command that resumes ``thread_id``."""
        self.ensure_cli_reachable()
        thread = self.find_thread(thread_id)
        path = project_path if project_path and project_path.strip() else thread.project_path
        return with_project_dir(self.resume_invocation(thread_id), path)

    def new_thread_command(self, project_path: Optional[str] = None) -> str:
        return with_project_dir(shlex.quote(self.cli_binary()), project_path)


def with_project_dir(command: str, project_path: Optional[str]) -> str:
    """Prefix ``command`` with ``cd <project> &&`` when a real directory is known."""
    path = project_path.strip() if project_path else ""
    if not path or path == ".":
        return command
    return f"cd {shlex.quote(path)} && {command}"
