"""Core data models for agentdock."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

MESSAGE_KIND_TEXT = "text"
MESSAGE_KIND_TOOL = "tool"


class ProviderId(str, Enum):
    """The agent CLIs whose transcripts we can read."""

    CLAUDE_CODE = "claude_code"
    CODEX = "codex"
    OPENCODE = "opencode"

    @classmethod
    def parse(cls, raw: str) -> "ProviderId":
        for member in cls:
            if member.value == raw:
                return member
        raise ValueError(f"Unsupported provider: {raw}")


class SemanticEventKind(str, Enum):
    """Classified meaning of one raw transcript record."""

    USER_MESSAGE = "user_message"
    AGENT_REASONING = "agent_reasoning"
    AGENT_TOOL = "agent_tool"
    AGENT_MESSAGE = "agent_message"
    AGENT_PROGRESS = "agent_progress"
    QUEUE_DEQUEUE = "queue_dequeue"
    TURN_COMPLETED = "turn_completed"
    TURN_ABORTED = "turn_aborted"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    OFFLINE = "offline"


@dataclass
class ThreadRecord:
    """One conversation thread, as listed in the catalog."""

    id: str
    provider_id: ProviderId
    project_path: str  # "." when the transcript never names a working directory
    title: str
    tags: list[str] = field(default_factory=list)
    created_at: Optional[str] = None  # epoch ms as decimal string
    last_active_at: str = "0"  # epoch ms as decimal string
    sort_key: int = 0  # ordering only, never displayed
    source_path: Optional[Path] = field(default=None, repr=False, compare=False)


@dataclass
class MessageRecord:
    """A single normalized entry of a thread timeline."""

    role: str  # "user" | "assistant" | whatever the transcript says
    content: str
    timestamp_ms: Optional[int] = None
    kind: str = MESSAGE_KIND_TEXT  # "text" | "tool"
    collapsed: bool = False

    @classmethod
    def text(cls, role: str, content: str, timestamp_ms: Optional[int] = None) -> "MessageRecord":
        return cls(role=role, content=content, timestamp_ms=timestamp_ms,
                   kind=MESSAGE_KIND_TEXT, collapsed=False)

    @classmethod
    def tool(cls, role: str, content: str, timestamp_ms: Optional[int] = None) -> "MessageRecord":
        return cls(role=role, content=content, timestamp_ms=timestamp_ms,
                   kind=MESSAGE_KIND_TOOL, collapsed=True)


@dataclass
class RuntimeState:
    """Whether the agent looks like it is composing a reply right now."""

    agent_answering: bool = False
    last_event_kind: Optional[str] = None
    last_event_at_ms: Optional[int] = None


@dataclass
class HealthCheckResult:
    provider_id: ProviderId
    status: HealthStatus
    checked_at: str  # epoch ms as decimal string
    message: Optional[str] = None

    @property
    def cli_missing(self) -> bool:
        return (
            self.status == HealthStatus.OFFLINE
            and self.message is not None
            and "CLI not found in PATH" in self.message
        )


@dataclass
class SwitchContextSummary:
    """Hand-off summary used when continuing a thread with another agent."""

    objective: str
    constraints: list[str] = field(default_factory=list)
    pending_tasks: list[str] = field(default_factory=list)
