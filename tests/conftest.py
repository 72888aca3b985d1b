"""Shared test fixtures for agentdock."""

import json
import os
from datetime import datetime, timezone

import pytest

# Files are backdated to this so transcript timestamps, not the time the
# fixture was written, decide ordering.
OLD_MTIME = datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp()


def _ms(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


def _write_jsonl(path, records):
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    os.utime(path, (OLD_MTIME, OLD_MTIME))


def _write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    os.utime(path, (OLD_MTIME, OLD_MTIME))


@pytest.fixture
def tmp_claude_config_dir(tmp_path):
    """Create a synthetic Claude Code config directory with realistic JSONL.

    session-001 includes:
    - a metadata-tagged local command caveat (never shown, never a title)
    - assistant text + tool_use in the same entry
    - user tool_result entries, one with an image block
    - a thinking block (hidden)
    - file-history-snapshot, progress and queue-operation records
    - a corrupt line in the middle
    session-002 gets its title from sessions-index.json.
    agent-side.jsonl is a sub-agent transcript and must not be listed.
    """
    config = tmp_path / "claude"
    project_dir = config / "projects" / "-Users-testuser-dev-myapp"
    project_dir.mkdir(parents=True)
    cwd = "/Users/testuser/dev/myapp"

    index = {
        "version": 1,
        "entries": [
            {"sessionId": "session-002", "customTitle": "  API test suite  ", "summary": "Tests"},
            {"sessionId": "session-003", "summary": "Unrelated"},
        ],
    }
    _write_json(project_dir / "sessions-index.json", index)

    lines = [
        {
            "type": "user", "isMeta": True, "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "user", "content": "<local-command-caveat>Caveat: generated by local commands</local-command-caveat>"},
            "timestamp": "2025-01-20T09:59:59Z",
        },
        {
            "type": "user", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "user", "content": [{"type": "text", "text": "Help me refactor the auth module"}]},
            "timestamp": "2025-01-20T10:00:00Z",
        },
        {
            "type": "assistant", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "assistant", "content": [
                {"type": "text", "text": "I'll help you refactor the auth module. Let me start by reading the current code."},
                {"type": "tool_use", "id": "toolu_001", "name": "Read", "input": {"file_path": "/src/auth.ts"}},
            ]},
            "timestamp": "2025-01-20T10:00:30Z",
        },
        {
            "type": "user", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_001", "content": "export function authenticate(token: string) {\n  return jwt.verify(token);\n}", "is_error": False},
            ]},
            "timestamp": "2025-01-20T10:00:31Z",
        },
        {
            "type": "assistant", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "assistant", "content": [
                {"type": "thinking", "thinking": "I need to split this into separate functions for validation and token refresh."},
                {"type": "text", "text": "I can see the auth module. Let me refactor it into separate concerns."},
                {"type": "tool_use", "id": "toolu_002", "name": "Edit", "input": {"file_path": "/src/auth.ts", "new_content": "refactored code..."}},
            ]},
            "timestamp": "2025-01-20T10:01:00Z",
        },
        {
            "type": "user", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_002", "content": "File edited successfully", "is_error": False},
            ]},
            "timestamp": "2025-01-20T10:01:01Z",
        },
        {"type": "file-history-snapshot", "files": [{"path": "/src/auth.ts"}]},
        '{"type": "user", "message": {"role": "user", "content": "trunc',
        {
            "type": "human", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "user", "content": [{"type": "text", "text": "Looks good, now split it into separate files"}]},
            "timestamp": "2025-01-20T10:05:00Z",
        },
        {
            "type": "assistant", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "assistant", "content": [
                {"type": "tool_use", "id": "toolu_003", "name": "Bash", "input": {"command": "mkdir -p /src/auth/", "description": "Create auth directory"}},
            ]},
            "timestamp": "2025-01-20T10:05:30Z",
        },
        {"type": "progress", "data": {"type": "hook_progress"}, "timestamp": "2025-01-20T10:05:31Z"},
        {"type": "queue-operation", "operation": "enqueue", "timestamp": "2025-01-20T10:05:32Z"},
        {
            "type": "user", "sessionId": "session-001", "cwd": cwd,
            "message": {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_003", "content": [
                    {"type": "text", "text": "Command output:\nDirectory created"},
                    {"type": "image", "source": {"type": "base64", "media_type": "image/png", "data": "iVBORw0KGgo="}},
                ], "is_error": False},
            ]},
            "timestamp": "2025-01-20T10:05:33Z",
        },
    ]
    _write_jsonl(project_dir / "session-001.jsonl", lines)

    _write_jsonl(project_dir / "session-002.jsonl", [
        {
            "type": "user", "sessionId": "session-002", "cwd": cwd,
            "message": {"role": "user", "content": "Write tests for the API"},
            "timestamp": "2025-01-21T09:00:00Z",
        },
        {
            "type": "assistant", "sessionId": "session-002", "cwd": cwd,
            "message": {"role": "assistant", "content": [{"type": "text", "text": "Sure, starting with the routes."}]},
            "timestamp": "2025-01-21T09:45:00Z",
        },
    ])

    _write_jsonl(project_dir / "agent-side.jsonl", [
        {
            "type": "user", "sessionId": "agent-side", "cwd": cwd, "isSidechain": True,
            "message": {"role": "user", "content": "Search the codebase"},
            "timestamp": "2025-01-22T09:00:00Z",
        },
    ])

    _write_json(config / "settings.json", {"env": {"ANTHROPIC_API_KEY": "sk-test"}})

    return config


@pytest.fixture
def tmp_codex_home(tmp_path):
    """Create a synthetic Codex home with two rollout files and a title index."""
    home = tmp_path / "codex"
    day_dir = home / "sessions" / "2025" / "01" / "21"

    _write_jsonl(day_dir / "rollout-2025-01-21T12-00-00-codex-001.jsonl", [
        {"timestamp": "2025-01-21T12:00:00Z", "type": "session_meta",
         "payload": {"id": "codex-001", "cwd": "/Users/testuser/dev/cli-tool", "originator": "codex_cli_rs"}},
        {"timestamp": "2025-01-21T12:00:00Z", "type": "response_item",
         "payload": {"type": "message", "role": "user", "content": [
             {"type": "input_text", "text": "<environment_context>\n  <cwd>/Users/testuser/dev/cli-tool</cwd>\n</environment_context>"},
         ]}},
        {"timestamp": "2025-01-21T12:00:01Z", "type": "response_item",
         "payload": {"type": "message", "role": "user", "content": [
             {"type": "input_text", "text": "Add a --verbose flag to the CLI"},
         ]}},
        {"timestamp": "2025-01-21T12:00:01Z", "type": "event_msg",
         "payload": {"type": "user_message", "message": "Add a --verbose flag to the CLI"}},
        {"timestamp": "2025-01-21T12:00:01Z", "type": "event_msg",
         "payload": {"type": "task_started"}},
        {"timestamp": "2025-01-21T12:00:02Z", "type": "response_item",
         "payload": {"type": "reasoning", "summary": [{"type": "summary_text", "text": "Looking at argument parsing"}]}},
        {"timestamp": "2025-01-21T12:00:03Z", "type": "response_item",
         "payload": {"type": "function_call", "name": "shell", "call_id": "call_1",
                     "arguments": json.dumps({"command": ["bash", "-lc", "rg --files"]})}},
        {"timestamp": "2025-01-21T12:00:04Z", "type": "response_item",
         "payload": {"type": "function_call_output", "call_id": "call_1",
                     "output": json.dumps({"output": "src/main.py\nsrc/cli.py\n", "metadata": {"exit_code": 0}})}},
        {"timestamp": "2025-01-21T12:00:10Z", "type": "response_item",
         "payload": {"type": "message", "role": "assistant", "content": [
             {"type": "output_text", "text": "I added the flag."},
         ]}},
        {"timestamp": "2025-01-21T12:00:10Z", "type": "event_msg",
         "payload": {"type": "agent_message", "message": "I added the flag."}},
        {"timestamp": "2025-01-21T12:00:11Z", "type": "event_msg",
         "payload": {"type": "task_complete"}},
    ])

    _write_jsonl(day_dir / "rollout-2025-01-21T08-00-00-codex-002.jsonl", [
        {"timestamp": "2025-01-21T08:00:00Z", "type": "session_meta",
         "payload": {"id": "codex-002", "cwd": "/Users/testuser/dev/other"}},
        {"timestamp": "2025-01-21T08:00:01Z", "type": "response_item",
         "payload": {"type": "message", "role": "user", "content": [
             {"type": "input_text", "text": "Fix failing test"},
         ]}},
    ])

    _write_jsonl(home / "session_index.jsonl", [
        {"id": "codex-001", "thread_name": "Old name"},
        {"id": "codex-001", "thread_name": "Verbose flag"},
    ])

    return home


@pytest.fixture
def tmp_opencode_data_dir(tmp_path):
    """Create a synthetic OpenCode data directory.

    - ses_001: titled, with text, reasoning and tool parts
    - ses_002: untitled, no directory (resolved through its project's worktree)
    - ses_child: a sub-agent session with a parentID (never listed)
    """
    data = tmp_path / "opencode"
    storage = data / "storage"

    _write_json(storage / "project" / "proj2.json", {"id": "proj2", "worktree": "/Users/testuser/dev/worker"})

    _write_json(storage / "session" / "proj1" / "ses_001.json", {
        "id": "ses_001",
        "version": "1.1.34",
        "projectID": "proj1",
        "title": "Debug API endpoint",
        "directory": "/Users/testuser/dev/api-server",
        "time": {"created": _ms(2025, 1, 22, 8, 0, 0), "updated": _ms(2025, 1, 22, 8, 30, 0)},
    })
    _write_json(storage / "session" / "proj2" / "ses_002.json", {
        "id": "ses_002",
        "projectID": "proj2",
        "title": "",
        "time": {"created": _ms(2025, 1, 23, 8, 0, 0), "updated": _ms(2025, 1, 23, 9, 0, 0)},
    })
    _write_json(storage / "session" / "proj1" / "ses_child.json", {
        "id": "ses_child",
        "projectID": "proj1",
        "parentID": "ses_001",
        "title": "Subtask",
        "directory": "/Users/testuser/dev/api-server",
        "time": {"created": _ms(2025, 1, 24, 8, 0, 0), "updated": _ms(2025, 1, 24, 8, 0, 0)},
    })

    # ses_001 messages
    _write_json(storage / "message" / "ses_001" / "msg_001.json", {
        "id": "msg_001", "sessionID": "ses_001", "role": "user",
        "time": {"created": _ms(2025, 1, 22, 8, 0, 0)},
        "summary": {"title": "API 500 error investigation", "diffs": []},
    })
    _write_json(storage / "message" / "ses_001" / "msg_002.json", {
        "id": "msg_002", "sessionID": "ses_001", "role": "assistant",
        "time": {"created": _ms(2025, 1, 22, 8, 0, 30), "completed": _ms(2025, 1, 22, 8, 0, 50)},
    })
    _write_json(storage / "message" / "ses_001" / "msg_003.json", {
        "id": "msg_003", "sessionID": "ses_001", "role": "assistant",
        "time": {"created": _ms(2025, 1, 22, 8, 1, 0)},
    })

    _write_json(storage / "part" / "msg_001" / "prt_001.json", {
        "id": "prt_001", "messageID": "msg_001", "type": "text",
        "text": "Why is the /api/users endpoint returning 500?",
    })
    _write_json(storage / "part" / "msg_002" / "prt_001.json", {
        "id": "prt_001", "messageID": "msg_002", "type": "reasoning",
        "text": "Check the query layer first.",
        "time": {"start": _ms(2025, 1, 22, 8, 0, 31), "end": _ms(2025, 1, 22, 8, 0, 35)},
    })
    _write_json(storage / "part" / "msg_002" / "prt_002.json", {
        "id": "prt_002", "messageID": "msg_002", "type": "text",
        "text": "The error is in the database query. Let me check the logs.",
    })
    _write_json(storage / "part" / "msg_003" / "prt_001.json", {
        "id": "prt_003a", "messageID": "msg_003", "type": "step-start", "snapshot": "abc123",
    })
    _write_json(storage / "part" / "msg_003" / "prt_002.json", {
        "id": "prt_003b", "messageID": "msg_003", "type": "tool", "tool": "grep",
        "state": {
            "status": "completed",
            "input": {"pattern": "SELECT.*FROM users", "include": "*.ts"},
            "output": "Found 3 matches\nsrc/db.ts:15: SELECT * FROM users WHERE id = $1",
            "metadata": {"matches": 3},
            "time": {"start": _ms(2025, 1, 22, 8, 1, 5), "end": _ms(2025, 1, 22, 8, 1, 6)},
        },
    })

    # ses_002: v1.0 style, summary title only, no parts
    _write_json(storage / "message" / "ses_002" / "msg_old_001.json", {
        "id": "msg_old_001", "sessionID": "ses_002", "role": "user",
        "time": {"created": _ms(2025, 1, 23, 8, 0, 0)},
        "summary": {"title": "Build a login page with email and password", "diffs": []},
    })
    _write_json(storage / "message" / "ses_002" / "msg_old_002.json", {
        "id": "msg_old_002", "sessionID": "ses_002", "role": "assistant",
        "time": {"created": _ms(2025, 1, 23, 8, 0, 30), "completed": _ms(2025, 1, 23, 8, 1, 0)},
    })
    (storage / "part").mkdir(parents=True, exist_ok=True)

    return data


@pytest.fixture
def agentdock_env(monkeypatch, tmp_claude_config_dir, tmp_codex_home, tmp_opencode_data_dir):
    """Point every provider at the synthetic stores through the environment."""
    monkeypatch.setenv("AGENTDOCK_CLAUDE_CONFIG_DIR", str(tmp_claude_config_dir))
    monkeypatch.setenv("AGENTDOCK_CODEX_HOME_DIR", str(tmp_codex_home))
    monkeypatch.setenv("AGENTDOCK_OPENCODE_DATA_DIR", str(tmp_opencode_data_dir))
    return {
        "claude": tmp_claude_config_dir,
        "codex": tmp_codex_home,
        "opencode": tmp_opencode_data_dir,
    }
