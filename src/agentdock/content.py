"""Flatten raw transcript content into normalized message records.

A message's ``content`` may be a plain string, a list of typed blocks, or
blocks nested inside other blocks to any depth. ``extract_message_records``
walks that tree and emits one ``MessageRecord`` per visible piece:

- "text" / "input_text" / "output_text" blocks become text records.
- "tool_use" / "function_call" style blocks become one collapsed tool record
  naming the tool and its primary argument (``IN ...``).
- "tool_result" / "function_call_output" style blocks become one collapsed
  tool record with a short output preview (``OUT ...``).
- "thinking" / "reasoning" blocks are hidden unless the caller asks for them.

All text goes through ``sanitize_text`` first, which strips terminal escape
codes and drops CLI bookkeeping that should never be shown as a message.
"""

import json
from typing import Any, Optional

from .core import MESSAGE_KIND_TEXT, MessageRecord

ELLIPSIS = "..."
TITLE_MAX_CHARS = 72
PREVIEW_MAX_CHARS = 140
TOOL_LINE_MAX_CHARS = 220
TOOL_OUTPUT_MAX_LINES = 8
REASONING_MAX_CHARS = 800

REASONING_BLOCK_TYPES = frozenset({"thinking", "redacted_thinking", "reasoning"})
TEXT_BLOCK_TYPES = frozenset({"text", "input_text", "output_text"})
TOOL_CALL_BLOCK_TYPES = frozenset({
    "tool_use", "server_tool_use", "function_call", "custom_tool_call",
})
TOOL_RESULT_BLOCK_TYPES = frozenset({
    "tool_result", "function_call_output", "custom_tool_call_output",
})

# Checked in this order when summarizing a tool's arguments.
PRIMARY_ARGUMENT_KEYS = (
    "pattern", "path", "file_path", "filePath", "query", "url", "description",
)

LOCAL_COMMAND_MARKER = "<local-command-"
INJECTION_MARKERS = (
    "<user_instructions>",
    "<environment_context>",
    "<system-reminder>",
)
UNWRAPPED_COMMAND_TAGS = ("command-name", "command-message")
COMMAND_MARKUP_MARKERS = ("<command-name>", "<command-message>", "<command-args>")


# ── Text helpers ─────────────────────────────────────────────────────


def truncate_text(text: str, max_chars: int) -> str:
    """Cut ``text`` to ``max_chars`` characters, appending "..." only when cut."""
    if len(text) <= max_chars:
        return text
    return text[:max(max_chars, 0)] + ELLIPSIS


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences (ESC up to the first letter or '~')."""
    if "\x1b" not in text:
        return text

    output = []
    in_escape = False
    for ch in text:
        if in_escape:
            if ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "~":
                in_escape = False
            continue
        if ch == "\x1b":
            in_escape = True
            continue
        output.append(ch)
    return "".join(output)


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def _collapse_block(text: str) -> str:
    """Collapse whitespace runs inside each line; keep single blank lines.

    Line breaks survive because tool output previews and the Markdown
    export are read line by line. Single-line contexts (titles, previews)
    use ``collapse_whitespace`` instead.
    """
    lines = []
    for line in text.splitlines():
        line = collapse_whitespace(line)
        if not line and (not lines or not lines[-1]):
            continue
        lines.append(line)
    while lines and not lines[-1]:
        lines.pop()
    return "\n".join(lines)


def extract_tag_content(text: str, tag: str) -> Optional[str]:
    """Return the trimmed inner text of the first ``<tag>...</tag>``, if any."""
    open_tag = f"<{tag}>"
    close_tag = f"</{tag}>"
    start = text.find(open_tag)
    if start < 0:
        return None
    start += len(open_tag)
    end = text.find(close_tag, start)
    if end < 0:
        return None
    inner = text[start:end].strip()
    return inner or None


def is_command_markup(text: str) -> bool:
    return LOCAL_COMMAND_MARKER in text or any(m in text for m in COMMAND_MARKUP_MARKERS)


def sanitize_text(raw: str) -> Optional[str]:
    """Clean one piece of transcript text, or None if it must not be shown."""
    text = strip_ansi(raw).strip()
    if not text:
        return None

    if LOCAL_COMMAND_MARKER in text:
        return None
    if text.startswith(INJECTION_MARKERS):
        return None

    for tag in UNWRAPPED_COMMAND_TAGS:
        inner = extract_tag_content(text, tag)
        if inner:
            return collapse_whitespace(inner)

    if "<command-args>" in text:
        return None

    return _collapse_block(text) or None


def flatten_text(value: Any) -> str:
    """Concatenate every text leaf of a nested content value."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = [flatten_text(item) for item in value]
        return "\n".join(part for part in parts if part.strip())
    if isinstance(value, dict):
        text = value.get("text")
        if isinstance(text, str):
            return text
        if "content" in value:
            return flatten_text(value["content"])
    return ""


# ── Tool summaries ───────────────────────────────────────────────────


def render_command(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return " ".join(item for item in value if isinstance(item, str))
    return ""


def _decode_json_string(text: str) -> Any:
    stripped = text.strip()
    if not stripped.startswith(("{", "[")):
        return None
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        return None


def summarize_tool_input(value: Any) -> Optional[str]:
    """Pick the one argument worth showing for a tool invocation."""
    if isinstance(value, str):
        decoded = _decode_json_string(value)
        if isinstance(decoded, (dict, list)):
            return summarize_tool_input(decoded)
        text = collapse_whitespace(strip_ansi(value))
        return truncate_text(text, TOOL_LINE_MAX_CHARS) if text else None

    if not isinstance(value, dict):
        return None

    if "command" in value:
        command = collapse_whitespace(render_command(value["command"]))
        if command:
            return truncate_text(command, TOOL_LINE_MAX_CHARS)

    for key in PRIMARY_ARGUMENT_KEYS:
        candidate = value.get(key)
        if isinstance(candidate, str):
            candidate = collapse_whitespace(candidate)
            if candidate:
                return truncate_text(candidate, TOOL_LINE_MAX_CHARS)

    return None


def summarize_tool_call(name: Any, arguments: Any) -> str:
    """Render ``<name>`` plus an ``IN <argument>`` line when one is known."""
    tool_name = name.strip() if isinstance(name, str) and name.strip() else "Tool"
    detail = summarize_tool_input(arguments)
    if detail:
        return f"{tool_name}\nIN {detail}"
    return tool_name


def summarize_tool_output(raw: str, is_error: bool = False,
                          max_lines: int = TOOL_OUTPUT_MAX_LINES) -> Optional[str]:
    """Render the first non-blank lines of tool output behind an ``OUT`` label."""
    lines = []
    for line in strip_ansi(raw).splitlines():
        line = line.strip()
        if not line:
            continue
        lines.append(truncate_text(line, TOOL_LINE_MAX_CHARS))
        if len(lines) >= max_lines:
            break

    if not lines:
        return None

    if len(lines) == 1:
        body = f"OUT {lines[0]}"
    else:
        body = "OUT\n" + "\n".join(lines)

    if is_error:
        return f"Tool error\n{body}"
    return body


def _tool_result_text(block: dict) -> tuple[str, bool]:
    """Return (output text, is_error) for any tool-result block shape."""
    is_error = block.get("is_error") is True

    if "output" in block and "content" not in block:
        raw = block.get("output")
        if isinstance(raw, str):
            decoded = _decode_json_string(raw)
            if isinstance(decoded, dict) and isinstance(decoded.get("output"), str):
                metadata = decoded.get("metadata")
                if isinstance(metadata, dict):
                    exit_code = metadata.get("exit_code")
                    if isinstance(exit_code, int) and not isinstance(exit_code, bool) and exit_code != 0:
                        is_error = True
                return decoded["output"], is_error
            return raw, is_error
        return flatten_text(raw), is_error

    return flatten_text(block.get("content")), is_error


def _reasoning_text(block: dict) -> str:
    for key in ("text", "thinking"):
        text = block.get(key)
        if isinstance(text, str) and text.strip():
            return text
    return flatten_text(block.get("summary")) or flatten_text(block.get("content"))


# ── Extraction ───────────────────────────────────────────────────────


def extract_message_records(role: str, value: Any, timestamp_ms: Optional[int] = None,
                            include_reasoning: bool = False) -> list[MessageRecord]:
    """Recursively flatten a raw content value into message records.

    Records come back in the order their blocks appear.
    """
    if isinstance(value, str):
        text = sanitize_text(value)
        if text:
            return [MessageRecord.text(role, text, timestamp_ms)]
        return []

    if isinstance(value, list):
        records = []
        for item in value:
            records.extend(extract_message_records(role, item, timestamp_ms, include_reasoning))
        return records

    if isinstance(value, dict):
        return _extract_block(role, value, timestamp_ms, include_reasoning)

    return []


def _extract_block(role: str, block: dict, timestamp_ms: Optional[int],
                   include_reasoning: bool) -> list[MessageRecord]:
    block_type = block_type_of(block)

    if block_type in REASONING_BLOCK_TYPES:
        if not include_reasoning:
            return []
        text = sanitize_text(_reasoning_text(block))
        if not text:
            return []
        content = f"Reasoning\n{truncate_text(text, REASONING_MAX_CHARS)}"
        return [MessageRecord.tool(role, content, timestamp_ms)]

    if block_type in TEXT_BLOCK_TYPES:
        text = block.get("text")
        if isinstance(text, str):
            text = sanitize_text(text)
            if text:
                return [MessageRecord.text(role, text, timestamp_ms)]
        return []

    if block_type in TOOL_CALL_BLOCK_TYPES:
        arguments = block.get("input") if "input" in block else block.get("arguments")
        content = summarize_tool_call(block.get("name"), arguments)
        return [MessageRecord.tool(role, content, timestamp_ms)]

    if block_type in TOOL_RESULT_BLOCK_TYPES:
        raw, is_error = _tool_result_text(block)
        content = summarize_tool_output(raw, is_error)
        if content:
            return [MessageRecord.tool(role, content, timestamp_ms)]
        return []

    # Unknown shape: use its text, else whatever it wraps.
    text = block.get("text")
    if isinstance(text, str):
        text = sanitize_text(text)
        if text:
            return [MessageRecord.text(role, text, timestamp_ms)]
    if "content" in block:
        return extract_message_records(role, block["content"], timestamp_ms, include_reasoning)
    return []


def first_user_text(value: Any) -> Optional[str]:
    """Return the first user-authored text in a content value, for titles.

    Tool results and command markup do not count as user-authored.
    """
    if isinstance(value, str):
        if is_command_markup(value):
            return None
        text = sanitize_text(value)
        return collapse_whitespace(text) if text else None

    if isinstance(value, list):
        for item in value:
            text = first_user_text(item)
            if text:
                return text
        return None

    if isinstance(value, dict):
        block_type = block_type_of(value)
        if block_type in TEXT_BLOCK_TYPES:
            return first_user_text(value.get("text"))
        if block_type is None and "content" in value:
            return first_user_text(value["content"])
    return None


def block_type_of(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        block_type = value.get("type")
        if isinstance(block_type, str):
            return block_type
    return None


def content_block_types(value: Any) -> set[str]:
    """Collect the ``type`` of every block in a (possibly nested) content value."""
    found: set[str] = set()
    if isinstance(value, list):
        for item in value:
            found |= content_block_types(item)
    elif isinstance(value, dict):
        block_type = block_type_of(value)
        if block_type:
            found.add(block_type)
        if block_type not in TOOL_RESULT_BLOCK_TYPES and "content" in value:
            found |= content_block_types(value["content"])
    elif isinstance(value, str) and value.strip():
        found.add("text")
    return found


def build_preview(messages: list[MessageRecord]) -> Optional[str]:
    """Short one-line preview of the latest visible message in a thread."""
    chosen = None
    for message in reversed(messages):
        if message.kind == MESSAGE_KIND_TEXT and message.content.strip():
            chosen = message
            break
    if chosen is None:
        for message in reversed(messages):
            if message.content.strip():
                chosen = message
                break
    if chosen is None:
        return None

    text = collapse_whitespace(chosen.content)
    if not text:
        return None
    return truncate_text(text, PREVIEW_MAX_CHARS)
