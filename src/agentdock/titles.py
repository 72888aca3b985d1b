"""Thread title resolution and provider title index loading.

Titles are resolved in this order, first match wins:

1. an official title from the provider's side index,
2. the first user-authored message, cut to 72 characters,
3. the base name of the project directory,
4. "<Provider> session <id prefix>".
"""

import json
import logging
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Iterable, Optional

from .content import TITLE_MAX_CHARS, collapse_whitespace, truncate_text
from .scan import iter_jsonl

logger = logging.getLogger(__name__)


def path_basename(path: str) -> Optional[str]:
    """Base name of a project path written on any platform."""
    if not path or path == ".":
        return None
    name = PureWindowsPath(path).name if "\\" in path else PurePosixPath(path).name
    return name or None


def clean_title(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    title = value.strip()
    return title or None


def resolve_title(official: Optional[str], first_user_message: Optional[str],
                  project_path: str, provider_label: str, thread_id: str) -> str:
    title = clean_title(official)
    if title:
        return title

    if first_user_message:
        text = collapse_whitespace(first_user_message)
        if text:
            return truncate_text(text, TITLE_MAX_CHARS)

    basename = path_basename(project_path)
    if basename:
        return basename

    return f"{provider_label} session {truncate_text(thread_id, 8)}"


def _first_title(entry: dict, title_keys: Iterable[str]) -> Optional[str]:
    for key in title_keys:
        title = clean_title(entry.get(key))
        if title:
            return title
    return None


def load_json_title_index(path: Path, id_key: str, title_keys: Iterable[str]) -> dict[str, str]:
    """Load a JSON index file shaped as a list of entries or ``{"entries": [...]}``."""
    if not path.is_file():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read title index %s: %s", path, e)
        return {}

    if isinstance(data, dict):
        data = data.get("entries", [])
    if not isinstance(data, list):
        return {}

    titles: dict[str, str] = {}
    for entry in data:
        if not isinstance(entry, dict):
            continue
        thread_id = entry.get(id_key)
        title = _first_title(entry, title_keys)
        if isinstance(thread_id, str) and thread_id and title:
            titles[thread_id] = title
    return titles


def load_jsonl_title_index(path: Path, id_key: str, title_keys: Iterable[str]) -> dict[str, str]:
    """Load a JSONL index file; later lines override earlier ones."""
    if not path.is_file():
        return {}

    titles: dict[str, str] = {}
    try:
        for entry in iter_jsonl(path):
            thread_id = entry.get(id_key)
            title = _first_title(entry, title_keys)
            if isinstance(thread_id, str) and thread_id and title:
                titles[thread_id] = title
    except OSError as e:
        logger.warning("Failed to read title index %s: %s", path, e)
        return {}
    return titles
