"""Filesystem helpers shared by the backends.

Unreadable directories and corrupt lines are skipped rather than raised, so
a half-written transcript never hides the rest of the store. Whether an
unreadable file is skipped is up to the caller.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Iterator, Optional

logger = logging.getLogger(__name__)


def collect_files(root: Path, suffix: str) -> list[Path]:
    """Recursively collect files under ``root`` whose name ends with ``suffix``."""
    found: list[Path] = []
    if not root.is_dir():
        return found

    def on_error(error: OSError) -> None:
        logger.debug("Skipping unreadable directory: %s", error)

    for dirpath, _dirnames, filenames in os.walk(root, onerror=on_error):
        for filename in filenames:
            if filename.endswith(suffix):
                found.append(Path(dirpath) / filename)
    return found


def iter_jsonl(path: Path) -> Iterator[dict]:
    """Yield each JSON object line of a JSONL file, skipping corrupt lines.

    ``OSError`` from opening or reading the file propagates so callers can
    decide whether an unreadable transcript counts as a thread at all.
    """
    with path.open(encoding="utf-8", errors="replace") as f:
        for line_num, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                logger.debug("Bad JSON at %s:%d: %s", path, line_num, e)
                continue
            if isinstance(entry, dict):
                yield entry


def read_json(path: Path) -> Optional[Any]:
    """Read a whole JSON file, or None when it is missing or malformed."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.debug("Failed to read JSON file %s: %s", path, e)
        return None


def sorted_json_files(directory: Path) -> list[Path]:
    """The ``*.json`` files directly inside ``directory``, sorted by name."""
    if not directory.is_dir():
        return []
    try:
        return sorted(
            (p for p in directory.iterdir() if p.suffix == ".json" and p.is_file()),
            key=lambda p: p.name,
        )
    except OSError as e:
        logger.debug("Failed to list %s: %s", directory, e)
        return []
