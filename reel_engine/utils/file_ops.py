"""Small helpers for interacting with the filesystem."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, content: str) -> None:
    """Write text to disk, creating parent directories when needed."""

    _ensure_parent(path)
    path.write_text(content, encoding="utf-8")


def write_bytes(path: Path, payload: bytes) -> None:
    """Write bytes to disk, creating parent directories when needed."""

    _ensure_parent(path)
    path.write_bytes(payload)


def write_bytes_atomic(path: Path, payload: bytes) -> None:
    """Write bytes through a sibling ``.part`` file so readers never see a partial artifact."""

    _ensure_parent(path)
    partial = path.with_name(path.name + ".part")
    try:
        partial.write_bytes(payload)
        partial.replace(path)
    finally:
        remove_quietly(partial)


def remove_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("could not remove %s", path, exc_info=True)


def append_jsonl(path: Path, payload: Dict[str, Any]) -> None:
    """Append a JSONL entry to the target file."""

    _ensure_parent(path)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(json.dumps(payload, ensure_ascii=False) + "\n")
