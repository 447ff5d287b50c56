"""Filesystem and run-logging helpers."""

from .file_ops import append_jsonl, remove_quietly, write_bytes, write_bytes_atomic, write_text
from .logging_utils import RunLogger

__all__ = [
    "RunLogger",
    "append_jsonl",
    "remove_quietly",
    "write_bytes",
    "write_bytes_atomic",
    "write_text",
]
