"""Run artifact logging for conversion jobs."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict

from .file_ops import append_jsonl, write_bytes, write_text


class RunLogger:
    """Creates a timestamped run folder and persists progress, attempts and screenshots."""

    def __init__(
        self,
        *,
        root: Path | None = None,
        prefix: str | None = None,
        base_dir: Path | str | None = None,
    ) -> None:
        if base_dir is not None:
            self.base_dir = Path(base_dir)
        else:
            run_root = root or Path("runs")
            timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
            self.base_dir = run_root / f"{prefix or 'run'}_{timestamp}"
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.progress_file = self.base_dir / "progress.jsonl"
        self.attempts_file = self.base_dir / "attempts.jsonl"
        self.summary_file = self.base_dir / "run_summary.json"
        self._screenshot_index = 0

    def log_progress(self, stage: str, percent: int, **fields: Any) -> None:
        """Append one progress event to progress.jsonl."""

        payload = {"timestamp": datetime.now(UTC).isoformat(), "stage": stage, "percent": percent}
        payload.update(fields)
        append_jsonl(self.progress_file, payload)

    def log_attempt(self, attempt: int, *, outcome: str, error: str | None = None, **fields: Any) -> None:
        payload = {
            "timestamp": datetime.now(UTC).isoformat(),
            "attempt": attempt,
            "outcome": outcome,
            "error": error,
        }
        payload.update(fields)
        append_jsonl(self.attempts_file, payload)

    def save_screenshot(self, payload: bytes, *, name: str | None = None) -> Path:
        """Persist screenshot bytes under screenshots/ and return the path."""

        self._screenshot_index += 1
        file_name = name or f"failure_{self._screenshot_index:03d}.png"
        path = self.base_dir / "screenshots" / file_name
        write_bytes(path, payload)
        return path

    def write_summary(self, payload: Dict[str, Any]) -> Path:
        """Persist a run-level summary file in the current run directory."""

        write_text(self.summary_file, json.dumps(payload, ensure_ascii=False, indent=2, default=str))
        return self.summary_file


__all__ = ["RunLogger"]
