"""Append-only transcript of a chat session."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path


class Transcript:
    """Writes prompts and responses to a log file, one session per file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _log_to_file(self, content: str) -> None:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(content)

    def log_prompt(self, prompt: str) -> None:
        self._log_to_file(f"[{datetime.now().strftime('%H:%M:%S')}] Prompt: {prompt}\n")

    def log_response(self, text: str, finished_by: str | None = None) -> None:
        suffix = f" ({finished_by})" if finished_by else ""
        self._log_to_file(f"\n[RESPONSE{suffix}]\n{text}\n")

    def log_event(self, message: str) -> None:
        self._log_to_file(f"[{datetime.now().strftime('%H:%M:%S')}] {message}\n")
