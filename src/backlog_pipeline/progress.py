from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path

from .models import Task

logger = logging.getLogger(__name__)

RESPONSE_EXCERPT_CHARS = 1000


def render_progress_note(task: Task, response: str) -> str:
    return f"# Task {task.key}\n{task.title}\n\n{response[:RESPONSE_EXCERPT_CHARS]}"


class ProgressLogger:
    """Writes ``<ISO-date>-<task id>.md`` notes. A note that already exists is never rewritten."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def note_path(self, task: Task, today: dt.date | None = None) -> Path:
        day = today if today is not None else dt.date.today()
        return self.directory / f"{day.isoformat()}-{task.key}.md"

    def record(self, task: Task, response: str, *, today: dt.date | None = None) -> Path | None:
        path = self.note_path(task, today)
        self.directory.mkdir(parents=True, exist_ok=True)
        try:
            with path.open("x", encoding="utf-8") as handle:
                handle.write(render_progress_note(task, response))
        except FileExistsError:
            logger.info("Progress note %s already exists; leaving it untouched", path)
            return None
        logger.info("Progress note written: %s", path)
        return path

    def discard(self, path: Path) -> None:
        """Remove a note this run wrote, so a retry records the response it actually commits."""
        path.unlink(missing_ok=True)
        logger.info("Progress note discarded: %s", path)
