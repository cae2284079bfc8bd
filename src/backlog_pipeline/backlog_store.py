"""Persisted task queue.

The queue document is read once at run start and rewritten wholesale at most once per run,
by ``advance``, after the publish step succeeded. Rewrites go through ``atomic_write_text``
so a crash mid-write leaves the previous document intact. No locking: a single pipeline run
per working tree is assumed.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from pathlib import Path

from pydantic import ValidationError

from .errors import CorruptState, QueueEmpty
from .models import Backlog, Task

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str) -> None:
    """Replace *path* with *content* so readers see either the old or the new document.

    The content is fsynced to a sibling temp file which is then ``os.replace``d over *path*.
    An existing file keeps its permission bits.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        if path.exists():
            os.chmod(tmp_path, stat.S_IMODE(path.stat().st_mode))
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _safe_read_json(path: Path) -> str:
    """Read the queue document text, raising ``CorruptState`` if missing or unreadable."""
    if not path.is_file():
        raise CorruptState(f"backlog not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptState(f"backlog at {path} contains invalid UTF-8 data") from exc
    except OSError as exc:
        raise CorruptState(f"backlog at {path} is unreadable: {exc}") from exc
    if not text.strip():
        raise CorruptState(f"backlog at {path} is empty")
    return text


class BacklogStore:
    """Owns ``backlog.json``: ``load`` -> ``peek_next`` -> (publish) -> ``advance``."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._backlog: Backlog | None = None
        self._advanced = False

    def load(self) -> Backlog:
        """Read and validate the persisted queue document.

        Raises:
            CorruptState: If the file is missing, empty, not JSON, or fails validation.
        """
        text = _safe_read_json(self.path)
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise CorruptState(f"backlog at {self.path} is not valid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise CorruptState(f"backlog at {self.path} must be a JSON object, got {type(raw).__name__}")
        try:
            backlog = Backlog.model_validate(raw)
        except ValidationError as exc:
            raise CorruptState(f"backlog at {self.path} failed validation: {exc}") from exc
        self._backlog = backlog
        logger.debug(
            "Loaded backlog %s: %d pending, %d completed",
            self.path,
            len(backlog.pending),
            len(backlog.completed),
        )
        return backlog

    @property
    def backlog(self) -> Backlog:
        if self._backlog is None:
            return self.load()
        return self._backlog

    def peek_next(self) -> Task:
        """Return the head of ``pending`` without removing it.

        Raises:
            QueueEmpty: If there is nothing left to dispatch.
        """
        backlog = self.backlog
        if not backlog.pending:
            raise QueueEmpty("All tasks completed")
        return backlog.pending[0]

    def advance(self, task: Task) -> Backlog:
        """Move ``task`` from the head of pending to completed and persist the whole document.

        Must be called at most once per run and only after publishing succeeded.
        """
        if self._advanced:
            raise RuntimeError("advance() already called for this run")
        updated = self.backlog.advanced(task)
        document = updated.model_dump(mode="json")
        atomic_write_text(self.path, json.dumps(document, indent=2, ensure_ascii=False) + "\n")
        self._backlog = updated
        self._advanced = True
        logger.info(
            "Backlog advanced: task %s completed, %d pending",
            task.key,
            len(updated.pending),
        )
        return updated
