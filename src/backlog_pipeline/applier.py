from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from .errors import WriteFailure
from .models import FileEdit

logger = logging.getLogger(__name__)


class ChangeApplier:
    """Writes parsed file edits into the working tree.

    Each edit fully overwrites its target. Edits are independent: when edit ``k`` fails,
    edits ``1..k-1`` stay on disk and ``WriteFailure`` reports how many were applied.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def resolve(self, filename: str) -> Path:
        """Map an edit filename to a path inside the root, refusing anything that escapes it."""
        candidate = Path(filename)
        if candidate.is_absolute():
            raise ValueError("absolute paths are not allowed")
        root = self.root.resolve()
        target = (root / candidate).resolve()
        if target != root and root not in target.parents:
            raise ValueError("path escapes the workspace root")
        if target == root:
            raise ValueError("path resolves to the workspace root itself")
        return target

    def apply(self, edits: Iterable[FileEdit]) -> int:
        applied = 0
        for edit in edits:
            try:
                target = self.resolve(edit.filename)
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(edit.content, encoding="utf-8")
            except (OSError, ValueError) as exc:
                raise WriteFailure(edit.filename, applied, str(exc)) from exc
            applied += 1
            logger.info("Wrote %s", edit.filename)
        return applied
