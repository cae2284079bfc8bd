"""Recover file edits from free-form generation output.

The model is asked to answer with blocks like::

    === backend/models.py ===
    <file content>
    === frontend/app.tsx ===
    <file content>
    === END ===

Parsing is a two-state scan over lines (outside a block / inside a block). Every delimiter
line closes the block in progress and opens a new one, so a block's content is exactly the
text between its delimiter and the next one (or end of text). A block becomes a ``FileEdit``
only when its token looks like a filename and its trimmed content is non-empty; anything else
(prose headings, the ``END`` sentinel, empty blocks) is dropped without error.
"""

from __future__ import annotations

import logging
import re
from typing import Iterator

from .models import FileEdit

logger = logging.getLogger(__name__)

END_SENTINEL = "=== END ==="

_DELIMITER_RE = re.compile(r"^===\s*(?P<token>.+?)\s*===$")


def match_delimiter(line: str) -> str | None:
    """Return the token of a ``=== <token> ===`` line, or None for any other line."""
    match = _DELIMITER_RE.match(line.strip())
    if match is None:
        return None
    token = match.group("token").strip()
    return token or None


def looks_like_filename(token: str) -> bool:
    """A token names a file when it carries an extension marker (a literal period)."""
    return "." in token


def iter_blocks(text: str) -> Iterator[tuple[str, str]]:
    """Yield ``(token, raw_content)`` for every delimiter in order, accepted or not."""
    token: str | None = None
    body: list[str] = []
    for line in text.splitlines():
        candidate = match_delimiter(line)
        if candidate is not None:
            if token is not None:
                yield token, "\n".join(body)
            token = candidate
            body = []
        elif token is not None:
            body.append(line)
    if token is not None:
        yield token, "\n".join(body)


def parse_response(text: str) -> list[FileEdit]:
    """Extract the ordered file edits from a generation response.

    Returns an empty list when nothing is accepted; callers treat that as "nothing to apply".
    """
    edits: list[FileEdit] = []
    for token, raw in iter_blocks(text):
        content = raw.strip()
        if not looks_like_filename(token):
            logger.debug("Skipping block %r: not a filename", token)
            continue
        if not content:
            logger.debug("Skipping block %r: empty content", token)
            continue
        edits.append(FileEdit(filename=token, content=content))
    return edits


class ResponseParser:
    """Stateless wrapper so the parser can be injected like the other components."""

    def parse(self, text: str) -> list[FileEdit]:
        return parse_response(text)
