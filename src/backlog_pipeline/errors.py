"""Error taxonomy for a single pipeline run.

Fatal errors bubble to the top of the run and become exit status 1. ``QueueEmpty`` is a
terminal success state and is only raised by ``BacklogStore.peek_next``; the orchestrator
turns it into a clean exit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ValidationWarning


class PipelineError(RuntimeError):
    """Base class for every error the pipeline raises on purpose."""


class TransientRateLimit(PipelineError):
    """The generation service answered "too many requests". Retried inside the client."""


class RateLimitExceeded(PipelineError):
    """Every attempt in the retry budget hit a rate limit."""

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(f"Generation service still rate-limited after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class GenerationCancelled(PipelineError):
    """The backoff delay between attempts was cancelled."""


class CorruptState(PipelineError):
    """The persisted queue document is missing, unreadable or malformed."""


class QueueEmpty(PipelineError):
    """No pending tasks remain."""


class WriteFailure(PipelineError):
    """Writing one file edit failed. Edits before it remain on disk."""

    def __init__(self, filename: str, applied: int, reason: str) -> None:
        super().__init__(f"Failed to write {filename!r} after {applied} edit(s) applied: {reason}")
        self.filename = filename
        self.applied = applied


class ValidationBlocked(PipelineError):
    """Validation produced warnings while the validation policy is ``block``."""

    def __init__(self, warnings: list["ValidationWarning"]) -> None:
        names = ", ".join(w.command for w in warnings)
        super().__init__(f"Validation blocked publish: {len(warnings)} failing check(s): {names}")
        self.warnings = warnings


class PublishFailure(PipelineError):
    """A stage, commit or push command failed."""

    def __init__(self, step: str, detail: str) -> None:
        super().__init__(f"git {step} failed: {detail.strip() or 'no output'}")
        self.step = step
        self.detail = detail
