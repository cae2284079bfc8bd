from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RunState(str, Enum):
    """Where a single run ended up. Only ``COMPLETED`` advances the queue."""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    GENERATED = "generated"
    PARSED = "parsed"
    APPLIED = "applied"
    VALIDATED = "validated"
    PUBLISHED = "published"
    COMPLETED = "completed"
    NO_CHANGES = "no_changes"
    QUEUE_EMPTY = "queue_empty"


class Task(BaseModel):
    """One unit of work. Never mutated; it only moves from ``pending`` to ``completed``."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str | int
    title: str
    desc: str
    phase: str | int

    @property
    def key(self) -> str:
        return str(self.id)


class Backlog(BaseModel):
    """Persisted queue document: ``{pending, completed, phases}`` plus any unknown keys."""

    model_config = ConfigDict(extra="allow")

    pending: list[Task]
    completed: list[Task] = Field(default_factory=list)
    phases: dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _ids_unique(self) -> "Backlog":
        seen: set[str] = set()
        for task in [*self.pending, *self.completed]:
            if task.key in seen:
                raise ValueError(f"task id {task.key!r} appears more than once across pending/completed")
            seen.add(task.key)
        return self

    def phase_label(self, task: Task) -> str:
        return self.phases.get(str(task.phase), str(task.phase))

    def advanced(self, task: Task) -> "Backlog":
        """Return a copy with ``task`` moved from the head of pending to the end of completed."""
        if not self.pending or self.pending[0].key != task.key:
            head = self.pending[0].key if self.pending else None
            raise ValueError(f"task {task.key!r} is not the head of pending (head is {head!r})")
        return self.model_copy(
            update={
                "pending": list(self.pending[1:]),
                "completed": [*self.completed, self.pending[0]],
            }
        )


@dataclass(frozen=True)
class FileEdit:
    filename: str
    content: str


@dataclass(frozen=True)
class ValidationWarning:
    command: str
    message: str
    returncode: int | None = None


@dataclass(frozen=True)
class PublishResult:
    message: str
    committed: bool
    pushed: bool


@dataclass
class RunResult:
    state: RunState
    task: Task | None = None
    edits_applied: int = 0
    warnings: list[ValidationWarning] = field(default_factory=list)
    publish: PublishResult | None = None
