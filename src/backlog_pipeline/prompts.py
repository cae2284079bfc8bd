from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .models import Backlog, Task
from .response_parser import END_SENTINEL
from .settings import RuntimeSettings


def snapshot_repository(root: Path) -> list[str]:
    """List the non-hidden top-level entries of the working tree, sorted."""
    if not root.is_dir():
        return []
    return sorted(entry.name for entry in root.iterdir() if not entry.name.startswith("."))


@dataclass(frozen=True)
class PromptBuilder:
    """Renders one task plus a repository snapshot into the generation request."""

    project_brief: str
    tech_lines: list[str]
    max_lines_hint: int = 200

    @classmethod
    def from_settings(cls, settings: RuntimeSettings) -> "PromptBuilder":
        return cls(
            project_brief=settings.project_brief,
            tech_lines=settings.tech_lines(),
            max_lines_hint=settings.max_lines_hint,
        )

    def build(self, task: Task, backlog: Backlog, *, repo_root: Path) -> str:
        files = snapshot_repository(repo_root)
        tech = "\n".join(f"- {line}" for line in self.tech_lines) or "- (unspecified)"
        return (
            f"{self.project_brief}\n\n"
            f"**TASK {task.key}**: {task.desc}\n"
            f"**PHASE**: {backlog.phase_label(task)}\n\n"
            f"REPO STATE: {', '.join(files)}\n\n"
            "TECH:\n"
            f"{tech}\n\n"
            "RULES:\n"
            f"- Generate <{self.max_lines_hint} lines valid code\n"
            "- Create folder structure if needed\n"
            "- Output format:\n"
            "=== FILENAME ===\n"
            "<file content>\n"
            f"{END_SENTINEL}\n\n"
            f"Start Task {task.key} ONLY."
        )
