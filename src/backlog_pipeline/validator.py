"""External checks run after edits are applied.

Failures never raise: a non-zero exit, a missing executable or a timeout each become one
``ValidationWarning``. Whether warnings block publishing is decided by the caller.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Sequence

from .models import ValidationWarning
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)

_OUTPUT_TAIL_CHARS = 500

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True)
class ValidationCommand:
    name: str
    argv: tuple[str, ...]
    cwd: Path

    @property
    def display(self) -> str:
        return shlex.join(self.argv)


def _tail(text: str | None) -> str:
    if not text:
        return ""
    text = text.strip()
    return text[-_OUTPUT_TAIL_CHARS:]


class Validator:
    def __init__(
        self,
        commands: Sequence[ValidationCommand],
        *,
        timeout: float = 600,
        runner: Runner = subprocess.run,
    ) -> None:
        self.commands = list(commands)
        self.timeout = timeout
        self._runner = runner

    @classmethod
    def from_settings(cls, settings: RuntimeSettings, *, runner: Runner = subprocess.run) -> "Validator":
        """Backend check runs at the workspace root, the frontend build in ``frontend_dir``.

        An empty command string disables that check.
        """
        root = settings.workspace_root_path
        commands: list[ValidationCommand] = []
        if settings.backend_check.strip():
            commands.append(ValidationCommand("backend check", tuple(shlex.split(settings.backend_check)), root))
        if settings.frontend_build.strip():
            commands.append(
                ValidationCommand(
                    "frontend build",
                    tuple(shlex.split(settings.frontend_build)),
                    root / settings.frontend_dir,
                )
            )
        return cls(commands, timeout=settings.validation_timeout, runner=runner)

    def _run_one(self, command: ValidationCommand) -> ValidationWarning | None:
        kwargs: dict[str, Any] = {
            "cwd": command.cwd,
            "text": True,
            "capture_output": True,
            "check": False,
            "timeout": self.timeout,
        }
        try:
            completed = self._runner(list(command.argv), **kwargs)
        except subprocess.TimeoutExpired:
            return ValidationWarning(command.name, f"timed out after {self.timeout}s")
        except OSError as exc:
            return ValidationWarning(command.name, f"could not run {command.display!r}: {exc}")

        if completed.returncode != 0:
            detail = _tail(completed.stderr) or _tail(completed.stdout) or "no output"
            return ValidationWarning(
                command.name,
                f"{command.display!r} exited with {completed.returncode}: {detail}",
                returncode=completed.returncode,
            )
        return None

    def validate(self) -> list[ValidationWarning]:
        warnings: list[ValidationWarning] = []
        for command in self.commands:
            logger.info("Running %s: %s", command.name, command.display)
            warning = self._run_one(command)
            if warning is None:
                continue
            logger.warning("%s warning: %s", command.name, warning.message)
            warnings.append(warning)
        if not warnings:
            logger.info("Validation passed")
        return warnings
