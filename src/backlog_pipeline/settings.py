from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, replace
from pathlib import Path

VALIDATION_POLICIES = frozenset({"warn", "block"})

_DEFAULT_BRIEF = "DealSync: AI-powered price comparison website (Amazon/Flipkart/Myntra)."
_DEFAULT_TECH_NOTES = (
    "Backend: Django + DRF;"
    "Frontend: Next.js + Tailwind + Apple fonts (SF Pro/Inter);"
    "UI: Flipkart colors + Amazon dark theme toggle"
)


@dataclass(frozen=True)
class RuntimeSettings:
    """Runtime settings loaded from environment with fail-fast validation."""

    workspace_root: str = ""
    backlog_path: str = "backlog.json"
    progress_dir: str = "docs/progress"
    project_name: str = "dealsync"
    project_brief: str = _DEFAULT_BRIEF
    tech_notes: str = _DEFAULT_TECH_NOTES
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    request_timeout: int = 120
    max_attempts: int = 3
    initial_delay: float = 60.0
    backoff_factor: float = 1.5
    max_lines_hint: int = 200
    backend_check: str = "python manage.py check"
    frontend_build: str = "npm run build"
    frontend_dir: str = "frontend"
    validation_timeout: int = 600
    validation_policy: str = "warn"
    git_remote: str = ""
    git_branch: str = ""
    git_user_name: str = "AI Development Agent"
    git_user_email: str = "bot@dealsync.com"
    push: bool = True

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            workspace_root=os.getenv("PIPELINE_WORKSPACE_ROOT", ""),
            backlog_path=os.getenv("PIPELINE_BACKLOG_PATH", "backlog.json"),
            progress_dir=os.getenv("PIPELINE_PROGRESS_DIR", "docs/progress"),
            project_name=os.getenv("PIPELINE_PROJECT_NAME", "dealsync"),
            project_brief=os.getenv("PIPELINE_PROJECT_BRIEF", _DEFAULT_BRIEF),
            tech_notes=os.getenv("PIPELINE_TECH_NOTES", _DEFAULT_TECH_NOTES),
            model=os.getenv("PIPELINE_MODEL", "gpt-4o-mini"),
            temperature=_get_env_float("PIPELINE_TEMPERATURE", default=0.2, minimum=0.0, maximum=2.0),
            request_timeout=_get_env_int("PIPELINE_REQUEST_TIMEOUT", default=120, minimum=1),
            max_attempts=_get_env_int("PIPELINE_MAX_ATTEMPTS", default=3, minimum=1, maximum=100),
            initial_delay=_get_env_float("PIPELINE_INITIAL_DELAY", default=60.0, minimum=0.0),
            backoff_factor=_get_env_float("PIPELINE_BACKOFF_FACTOR", default=1.5, minimum=1.0),
            max_lines_hint=_get_env_int("PIPELINE_MAX_LINES_HINT", default=200, minimum=1),
            backend_check=os.getenv("PIPELINE_BACKEND_CHECK", "python manage.py check"),
            frontend_build=os.getenv("PIPELINE_FRONTEND_BUILD", "npm run build"),
            frontend_dir=os.getenv("PIPELINE_FRONTEND_DIR", "frontend"),
            validation_timeout=_get_env_int("PIPELINE_VALIDATION_TIMEOUT", default=600, minimum=1),
            validation_policy=os.getenv("PIPELINE_VALIDATION_POLICY", "warn"),
            git_remote=os.getenv("PIPELINE_GIT_REMOTE", ""),
            git_branch=os.getenv("PIPELINE_GIT_BRANCH", ""),
            git_user_name=os.getenv("PIPELINE_GIT_USER_NAME", "AI Development Agent"),
            git_user_email=os.getenv("PIPELINE_GIT_USER_EMAIL", "bot@dealsync.com"),
        ).normalized()

    @property
    def workspace_root_path(self) -> Path:
        """Return the workspace root as a Path, defaulting to cwd if unset."""
        return Path(self.workspace_root) if self.workspace_root else Path.cwd()

    def backlog_file(self) -> Path:
        path = Path(self.backlog_path)
        return path if path.is_absolute() else self.workspace_root_path / path

    def progress_path(self) -> Path:
        path = Path(self.progress_dir)
        return path if path.is_absolute() else self.workspace_root_path / path

    def tech_lines(self) -> list[str]:
        return [line.strip() for line in self.tech_notes.split(";") if line.strip()]

    def with_overrides(self, **changes: object) -> "RuntimeSettings":
        """Apply CLI overrides and re-run validation."""
        return replace(self, **changes).normalized()

    def normalized(self) -> "RuntimeSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        model = self.model.strip()
        if not model:
            raise ValueError("PIPELINE_MODEL must be non-empty")
        project_name = self.project_name.strip()
        if not project_name:
            raise ValueError("PIPELINE_PROJECT_NAME must be non-empty")
        if not self.backlog_path.strip():
            raise ValueError("PIPELINE_BACKLOG_PATH must be non-empty")
        if not self.progress_dir.strip():
            raise ValueError("PIPELINE_PROGRESS_DIR must be non-empty")

        policy = self.validation_policy.strip().lower()
        if policy not in VALIDATION_POLICIES:
            raise ValueError("PIPELINE_VALIDATION_POLICY must be one of: block, warn")

        # -- Commands must at least tokenize --
        for name, command in (
            ("PIPELINE_BACKEND_CHECK", self.backend_check),
            ("PIPELINE_FRONTEND_BUILD", self.frontend_build),
        ):
            try:
                shlex.split(command)
            except ValueError as exc:
                raise ValueError(f"{name} is not a valid command line: {command!r}") from exc

        return replace(
            self,
            model=model,
            project_name=project_name,
            validation_policy=policy,
            git_remote=self.git_remote.strip(),
            git_branch=self.git_branch.strip(),
            git_user_name=self.git_user_name.strip(),
            git_user_email=self.git_user_email.strip(),
        )


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Args:
        name: Environment variable name.
        default: Value to return if the variable is unset.
        minimum: Inclusive lower bound.
        maximum: Inclusive upper bound (default 10M, prevents absurd values).

    Returns:
        The parsed integer, guaranteed to be within [minimum, maximum].

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_float(name: str, default: float, minimum: float, maximum: float = 1e7) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got: {raw!r}") from exc
    if parsed != parsed or parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed
