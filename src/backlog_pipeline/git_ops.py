"""Publishing a task's changes through ``git``.

``GitClient`` methods each map to a single git command run in the workspace root, so callers
can reason about side effects. Failures surface as ``subprocess.CalledProcessError``.

``Publisher`` composes them into the publish step: optional committer identity, stage
everything, commit with the templated message, push. Any command failure is converted to
``PublishFailure`` naming the step. A stage that leaves nothing to commit is not a failure;
the commit is skipped and the push still runs so an earlier unpushed commit gets published.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable

from .errors import PublishFailure
from .models import PublishResult, Task
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)

TITLE_LIMIT = 50

Runner = Callable[..., "subprocess.CompletedProcess[str]"]


def build_commit_message(project: str, task: Task) -> str:
    return f"feat({project}): {task.title[:TITLE_LIMIT]} (#{task.key})"


class GitClient:
    def __init__(self, *, root: Path, runner: Runner = subprocess.run) -> None:
        self.root = root
        self._runner = runner

    def configure_identity(self, *, name: str, email: str) -> None:
        if name:
            self._git(["config", "user.name", name])
        if email:
            self._git(["config", "user.email", email])

    def add_all(self) -> None:
        self._git(["add", "-A"])

    def has_staged_changes(self) -> bool:
        p = self._runner(
            ["git", "diff", "--cached", "--quiet"],
            cwd=self.root,
            text=True,
            capture_output=True,
            check=False,
        )
        if p.returncode == 0:
            return False
        if p.returncode == 1:
            return True
        raise subprocess.CalledProcessError(p.returncode, p.args, output=p.stdout, stderr=p.stderr)

    def commit(self, message: str) -> None:
        self._git(["commit", "-m", message])

    def push(self, *, remote: str = "", branch: str = "") -> None:
        args = ["push"]
        if remote or branch:
            args.append(remote or "origin")
        if branch:
            args.append(branch)
        self._git(args)

    def _git(self, args: list[str]) -> str:
        p = self._runner(
            ["git", *args],
            cwd=self.root,
            text=True,
            check=True,
            capture_output=True,
        )
        return p.stdout


class Publisher:
    def __init__(
        self,
        git: GitClient,
        *,
        project_name: str,
        remote: str = "",
        branch: str = "",
        push: bool = True,
        user_name: str = "",
        user_email: str = "",
    ) -> None:
        self.git = git
        self.project_name = project_name
        self.remote = remote
        self.branch = branch
        self.push = push
        self.user_name = user_name
        self.user_email = user_email

    @classmethod
    def from_settings(cls, settings: RuntimeSettings, *, runner: Runner = subprocess.run) -> "Publisher":
        return cls(
            GitClient(root=settings.workspace_root_path, runner=runner),
            project_name=settings.project_name,
            remote=settings.git_remote,
            branch=settings.git_branch,
            push=settings.push,
            user_name=settings.git_user_name,
            user_email=settings.git_user_email,
        )

    def _step(self, step: str, action: Callable[[], object]) -> object:
        try:
            return action()
        except subprocess.CalledProcessError as exc:
            detail = exc.stderr or exc.stdout or f"exit status {exc.returncode}"
            raise PublishFailure(step, str(detail)) from exc
        except OSError as exc:
            raise PublishFailure(step, str(exc)) from exc

    def publish(self, task: Task) -> PublishResult:
        """Stage, commit and push the working tree for ``task``.

        Raises:
            PublishFailure: If any git command fails.
        """
        message = build_commit_message(self.project_name, task)
        self._step("config", lambda: self.git.configure_identity(name=self.user_name, email=self.user_email))
        self._step("add", self.git.add_all)

        committed = bool(self._step("diff", self.git.has_staged_changes))
        if committed:
            self._step("commit", lambda: self.git.commit(message))
            logger.info("Committed: %s", message)
        else:
            logger.info("Nothing staged for task %s; skipping commit", task.key)

        pushed = False
        if self.push:
            self._step("push", lambda: self.git.push(remote=self.remote, branch=self.branch))
            pushed = True
            logger.info("Pushed %s", self.branch or "current branch")
        else:
            logger.info("Push disabled; leaving commit local")
        return PublishResult(message=message, committed=committed, pushed=pushed)
