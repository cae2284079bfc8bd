import subprocess
from pathlib import Path
from typing import Any

import pytest

from backlog_pipeline import GitClient, PublishFailure, Publisher, Task, build_commit_message


class FakeGit:
    """Stands in for ``subprocess.run``; failures are keyed by git subcommand."""

    def __init__(self, *, staged: bool = True, fail: dict[str, str] | None = None) -> None:
        self.staged = staged
        self.fail = fail or {}
        self.calls: list[list[str]] = []

    def __call__(self, argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append(list(argv))
        subcommand = argv[1]
        if subcommand == "diff":
            return subprocess.CompletedProcess(argv, 1 if self.staged else 0, stdout="", stderr="")
        if subcommand in self.fail:
            if kwargs.get("check"):
                raise subprocess.CalledProcessError(128, argv, output="", stderr=self.fail[subcommand])
            return subprocess.CompletedProcess(argv, 128, stdout="", stderr=self.fail[subcommand])
        return subprocess.CompletedProcess(argv, 0, stdout="", stderr="")


TASK = Task(id=42, title="Add price history chart with seven day and thirty day toggles", desc="...", phase=3)


def _publisher(runner: FakeGit, **kwargs: Any) -> Publisher:
    options = {"project_name": "dealsync", "user_name": "AI Development Agent", "user_email": "bot@dealsync.com"}
    options.update(kwargs)
    return Publisher(GitClient(root=Path("/repo"), runner=runner), **options)


def test_commit_message_template() -> None:
    message = build_commit_message("dealsync", TASK)
    assert message == f"feat(dealsync): {TASK.title[:50]} (#42)"
    assert message.startswith("feat(dealsync): Add price history chart")
    assert "toggles" not in message


def test_publish_stages_commits_and_pushes() -> None:
    runner = FakeGit()
    result = _publisher(runner).publish(TASK)

    assert runner.calls == [
        ["git", "config", "user.name", "AI Development Agent"],
        ["git", "config", "user.email", "bot@dealsync.com"],
        ["git", "add", "-A"],
        ["git", "diff", "--cached", "--quiet"],
        ["git", "commit", "-m", build_commit_message("dealsync", TASK)],
        ["git", "push"],
    ]
    assert result.committed and result.pushed
    assert "(#42)" in result.message


def test_nothing_staged_skips_commit_but_still_pushes() -> None:
    runner = FakeGit(staged=False)
    result = _publisher(runner, user_name="", user_email="").publish(TASK)

    assert [call[1] for call in runner.calls] == ["add", "diff", "push"]
    assert not result.committed
    assert result.pushed


def test_push_target_and_disabled_push() -> None:
    runner = FakeGit()
    _publisher(runner, remote="upstream", branch="main").publish(TASK)
    assert runner.calls[-1] == ["git", "push", "upstream", "main"]

    runner = FakeGit()
    result = _publisher(runner, push=False).publish(TASK)
    assert "push" not in [call[1] for call in runner.calls]
    assert result.committed and not result.pushed


@pytest.mark.parametrize("step", ["add", "commit", "push"])
def test_command_failures_become_publish_failure(step: str) -> None:
    runner = FakeGit(fail={step: f"fatal: {step} rejected"})
    with pytest.raises(PublishFailure, match=f"git {step} failed: fatal: {step} rejected") as exc_info:
        _publisher(runner).publish(TASK)
    assert exc_info.value.step == step


def test_missing_git_executable_is_publish_failure() -> None:
    def _no_git(argv: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        raise FileNotFoundError("git")

    with pytest.raises(PublishFailure, match="git config failed"):
        _publisher(_no_git).publish(TASK)
