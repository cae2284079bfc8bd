from pathlib import Path

import pytest

from backlog_pipeline import RuntimeSettings


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("PIPELINE_WORKSPACE_ROOT", str(tmp_path))
    settings = RuntimeSettings.from_env()
    assert settings.max_attempts == 3
    assert settings.initial_delay == 60.0
    assert settings.backoff_factor == 1.5
    assert settings.validation_policy == "warn"
    assert settings.backlog_file() == tmp_path / "backlog.json"
    assert settings.progress_path() == tmp_path / "docs" / "progress"
    assert settings.tech_lines()[0] == "Backend: Django + DRF"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIPELINE_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("PIPELINE_INITIAL_DELAY", "0.5")
    monkeypatch.setenv("PIPELINE_VALIDATION_POLICY", " Block ")
    monkeypatch.setenv("PIPELINE_PROJECT_NAME", " shopwise ")
    settings = RuntimeSettings.from_env()
    assert settings.max_attempts == 5
    assert settings.initial_delay == 0.5
    assert settings.validation_policy == "block"
    assert settings.project_name == "shopwise"


@pytest.mark.parametrize(
    ("name", "value", "match"),
    [
        ("PIPELINE_MAX_ATTEMPTS", "abc", "must be an integer"),
        ("PIPELINE_MAX_ATTEMPTS", "0", ">= 1"),
        ("PIPELINE_BACKOFF_FACTOR", "0.5", ">= 1.0"),
        ("PIPELINE_INITIAL_DELAY", "soon", "must be a number"),
        ("PIPELINE_VALIDATION_POLICY", "ignore", "block, warn"),
        ("PIPELINE_MODEL", "   ", "PIPELINE_MODEL"),
        ("PIPELINE_BACKEND_CHECK", "python 'unterminated", "PIPELINE_BACKEND_CHECK"),
    ],
)
def test_invalid_env_raises(monkeypatch: pytest.MonkeyPatch, name: str, value: str, match: str) -> None:
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError, match=match):
        RuntimeSettings.from_env()


def test_with_overrides_revalidates(tmp_path: Path) -> None:
    settings = RuntimeSettings().with_overrides(workspace_root=str(tmp_path), backlog_path="queue.json", push=False)
    assert settings.backlog_file() == tmp_path / "queue.json"
    assert settings.push is False
    with pytest.raises(ValueError):
        settings.with_overrides(validation_policy="sometimes")
