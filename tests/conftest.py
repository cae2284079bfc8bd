import json
from pathlib import Path
from typing import Any, Callable

import pytest


def _task(task_id: Any, title: str, phase: Any = 1) -> dict[str, Any]:
    return {"id": task_id, "title": title, "desc": f"Implement {title.lower()}", "phase": phase}


@pytest.fixture
def make_task() -> Callable[..., dict[str, Any]]:
    return _task


@pytest.fixture
def backlog_document() -> dict[str, Any]:
    return {
        "pending": [_task(1, "Django project skeleton"), _task(2, "Product search API", phase=2)],
        "completed": [],
        "phases": {"1": "Foundation", "2": "Search"},
    }


@pytest.fixture
def write_backlog(tmp_path: Path) -> Callable[[dict[str, Any]], Path]:
    def _write(document: dict[str, Any], name: str = "backlog.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return path

    return _write
