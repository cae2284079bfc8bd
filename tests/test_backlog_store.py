import json
import stat
from pathlib import Path

import pytest

from backlog_pipeline import BacklogStore, CorruptState, QueueEmpty, atomic_write_text
from backlog_pipeline import backlog_store


def test_load_and_peek_next(write_backlog, backlog_document) -> None:
    store = BacklogStore(write_backlog(backlog_document))
    backlog = store.load()
    assert [task.key for task in backlog.pending] == ["1", "2"]
    assert store.peek_next().title == "Django project skeleton"
    assert backlog.phase_label(store.peek_next()) == "Foundation"


def test_peek_next_on_empty_queue(write_backlog, backlog_document) -> None:
    backlog_document["completed"] = backlog_document["pending"]
    backlog_document["pending"] = []
    store = BacklogStore(write_backlog(backlog_document))
    with pytest.raises(QueueEmpty, match="All tasks completed"):
        store.peek_next()


@pytest.mark.parametrize(
    "payload",
    [
        "{not json",
        "[]",
        "",
        json.dumps({"completed": []}),
        json.dumps({"pending": [{"id": 1, "title": "no desc", "phase": 1}]}),
    ],
)
def test_malformed_documents_are_corrupt_state(tmp_path: Path, payload: str) -> None:
    path = tmp_path / "backlog.json"
    path.write_text(payload, encoding="utf-8")
    with pytest.raises(CorruptState):
        BacklogStore(path).load()


def test_missing_document_is_corrupt_state(tmp_path: Path) -> None:
    with pytest.raises(CorruptState, match="not found"):
        BacklogStore(tmp_path / "missing.json").load()


def test_duplicate_ids_across_lists_are_corrupt_state(write_backlog, backlog_document, make_task) -> None:
    backlog_document["completed"] = [make_task(1, "Already done")]
    with pytest.raises(CorruptState, match="more than once"):
        BacklogStore(write_backlog(backlog_document)).load()


def test_advance_persists_whole_document(write_backlog, backlog_document) -> None:
    backlog_document["owner"] = "growth-team"
    backlog_document["pending"][0]["estimate"] = "2h"
    path = write_backlog(backlog_document)
    store = BacklogStore(path)

    store.advance(store.peek_next())

    persisted = json.loads(path.read_text(encoding="utf-8"))
    assert [task["id"] for task in persisted["pending"]] == [2]
    assert [task["id"] for task in persisted["completed"]] == [1]
    assert persisted["completed"][0]["estimate"] == "2h"
    assert persisted["phases"] == {"1": "Foundation", "2": "Search"}
    assert persisted["owner"] == "growth-team"
    assert not list(path.parent.glob(".backlog.json.*.tmp"))


def test_advance_only_once_per_run(write_backlog, backlog_document) -> None:
    store = BacklogStore(write_backlog(backlog_document))
    store.advance(store.peek_next())
    with pytest.raises(RuntimeError, match="already called"):
        store.advance(store.peek_next())


def test_advance_rejects_a_task_that_is_not_the_head(write_backlog, backlog_document) -> None:
    store = BacklogStore(write_backlog(backlog_document))
    second = store.backlog.pending[1]
    with pytest.raises(ValueError, match="not the head"):
        store.advance(second)


def test_atomic_write_keeps_previous_content_on_failure(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / "backlog.json"
    path.write_text('{"pending": []}', encoding="utf-8")

    def _boom(src: str, dst: str) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(backlog_store.os, "replace", _boom)
    with pytest.raises(OSError, match="disk full"):
        atomic_write_text(path, '{"pending": [1]}')

    assert path.read_text(encoding="utf-8") == '{"pending": []}'
    assert [entry.name for entry in tmp_path.iterdir()] == ["backlog.json"]


def test_atomic_write_creates_parent_directories(tmp_path: Path) -> None:
    target = tmp_path / "state" / "nested" / "backlog.json"
    atomic_write_text(target, "{}\n")
    assert target.read_text(encoding="utf-8") == "{}\n"


def test_atomic_write_keeps_the_file_mode(tmp_path: Path) -> None:
    path = tmp_path / "backlog.json"
    path.write_text("{}", encoding="utf-8")
    path.chmod(0o644)

    atomic_write_text(path, '{"pending": []}')

    assert stat.S_IMODE(path.stat().st_mode) == 0o644
    assert path.read_text(encoding="utf-8") == '{"pending": []}'


def test_advance_keeps_the_backlog_mode(write_backlog, backlog_document) -> None:
    path = write_backlog(backlog_document)
    path.chmod(0o664)
    store = BacklogStore(path)

    store.advance(store.peek_next())

    assert stat.S_IMODE(path.stat().st_mode) == 0o664
