import json

import pytest

from src.functions.extraction_diagnostics.core.errors import PersistenceError
from src.functions.extraction_diagnostics.core.storage import SessionStore, safe_name


def test_safe_name_keeps_ids_in_one_path_component():
    assert safe_name("img-42") == "img-42"
    assert safe_name("job/7:img 3") == "job_7_img_3"
    assert safe_name("../etc") == "_etc"
    assert safe_name("..") == "_"


def test_write_session_replaces_same_file(tmp_path):
    store = SessionStore(tmp_path / "sessions")

    first = store.write_session("img/1", 1700000000123, {"task_id": "img/1", "attempt": 1})
    second = store.write_session("img/1", 1700000000123, {"task_id": "img/1", "attempt": 2})

    assert first == second == tmp_path / "sessions" / "img_1_1700000000123.json"
    assert json.loads(first.read_text())["attempt"] == 2
    assert list(first.parent.glob("*.tmp")) == []


def test_unserializable_record_raises_and_leaves_no_temp_file(tmp_path):
    store = SessionStore(tmp_path)

    with pytest.raises(PersistenceError) as excinfo:
        store.write_session("img-1", 1, {"bad": object()})

    assert excinfo.value.path == tmp_path / "img-1_1.json"
    assert list(tmp_path.iterdir()) == []


def test_directory_creation_failure_raises(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    store = SessionStore(blocker / "sessions")

    with pytest.raises(PersistenceError):
        store.append_summary({"task_id": "img-1"})


def test_summary_lines_are_appended_and_counted(tmp_path):
    store = SessionStore(tmp_path)
    store.append_summary({"task_id": "img-1", "success": True})
    store.append_summary({"task_id": "img-2", "success": False})
    with open(store.summary_path, "a") as f:
        f.write("\n")
        f.write("not json\n")
        f.write("[1, 2]\n")

    lines, malformed = store.read_summary_lines()

    assert [line["task_id"] for line in lines] == ["img-1", "img-2"]
    assert malformed == 2


def test_artifacts_go_to_task_directory(tmp_path):
    store = SessionStore(tmp_path)

    png = store.write_artifact("img-1", "failure-screenshot.png", b"\x89PNG")
    html = store.write_artifact("img-1", "failure-dom.html", "<html></html>")

    assert png.read_bytes() == b"\x89PNG"
    assert html.parent == tmp_path / "img-1"
    assert store.list_session_files() == []


def test_session_files_exclude_summary_and_artifacts(tmp_path):
    store = SessionStore(tmp_path)
    assert store.has_data() is False

    store.write_session("img-1", 5, {"task_id": "img-1"})
    store.append_summary({"task_id": "img-1"})
    store.write_artifact("img-1", "failure-dom.html", "<html></html>")
    (tmp_path / "img-2_6.json").write_text("{")

    records = list(store.iter_session_records())

    assert store.has_data() is True
    assert [path.name for path, _ in records] == ["img-1_5.json", "img-2_6.json"]
    assert records[0][1] == {"task_id": "img-1"}
    assert records[1][1] is None
