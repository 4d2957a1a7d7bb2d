from __future__ import annotations

import datetime as dt

from agent_history.hooks import extract_file_paths, record_post_tool_use
from agent_history.store import HistoryStore, Session


def _open_session(store: HistoryStore, session_id: str, project_dir: str, minutes_ago: int) -> None:
    store.create_session(
        Session(
            id=session_id,
            tool_name="claude",
            project_dir=project_dir,
            start_time=dt.datetime.now(dt.UTC) - dt.timedelta(minutes=minutes_ago),
        )
    )


def test_extract_file_paths_covers_known_keys_and_edits() -> None:
    tool_input = {
        "file_path": "a.py",
        "path": "src",
        "notebook_path": "nb.ipynb",
        "edits": [{"file_path": "b.py"}, {"file_path": "a.py"}, "junk"],
    }
    assert extract_file_paths(tool_input) == ["a.py", "src", "nb.ipynb", "b.py"]
    assert extract_file_paths({"filePath": "c.ts"}) == ["c.ts"]
    assert extract_file_paths("not a dict") == []


def test_payload_attaches_to_latest_session_for_project(store: HistoryStore) -> None:
    _open_session(store, "older", "/work/app", minutes_ago=30)
    _open_session(store, "latest", "/work/app", minutes_ago=1)
    _open_session(store, "elsewhere", "/work/other", minutes_ago=0)

    payload = {
        "session_id": "agent-session",
        "tool_name": "Edit",
        "tool_input": {"file_path": "/work/app/main.py", "old_string": "a", "new_string": "b"},
        "tool_response": {"success": True},
    }
    tool_use = record_post_tool_use(store, payload, "/work/app")

    assert tool_use is not None
    assert tool_use.session_id == "latest"
    assert '"old_string": "a"' in tool_use.input
    assert tool_use.output == '{"success": true}'
    history = store.get_file_history(["/work/app/main.py"])
    assert [t.id for t in history] == [tool_use.id]


def test_tool_result_takes_precedence_and_text_is_kept(store: HistoryStore) -> None:
    _open_session(store, "s", "/work/app", minutes_ago=0)
    payload = {
        "tool_name": "Bash",
        "tool_input": {"command": "ls"},
        "tool_result": "a.txt",
        "tool_response": "ignored",
    }
    tool_use = record_post_tool_use(store, payload, "/work/app")
    assert tool_use is not None
    assert tool_use.output == "a.txt"
    assert store.search("ls")[0].tool_use.id == tool_use.id


def test_bad_payloads_and_missing_sessions_are_skipped(store: HistoryStore) -> None:
    assert record_post_tool_use(store, ["not", "a", "dict"], "/work/app") is None
    assert record_post_tool_use(store, {"tool_input": {}}, "/work/app") is None
    assert record_post_tool_use(store, {"tool_name": "Read"}, "/work/none") is None
    assert store.get_stats().tool_use_count == 0
