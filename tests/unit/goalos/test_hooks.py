"""Tests for transcript mining and the SessionStart/SessionEnd hooks"""

import io
import json
from pathlib import Path
from typing import Any, Dict, List

import pytest

from goalos.core.errors import StorageError
from goalos.hooks import session_end, session_start
from goalos.hooks.transcript import (
    SUMMARY_LIMIT,
    extract_last_summary,
    extract_modified_files,
    extract_pending_tasks,
    mine_transcript,
    read_transcript,
)
from goalos.models.snapshot import SnapshotTrigger
from goalos.services.session_service import SessionService


def _assistant(*blocks: Dict[str, Any]) -> Dict[str, Any]:
    return {"role": "assistant", "content": list(blocks)}


def _text(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def _tool(name: str, file_path: str) -> Dict[str, Any]:
    return {"type": "tool_use", "name": name, "input": {"file_path": file_path}}


def _write_transcript(path: Path, records: List[Any]) -> Path:
    lines = [r if isinstance(r, str) else json.dumps(r) for r in records]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def test_read_transcript_skips_invalid_lines_and_unwraps_envelopes(tmp_path: Path) -> None:
    path = _write_transcript(
        tmp_path / "t.jsonl",
        [
            {"role": "user", "content": "hi"},
            "{not json",
            "",
            {"type": "assistant", "message": _assistant(_text("hello"))},
        ],
    )

    messages = read_transcript(path)

    assert [m["role"] for m in messages] == ["user", "assistant"]


def test_extract_modified_files() -> None:
    messages = [
        {"role": "user", "content": [_tool("Write", "ignored_user.py")]},
        _assistant(_tool("Write", "a.py"), _tool("Read", "b.py")),
        _assistant(_tool("Edit", "c.py"), _tool("MultiEdit", "a.py")),
    ]

    assert extract_modified_files(messages) == ["a.py", "c.py"]


def test_extract_last_summary_uses_latest_text() -> None:
    messages = [
        _assistant(_text("First answer")),
        _assistant(_tool("Edit", "a.py")),
        _assistant(_text("  "), _text("Final answer")),
        {"role": "user", "content": "thanks"},
    ]

    assert extract_last_summary(messages) == "Final answer"


def test_extract_last_summary_truncates() -> None:
    summary = extract_last_summary([_assistant(_text("x" * 500))])

    assert summary == "x" * SUMMARY_LIMIT + "..."


def test_extract_pending_tasks() -> None:
    messages = [
        _assistant(_text("Done with parsing. Next: wire the CLI")),
        _assistant(_text("TODO: add tests")),
        _assistant(_text("next: wire the CLI")),
        _assistant(_text("We still need to update docs")),
    ]

    assert extract_pending_tasks(messages) == ["wire the CLI", "add tests", "update docs"]


def test_extract_pending_tasks_caps_at_five() -> None:
    messages = [_assistant(_text(f"todo: item {i}")) for i in range(8)]

    assert len(extract_pending_tasks(messages)) == 5


def test_mine_transcript(tmp_path: Path) -> None:
    path = _write_transcript(
        tmp_path / "t.jsonl",
        [
            _assistant(_tool("Write", "api/stream.py")),
            _assistant(_text("Implemented SSE. Remaining: reconnect handling")),
        ],
    )

    mined = mine_transcript(path)

    assert mined.files == ["api/stream.py"]
    assert mined.tasks == ["reconnect handling"]
    assert mined.summary.startswith("Implemented SSE")
    assert not mined.is_empty


def test_read_payload() -> None:
    assert session_start.read_payload(io.StringIO("")) == {}
    assert session_start.read_payload(io.StringIO("[1, 2]")) == {}
    assert session_start.read_payload(io.StringIO("{oops")) == {}
    assert session_start.read_payload(io.StringIO('{"session_id": "s1"}')) == {"session_id": "s1"}


def test_session_start_records_session(settings) -> None:
    text = session_start.run({"session_id": "sess-1", "cwd": "/nowhere"}, settings)

    assert "No active goals" in text
    assert settings.home.joinpath("goals", "active").is_dir()
    state = SessionService(settings).get_state()
    assert state.last_session == "sess-1"
    assert state.last_device == "test-device"


def test_session_start_resumes_active_goal(settings, service, sessions, make_input) -> None:
    goal = service.create(make_input())
    sessions.set_active_goal(goal.id)

    text = session_start.run({"session_id": "sess-2"}, settings)

    assert "## Resuming Previous Session" in text
    assert "Streaming API" in text


def test_session_end_snapshots_active_goal(tmp_path: Path, settings, service, sessions, make_input) -> None:
    goal = service.create(make_input())
    sessions.set_active_goal(goal.id)
    transcript = _write_transcript(
        tmp_path / "t.jsonl",
        [
            _assistant(_tool("Edit", "api/stream.py")),
            _assistant(_text("Added heartbeat frames. Next: load test")),
        ],
    )

    snapshot = session_end.run(
        {"session_id": "sess-3", "transcript_path": str(transcript)},
        settings,
    )

    assert snapshot is not None
    assert snapshot.trigger == SnapshotTrigger.SESSION_END
    assert snapshot.session == "sess-3"

    reloaded = service.get(goal.id)
    assert reloaded.snapshots[-1] == snapshot.id
    assert reloaded.context.primary_files == ["api/stream.py"]
    assert [s.session_id for s in reloaded.context.sessions] == ["sess-3"]

    state = sessions.get_state()
    assert state.last_session == "sess-3"
    assert state.active_context.pending_tasks == ["load test"]
    assert state.active_context.focus.startswith("Added heartbeat frames")


def test_session_end_without_active_goal(settings, sessions) -> None:
    sessions.set_focus("Reading docs")

    result = session_end.run({"session_id": "sess-4", "transcript_path": "/missing.jsonl"}, settings)

    assert result is None
    state = sessions.get_state()
    assert state.last_session == "sess-4"
    assert state.active_context.focus == "Reading docs"


def test_session_start_main_swallows_store_errors(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setenv("GOALOS_HOME", str(tmp_path / "home"))
    monkeypatch.setattr("sys.stdin", io.StringIO('{"session_id": "s1"}'))

    def broken(payload, settings=None):
        raise StorageError("disk full")

    monkeypatch.setattr(session_start, "run", broken)

    assert session_start.main() == 0
    assert capsys.readouterr().out == ""


def test_session_end_main_without_session_id(monkeypatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("{}"))
    calls = []
    monkeypatch.setattr(session_end, "run", lambda payload, settings=None: calls.append(payload))

    assert session_end.main() == 0
    assert calls == []


def test_session_end_main_swallows_store_errors(monkeypatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO('{"session_id": "s1"}'))

    def broken(payload, settings=None):
        raise StorageError("disk full")

    monkeypatch.setattr(session_end, "run", broken)

    assert session_end.main() == 0


def test_transcript_fields_of_the_wrong_type_are_ignored() -> None:
    messages = [
        _assistant({"type": "tool_use", "name": "Write", "input": {"file_path": 7}}),
        _assistant({"type": "text", "text": ["not", "text"]}),
    ]

    assert extract_modified_files(messages) == []
    assert extract_last_summary(messages) == ""
    assert extract_pending_tasks(messages) == []


def test_session_end_survives_undecodable_transcript(tmp_path: Path, settings, sessions) -> None:
    transcript = tmp_path / "t.jsonl"
    transcript.write_bytes(b"\xff\xfe bad\n")

    result = session_end.run({"session_id": "sess-5", "transcript_path": str(transcript)}, settings)

    assert result is None
    assert settings.home.joinpath("goals", "session-state.yaml").exists()
    assert sessions.get_state().last_session == "sess-5"


def test_session_start_main_ignores_non_string_cwd(monkeypatch, capsys, tmp_path: Path) -> None:
    monkeypatch.setenv("GOALOS_HOME", str(tmp_path / "home"))
    monkeypatch.setattr("sys.stdin", io.StringIO('{"session_id": "s1", "cwd": ["x"]}'))

    assert session_start.main() == 0
    assert "<session-context>" in capsys.readouterr().out


def test_session_end_main_ignores_non_string_transcript_path(monkeypatch, tmp_path: Path) -> None:
    home = tmp_path / "home"
    monkeypatch.setenv("GOALOS_HOME", str(home))
    monkeypatch.setattr("sys.stdin", io.StringIO('{"session_id": "s2", "transcript_path": 5}'))

    assert session_end.main() == 0
    assert "last_session: s2" in (home / "goals" / "session-state.yaml").read_text(encoding="utf-8")


@pytest.mark.parametrize("hook", [session_start, session_end])
def test_hook_main_swallows_unexpected_errors(monkeypatch, hook) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO('{"session_id": "s1"}'))

    def broken(payload, settings=None):
        raise RuntimeError("unexpected")

    monkeypatch.setattr(hook, "run", broken)

    assert hook.main() == 0
