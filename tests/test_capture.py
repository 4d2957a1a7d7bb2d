from __future__ import annotations

import os
import sys

import pytest

from agent_history import capture
from agent_history.capture import _forward_input, run_command_with_capture, tool_name_from_command


def test_tool_name_is_basename_of_executable() -> None:
    assert tool_name_from_command(["/usr/local/bin/claude", "--resume"]) == "claude"
    assert tool_name_from_command([]) == ""


def test_forward_input_copies_data_then_reports_eof() -> None:
    src_read, src_write = os.pipe()
    dest_read, dest_write = os.pipe()
    try:
        os.write(src_write, b"y\n")
        assert _forward_input(src_read, dest_write) is True
        assert os.read(dest_read, 16) == b"y\n"

        os.close(src_write)
        src_write = -1
        assert _forward_input(src_read, dest_write) is False
    finally:
        for fd in (src_read, src_write, dest_read, dest_write):
            if fd >= 0:
                os.close(fd)


@pytest.mark.skipif(sys.platform == "win32", reason="needs a pty")
def test_run_feeds_raw_chunks_and_returns_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(capture, "_mirror", lambda chunk: None)
    chunks: list[bytes] = []

    code = run_command_with_capture(
        [sys.executable, "-c", "import sys; print('hello'); sys.exit(3)"], chunks.append
    )

    assert code == 3
    assert b"hello" in b"".join(chunks)


def test_missing_command_returns_127(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(capture, "_mirror", lambda chunk: None)
    assert run_command_with_capture(["agent-history-no-such-tool"], lambda chunk: None) == 127
