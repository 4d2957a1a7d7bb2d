from __future__ import annotations

import errno
import logging
import os
import select
import subprocess
import sys
from collections.abc import Callable, Sequence

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 4096


def tool_name_from_command(cmd: Sequence[str]) -> str:
    if not cmd:
        return ""
    return os.path.basename(cmd[0])


def _mirror(chunk: bytes) -> None:
    if hasattr(sys.stdout, "buffer"):
        sys.stdout.buffer.write(chunk)
        sys.stdout.buffer.flush()
    else:
        sys.stdout.write(chunk.decode(errors="replace"))
        sys.stdout.flush()


def _emit(on_output: Callable[[bytes], None], chunk: bytes) -> None:
    try:
        on_output(chunk)
    except Exception as exc:
        logger.exception("capture callback failed", exc_info=exc)


def run_command_with_capture(
    cmd: Sequence[str],
    on_output: Callable[[bytes], None],
    cwd: str | None = None,
) -> int:
    """Run ``cmd`` under a pseudo-terminal, mirror its output and feed raw chunks to ``on_output``.

    Falls back to a plain pipe where no pty is available. Returns the exit code.
    """

    try:
        if sys.platform != "win32":
            return _run_pty(list(cmd), on_output, cwd)
        process = subprocess.Popen(
            list(cmd), cwd=cwd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT
        )
    except FileNotFoundError:
        message = f"agent-history: command not found: {cmd[0]}\n"
        sys.stderr.write(message)
        return 127
    stdout = process.stdout
    assert stdout is not None
    for chunk in iter(lambda: stdout.read1(READ_CHUNK_BYTES), b""):  # type: ignore[attr-defined]
        _mirror(chunk)
        _emit(on_output, chunk)
    return process.wait()


def _forward_input(src_fd: int, dest_fd: int) -> bool:
    """Copy one read from ``src_fd`` to ``dest_fd``. False once ``src_fd`` hits EOF."""

    data = os.read(src_fd, READ_CHUNK_BYTES)
    if not data:
        return False
    os.write(dest_fd, data)
    return True


def _run_pty(cmd: list[str], on_output: Callable[[bytes], None], cwd: str | None) -> int:
    import pty
    import termios
    import tty

    master_fd, slave_fd = pty.openpty()
    try:
        process = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
        )
    except BaseException:
        os.close(master_fd)
        raise
    finally:
        os.close(slave_fd)
    interactive = sys.stdin is not None and sys.stdin.isatty()
    stdin_fd = sys.stdin.fileno() if interactive else -1
    old_tty_settings = None
    if interactive:
        old_tty_settings = termios.tcgetattr(stdin_fd)
        tty.setraw(stdin_fd)
    stdin_open = interactive
    try:
        while True:
            read_fds = [master_fd]
            if stdin_open:
                read_fds.append(stdin_fd)
            ready, _, _ = select.select(read_fds, [], [])
            if master_fd in ready:
                try:
                    chunk = os.read(master_fd, READ_CHUNK_BYTES)
                except OSError as exc:
                    if exc.errno == errno.EIO:
                        break
                    raise
                if not chunk:
                    break
                _mirror(chunk)
                _emit(on_output, chunk)
            if stdin_open and stdin_fd in ready:
                stdin_open = _forward_input(stdin_fd, master_fd)
        return process.wait()
    finally:
        if old_tty_settings is not None:
            termios.tcsetattr(stdin_fd, termios.TCSADRAIN, old_tty_settings)
        os.close(master_fd)
