from __future__ import annotations

import hashlib
import time
from collections.abc import Callable

DEFAULT_WINDOW_S = 2.0
SWEEP_THRESHOLD = 100


class OutputDeduplicator:
    """Line filter that suppresses repeats seen within a trailing time window.

    Not thread-safe: a single capture loop is expected to drive ``write``.
    A carriage return discards the line being accumulated, matching how a
    terminal overwrites it in place. A carriage return directly followed by
    a newline is a CRLF line ending, as a pty emits, and commits the line.
    """

    def __init__(
        self,
        on_line: Callable[[str], None],
        window_s: float = DEFAULT_WINDOW_S,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.on_line = on_line
        self.window_s = window_s
        self._clock = clock
        self._line = bytearray()
        self._pending_cr = False
        self._seen: dict[bytes, float] = {}

    def write(self, data: bytes) -> None:
        for byte in data:
            if self._pending_cr:
                self._pending_cr = False
                if byte != 0x0A:
                    self._line.clear()
            if byte == 0x0A:
                self._commit()
            elif byte == 0x0D:
                self._pending_cr = True
            else:
                self._line.append(byte)

    def flush(self) -> None:
        if self._pending_cr:
            self._pending_cr = False
            self._line.clear()
        if not self._line:
            return
        line = bytes(self._line)
        self._line.clear()
        self.on_line(line.decode("utf-8", errors="replace"))

    def _commit(self) -> None:
        if not self._line:
            return
        line = bytes(self._line)
        self._line.clear()
        digest = hashlib.sha256(line).digest()
        now = self._clock()
        last_seen = self._seen.get(digest)
        if last_seen is not None and now - last_seen < self.window_s:
            return
        self._seen[digest] = now
        if len(self._seen) > SWEEP_THRESHOLD:
            self._sweep(now)
        self.on_line(line.decode("utf-8", errors="replace"))

    def _sweep(self, now: float) -> None:
        horizon = self.window_s * 2
        self._seen = {
            digest: seen_at for digest, seen_at in self._seen.items() if now - seen_at <= horizon
        }
