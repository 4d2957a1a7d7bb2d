from __future__ import annotations

import re

REDACTION_PATTERNS = [
    re.compile(r"api[_-]?key\s*[:=]\s*['\"]?[A-Za-z0-9_-]{20,}", re.IGNORECASE),
    re.compile(r"sk-(?:ant-)?[A-Za-z0-9_-]{10,}", re.IGNORECASE),
    re.compile(r"xox[baprs]-[A-Za-z0-9-]{10,}", re.IGNORECASE),
    re.compile(r"gh[pousr]_[A-Za-z0-9]{20,}"),
    re.compile(r"AKIA[0-9A-Z]{16}"),
]

ESC = "\x1b"


def redact(text: str) -> str:
    redacted = text
    for pattern in REDACTION_PATTERNS:
        redacted = pattern.sub("[REDACTED]", redacted)
    return redacted


def strip_ansi(text: str) -> str:
    """Drop terminal escape sequences.

    ESC starts a sequence and the first ASCII letter after it ends the
    sequence. Everything in between, the letter included, is discarded.
    """

    if ESC not in text:
        return text
    out: list[str] = []
    in_escape = False
    for ch in text:
        if ch == ESC:
            in_escape = True
            continue
        if in_escape:
            if ("a" <= ch <= "z") or ("A" <= ch <= "Z"):
                in_escape = False
            continue
        out.append(ch)
    return "".join(out)
