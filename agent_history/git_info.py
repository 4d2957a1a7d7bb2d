from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

logger = logging.getLogger(__name__)

# Lockfile churn drowns out the files a session actually touched.
NOISY_DIFF_FILES = (
    "uv.lock",
    "package-lock.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "Cargo.lock",
    "poetry.lock",
    "go.sum",
)


def _git(args: Sequence[str], cwd: str | Path) -> str:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd),
            capture_output=True,
            text=True,
            check=True,
        )
    except (subprocess.CalledProcessError, OSError) as exc:
        logger.debug("git %s failed", " ".join(args), extra={"cwd": str(cwd)}, exc_info=exc)
        return ""
    return result.stdout.strip()


def find_project_root(cwd: str | Path) -> Path:
    """Return the enclosing git toplevel, or ``cwd`` itself outside a repository."""

    root = _git(["rev-parse", "--show-toplevel"], cwd)
    return Path(root) if root else Path(cwd)


def current_commit(cwd: str | Path) -> str | None:
    return _git(["rev-parse", "HEAD"], cwd) or None


def diff_summary(cwd: str | Path) -> str:
    """``git diff --stat`` for the working tree, minus lockfile lines."""

    stat = _git(["diff", "--stat"], cwd)
    kept = [
        line for line in stat.splitlines() if not any(name in line for name in NOISY_DIFF_FILES)
    ]
    return "\n".join(kept)
