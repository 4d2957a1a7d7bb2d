from __future__ import annotations

import datetime as dt
import json
import logging
import os
import tempfile
import threading
from pathlib import Path

from .. import git_info
from .types import Gem, GemFile, PendingGemFile, generate_gem_id

GEMS_FILE_NAME = ".agent-gems.json"
HISTORY_DIR = ".agent-history"
PENDING_GEMS_FILE_NAME = "pending-gems.json"

logger = logging.getLogger(__name__)


class GemNotFoundError(LookupError):
    pass


def _write_atomic(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, ensure_ascii=False, indent=2)
            handle.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class GemStore:
    """Committed and pending gems for one project, kept as two JSON documents.

    Committed gems live in ``<root>/.agent-gems.json`` and are meant to be
    tracked in version control. Pending gems live under
    ``<root>/.agent-history/``. Each document is replaced atomically, but
    accepting a gem rewrites both and the pair is not atomic.
    """

    def __init__(self, project_root: Path | str):
        self.project_root = Path(project_root)
        self._lock = threading.Lock()

    @classmethod
    def from_cwd(cls, cwd: Path | str | None = None) -> GemStore:
        return cls(git_info.find_project_root(cwd or Path.cwd()))

    @property
    def gems_path(self) -> Path:
        return self.project_root / GEMS_FILE_NAME

    @property
    def pending_path(self) -> Path:
        return self.project_root / HISTORY_DIR / PENDING_GEMS_FILE_NAME

    def _load(self, path: Path, factory: type[GemFile]) -> GemFile:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return factory()
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning(
                "gem file unreadable, treating as empty",
                extra={"path": str(path)},
                exc_info=exc,
            )
            return factory()
        if not isinstance(data, dict):
            logger.warning(
                "gem file is not an object, treating as empty", extra={"path": str(path)}
            )
            return factory()
        return factory.from_dict(data)

    def load_gems(self) -> GemFile:
        return self._load(self.gems_path, GemFile)

    def load_pending_gems(self) -> PendingGemFile:
        return self._load(self.pending_path, PendingGemFile)  # type: ignore[return-value]

    def save_gems(self, gem_file: GemFile) -> None:
        _write_atomic(self.gems_path, gem_file.to_dict())

    def save_pending_gems(self, pending: GemFile) -> None:
        _write_atomic(self.pending_path, pending.to_dict())

    def add_pending_gem(self, gem: Gem) -> Gem:
        with self._lock:
            pending = self.load_pending_gems()
            _stamp(gem)
            pending.gems.append(gem)
            self.save_pending_gems(pending)
        return gem

    def accept_gem(self, gem_id: str) -> Gem:
        with self._lock:
            pending = self.load_pending_gems()
            gem = _pop_match(pending, gem_id)
            if gem.commit is None:
                gem.commit = git_info.current_commit(self.project_root)
            committed = self.load_gems()
            committed.gems.append(gem)
            self.save_gems(committed)
            self.save_pending_gems(pending)
        logger.info("Accepted gem", extra={"gem_id": gem.id})
        return gem

    def reject_gem(self, gem_id: str) -> Gem:
        with self._lock:
            pending = self.load_pending_gems()
            gem = _pop_match(pending, gem_id)
            self.save_pending_gems(pending)
        logger.info("Rejected gem", extra={"gem_id": gem.id})
        return gem

    def get_gem(self, gem_id: str) -> tuple[Gem, bool]:
        """Return the gem and whether it is still pending."""

        for gem in self.load_gems().gems:
            if gem.matches_id(gem_id):
                return gem, False
        for gem in self.load_pending_gems().gems:
            if gem.matches_id(gem_id):
                return gem, True
        raise GemNotFoundError(gem_id)

    def search_gems(self, query: str) -> list[Gem]:
        needle = query.lower()
        return [gem for gem in self.load_gems().gems if _matches_query(gem, needle)]

    def add_gem(self, gem: Gem) -> Gem:
        with self._lock:
            committed = self.load_gems()
            _stamp(gem)
            if gem.commit is None:
                gem.commit = git_info.current_commit(self.project_root)
            committed.gems.append(gem)
            self.save_gems(committed)
        return gem


def _stamp(gem: Gem) -> None:
    if not gem.id:
        gem.id = generate_gem_id()
    if gem.created is None:
        gem.created = dt.datetime.now(dt.UTC)


def _pop_match(pending: GemFile, gem_id: str) -> Gem:
    for index, gem in enumerate(pending.gems):
        if gem.matches_id(gem_id):
            return pending.gems.pop(index)
    raise GemNotFoundError(f"gem not found in pending list: {gem_id}")


def _matches_query(gem: Gem, needle: str) -> bool:
    haystacks = [gem.title, gem.summary, gem.user_notes or "", *gem.tags, *gem.files]
    return any(needle in value.lower() for value in haystacks)
