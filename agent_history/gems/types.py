from __future__ import annotations

import datetime as dt
import secrets
from dataclasses import dataclass, field
from typing import Any

GEM_TYPES: dict[str, str] = {
    "decision": "Architectural or design choice with lasting impact",
    "discovery": "Unexpected finding during development",
    "gotcha": "Non-obvious pitfall or edge case",
    "pattern": "Reusable solution or approach",
    "issue": "Bug or problem encountered and how it was resolved",
    "context": "Important background info for understanding code",
}
DEFAULT_GEM_TYPE = "context"
GEM_FILE_VERSION = 1


def is_valid_gem_type(value: str) -> bool:
    return value in GEM_TYPES


def generate_gem_id() -> str:
    return "gem-" + secrets.token_hex(8)


def _parse_created(value: object) -> dt.datetime | None:
    if not isinstance(value, str) or not value.strip():
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = dt.datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if isinstance(item, (str, int, float))]


@dataclass
class Gem:
    type: str
    title: str
    summary: str = ""
    id: str = ""
    created: dt.datetime | None = None
    commit: str | None = None
    client: str = ""
    model: str = ""
    tags: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    content: dict[str, Any] = field(default_factory=dict)
    user_notes: str | None = None

    def matches_id(self, gem_id: str) -> bool:
        """Exact match, or a shared 8-character prefix when both IDs are long enough."""

        if not gem_id:
            return False
        if self.id == gem_id:
            return True
        return len(gem_id) >= 8 and len(self.id) >= 8 and self.id[:8] == gem_id[:8]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "title": self.title,
            "summary": self.summary,
            "created": self.created.isoformat() if self.created else None,
            "client": self.client,
            "model": self.model,
            "tags": list(self.tags),
            "files": list(self.files),
            "content": dict(self.content),
        }
        if self.commit:
            data["commit"] = self.commit
        if self.user_notes:
            data["user_notes"] = self.user_notes
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Gem:
        content = data.get("content")
        return cls(
            id=str(data.get("id") or ""),
            type=str(data.get("type") or DEFAULT_GEM_TYPE),
            title=str(data.get("title") or ""),
            summary=str(data.get("summary") or ""),
            created=_parse_created(data.get("created")),
            commit=data.get("commit") or None,
            client=str(data.get("client") or ""),
            model=str(data.get("model") or ""),
            tags=_str_list(data.get("tags")),
            files=_str_list(data.get("files")),
            content=content if isinstance(content, dict) else {},
            user_notes=data.get("user_notes") or None,
        )


@dataclass
class GemFile:
    version: int = GEM_FILE_VERSION
    gems: list[Gem] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"version": self.version, "gems": [gem.to_dict() for gem in self.gems]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GemFile:
        raw_gems = data.get("gems")
        if not isinstance(raw_gems, list):
            raw_gems = []
        gems = [Gem.from_dict(item) for item in raw_gems if isinstance(item, dict)]
        try:
            version = int(data.get("version") or GEM_FILE_VERSION)
        except (TypeError, ValueError):
            version = GEM_FILE_VERSION
        return cls(version=version, gems=gems)


class PendingGemFile(GemFile):
    """Gems awaiting review. Stored apart from the committed set."""


@dataclass
class ExtractionResult:
    gems: list[Gem] = field(default_factory=list)
    incomplete: bool = False
