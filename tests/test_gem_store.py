from __future__ import annotations

import datetime as dt
import json
from pathlib import Path

import pytest

from agent_history import git_info
from agent_history.gems import Gem, GemFile, GemNotFoundError, GemStore
from agent_history.gems.types import generate_gem_id


@pytest.fixture
def gem_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GemStore:
    monkeypatch.setattr(git_info, "current_commit", lambda cwd: "c0ffee")
    return GemStore(tmp_path)


def _gem(title: str, gem_id: str = "", **kwargs) -> Gem:
    gem_type = kwargs.pop("type", "decision")
    return Gem(type=gem_type, title=title, summary=f"{title} summary", id=gem_id, **kwargs)


def test_paths_follow_project_layout(gem_store: GemStore, tmp_path: Path) -> None:
    assert gem_store.gems_path == tmp_path / ".agent-gems.json"
    assert gem_store.pending_path == tmp_path / ".agent-history" / "pending-gems.json"


def test_missing_files_load_as_empty(gem_store: GemStore) -> None:
    assert gem_store.load_gems().gems == []
    assert gem_store.load_pending_gems().gems == []
    assert gem_store.load_gems().version == 1


def test_add_pending_gem_stamps_id_and_created(gem_store: GemStore) -> None:
    gem = gem_store.add_pending_gem(_gem("Use WAL mode"))

    assert gem.id.startswith("gem-")
    assert gem.created is not None
    data = json.loads(gem_store.pending_path.read_text())
    assert data["version"] == 1
    assert data["gems"][0]["title"] == "Use WAL mode"
    assert data["gems"][0]["id"] == gem.id
    assert not gem_store.gems_path.exists()


def test_accept_moves_gem_to_committed_with_commit(gem_store: GemStore) -> None:
    gem = gem_store.add_pending_gem(_gem("Cache tokens", "gem-1234567890abcdef"))

    accepted = gem_store.accept_gem("gem-1234")

    assert accepted.id == gem.id
    assert accepted.commit == "c0ffee"
    assert [g.id for g in gem_store.load_gems().gems] == [gem.id]
    assert gem_store.load_pending_gems().gems == []
    committed = json.loads(gem_store.gems_path.read_text())
    assert committed["gems"][0]["commit"] == "c0ffee"


def test_accept_keeps_existing_commit(gem_store: GemStore) -> None:
    gem_store.add_pending_gem(_gem("Pinned", "gem-aaaaaaaa11111111", commit="deadbeef"))
    accepted = gem_store.accept_gem("gem-aaaaaaaa11111111")
    assert accepted.commit == "deadbeef"


def test_accept_unknown_id_raises_and_changes_nothing(gem_store: GemStore) -> None:
    gem_store.add_pending_gem(_gem("Stay pending", "gem-bbbbbbbb22222222"))

    with pytest.raises(GemNotFoundError):
        gem_store.accept_gem("gem-zzzzzzzz")
    assert len(gem_store.load_pending_gems().gems) == 1
    assert gem_store.load_gems().gems == []


def test_reject_removes_only_the_match(gem_store: GemStore) -> None:
    gem_store.add_pending_gem(_gem("Keep", "gem-keep0000aaaa0000"))
    gem_store.add_pending_gem(_gem("Drop", "gem-drop0000bbbb0000"))

    rejected = gem_store.reject_gem("gem-drop0000bbbb0000")

    assert rejected.title == "Drop"
    assert [g.title for g in gem_store.load_pending_gems().gems] == ["Keep"]
    assert not gem_store.gems_path.exists()
    with pytest.raises(GemNotFoundError):
        gem_store.reject_gem("gem-drop0000bbbb0000")


def test_short_id_does_not_match_by_prefix(gem_store: GemStore) -> None:
    gem_store.add_pending_gem(_gem("Short", "gem-abcdef0123456789"))
    with pytest.raises(GemNotFoundError):
        gem_store.accept_gem("gem-")


def test_get_gem_reports_pending_state(gem_store: GemStore) -> None:
    gem_store.add_gem(_gem("Committed", "gem-c0000000aaaaaaaa"))
    gem_store.add_pending_gem(_gem("Pending", "gem-p0000000bbbbbbbb"))

    gem, is_pending = gem_store.get_gem("gem-c0000000aaaaaaaa")
    assert (gem.title, is_pending) == ("Committed", False)
    gem, is_pending = gem_store.get_gem("gem-p0000000")
    assert (gem.title, is_pending) == ("Pending", True)
    with pytest.raises(GemNotFoundError):
        gem_store.get_gem("gem-nothere0")


def test_search_gems_matches_committed_fields_case_insensitively(gem_store: GemStore) -> None:
    gem_store.add_gem(_gem("Retry HTTP calls", tags=["network"], files=["client.py"]))
    gem_store.add_gem(_gem("Schema migration", user_notes="Run before Deploy"))
    gem_store.add_pending_gem(_gem("Network pending"))

    assert [g.title for g in gem_store.search_gems("NETWORK")] == ["Retry HTTP calls"]
    assert [g.title for g in gem_store.search_gems("client.py")] == ["Retry HTTP calls"]
    assert [g.title for g in gem_store.search_gems("deploy")] == ["Schema migration"]
    assert gem_store.search_gems("nothing-like-this") == []


def test_add_gem_writes_committed_with_commit(gem_store: GemStore) -> None:
    gem = gem_store.add_gem(_gem("Manual note"))
    assert gem.commit == "c0ffee"
    assert gem.id
    assert [g.title for g in gem_store.load_gems().gems] == ["Manual note"]


def test_malformed_file_loads_as_empty(gem_store: GemStore) -> None:
    gem_store.gems_path.write_text("{not json")
    assert gem_store.load_gems().gems == []
    gem_store.gems_path.write_text("[1, 2]")
    assert gem_store.load_gems().gems == []


def test_non_list_gems_field_loads_as_empty(gem_store: GemStore) -> None:
    gem_store.gems_path.write_text('{"version": 1, "gems": 5}')
    loaded = gem_store.load_gems()
    assert loaded.gems == []
    assert loaded.version == 1


def test_non_utf8_file_loads_as_empty(gem_store: GemStore) -> None:
    gem_store.pending_path.parent.mkdir(parents=True, exist_ok=True)
    gem_store.pending_path.write_bytes(b'\xff\xfe{"gems": []}')
    assert gem_store.load_pending_gems().gems == []


def test_unknown_fields_and_bad_entries_are_tolerated(gem_store: GemStore) -> None:
    gem_store.gems_path.write_text(
        json.dumps(
            {
                "version": 1,
                "gems": [
                    {
                        "id": "gem-1",
                        "type": "gotcha",
                        "title": "Ok",
                        "extra": True,
                        "created": "2024-03-01T10:00:00Z",
                    },
                    "not-a-gem",
                ],
            }
        )
    )
    gems = gem_store.load_gems().gems
    assert len(gems) == 1
    assert gems[0].type == "gotcha"
    assert gems[0].created == dt.datetime(2024, 3, 1, 10, 0, tzinfo=dt.UTC)


def test_atomic_write_leaves_no_temp_files(gem_store: GemStore, tmp_path: Path) -> None:
    gem_store.save_gems(GemFile(gems=[_gem("A", generate_gem_id())]))
    gem_store.save_gems(GemFile(gems=[_gem("B", generate_gem_id())]))
    assert [p.name for p in tmp_path.iterdir() if p.name.endswith(".tmp")] == []
    assert [g.title for g in gem_store.load_gems().gems] == ["B"]


def test_gem_serialization_omits_empty_optional_fields() -> None:
    data = _gem("Plain", "gem-1").to_dict()
    assert "commit" not in data
    assert "user_notes" not in data
    assert data["created"] is None
    restored = Gem.from_dict(_gem("Full", "gem-2", commit="abc", user_notes="n").to_dict())
    assert restored.commit == "abc"
    assert restored.user_notes == "n"
