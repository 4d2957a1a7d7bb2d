from __future__ import annotations

import json

import pytest

from agent_history.gems import Gem, SummarizerError
from agent_history.gems.prompt import (
    ExtractionParseError,
    build_extraction_prompt,
    parse_extraction_response,
)


def test_prompt_includes_transcript_diff_and_existing_gems() -> None:
    existing = [Gem(type="gotcha", title="Pin numpy", summary="ABI breaks on 2.x")]
    prompt = build_extraction_prompt("ran the tests", " 2 files changed", existing)

    assert "## Session Transcript" in prompt
    assert "ran the tests" in prompt
    assert "## Files Changed (git diff)" in prompt
    assert "## Existing Gems (do not duplicate)" in prompt
    assert "- [gotcha] Pin numpy: ABI breaks on 2.x" in prompt


def test_prompt_omits_empty_sections() -> None:
    prompt = build_extraction_prompt("hello")
    assert "## Files Changed" not in prompt
    assert "## Existing Gems" not in prompt


def test_prompt_redacts_secrets() -> None:
    prompt = build_extraction_prompt("export KEY=sk-abcdefghijklmnopqrstuv")
    assert "sk-abcdefghijklmnopqrstuv" not in prompt
    assert "[REDACTED]" in prompt


def test_parse_plain_json() -> None:
    raw = json.dumps(
        {
            "gems": [
                {
                    "type": "decision",
                    "title": "Use SQLite",
                    "summary": "Single-file store",
                    "tags": ["storage", ""],
                    "files": ["db.py"],
                    "content": {"rationale": "no server"},
                }
            ],
            "incomplete": False,
        }
    )
    result = parse_extraction_response(raw, client="ollama", model="llama3.2")

    assert not result.incomplete
    [gem] = result.gems
    assert gem.type == "decision"
    assert gem.title == "Use SQLite"
    assert gem.tags == ["storage"]
    assert gem.files == ["db.py"]
    assert gem.content == {"rationale": "no server"}
    assert gem.client == "ollama"
    assert gem.model == "llama3.2"
    assert gem.id.startswith("gem-")


def test_parse_strips_code_fence_and_coerces_type() -> None:
    raw = '```json\n{"gems": [{"type": "Insight", "title": "x"}], "incomplete": true}\n```'
    result = parse_extraction_response(raw)
    assert result.incomplete
    assert result.gems[0].type == "context"


def test_parse_skips_untitled_gems() -> None:
    raw = '{"gems": [{"type": "pattern", "title": "  "}, "junk", {"title": "kept"}]}'
    assert [gem.title for gem in parse_extraction_response(raw).gems] == ["kept"]


@pytest.mark.parametrize("raw", ["", "   ", "NO_GEMS", "```\nNO_GEMS\n```"])
def test_parse_empty_replies(raw: str) -> None:
    result = parse_extraction_response(raw)
    assert result.gems == []
    assert not result.incomplete


@pytest.mark.parametrize("raw", ["not json", "[1, 2]"])
def test_parse_rejects_invalid_payloads(raw: str) -> None:
    with pytest.raises(ExtractionParseError):
        parse_extraction_response(raw)


def test_parse_error_is_a_summarizer_error() -> None:
    assert issubclass(ExtractionParseError, SummarizerError)
