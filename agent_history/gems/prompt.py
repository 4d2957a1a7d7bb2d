from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from ..redaction import redact
from .summarizer import SummarizerError
from .types import DEFAULT_GEM_TYPE, ExtractionResult, Gem, generate_gem_id, is_valid_gem_type

NO_GEMS_SENTINEL = "NO_GEMS"

SYSTEM_IDENTITY = (
    "You are an expert at extracting valuable insights from AI coding sessions.\n\n"
    'Your job is to identify "gems" - valuable knowledge worth preserving for future '
    "reference. These are insights that would help a future developer (or AI) understand "
    "important decisions, avoid pitfalls, or reuse patterns."
)

EXTRACTION_FOCUS = """
## Instructions

Analyze the session transcript and extract any valuable gems. Focus on:

1. **Decisions** - Architectural or design choices with lasting impact
   - Why was this approach chosen over alternatives?
   - What trade-offs were considered?

2. **Discoveries** - Unexpected findings during development
   - Surprising behavior or limitations
   - Undocumented features or quirks

3. **Gotchas** - Non-obvious pitfalls or edge cases
   - Things that could trip up future developers
   - Subtle bugs or issues encountered

4. **Patterns** - Reusable solutions or approaches
   - Code patterns worth remembering
   - Best practices established

5. **Issues** - Bugs encountered and how they were resolved
   - Root cause analysis
   - Fix or workaround applied

6. **Context** - Important background info for understanding code
   - Why something exists
   - Historical context that isn't obvious from code
""".strip()

SKIP_GUIDANCE = """
## What NOT to Extract

Skip mundane interactions:
- Simple syntax questions
- Routine code changes (typo fixes, formatting)
- Standard library/framework usage with no novel insight
- Temporary debugging steps
""".strip()

OUTPUT_SCHEMA = """
## Output Format

Respond with a JSON object in this exact format:

{
  "gems": [
    {
      "type": "decision|discovery|gotcha|pattern|issue|context",
      "title": "Short title (< 60 chars)",
      "summary": "One-line summary of the insight",
      "tags": ["tag1", "tag2"],
      "files": ["path/to/file.py"],
      "content": {
        "rationale": ["reason 1", "reason 2"],
        "gotchas": ["gotcha 1"],
        "implementation": ["detail 1"]
      }
    }
  ],
  "incomplete": false
}

Set "incomplete": true if the conversation appears to be in the middle of something and more context is needed.

If there are no valuable gems to extract, respond with:
{"gems": [], "incomplete": false}

Respond ONLY with the JSON object, no other text.
""".strip()


class ExtractionParseError(SummarizerError):
    pass


def build_extraction_prompt(
    session_text: str,
    diff: str = "",
    existing_gems: Sequence[Gem] = (),
) -> str:
    blocks: list[str] = [
        SYSTEM_IDENTITY,
        f"## Session Transcript\n\n```\n{redact(session_text)}\n```",
    ]
    if diff:
        blocks.append(f"## Files Changed (git diff)\n\n```diff\n{redact(diff)}\n```")
    if existing_gems:
        lines = [f"- [{gem.type}] {gem.title}: {gem.summary}" for gem in existing_gems]
        blocks.append("## Existing Gems (do not duplicate)\n\n" + "\n".join(lines))
    blocks.extend([EXTRACTION_FOCUS, SKIP_GUIDANCE, OUTPUT_SCHEMA])
    return "\n\n".join(blocks)


def _strip_code_fence(text: str) -> str:
    text = text.strip()
    if not text.startswith("```"):
        return text
    first_newline = text.find("\n")
    if first_newline == -1:
        text = text[3:]
    else:
        text = text[first_newline + 1 :]
    if text.rstrip().endswith("```"):
        text = text.rstrip()[:-3]
    return text.strip()


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if str(item).strip()]


def parse_extraction_response(raw: str, *, client: str = "", model: str = "") -> ExtractionResult:
    """Turn a backend reply into gems.

    Accepts bare JSON, JSON wrapped in a code fence, or the ``NO_GEMS``
    sentinel. Unknown gem types are coerced to ``context``.
    """

    text = _strip_code_fence(raw)
    if not text or text == NO_GEMS_SENTINEL:
        return ExtractionResult()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ExtractionParseError(f"failed to parse extraction response: {exc}") from exc
    if not isinstance(payload, dict):
        raise ExtractionParseError("extraction response must be a JSON object")

    gems: list[Gem] = []
    for item in payload.get("gems") or []:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        if not title:
            continue
        gem_type = str(item.get("type") or "").strip().lower()
        if not is_valid_gem_type(gem_type):
            gem_type = DEFAULT_GEM_TYPE
        content = item.get("content")
        gems.append(
            Gem(
                id=generate_gem_id(),
                type=gem_type,
                title=title,
                summary=str(item.get("summary") or "").strip(),
                client=client,
                model=model,
                tags=_str_list(item.get("tags")),
                files=_str_list(item.get("files")),
                content=content if isinstance(content, dict) else {},
            )
        )
    return ExtractionResult(gems=gems, incomplete=bool(payload.get("incomplete", False)))
