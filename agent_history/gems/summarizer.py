from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from .types import ExtractionResult, Gem

if TYPE_CHECKING:
    from ..config import AgentHistoryConfig

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_HOST = "http://localhost:11434"
DEFAULT_OLLAMA_MODEL = "llama3.2"
DEFAULT_ANTHROPIC_MODEL = "claude-3-haiku-20240307"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class SummarizerError(RuntimeError):
    pass


class SummarizerAPIError(SummarizerError):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"API error ({status_code}): {message}")
        self.status_code = status_code
        self.message = message


class Summarizer(Protocol):
    """A backend that turns transcript text into gems."""

    name: str
    model: str

    def extract(
        self, session_text: str, diff: str, existing_gems: Sequence[Gem]
    ) -> ExtractionResult: ...


@dataclass
class SummarizerConfig:
    provider: str
    model: str = ""
    api_key: str | None = None
    host: str | None = None


def build_summarizer(config: SummarizerConfig) -> Summarizer:
    from . import backends

    provider = config.provider.strip().lower()
    if provider == "ollama":
        return backends.OllamaSummarizer(
            model=config.model or DEFAULT_OLLAMA_MODEL,
            host=config.host or DEFAULT_OLLAMA_HOST,
        )
    if provider == "anthropic":
        return backends.AnthropicSummarizer(
            model=config.model or DEFAULT_ANTHROPIC_MODEL,
            api_key=config.api_key,
        )
    if provider in backends.OPENAI_COMPATIBLE_BASE_URLS:
        return backends.OpenAISummarizer(
            model=config.model or DEFAULT_OPENAI_MODEL,
            api_key=config.api_key,
            base_url=config.host or backends.OPENAI_COMPATIBLE_BASE_URLS[provider],
            provider=provider,
        )
    raise SummarizerError(f"unknown summarizer provider: {config.provider}")


def summarizer_from_config(cfg: AgentHistoryConfig) -> Summarizer | None:
    """Build the configured backend, or return None when extraction has no backend.

    Construction failures (a missing API key, say) are logged and disable
    extraction rather than aborting the recording.
    """

    if not cfg.extraction_enabled or not cfg.summarizer_provider:
        return None
    try:
        return build_summarizer(
            SummarizerConfig(
                provider=cfg.summarizer_provider,
                model=cfg.summarizer_model or "",
                api_key=cfg.summarizer_api_key,
                host=cfg.summarizer_host,
            )
        )
    except SummarizerError as exc:
        logger.warning(
            "summarizer unavailable, extraction disabled",
            extra={"provider": cfg.summarizer_provider},
            exc_info=exc,
        )
        return None
