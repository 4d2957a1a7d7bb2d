from __future__ import annotations

from .extractor import Extractor, deduplicate_gems, normalize_title
from .store import GemNotFoundError, GemStore
from .summarizer import (
    Summarizer,
    SummarizerAPIError,
    SummarizerConfig,
    SummarizerError,
    build_summarizer,
    summarizer_from_config,
)
from .types import GEM_TYPES, ExtractionResult, Gem, GemFile, PendingGemFile

__all__ = [
    "ExtractionResult",
    "Extractor",
    "GEM_TYPES",
    "Gem",
    "GemFile",
    "GemNotFoundError",
    "GemStore",
    "PendingGemFile",
    "Summarizer",
    "SummarizerAPIError",
    "SummarizerConfig",
    "SummarizerError",
    "build_summarizer",
    "deduplicate_gems",
    "normalize_title",
    "summarizer_from_config",
]
