from __future__ import annotations

import datetime as dt
import logging
import re
import threading
from collections.abc import Callable, Iterable

from .store import GemStore
from .summarizer import Summarizer
from .types import Gem

DEFAULT_EXTRACTION_THRESHOLD = 4000
BYTES_PER_TOKEN = 4
DEFAULT_OVERLAP_TOKENS = 500
CONTEXT_SEPARATOR = "\n...\n"

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_title(title: str) -> str:
    return _WHITESPACE_RE.sub(" ", title.strip().lower())


def deduplicate_gems(gems: Iterable[Gem]) -> list[Gem]:
    seen: set[str] = set()
    unique: list[Gem] = []
    for gem in gems:
        key = normalize_title(gem.title)
        if key in seen:
            continue
        seen.add(key)
        unique.append(gem)
    return unique


def _tail_bytes(text: str, limit: int) -> str:
    raw = text.encode("utf-8")
    if len(raw) <= limit:
        return text
    return raw[len(raw) - limit :].decode("utf-8", errors="ignore")


class Extractor:
    """Chunked gem extraction over a growing transcript.

    Text accumulates until its estimated token count (bytes / 4) reaches
    ``threshold``; the chunk is then sent to the summarizer together with
    the tail of the previous chunk. Gems from a batch the backend marks
    incomplete are held back until a later complete batch or ``finalize``.
    """

    def __init__(
        self,
        summarizer: Summarizer | None = None,
        store: GemStore | None = None,
        *,
        threshold: int = DEFAULT_EXTRACTION_THRESHOLD,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
        diff_provider: Callable[[], str] | None = None,
    ):
        self._summarizer = summarizer
        self._store = store
        self.threshold = threshold if threshold > 0 else DEFAULT_EXTRACTION_THRESHOLD
        self.overlap_tokens = max(overlap_tokens, 0)
        self._diff_provider = diff_provider
        self._lock = threading.Lock()
        self._buffer: list[str] = []
        self._buffer_bytes = 0
        self._token_count = 0
        self._last_chunk_tail = ""
        self._incomplete: list[Gem] = []
        self._extracted: list[Gem] = []
        self._extraction_count = 0
        self._finalized = False

    @property
    def token_count(self) -> int:
        with self._lock:
            return self._token_count

    @property
    def buffer_bytes(self) -> int:
        with self._lock:
            return self._buffer_bytes

    @property
    def last_chunk_tail(self) -> str:
        with self._lock:
            return self._last_chunk_tail

    @property
    def finalized(self) -> bool:
        with self._lock:
            return self._finalized

    def set_summarizer(self, summarizer: Summarizer | None) -> None:
        with self._lock:
            self._summarizer = summarizer

    def set_store(self, store: GemStore | None) -> None:
        with self._lock:
            self._store = store

    def extracted_gems(self) -> list[Gem]:
        with self._lock:
            return list(self._extracted)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._extracted) + len(self._incomplete)

    def process_chunk(self, text: str) -> None:
        """Buffer ``text`` and extract once the threshold is reached.

        Summarizer errors propagate after the chunk has been discarded.
        """

        with self._lock:
            if self._finalized:
                logger.debug("extractor finalized, dropping late chunk")
                return
            self._buffer.append(text)
            self._buffer_bytes += len(text.encode("utf-8"))
            self._token_count = self._buffer_bytes // BYTES_PER_TOKEN
            if self._token_count >= self.threshold:
                self._extract_locked()

    def finalize(self) -> list[Gem]:
        """Flush the buffer, merge held gems, dedupe by title and persist as pending.

        Returns the gems that were written. Later chunks are ignored.
        """

        with self._lock:
            if self._finalized:
                return []
            self._finalized = True
            if self._buffer_bytes and self._summarizer is not None:
                try:
                    self._extract_locked()
                except Exception as exc:
                    logger.warning("final gem extraction failed", exc_info=exc)
            if self._incomplete:
                self._extracted.extend(self._incomplete)
                self._incomplete = []
            self._extracted = deduplicate_gems(self._extracted)
            gems = list(self._extracted)
            store = self._store

        saved: list[Gem] = []
        if store is None or not gems:
            return saved
        logger.info("Saving gems to pending", extra={"count": len(gems)})
        for gem in gems:
            try:
                store.add_pending_gem(gem)
            except OSError as exc:
                logger.warning(
                    "failed to save pending gem", extra={"gem_id": gem.id}, exc_info=exc
                )
                continue
            saved.append(gem)
        return saved

    def _extract_locked(self) -> None:
        summarizer = self._summarizer
        text = "".join(self._buffer)
        if summarizer is None or not text:
            self._reset_buffer_locked()
            return

        full_text = text
        if self._last_chunk_tail:
            full_text = self._last_chunk_tail + CONTEXT_SEPARATOR + text
        self._last_chunk_tail = _tail_bytes(text, self.overlap_tokens * BYTES_PER_TOKEN)
        self._extraction_count += 1
        logger.info(
            "Gem extraction triggered",
            extra={"extraction": self._extraction_count, "tokens": self._token_count},
        )
        diff = ""
        if self._diff_provider is not None:
            try:
                diff = self._diff_provider()
            except Exception as exc:
                logger.debug("diff provider failed", exc_info=exc)
        try:
            result = summarizer.extract(full_text, diff, list(self._extracted))
        except Exception as exc:
            logger.warning(
                "gem extraction failed, discarding chunk",
                extra={"summarizer": getattr(summarizer, "name", "")},
                exc_info=exc,
            )
            self._reset_buffer_locked()
            raise
        self._reset_buffer_locked()
        if not result.gems:
            return
        now = dt.datetime.now(dt.UTC)
        for gem in result.gems:
            gem.created = now
            gem.client = getattr(summarizer, "name", "") or gem.client
            gem.model = gem.model or getattr(summarizer, "model", "")
        logger.info("Found gems in chunk", extra={"count": len(result.gems)})
        if result.incomplete:
            self._incomplete.extend(result.gems)
        else:
            self._extracted.extend(result.gems)
            self._incomplete = []

    def _reset_buffer_locked(self) -> None:
        self._buffer = []
        self._buffer_bytes = 0
        self._token_count = 0
