from __future__ import annotations

import datetime as dt
import logging
import queue
import threading
from pathlib import Path

from . import git_info
from .config import CLEANUP_THRESHOLD, AgentHistoryConfig
from .dedup import DEFAULT_WINDOW_S, OutputDeduplicator
from .gems.extractor import DEFAULT_EXTRACTION_THRESHOLD, DEFAULT_OVERLAP_TOKENS, Extractor
from .gems.store import GemStore
from .gems.summarizer import Summarizer, summarizer_from_config
from .redaction import strip_ansi
from .store import HistoryStore, Session, new_id

logger = logging.getLogger(__name__)

DEFAULT_SYNC_INTERVAL_S = 5.0
DEFAULT_DRAIN_TIMEOUT_S = 2.0
EXTRACTION_QUEUE_SIZE = 1000

_STOP = object()


class Recorder:
    """Turns one captured terminal session into persisted history.

    Raw bytes go through the deduplicator, then ANSI stripping, into an
    in-memory transcript. A background thread syncs the transcript length
    to the session row, and when extraction is enabled each cleaned line
    is queued, in order, for a single extraction worker.
    """

    def __init__(
        self,
        store: HistoryStore,
        tool_name: str,
        tool_command: str = "",
        project_dir: str = "",
        *,
        dedup_window_s: float = DEFAULT_WINDOW_S,
        sync_interval_s: float = DEFAULT_SYNC_INTERVAL_S,
        drain_timeout_s: float = DEFAULT_DRAIN_TIMEOUT_S,
        max_size_bytes: int = 0,
    ):
        self.store = store
        self.sync_interval_s = (
            sync_interval_s if sync_interval_s > 0 else DEFAULT_SYNC_INTERVAL_S
        )
        self.drain_timeout_s = drain_timeout_s
        self.max_size_bytes = max_size_bytes
        self.session = store.create_session(
            Session(
                id=new_id(),
                tool_name=tool_name,
                tool_command=tool_command,
                project_dir=project_dir,
                start_time=dt.datetime.now(dt.UTC),
            )
        )

        self._lock = threading.Lock()
        self._output_lock = threading.Lock()
        self._running = True
        self._raw_bytes = 0
        self._output: list[str] = []
        self._output_bytes = 0
        self._dedup = OutputDeduplicator(self._on_line, window_s=dedup_window_s)

        self._extractor: Extractor | None = None
        self._extraction_enabled = False
        self._queue: queue.Queue[object] = queue.Queue(maxsize=EXTRACTION_QUEUE_SIZE)
        self._consumer: threading.Thread | None = None

        self._stop_sync = threading.Event()
        self._sync_thread = threading.Thread(
            target=self._sync_loop, name="agent-history-sync", daemon=True
        )
        self._sync_thread.start()
        logger.info(
            "Started recording session",
            extra={"session_id": self.session.id[:8], "tool_name": tool_name},
        )

    @classmethod
    def from_config(
        cls,
        store: HistoryStore,
        cfg: AgentHistoryConfig,
        tool_name: str,
        tool_command: str = "",
        project_dir: str = "",
    ) -> Recorder:
        recorder = cls(
            store,
            tool_name,
            tool_command,
            project_dir,
            dedup_window_s=cfg.dedup_window_s,
            sync_interval_s=cfg.sync_interval_s,
            drain_timeout_s=cfg.drain_timeout_s,
            max_size_bytes=cfg.max_size_bytes(),
        )
        summarizer = summarizer_from_config(cfg)
        if summarizer is not None:
            root = git_info.find_project_root(project_dir or Path.cwd())
            recorder.enable_extraction(
                summarizer,
                GemStore(root),
                threshold=cfg.extraction_threshold,
                overlap_tokens=cfg.extraction_overlap_tokens,
            )
        return recorder

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def raw_bytes(self) -> int:
        return self._raw_bytes

    @property
    def output_bytes(self) -> int:
        with self._output_lock:
            return self._output_bytes

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    def output_text(self) -> str:
        with self._output_lock:
            return "".join(self._output)

    def enable_extraction(
        self,
        summarizer: Summarizer | None,
        gem_store: GemStore | None,
        threshold: int = DEFAULT_EXTRACTION_THRESHOLD,
        *,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    ) -> Extractor:
        with self._lock:
            project_dir = self.session.project_dir
            self._extractor = Extractor(
                summarizer,
                gem_store,
                threshold=threshold,
                overlap_tokens=overlap_tokens,
                diff_provider=(lambda: git_info.diff_summary(project_dir)) if project_dir else None,
            )
            self._extraction_enabled = True
            if self._consumer is None:
                self._consumer = threading.Thread(
                    target=self._consume, name="agent-history-extract", daemon=True
                )
                self._consumer.start()
            extractor = self._extractor
        logger.info("Gem extraction enabled", extra={"threshold": extractor.threshold})
        return extractor

    def disable_extraction(self) -> None:
        with self._lock:
            self._extraction_enabled = False

    def extracted_gem_count(self) -> int:
        with self._lock:
            extractor = self._extractor
        if extractor is None:
            return 0
        return extractor.pending_count()

    def write(self, data: bytes) -> None:
        """Feed raw terminal output. Expects a single writer; ignored after ``stop``."""

        if not self.running:
            return
        self._raw_bytes += len(data)
        self._dedup.write(data)

    def _on_line(self, line: str) -> None:
        clean = strip_ansi(line)
        if not clean:
            return
        with self._output_lock:
            self._output.append(clean + "\n")
            self._output_bytes += len(clean.encode("utf-8")) + 1
        with self._lock:
            dispatch = self._extraction_enabled and self._extractor is not None
        if not dispatch:
            return
        try:
            self._queue.put_nowait(clean + "\n")
        except queue.Full:
            logger.warning(
                "extraction queue full, line skipped for extraction",
                extra={"session_id": self.session.id[:8]},
            )

    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                return
            with self._lock:
                extractor = self._extractor
            if extractor is None:
                continue
            try:
                extractor.process_chunk(str(item))
            except Exception as exc:
                logger.warning(
                    "gem extraction error",
                    extra={"session_id": self.session.id[:8]},
                    exc_info=exc,
                )

    def _sync_loop(self) -> None:
        while not self._stop_sync.wait(self.sync_interval_s):
            self._sync_session()

    def _sync_session(self) -> None:
        with self._lock:
            if not self._running:
                return
            self.session.output_bytes = self.output_bytes
            try:
                self.store.update_session(self.session)
            except Exception as exc:
                logger.warning(
                    "failed to sync session",
                    extra={"session_id": self.session.id[:8]},
                    exc_info=exc,
                )

    def _drain_extraction(self) -> None:
        consumer = self._consumer
        if consumer is None:
            return
        try:
            self._queue.put(_STOP, timeout=self.drain_timeout_s)
        except queue.Full:
            logger.warning("extraction queue did not drain before shutdown")
            return
        consumer.join(self.drain_timeout_s)
        if consumer.is_alive():
            logger.warning(
                "extraction worker still busy at shutdown",
                extra={"session_id": self.session.id[:8]},
            )

    def stop(self) -> Session:
        """Finish the session. Every step is attempted even if an earlier one fails."""

        with self._lock:
            if not self._running:
                return self.session
            self._running = False

        self._dedup.flush()
        self._stop_sync.set()
        self._sync_thread.join(self.sync_interval_s)
        self._drain_extraction()

        output = self.output_text()
        with self._lock:
            self.session.end_time = dt.datetime.now(dt.UTC)
            self.session.output_bytes = len(output.encode("utf-8"))
        try:
            self.store.save_session_output(self.session.id, output)
        except Exception as exc:
            logger.exception(
                "failed to save session output",
                extra={"session_id": self.session.id[:8]},
                exc_info=exc,
            )
        try:
            self.store.update_session(self.session)
        except Exception as exc:
            logger.exception(
                "failed to update session", extra={"session_id": self.session.id[:8]}, exc_info=exc
            )
        logger.info(
            "Stopped session",
            extra={
                "session_id": self.session.id[:8],
                "duration_s": round(
                    (self.session.end_time - self.session.start_time).total_seconds()
                ),
                "output_bytes": self.session.output_bytes,
            },
        )

        with self._lock:
            extractor = self._extractor
        if extractor is not None:
            try:
                saved = extractor.finalize()
            except Exception as exc:
                logger.exception("gem extraction finalization failed", exc_info=exc)
            else:
                if saved:
                    logger.info("Extracted gems pending review", extra={"count": len(saved)})

        self._enforce_size_limit()
        return self.session

    def _enforce_size_limit(self) -> None:
        if self.max_size_bytes <= 0:
            return
        try:
            if self.store.get_db_size() <= self.max_size_bytes * CLEANUP_THRESHOLD:
                return
            deleted = self.store.enforce_size_limit(self.max_size_bytes)
        except Exception as exc:
            logger.exception("size enforcement failed", exc_info=exc)
            return
        if deleted:
            logger.info("Removed old sessions to stay under size limit", extra={"deleted": deleted})
