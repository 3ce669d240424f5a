"""Filesystem watcher that keeps the index in sync with the watch directory.

Watchdog callbacks never touch the pipeline. They turn filesystem events into
``ChangeEvent`` messages on a channel; a single debounce loop owns the
pending-change map, hands stable paths to ``process_file`` and forwards
deletions to a bounded removal queue served by one worker thread.
"""

from __future__ import annotations

import os
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from filerag.core.config import Settings
from filerag.core.errors import OperationCancelled
from filerag.core.logging import get_logger
from filerag.core.metrics import PENDING_CHANGES, REMOVAL_QUEUE_DEPTH, WATCHER_ERRORS
from filerag.ingest.pipeline import IngestPipeline

logger = get_logger(__name__)

Clock = Callable[[], float]

CHANGED = "changed"
DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    kind: str
    path: str
    timestamp: float


class PendingChanges:
    """Paths waiting for their debounce window, keyed to the last event time."""

    def __init__(self) -> None:
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def touch(self, path: str, timestamp: float) -> None:
        with self._lock:
            self._entries[path] = timestamp

    def discard(self, path: str) -> bool:
        with self._lock:
            return self._entries.pop(path, None) is not None

    def pop_due(self, now: float, window: float) -> list[str]:
        """Remove and return every path whose last event is at least ``window`` old."""
        with self._lock:
            due = [path for path, stamp in self._entries.items() if now - stamp >= window]
            for path in due:
                del self._entries[path]
        return due

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ChangeEventHandler(FileSystemEventHandler):
    """Translate watchdog events for supported files into channel messages."""

    def __init__(self, extensions: set[str], publish: Callable[[str, str], None]) -> None:
        super().__init__()
        self.extensions = extensions
        self.publish = publish

    def dispatch(self, event: FileSystemEvent) -> None:
        try:
            super().dispatch(event)
        except Exception:
            WATCHER_ERRORS.labels(stage="event").inc()
            logger.exception("Failed to handle filesystem event %s", event)

    def on_created(self, event: FileSystemEvent) -> None:
        self._publish(CHANGED, event.src_path, event.is_directory)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._publish(CHANGED, event.src_path, event.is_directory)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._publish(DELETED, event.src_path, event.is_directory)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._publish(DELETED, event.src_path, event.is_directory)
        self._publish(CHANGED, event.dest_path, event.is_directory)

    def _publish(self, kind: str, raw_path: str | bytes, is_directory: bool) -> None:
        if is_directory or not raw_path:
            return
        path = os.fsdecode(raw_path)
        if Path(path).suffix.lower() in self.extensions:
            self.publish(kind, path)


class ChangeWatcher:
    """Debounced bridge between filesystem events and the ingest pipeline."""

    def __init__(
        self,
        pipeline: IngestPipeline,
        settings: Settings,
        clock: Clock = time.monotonic,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        self.pipeline = pipeline
        self.settings = settings
        self.clock = clock
        self.debounce = settings.debounce_seconds
        self.poll_interval = settings.poll_interval_seconds
        self.pending = PendingChanges()
        self.removal_failures = 0
        self._events: queue.SimpleQueue[ChangeEvent] = queue.SimpleQueue()
        self._removals: queue.Queue[str] = queue.Queue(maxsize=settings.removal_queue_size)
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None
        self._handler = ChangeEventHandler(set(settings.supported_extensions), self.publish)
        self._stopping = threading.Event()
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []

    # Lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Run the watcher on background threads."""
        with self._lock:
            if self._threads:
                return
            self._stopping.clear()
            loop = threading.Thread(target=self.run, name="filerag-watcher", daemon=True)
            worker = threading.Thread(target=self._removal_worker, name="filerag-removals", daemon=True)
            self._threads = [loop, worker]
            worker.start()
            loop.start()

    def run(self) -> None:
        """Initial reconciliation, then the debounce loop until ``stop()``."""
        root = self.settings.watch_path.expanduser()
        logger.info("Change watcher starting, watching path: %s", root)
        if not root.exists():
            logger.warning("Watch path does not exist, creating: %s", root)
            root.mkdir(parents=True, exist_ok=True)

        logger.info("Performing initial indexing of existing files")
        try:
            count = self.pipeline.reindex_all(cancel=self._stopping)
            logger.info("Initial indexing complete, processed %s documents", count)
        except OperationCancelled:
            logger.info("Initial indexing cancelled")
        except Exception:
            WATCHER_ERRORS.labels(stage="reindex").inc()
            logger.exception("Error during initial indexing")

        if self._stopping.is_set():
            return
        self._start_observer()
        while not self._stopping.is_set():
            self._ensure_observer()
            self.poll_once()
            self._stopping.wait(self.poll_interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stopping.set()
        with self._lock:
            observer, self._observer = self._observer, None
            threads, self._threads = self._threads, []
        if observer is not None:
            observer.stop()
            observer.join(timeout=timeout)
        for thread in threads:
            if thread is not threading.current_thread():
                thread.join(timeout=timeout)
        dropped = len(self.pending)
        if dropped:
            logger.info("Watcher stopped with %s pending changes not processed", dropped)

    @property
    def running(self) -> bool:
        return bool(self._threads) and not self._stopping.is_set()

    # Event channel -----------------------------------------------------

    def publish(self, kind: str, path: str) -> None:
        """Queue a filesystem change; safe to call from any thread."""
        self._events.put(ChangeEvent(kind=kind, path=path, timestamp=self.clock()))

    def poll_once(self) -> list[str]:
        """Drain queued events and process every path past its debounce window."""
        self._drain_events()
        due = self.pending.pop_due(self.clock(), self.debounce)
        PENDING_CHANGES.set(len(self.pending))
        processed: list[str] = []
        for path in due:
            if self._stopping.is_set():
                break
            if self._process(path):
                processed.append(path)
        return processed

    def process_removals(self) -> int:
        """Run queued removals on the calling thread; returns how many were attempted."""
        handled = 0
        while True:
            try:
                path = self._removals.get_nowait()
            except queue.Empty:
                return handled
            self._remove(path)
            handled += 1

    # Internal helpers --------------------------------------------------

    def _drain_events(self) -> None:
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return
            if event.kind == DELETED:
                self.pending.discard(event.path)
                self._enqueue_removal(event.path)
            else:
                self.pending.touch(event.path, event.timestamp)

    def _process(self, path: str) -> bool:
        if not os.path.isfile(path):
            logger.debug("Skipping file that no longer exists: %s", path)
            return False
        try:
            if self.pipeline.process_file(path, cancel=self._stopping):
                logger.info("Processed file: %s", path)
            else:
                logger.debug("File unchanged, skipped: %s", path)
        except Exception:
            WATCHER_ERRORS.labels(stage="process").inc()
            logger.exception("Error processing file: %s", path, extra={"ctx_path": path})
        return True

    def _enqueue_removal(self, path: str) -> None:
        while True:
            try:
                self._removals.put(path, timeout=self.poll_interval)
                break
            except queue.Full:
                if self._stopping.is_set():
                    logger.warning("Dropping removal of %s during shutdown", path)
                    return
                logger.warning("Removal queue full (%s); waiting to enqueue %s", self._removals.maxsize, path)
        REMOVAL_QUEUE_DEPTH.set(self._removals.qsize())

    def _removal_worker(self) -> None:
        while not self._stopping.is_set():
            try:
                path = self._removals.get(timeout=self.poll_interval)
            except queue.Empty:
                continue
            self._remove(path)

    def _remove(self, path: str) -> None:
        try:
            removed = self.pipeline.remove_file(path)
            logger.info("Removed %s chunks for deleted file: %s", removed, path)
        except Exception:
            self.removal_failures += 1
            WATCHER_ERRORS.labels(stage="remove").inc()
            logger.exception("Error removing file from index: %s", path, extra={"ctx_path": path})
        finally:
            REMOVAL_QUEUE_DEPTH.set(self._removals.qsize())

    def _start_observer(self) -> None:
        observer = self._observer_factory()
        observer.schedule(
            self._handler,
            str(self.settings.watch_path.expanduser()),
            recursive=self.settings.watch_recursive,
        )
        observer.start()
        with self._lock:
            if self._stopping.is_set():
                observer.stop()
                return
            self._observer = observer
        logger.info("File watcher started for path: %s", self.settings.watch_path)

    def _ensure_observer(self) -> None:
        observer = self._observer
        if observer is None or observer.is_alive() or self._stopping.is_set():
            return
        WATCHER_ERRORS.labels(stage="observer").inc()
        logger.error("Filesystem observer stopped unexpectedly; restarting")
        try:
            self._start_observer()
        except Exception:
            logger.exception("Failed to restart filesystem observer")


__all__ = ["ChangeWatcher", "ChangeEvent", "ChangeEventHandler", "PendingChanges"]
