"""
Hot-reloading configuration watcher.

The watcher resolves a configuration once, then re-resolves it whenever the
config file or a dotenv file changes (debounced) and on a periodic poll.
Every distinct good configuration is published to a SnapshotStream; failed
re-resolutions are published as ReloadFailure notices and leave the current
snapshot untouched.

A single background thread owns resolution and publication. Filesystem
callbacks from watchdog only queue triggers for it.
"""

from __future__ import annotations

import copy
import enum
import logging
import queue
import threading
import time
from collections import deque
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generic, TypeVar

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .constants import DEFAULT_STREAM_SIZE
from .exceptions import StreamClosedError, WatcherError
from .loader import Loader, LoaderOptions

T = TypeVar("T")

# Seconds stop() waits for the observer and the loop thread
STOP_TIMEOUT_SECS = 2.0

_FS_EVENT = "fs"
_RELOAD = "reload"
_STOP = "stop"


class WatcherState(enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    """An immutable, versioned configuration value."""

    value: T
    version: int
    resolved_at: datetime


@dataclass(frozen=True)
class ReloadFailure:
    """
    A re-resolution failed; the snapshot at `version` is still current.
    """

    error: Exception
    version: int
    at: datetime


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SnapshotStream:
    """
    Bounded, ordered stream of Snapshot and ReloadFailure items.

    The producer never blocks: when the stream is full the oldest pending item
    is dropped. Iteration yields items until the stream is closed and drained.

    Example:
        for item in stream:
            if isinstance(item, Snapshot):
                apply(item.value)
    """

    def __init__(
        self, maxsize: int = DEFAULT_STREAM_SIZE, lg: logging.Logger | None = None
    ) -> None:
        if maxsize < 1:
            raise ValueError("stream size must be at least 1")
        self._maxsize = maxsize
        self._items: deque[Snapshot[Any] | ReloadFailure] = deque()
        self._cond = threading.Condition()
        self._closed = False
        self._lg = lg or logging.getLogger("stratacfg.watcher")

    def put(self, item: Snapshot[Any] | ReloadFailure) -> bool:
        """Append an item. Returns False if the stream is closed."""
        with self._cond:
            if self._closed:
                return False
            if len(self._items) >= self._maxsize:
                dropped = self._items.popleft()
                self._lg.warning(
                    "snapshot stream full, dropping oldest item",
                    extra={"version": dropped.version},
                )
            self._items.append(item)
            self._cond.notify()
            return True

    def get(self, timeout: float | None = None) -> Snapshot[Any] | ReloadFailure:
        """
        Remove and return the oldest item.

        Raises:
            TimeoutError: If nothing arrives within timeout seconds
            StreamClosedError: If the stream is closed and empty
        """
        with self._cond:
            self._cond.wait_for(lambda: self._items or self._closed, timeout)
            if self._items:
                return self._items.popleft()
            if self._closed:
                raise StreamClosedError("snapshot stream is closed")
            raise TimeoutError("no snapshot within timeout")

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def __iter__(self) -> Iterator[Snapshot[Any] | ReloadFailure]:
        while True:
            try:
                yield self.get()
            except StreamClosedError:
                return


class Watcher(Generic[T]):
    """
    Keeps a configuration current as its sources change.

    Example:
        watcher = Watcher(LoaderOptions(file="app.yaml", poll_interval=60))
        stream = watcher.watch(AppConfig)
        config = watcher.current().value
        ...
        watcher.stop()
    """

    def __init__(
        self,
        options: LoaderOptions | None = None,
        lg: logging.Logger | None = None,
        stream_size: int = DEFAULT_STREAM_SIZE,
    ) -> None:
        """
        Args:
            options: Loader options, including debounce and poll_interval
            lg: Logger for the watcher's own logging
            stream_size: Capacity of the snapshot stream
        """
        self._lg = lg or logging.getLogger("stratacfg.watcher")
        self._loader = Loader(options, lg=self._lg)
        self._options = self._loader.options
        self._stream = SnapshotStream(stream_size, lg=self._lg)
        self._lock = threading.RLock()
        self._state = WatcherState.IDLE
        self._triggers: queue.Queue[str] = queue.Queue()
        self._cls: type[T] | None = None
        self._current: Snapshot[T] | None = None
        self._observer: Any = None
        self._thread: threading.Thread | None = None
        self._watched_files: set[Path] = set()

    @property
    def state(self) -> WatcherState:
        with self._lock:
            return self._state

    def is_running(self) -> bool:
        """Check if watcher is active."""
        with self._lock:
            return self._state is WatcherState.WATCHING

    def current(self) -> Snapshot[T]:
        """
        Return the latest good snapshot.

        Raises:
            WatcherError: If watch() has not produced one yet
        """
        with self._lock:
            if self._current is None:
                raise WatcherError("watcher has no snapshot yet")
            return self._current

    def watch(self, cls: type[T]) -> SnapshotStream:
        """
        Resolve cls once and start watching its sources.

        The initial snapshot (version 1) is available from current(); the
        stream carries subsequent changes.

        Raises:
            WatcherError: If called more than once or after stop()
            StrataError: If the initial resolution fails (the watcher stays idle)
        """
        error: Exception | None = None
        with self._lock:
            if self._state is not WatcherState.IDLE:
                raise WatcherError(
                    "watcher can only be started once", state=self._state.value
                )
            # Observed first so an edit made during the initial load triggers
            # a follow-up resolution
            self._start_observer()
            try:
                value = self._loader.load(cls)
            except Exception as e:
                error = e
                observer, self._observer = self._observer, None
                self._watched_files = set()
            else:
                self._cls = cls
                self._current = Snapshot(value=value, version=1, resolved_at=_utcnow())
                self._thread = threading.Thread(
                    target=self._run, name="stratacfg-watcher", daemon=True
                )
                self._state = WatcherState.WATCHING
                self._thread.start()

        if error is not None:
            # Stopped outside the lock; the observer's handler takes it
            if observer is not None:
                observer.stop()
                observer.join(timeout=STOP_TIMEOUT_SECS)
            raise error

        self._lg.debug(
            "started config watcher",
            extra={
                "target": cls.__name__,
                "files": sorted(str(p) for p in self._watched_files),
            },
        )
        return self._stream

    def request_reload(self) -> None:
        """
        Queue an immediate re-resolution.

        Raises:
            WatcherError: If the watcher is not running
        """
        with self._lock:
            if self._state is not WatcherState.WATCHING:
                raise WatcherError("watcher is not running", state=self._state.value)
            self._triggers.put(_RELOAD)

    def stop(self) -> None:
        """
        Stop watching and close the stream. Safe to call more than once.

        A resolution in flight when stop() is called is discarded.
        """
        with self._lock:
            if self._state is WatcherState.STOPPED:
                return
            self._state = WatcherState.STOPPED
            self._stream.close()
            observer, self._observer = self._observer, None
            thread, self._thread = self._thread, None
            self._watched_files = set()

        if observer is not None:
            observer.stop()
            observer.join(timeout=STOP_TIMEOUT_SECS)
        if thread is not None:
            self._triggers.put(_STOP)
            if thread is not threading.current_thread():
                thread.join(timeout=STOP_TIMEOUT_SECS)
        self._lg.debug("stopped config watcher")

    def _start_observer(self) -> None:
        self._watched_files = {p.resolve() for p in self._loader.source_paths()}
        dirs = {f.parent for f in self._watched_files}
        existing = {d for d in dirs if d.is_dir()}
        for missing in sorted(dirs - existing):
            self._lg.warning(
                "config directory does not exist, not watching it",
                extra={"dir": str(missing)},
            )
        if not existing:
            return

        observer = Observer()
        handler = _ChangeHandler(self)
        for dir_path in sorted(existing):
            observer.schedule(handler, str(dir_path), recursive=False)
        observer.start()
        self._observer = observer

    def _is_watched_file(self, path: Path) -> bool:
        """Thread-safe check if a path is in the watched files set."""
        with self._lock:
            return path in self._watched_files

    def _on_change_event(self) -> None:
        """Queue a filesystem trigger for the loop thread."""
        if self.is_running():
            self._triggers.put(_FS_EVENT)

    def _next_triggers(self, timeout: float | None) -> set[str]:
        """Wait for one trigger, then drain whatever else is queued."""
        triggers: set[str] = set()
        try:
            triggers.add(self._triggers.get(timeout=timeout))
        except queue.Empty:
            return triggers
        while True:
            try:
                triggers.add(self._triggers.get_nowait())
            except queue.Empty:
                return triggers

    def _run(self) -> None:
        debounce = self._options.debounce
        poll = self._options.poll_interval
        deadline: float | None = None
        next_poll = time.monotonic() + poll if poll is not None else None

        while True:
            wake = [t for t in (deadline, next_poll) if t is not None]
            timeout = max(0.0, min(wake) - time.monotonic()) if wake else None
            triggers = self._next_triggers(timeout)
            if _STOP in triggers or not self.is_running():
                return

            now = time.monotonic()
            resolve = _RELOAD in triggers
            if _FS_EVENT in triggers:
                deadline = now + debounce
            elif deadline is not None and now >= deadline:
                deadline = None
                resolve = True
            if next_poll is not None and now >= next_poll:
                next_poll = now + poll  # type: ignore[operator]
                # A pending debounced resolution absorbs the poll tick
                if deadline is None:
                    resolve = True

            if resolve:
                self._resolve_and_publish()

    def _resolve_and_publish(self) -> None:
        assert self._cls is not None
        try:
            value = self._loader.load(self._cls)
        except Exception as e:
            self._lg.error(
                "failed to reload config, keeping previous config",
                extra={"exception": e, "target": self._cls.__name__},
            )
            with self._lock:
                if self._state is not WatcherState.WATCHING or self._current is None:
                    return
                failure = ReloadFailure(
                    error=e, version=self._current.version, at=_utcnow()
                )
                self._stream.put(failure)
            return

        with self._lock:
            if self._state is not WatcherState.WATCHING or self._current is None:
                self._lg.debug("discarding config resolved after stop")
                return
            if value == self._current.value:
                self._lg.debug("config sources touched but value unchanged, skipping")
                return
            snapshot = Snapshot(
                value=value, version=self._current.version + 1, resolved_at=_utcnow()
            )
            self._current = snapshot
            self._stream.put(
                Snapshot(
                    value=copy.deepcopy(value),
                    version=snapshot.version,
                    resolved_at=snapshot.resolved_at,
                )
            )
        self._lg.info(
            "config reloaded",
            extra={"target": self._cls.__name__, "version": snapshot.version},
        )


class _ChangeHandler(FileSystemEventHandler):  # type: ignore[misc]
    """Forwards events on watched files to the watcher."""

    def __init__(self, watcher: Watcher[Any]) -> None:
        super().__init__()
        self._watcher = watcher

    def _check(self, path: str | bytes) -> None:
        if isinstance(path, bytes):
            path = path.decode()
        if self._watcher._is_watched_file(Path(path).resolve()):
            self._watcher._on_change_event()

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._check(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._check(event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._check(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._check(event.dest_path)
