"""
Change notification for the shared registry file

This module provides:
- ResourceWatcher: the interface a watcher backend implements
- NativeWatcher: filesystem events through the platform's watchdog observer
- PollingWatcher: watchdog's polling observer, for filesystems without events
- ChangeNotifier: fans matching events out to registered callbacks

Watchers observe the directory containing the file rather than the file
itself, because the record is replaced by rename, and filter on its name.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, List, Optional, Protocol

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.observers.polling import PollingObserver

logger = logging.getLogger(__name__)

BACKENDS = ("auto", "native", "polling")


class ResourceWatcher(Protocol):
    name: str

    def start(self, on_event: Callable[[], None]) -> None: ...

    def stop(self) -> None: ...

    @property
    def is_alive(self) -> bool: ...


# ---------------------------------------------------------------------------
# Watcher backends
# ---------------------------------------------------------------------------

class _FilenameHandler(FileSystemEventHandler):

    def __init__(self, filename: str, on_event: Callable[[], None]):
        super().__init__()
        self._filename = filename
        self._on_event = on_event

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        if any(p and os.path.basename(os.fsdecode(p)) == self._filename for p in paths):
            logger.debug("Registry file changed: %s", event.event_type)
            self._on_event()


class _ObserverWatcher:
    """Runs one watchdog observer over the registry file's directory."""

    name = ""

    def __init__(self, path: Path):
        self.path = path
        self._observer: Optional[BaseObserver] = None

    def _make_observer(self) -> BaseObserver:
        raise NotImplementedError

    def start(self, on_event: Callable[[], None]) -> None:
        observer = self._make_observer()
        observer.daemon = True
        observer.schedule(
            _FilenameHandler(self.path.name, on_event),
            str(self.path.parent),
            recursive=False,
        )
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        if self._observer is not threading.current_thread():
            self._observer.join(timeout=2)
        self._observer = None

    @property
    def is_alive(self) -> bool:
        return self._observer is not None and self._observer.is_alive()


class NativeWatcher(_ObserverWatcher):
    """Directory watch through the platform's event API."""

    name = "native"

    def _make_observer(self) -> BaseObserver:
        return Observer()


class PollingWatcher(_ObserverWatcher):
    """Directory snapshots every *interval* seconds."""

    name = "polling"

    def __init__(self, path: Path, interval: float = 1.0):
        super().__init__(path)
        self.interval = interval

    def _make_observer(self) -> BaseObserver:
        return PollingObserver(timeout=self.interval)


# ---------------------------------------------------------------------------
# Notifier
# ---------------------------------------------------------------------------

class ChangeNotifier:
    """Raises a local "re-query" signal whenever the registry file changes.

    Notifications are not deduplicated and do not distinguish our own writes
    from a peer's; callbacks should simply refresh.
    """

    def __init__(self, path: str | Path, backend: str = "auto", poll_interval: float = 1.0):
        if backend not in BACKENDS:
            raise ValueError(f"unknown watch backend {backend!r}; expected one of {BACKENDS}")
        self.path = Path(path)
        self.backend = backend
        self.poll_interval = poll_interval
        self._callbacks: List[Callable[[], None]] = []
        self._cb_lock = threading.Lock()
        self._watcher: Optional[ResourceWatcher] = None

    def on_change(self, callback: Callable[[], None]) -> None:
        with self._cb_lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def off_change(self, callback: Callable[[], None]) -> None:
        with self._cb_lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def clear(self) -> None:
        with self._cb_lock:
            self._callbacks.clear()

    @property
    def is_active(self) -> bool:
        return self._watcher is not None and self._watcher.is_alive

    @property
    def active_backend(self) -> Optional[str]:
        return self._watcher.name if self.is_active else None

    def start(self) -> bool:
        """Start watching; returns False (and logs) when no backend could start."""
        if self.is_active:
            return True
        self.stop()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create registry directory %s: %s", self.path.parent, exc)
            return False

        candidates: List[ResourceWatcher] = []
        if self.backend in ("auto", "native"):
            candidates.append(NativeWatcher(self.path))
        if self.backend in ("auto", "polling"):
            candidates.append(PollingWatcher(self.path, self.poll_interval))

        for watcher in candidates:
            try:
                watcher.start(self._dispatch)
            except (OSError, RuntimeError) as exc:
                logger.warning("Could not start %s watcher on %s: %s",
                               watcher.name, self.path.parent, exc)
                continue
            self._watcher = watcher
            logger.info("Watching %s (%s)", self.path, watcher.name)
            return True

        logger.error("No change watcher could be started for %s", self.path)
        return False

    def stop(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def _dispatch(self) -> None:
        with self._cb_lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Error in registry change callback")
