"""
Registry client facade

RegistryClient is the only entry point the rest of an application uses:
register this process, query live peers, subscribe to changes, clean up.
Every public method degrades to an empty or unchanged result plus a log
entry; none of them raise.
"""

import logging
import threading
from enum import Enum
from typing import Callable, List, Optional

from .config import RosterConfig
from .heartbeat import HeartbeatPublisher
from .registry import (
    ChangeNotifier,
    LockCoordinator,
    PublicInstanceView,
    RegistryEntry,
    RegistryStore,
    now_ms,
    reap,
    with_retry,
)
from .snapshot import InstanceIdentity, SnapshotBuilder

logger = logging.getLogger(__name__)


class ClientState(Enum):
    """Lifecycle of one process run's registration"""
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    CLEANED_UP = "cleaned_up"


def _sorted(entries: List[RegistryEntry]) -> List[RegistryEntry]:
    return sorted(entries, key=lambda e: e.sort_key)


class RegistryClient:
    """Publishes this process into the shared record and reads its peers."""

    def __init__(
        self,
        config: Optional[RosterConfig] = None,
        snapshot: Optional[SnapshotBuilder] = None,
        clock: Callable[[], int] = now_ms,
        store: Optional[RegistryStore] = None,
        lock: Optional[LockCoordinator] = None,
        notifier: Optional[ChangeNotifier] = None,
    ):
        self.config = config or RosterConfig()
        self._clock = clock
        self.snapshot = snapshot or SnapshotBuilder(
            InstanceIdentity.generate(clock=clock), app_name=self.config.app_name,
        )
        self.store = store or RegistryStore(self.config.registry_file)
        self.lock = lock or LockCoordinator(
            self.config.lock_file,
            timeout=self.config.lock_timeout,
            poll_interval=self.config.lock_poll_interval,
        )
        self.notifier = notifier or ChangeNotifier(
            self.config.registry_file,
            backend=self.config.watch_backend,
            poll_interval=self.config.poll_interval,
        )
        self.heartbeat = HeartbeatPublisher(
            self._beat,
            interval=self.config.heartbeat_interval,
            on_failure=self._ensure_watcher,
        )
        self.state = ClientState.UNREGISTERED
        self.last_error: Optional[BaseException] = None
        # Serializes registry cycles between the heartbeat thread and callers
        self._mutex = threading.RLock()

    @property
    def session_id(self) -> str:
        return self.snapshot.identity.session_id

    # -- public API -----------------------------------------------------

    def register_current_instance(self) -> None:
        """Publish this instance and start heartbeating and watching."""
        with self._mutex:
            if self.state is ClientState.CLEANED_UP:
                logger.warning("Session %s was cleaned up; not registering again", self.session_id)
                return
            try:
                self._publish()
            except OSError as exc:
                # The heartbeat keeps retrying every interval
                self._record_failure("register", exc)
            self.state = ClientState.REGISTERED
            self.heartbeat.start()
            self._ensure_watcher()
            logger.info("Registered instance with session ID %s", self.session_id)

    def get_all_instances(self) -> List[PublicInstanceView]:
        """Live peers (this instance included), sorted by instance id."""
        with self._mutex:
            raw = self.store.read()
            now = self._clock()
            live = _sorted(reap(raw, now, self.config.stale_threshold_ms))
            if len(live) != len(raw):
                logger.info("Removing %d stale instance(s)", len(raw) - len(live))
                try:
                    self._locked(self._prune)
                except OSError as exc:
                    self._record_failure("prune", exc)
            return [PublicInstanceView.from_entry(e, now) for e in live]

    def cleanup(self) -> None:
        """Withdraw this instance. Safe to call more than once."""
        with self._mutex:
            if self.state is ClientState.CLEANED_UP:
                return
            was_registered = self.state is ClientState.REGISTERED
            self.state = ClientState.CLEANED_UP
        # A beat waiting on the mutex sees CLEANED_UP and returns
        self.heartbeat.stop()
        with self._mutex:
            if was_registered:
                try:
                    self._locked(self._remove_self)
                    logger.info("Removed session %s from the registry", self.session_id)
                except OSError as exc:
                    # Peers will reap the entry once it goes stale
                    self._record_failure("cleanup", exc)
        # Outside the mutex: a callback in flight may be re-querying
        self.notifier.stop()
        self.notifier.clear()

    def on_change(self, callback: Callable[[], None]) -> None:
        self.notifier.on_change(callback)

    def off_change(self, callback: Callable[[], None]) -> None:
        self.notifier.off_change(callback)

    # -- internals --------------------------------------------------------

    def _beat(self) -> None:
        with self._mutex:
            if self.state is not ClientState.REGISTERED:
                return
            try:
                self._publish()
            except OSError as exc:
                self.last_error = exc
                raise

    def _publish(self) -> None:
        entry = self.snapshot.build(self._clock())
        self._locked(lambda: self._merge(entry))

    def _locked(self, operation: Callable[[], None]) -> None:
        with_retry(
            lambda: self.lock.with_lock(operation),
            attempts=self.config.write_attempts,
            delay=self.config.retry_delay,
        )
        self.last_error = None

    def _merge(self, entry: RegistryEntry) -> None:
        others = [e for e in self.store.read() if e.session_id != entry.session_id]
        others.append(entry)
        live = reap(others, self._clock(), self.config.stale_threshold_ms)
        self.store.write(_sorted(live))

    def _prune(self) -> None:
        # Re-read under the lock so a peer's fresh write is not clobbered
        raw = self.store.read()
        live = reap(raw, self._clock(), self.config.stale_threshold_ms)
        if len(live) != len(raw):
            self.store.write(_sorted(live))

    def _remove_self(self) -> None:
        remaining = [e for e in self.store.read() if e.session_id != self.session_id]
        self.store.write(_sorted(remaining))

    def _ensure_watcher(self) -> None:
        with self._mutex:
            if self.state is ClientState.REGISTERED and not self.notifier.is_active:
                logger.info("Change watcher inactive; starting it")
                self.notifier.start()

    def _record_failure(self, operation: str, exc: OSError) -> None:
        self.last_error = exc
        if isinstance(exc, PermissionError):
            logger.error(
                "%s failed: permission denied on %s. Choose a writable location "
                "with the registry_file setting (or ROSTER_REGISTRY_FILE).",
                operation, exc.filename or self.store.path,
            )
        else:
            logger.error("%s failed: %s", operation, exc)
