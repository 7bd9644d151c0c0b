"""
Advisory sentinel-file lock

The lock is a marker file next to the registry. Holders create it
exclusively and write their pid into it; waiters poll for its absence.
A marker older than the timeout, or one that outlives the caller's wait,
is presumed abandoned by a crashed holder and taken over.
"""

import logging
import os
import time
from pathlib import Path
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LockCoordinator:
    """Timeout-bounded mutual exclusion around read-modify-write cycles."""

    def __init__(
        self,
        lock_path: str | Path,
        timeout: float = 5.0,
        poll_interval: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._sleep = sleep

    def with_lock(self, operation: Callable[[], T]) -> T:
        """Run *operation* while holding the marker; always release it."""
        self._acquire()
        try:
            return operation()
        finally:
            self._release()

    def holder(self) -> Optional[str]:
        """Pid text written by the current holder, or None when unlocked."""
        try:
            return self.lock_path.read_text(errors="replace").strip() or None
        except OSError:
            return None

    def is_locked(self) -> bool:
        return self.lock_path.exists()

    def _acquire(self) -> None:
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        deadline = time.monotonic() + self.timeout

        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if time.monotonic() >= deadline or self._marker_age() > self.timeout:
                    self._take_over()
                    return
                self._sleep(self.poll_interval)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            return

    def _take_over(self) -> None:
        logger.warning(
            "Lock %s held by pid %s for more than %.1fs; forcing takeover",
            self.lock_path, self.holder(), self.timeout,
        )
        self.lock_path.unlink(missing_ok=True)
        self.lock_path.write_text(str(os.getpid()))

    def _marker_age(self) -> float:
        try:
            return time.time() - self.lock_path.stat().st_mtime
        except FileNotFoundError:
            return 0.0

    def _release(self) -> None:
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Could not remove lock marker %s: %s", self.lock_path, exc)


def with_retry(
    operation: Callable[[], T],
    attempts: int = 5,
    delay: float = 0.1,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Retry *operation* on transient I/O errors with linear backoff.

    Attempt ``n`` (1-based) that fails waits ``delay * n`` before the next.
    Permission errors are not transient and propagate immediately.
    """
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except PermissionError:
            raise
        except OSError as exc:
            if attempt == attempts:
                raise
            logger.info("Attempt %d/%d failed: %s", attempt, attempts, exc)
            sleep(delay * attempt)
    raise ValueError("attempts must be >= 1")
