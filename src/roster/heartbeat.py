"""Per-process heartbeat that keeps this instance's registry entry live."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class HeartbeatPublisher:
    """Calls *beat* every *interval* seconds on a daemon thread.

    A failing beat is logged and skipped; the thread keeps ticking. When
    *on_failure* is given it runs after every failed beat, which is where the
    registry client restarts a dead change watcher.
    """

    def __init__(
        self,
        beat: Callable[[], None],
        interval: float = 5.0,
        on_failure: Optional[Callable[[], None]] = None,
    ):
        self.beat = beat
        self.interval = interval
        self.on_failure = on_failure
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_ok: Optional[bool] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="roster-heartbeat", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def tick(self) -> bool:
        """Run one beat synchronously. Returns True when it succeeded."""
        try:
            self.beat()
            ok = True
        except Exception:
            logger.exception("Heartbeat failed")
            ok = False

        if ok != self._last_ok:
            logger.info(
                "heartbeat: %s -> %s",
                {None: "init", True: "ok", False: "failing"}[self._last_ok],
                "ok" if ok else "failing",
            )
            self._last_ok = ok

        if not ok and self.on_failure is not None:
            try:
                self.on_failure()
            except Exception:
                logger.exception("Heartbeat failure hook raised")
        return ok

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            self.tick()
