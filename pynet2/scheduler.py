"""Per-site refresh timer."""
import logging
import threading
from typing import Callable, Optional

log = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60


class SiteScheduler:
    """Runs a callback now and then every ``interval`` seconds on a daemon thread.

    Each site owns its scheduler; stopping it prevents new cycles but does not
    interrupt a callback that is already running.
    """

    def __init__(self, interval: float, callback: Callable[[], object], name: str = "site",
                 logger: Optional[logging.Logger] = None):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.log = logger or log
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def start(self):
        if self.running:
            raise RuntimeError(f"Scheduler for {self.name} already running")
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=f"net2-{self.name}", daemon=True)
        self._thread.start()
        self.log.debug(f"Scheduler started for {self.name} (every {self.interval}s)")

    def stop(self, wait: bool = False, timeout: Optional[float] = None):
        self._stop.set()
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self.log.debug(f"Scheduler stopped for {self.name}")

    def _run(self):
        stop = self._stop
        while not stop.is_set():
            try:
                self.callback()
            except Exception as e:
                self.log.error(f"Scheduled refresh failed for {self.name}: {e}")
            if stop.wait(self.interval):
                break
