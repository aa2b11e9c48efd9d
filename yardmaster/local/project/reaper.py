import logging
import threading
from typing import Callable, Optional

log = logging.getLogger(__name__)


class Reaper:
    """
    Removes disposed component records in the background.

    Calls `reap_fn` every `interval` seconds on a daemon thread, and as soon
    as possible after `wake()`. Errors from a pass are logged and the next
    pass tries again.
    """

    def __init__(self, reap_fn: Callable[[], int], interval: float) -> None:
        """
        :param reap_fn: Removes disposed records and returns how many it removed.
        :param interval: Seconds between passes.
        """
        self.reap_fn = reap_fn
        self.interval = interval
        self.stop_event = threading.Event()
        self.wake_event = threading.Event()
        self.thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self.thread is not None and self.thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self.stop_event.clear()
        self.thread = threading.Thread(target=self._loop, name="Reaper", daemon=True)
        self.thread.start()
        log.debug(f"Reaper started (interval {self.interval}s).")

    def wake(self) -> None:
        self.wake_event.set()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stops the thread after its current pass and runs one final pass."""
        if not self.running:
            return
        self.stop_event.set()
        self.wake_event.set()
        self.thread.join(timeout=timeout)
        log.debug("Reaper stopped.")

    def _loop(self) -> None:
        while True:
            self.wake_event.wait(self.interval)
            self.wake_event.clear()
            self._pass()
            if self.stop_event.is_set():
                return

    def _pass(self) -> None:
        try:
            removed = self.reap_fn()
            if removed:
                log.info(f"Reaper removed {removed} disposed component(s).")
        except Exception as e:
            log.error(f"Reaper pass failed: {e}", exc_info=True)
