import queue
import signal
import logging
import threading
import subprocess
from typing import Callable, Dict, Optional

log = logging.getLogger(__name__)

FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SignalForwarder:
    """
    Relays SIGINT and SIGTERM to the child and watches SIGCHLD.

    The handlers only put the signal number on a queue; a worker thread does
    the delivery, so a signal arriving while an earlier one is being forwarded
    waits its turn instead of being lost. Signals received before the child is
    attached are held until it is.
    """

    def __init__(self, on_child_exit: Callable[[], None]) -> None:
        """
        :param on_child_exit: Called from the worker thread when SIGCHLD arrives
            and the child has exited.
        """
        self.on_child_exit = on_child_exit
        self.child: Optional[subprocess.Popen] = None
        self._queue: "queue.SimpleQueue[Optional[int]]" = queue.SimpleQueue()
        self._previous: Dict[int, object] = {}
        self._attached = threading.Event()
        self._thread = threading.Thread(target=self._run, name="signal-forwarder", daemon=True)

    def install(self) -> None:
        """Installs the handlers. Must be called from the main thread."""
        for signum in (*FORWARDED_SIGNALS, signal.SIGCHLD):
            self._previous[signum] = signal.signal(signum, self._handle)
        self._thread.start()

    def attach(self, child: subprocess.Popen) -> None:
        self.child = child
        self._attached.set()

    def stop(self) -> None:
        """Stops the worker and restores the previous handlers."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        self._queue.put(None)
        self._attached.set()
        self._thread.join(timeout=1)

    def _handle(self, signum: int, frame) -> None:
        self._queue.put(signum)

    def _run(self) -> None:
        while True:
            signum = self._queue.get()
            if signum is None:
                return
            self._attached.wait()
            if self.child is None:
                continue

            if signum == signal.SIGCHLD:
                # Watchdog: the blocking wait may be the one that misses the exit.
                if self.child.poll() is not None:
                    self.on_child_exit()
                continue

            name = signal.Signals(signum).name
            log.info(f"Forwarding {name} to child PID {self.child.pid}.")
            try:
                self.child.send_signal(signum)
            except ProcessLookupError:
                log.debug(f"Child already gone; {name} not delivered.")
