import sys
import logging
import threading
import subprocess
from pathlib import Path
from typing import List, Optional, Sequence

from yardmaster import settings
from yardmaster.errors import SupervisorError
from yardmaster.log.setup import setup_logging
from yardmaster.local.supervisor.proxy import LogProxy, ensure_fifo
from yardmaster.local.supervisor.signals import SignalForwarder

log = logging.getLogger(__name__)

STREAM_NAMES = ("out", "err")
USAGE = "usage: yardmaster-supervisor <runtime-dir> <program> [args...]"


class Supervisor:
    """
    Runs exactly one child program and exposes its output through named pipes.

    The child's pid is printed as the first line of stdout once it has been
    spawned; nothing else is ever written there. The child is never restarted.
    """

    def __init__(
        self,
        run_dir: Path,
        program: str,
        arguments: Sequence[str] = (),
        max_line_length: int = settings.MAX_LINE_LENGTH,
        drain_timeout: float = settings.SUPERVISOR_DRAIN_TIMEOUT,
        failure_exit_code: int = settings.SUPERVISOR_FAILURE_EXIT_CODE,
    ) -> None:
        """
        :param run_dir: Runtime directory that receives the `out` and `err` pipes.
        :param program: The program to run, looked up on PATH.
        :param arguments: Arguments passed to the program.
        :param max_line_length: Longest log record in bytes, excluding the newline.
        :param drain_timeout: Seconds to let the proxies flush after the child exits.
        :param failure_exit_code: Exit code used when the child's own is unusable.
        """
        self.run_dir = Path(run_dir)
        self.program = program
        self.arguments = list(arguments)
        self.max_line_length = max_line_length
        self.drain_timeout = drain_timeout
        self.failure_exit_code = failure_exit_code

        self.child: Optional[subprocess.Popen] = None
        self.proxies: List[LogProxy] = []
        self._exited = threading.Event()
        self._fatal: Optional[Exception] = None
        self._forwarder = SignalForwarder(on_child_exit=self._exited.set)

    def run(self) -> int:
        """Supervises the child until it exits and returns the exit code to use."""
        self._prepare_run_dir()
        self._forwarder.install()
        try:
            self._spawn()
            self._report_pid()
            log.info(f"Started '{self.program}' with PID {self.child.pid}.")

            self._start_proxies()
            threading.Thread(target=self._wait_for_child, name="child-waiter", daemon=True).start()
            while not self._exited.wait(1):
                pass

            if self._fatal is not None:
                self._kill_child()
                return self.failure_exit_code

            self._drain()
            return self._exit_code()
        finally:
            self._forwarder.stop()

    def _prepare_run_dir(self) -> None:
        try:
            self.run_dir.mkdir(parents=True, exist_ok=True)
            for name in STREAM_NAMES:
                ensure_fifo(self.run_dir / name)
        except OSError as e:
            raise SupervisorError(f"preparing runtime directory '{self.run_dir}': {e}") from e

    def _spawn(self) -> None:
        try:
            self.child = subprocess.Popen(
                [self.program, *self.arguments],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise SupervisorError(f"starting '{self.program}': {e}") from e
        self._forwarder.attach(self.child)

    def _report_pid(self) -> None:
        try:
            print(self.child.pid, file=sys.stdout, flush=True)
        except OSError as e:
            self._fatal = e
            self._kill_child()
            raise SupervisorError(f"reporting pid {self.child.pid}: {e}") from e

    def _start_proxies(self) -> None:
        streams = {"out": self.child.stdout, "err": self.child.stderr}
        for name in STREAM_NAMES:
            proxy = LogProxy(name, streams[name], self.run_dir / name, self.max_line_length, self._on_fatal)
            proxy.start()
            self.proxies.append(proxy)

    def _wait_for_child(self) -> None:
        try:
            self.child.wait()
        except OSError as e:
            log.error(f"Waiting for child PID {self.child.pid} failed: {e}")
        self._exited.set()

    def _on_fatal(self, err: Exception) -> None:
        if self._fatal is None:
            self._fatal = err
        self._exited.set()

    def _kill_child(self) -> None:
        log.error(f"Stopping child PID {self.child.pid} after a fatal error: {self._fatal}")
        if self.child.poll() is None:
            try:
                self.child.kill()
            except ProcessLookupError:
                pass
        self.child.wait()

    def _drain(self) -> None:
        """Gives the proxies a bounded time to copy the remaining output."""
        for proxy in self.proxies:
            proxy.join(timeout=self.drain_timeout)
            if proxy.is_alive():
                log.warning(f"{proxy.name} did not drain within {self.drain_timeout}s (no reader attached?).")

    def _exit_code(self) -> int:
        code = self.child.returncode
        if code is None or code < 0:
            log.info(f"Child PID {self.child.pid} ended without a usable exit code ({code}).")
            return self.failure_exit_code
        log.info(f"Child PID {self.child.pid} exited with code {code}.")
        return code


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Command line entry: `yardmaster-supervisor <runtime-dir> <program> [args...]`.
    """
    args = list(sys.argv[1:] if argv is None else argv)
    failure = settings.SUPERVISOR_FAILURE_EXIT_CODE
    if len(args) < 2:
        print(USAGE, file=sys.stderr)
        return failure

    # stdout carries the pid handshake only.
    setup_logging(settings.LOG_LEVEL, stream=sys.stderr)
    supervisor = Supervisor(Path(args[0]), args[1], args[2:])
    try:
        return supervisor.run()
    except SupervisorError as e:
        log.error(f"Supervisor failed: {e}")
        return failure
