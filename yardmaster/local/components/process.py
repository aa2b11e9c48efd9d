"""
The `process` component type: a native program run under a Yardmaster
supervisor.

Initialize launches one supervisor per component. The supervisor starts the
program, reports the program's pid on its first stdout line and proxies the
program's stdout/stderr into the `out` and `err` named pipes of the
component's runtime directory. The state records both pids so that later
events can find (and stop) the pair without talking to the supervisor.
"""

import os
import shutil
import select
import logging
import subprocess
from pathlib import Path
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from yardmaster.errors import LifecycleError, ProcessGoneError, SupervisorError
from yardmaster.local.components import process_utils
from yardmaster.local.components.base import Lifecycle, Payload

log = logging.getLogger(__name__)

SUPERVISOR_LOG_NAME = "supervisor.log"


@dataclass
class ProcessSpec(Payload):
    program: str
    arguments: List[str] = field(default_factory=list)
    # Working directory, relative to the project directory.
    directory: Optional[str] = None
    # Overlaid onto the orchestrator's own environment.
    environment: Dict[str, str] = field(default_factory=dict)


@dataclass
class ProcessState(Payload):
    pid: int
    supervisor_pid: int
    run_dir: str
    pid_created: Optional[float] = None
    supervisor_created: Optional[float] = None
    started: Optional[str] = None


class ProcessLifecycle(Lifecycle):
    type_name = "process"
    spec_class = ProcessSpec
    state_class = ProcessState

    #* --- Hooks ---
    def _initialize(self, id: str, spec: ProcessSpec) -> ProcessState:
        if not spec.program:
            raise LifecycleError(f"process component {id} has no program")

        run_dir = self.config.run_dir(id)
        run_dir.mkdir(parents=True, exist_ok=True)
        supervisor = self._launch_supervisor(run_dir, spec)
        pid = self._read_pid(supervisor, run_dir, spec.program)

        log.info(f"Process component {id} started '{spec.program}' with PID {pid} (supervisor PID {supervisor.pid}).")
        return ProcessState(
            pid=pid,
            supervisor_pid=supervisor.pid,
            run_dir=str(run_dir),
            pid_created=process_utils.creation_time(pid),
            supervisor_created=process_utils.creation_time(supervisor.pid),
            started=datetime.now(timezone.utc).isoformat(),
        )

    def _update(self, id: str, state: Optional[ProcessState], spec: ProcessSpec) -> ProcessState:
        # A running program cannot take a new command line; restart it.
        if state is not None:
            self._stop(id, state, remove_run_dir=False)
        return self._initialize(id, spec)

    def _refresh(self, id: str, state: Optional[ProcessState]) -> ProcessState:
        if state is None:
            raise LifecycleError(f"process component {id} was never initialized")
        child = process_utils.get_process(state.pid, state.pid_created)
        if not process_utils.is_running(child):
            raise ProcessGoneError(f"process {state.pid} of component {id} is no longer running")
        return state

    def _dispose(self, id: str, state: Optional[ProcessState]) -> None:
        if state is None:
            shutil.rmtree(self.config.run_dir(id), ignore_errors=True)
            return
        self._stop(id, state, remove_run_dir=True)

    #* --- Helpers ---
    def _working_directory(self, spec: ProcessSpec) -> Path:
        if not spec.directory:
            return self.config.project_dir
        return self.config.project_dir / spec.directory

    def _supervisor_args(self, run_dir: Path, spec: ProcessSpec) -> List[str]:
        return [
            self.config.python_executable, "-m", self.config.supervisor_module,
            str(run_dir), spec.program, *spec.arguments,
        ]

    def _launch_supervisor(self, run_dir: Path, spec: ProcessSpec) -> subprocess.Popen:
        """Starts the supervisor in its own session, with its diagnostics going to a file."""
        env = os.environ.copy()
        env.update(spec.environment)
        env["YARDMASTER_MAX_LINE_LENGTH"] = str(self.config.max_line_length)
        cwd = self._working_directory(spec)
        args = self._supervisor_args(run_dir, spec)
        log.debug(f"Launching supervisor: {args} (cwd={cwd})")

        try:
            with (run_dir / SUPERVISOR_LOG_NAME).open("ab") as supervisor_log:
                return subprocess.Popen(
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=supervisor_log,
                    cwd=str(cwd),
                    env=env,
                    start_new_session=True,
                )
        except OSError as e:
            raise SupervisorError(f"launching supervisor for '{spec.program}': {e}") from e

    def _read_pid(self, supervisor: subprocess.Popen, run_dir: Path, program: str) -> int:
        """
        Reads the pid handshake from the supervisor's first stdout line.

        A missing or malformed line is a spawn failure whatever the exit code.
        """
        try:
            ready, _, _ = select.select([supervisor.stdout], [], [], self.config.spawn_timeout)
            line = supervisor.stdout.readline() if ready else b""
        finally:
            supervisor.stdout.close()

        try:
            pid = int(line.strip())
            if pid <= 0:
                raise ValueError(pid)
            return pid
        except ValueError:
            pass

        if not line:
            log.debug(f"No pid handshake from supervisor {supervisor.pid}; stopping it.")
        if supervisor.poll() is None:
            supervisor.kill()
        code = supervisor.wait()
        detail = _tail(run_dir / SUPERVISOR_LOG_NAME)
        raise SupervisorError(
            f"supervisor failed to start '{program}' (exit code {code})" + (f": {detail}" if detail else "")
        )

    def _stop(self, id: str, state: ProcessState, remove_run_dir: bool) -> None:
        supervisor = process_utils.get_process(state.supervisor_pid, state.supervisor_created)
        child = process_utils.get_process(state.pid, state.pid_created)

        if process_utils.is_running(supervisor):
            # The supervisor forwards SIGTERM to the child and exits with it.
            process_utils.graceful_shutdown([supervisor], [child], self.config.shutdown_timeout)
        elif process_utils.is_running(child):
            log.warning(f"Supervisor of component {id} is gone; terminating PID {state.pid} directly.")
            process_utils.graceful_shutdown([child], [], self.config.shutdown_timeout)
        else:
            log.debug(f"Process component {id} was already stopped.")

        if remove_run_dir:
            shutil.rmtree(state.run_dir, ignore_errors=True)
        log.info(f"Process component {id} stopped.")


def _tail(path: Path, lines: int = 5) -> str:
    """Returns the last few lines of a text file, or '' if unreadable."""
    try:
        content = path.read_text(errors="replace").strip().splitlines()
    except OSError:
        return ""
    return " | ".join(content[-lines:])
