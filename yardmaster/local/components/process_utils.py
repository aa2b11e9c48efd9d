import psutil
import logging
from typing import Iterable, List, Optional

log = logging.getLogger(__name__)


#* --- Process Status & Monitoring ---
def get_process(pid: int, created: Optional[float] = None) -> Optional[psutil.Process]:
    """
    Looks up a process, guarding against pid reuse.

    :param pid: The process id.
    :param created: The process creation time recorded when it was started.
        If given and the live process with this pid started at a different
        time, the pid has been reused and None is returned.
    :return: A psutil.Process, or None if no matching process exists.
    """
    if not pid:
        return None
    try:
        proc = psutil.Process(pid)
        if created is not None and abs(proc.create_time() - created) > 0.01:
            log.debug(f"PID {pid} was reused by another process.")
            return None
        return proc
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return None


def creation_time(pid: int) -> Optional[float]:
    """Returns the creation time of a process, or None if it is gone."""
    try:
        return psutil.Process(pid).create_time()
    except psutil.Error:
        return None


def is_running(proc: Optional[psutil.Process]) -> bool:
    """Reports whether a process is alive. Zombies count as dead."""
    if proc is None:
        return False
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # Exists but belongs to someone else.
        return True


#* --- Shutdown ---
def _terminate_processes(processes: Iterable[psutil.Process]) -> None:
    """Sends SIGTERM to each process."""
    for proc in processes:
        try:
            log.debug(f"Sending SIGTERM to {proc.name()} (PID {proc.pid})")
            proc.terminate()
        except psutil.NoSuchProcess:
            log.debug(f"Process {proc.pid} no longer exists, skipping termination.")


def _forceful_kill(processes: List[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate gracefully."""
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate gracefully. Forcing shutdown...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process {proc.name()} (PID {proc.pid}).")
            proc.kill()
        except psutil.NoSuchProcess:
            continue


def graceful_shutdown(signal_first: Iterable[psutil.Process], also_wait_for: Iterable[psutil.Process], timeout: float) -> None:
    """
    Terminates processes, waits, then kills whatever is still alive.

    :param signal_first: Processes that receive SIGTERM.
    :param also_wait_for: Processes expected to exit as a consequence (e.g. the
        children a supervisor forwards the signal to). They are killed too if
        still alive after the timeout.
    :param timeout: Seconds to wait before force-killing.
    """
    signalled = [p for p in signal_first if p is not None]
    waited = signalled + [p for p in also_wait_for if p is not None]
    if not waited:
        return

    _terminate_processes(signalled)
    try:
        _, alive = psutil.wait_procs(waited, timeout=timeout)
    except psutil.NoSuchProcess:
        alive = []

    _forceful_kill(alive)
    if alive:
        psutil.wait_procs(alive, timeout=timeout)
