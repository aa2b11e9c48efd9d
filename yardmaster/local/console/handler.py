import os
import time
import select
import logging
import threading
from pathlib import Path
from typing import List, Optional

from yardmaster.local.config import effective_settings
from yardmaster.local.state import ComponentRecord

log = logging.getLogger(__name__)


#* --- Describe ---
def component_status(record: ComponentRecord) -> str:
    if record.disposed is not None:
        return "disposed"
    if record.initialized is not None:
        return "initialized"
    return "created"


def print_components(records: List[ComponentRecord]) -> None:
    """Prints component records as a table, followed by each one's state."""
    if not records:
        print("\nNo components.\n")
        return

    print(f"\n  {'NAME':<24} {'TYPE':<10} {'ID':<18} {'STATUS':<12} CREATED")
    for record in records:
        print(f"  {record.name:<24} {record.type:<10} {record.id:<18} {component_status(record):<12} {record.created}")
    print()
    for record in records:
        if record.state:
            print(f"  {record.name}: {record.state}")
    print()


#* --- Logs ---
def _follow_fifo(path: Path, logger: logging.Logger, level: int, stop_event: threading.Event) -> None:
    """
    Reads a supervisor pipe without blocking and logs each complete line.

    The pipe is opened non-blocking so that stopping works even while the
    supervisor has no writer attached.
    """
    try:
        fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    except OSError as e:
        log.error(f"Cannot open '{path}': {e}")
        return

    pending = b""
    try:
        while not stop_event.is_set():
            ready, _, _ = select.select([fd], [], [], 0.5)
            if not ready:
                continue
            try:
                chunk = os.read(fd, 64 * 1024)
            except BlockingIOError:
                continue
            if not chunk:
                # No writer attached right now.
                time.sleep(0.5)
                continue
            pending += chunk
            *lines, pending = pending.split(b"\n")
            for line in lines:
                logger.log(level, line.decode("utf-8", errors="replace"))
    finally:
        os.close(fd)


def follow_component_logs(record: ComponentRecord, run_dir: Path, stop_event: Optional[threading.Event] = None) -> None:
    """
    Attaches to a process component's `out` and `err` pipes and logs their
    lines under the `proc.<name>` logger until interrupted.
    """
    stop_event = stop_event or threading.Event()
    proc_logger = logging.getLogger(f"proc.{record.name}")
    threads = []
    for stream, level in (("out", logging.INFO), ("err", logging.ERROR)):
        path = run_dir / stream
        if not path.exists():
            print(f"No '{stream}' pipe for {record.name} at {path}.")
            continue
        thread = threading.Thread(
            target=_follow_fifo, args=(path, proc_logger, level, stop_event), name=f"follow-{stream}", daemon=True,
        )
        thread.start()
        threads.append(thread)

    if not threads:
        return
    print(f"\n--- Following output of {record.name} (Ctrl+C to stop) ---\n")
    try:
        while any(thread.is_alive() for thread in threads):
            for thread in threads:
                thread.join(timeout=0.5)
    except KeyboardInterrupt:
        print(f"\n--- Stopped following {record.name}. ---")
    finally:
        stop_event.set()
        for thread in threads:
            thread.join(timeout=2)


#* --- Config ---
def show_config() -> None:
    print("\n--- Modifiable Settings ---")
    for key in sorted(effective_settings.MODIFIABLE_SETTINGS):
        print(f"  {key} = {effective_settings.get(key, 'N/A')}")
    print(f"(Overrides file: {effective_settings.OVERRIDES_JSON_PATH})\n")


def set_config(key: str, value: str) -> None:
    """Persists a modifiable setting, coercing the value to the default's type."""
    key = key.upper()
    if key not in effective_settings.MODIFIABLE_SETTINGS:
        print(f"Error: '{key}' is not a modifiable setting.")
        return

    original_value = effective_settings.get(key)
    try:
        if isinstance(original_value, bool):
            new_value = value.lower() in ('true', '1', 't', 'yes', 'y')
        elif original_value is not None:
            new_value = type(original_value)(value)
        else:
            new_value = value
    except ValueError:
        print(f"Error: '{value}' is not a valid value for {key}.")
        return

    effective_settings.save_overrides({key: new_value})
    print(f"{key} set to {new_value}. Restart the console for every component to pick it up.")


#* --- Console ---
def toggle_verbose_logging() -> None:
    """Toggles verbose (DEBUG level) logging for the console handler."""
    effective_settings.VERBOSE_LOGGING = not effective_settings.VERBOSE_LOGGING
    new_level = logging.DEBUG if effective_settings.VERBOSE_LOGGING else logging.INFO

    for handler in logging.getLogger().handlers:
        if type(handler) is logging.StreamHandler:
            handler.setLevel(new_level)
            break
    else:
        print("Could not find console handler to modify level.")
        return

    status = "ON" if effective_settings.VERBOSE_LOGGING else "OFF"
    print(f"Verbose console logging is now {status}.")


def print_help() -> None:
    """Prints the main help text for the console."""
    print("\nAvailable commands:")
    print("  create NAME TYPE SPEC_JSON  - Create and initialize a component.")
    print("  update NAME SPEC_JSON       - Move a component to a new spec.")
    print("  refresh [NAME]              - Re-check one component, or all of them.")
    print("  rename NAME NEW_NAME        - Rename a component.")
    print("  dispose NAME                - Dispose a component; the reaper removes its record.")
    print("  delete NAME                 - Dispose a component and remove its record.")
    print("  delete-all                  - Delete every component of the project.")
    print("  apply MANIFEST.json         - Reconcile the project with a manifest file.")
    print("  describe [NAME...]          - List components and their state.")
    print("  reap                        - Remove the records of disposed components now.")
    print("  logs NAME                   - Follow the output of a process component.")
    print("  config [show | set KEY VAL] - Show or change modifiable settings.")
    print("  verbose                     - Toggle detailed DEBUG log output in the console.")
    print("  help                        - Show this help.")
    print("  exit                        - Exit the management console.")
    print()
