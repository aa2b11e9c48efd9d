import sys
import shlex
import logging
import threading
from typing import List, Optional

import yardmaster.local.console as console
from yardmaster.log.setup import setup_logging
from yardmaster.local.config import effective_settings

log = logging.getLogger("console")

CONSOLE_LOCK = threading.Lock()


def main(argv: Optional[List[str]] = None) -> int:
    """
    The main entry point for the console application.

    :return: The exit status. Non-interactive mode reports whether the command succeeded.
    """
    argv = sys.argv[1:] if argv is None else argv
    setup_logging(effective_settings.LOG_LEVEL)

    # Non-interactive mode for one-off commands
    if argv:
        command, args = argv[0].lower(), argv[1:]
        if "--verbose" in args:
            console.toggle_verbose_logging()
            args.remove("--verbose")
        return console.run_command(command, args)

    # Interactive mode
    print("--- Yardmaster Management Console ---")
    print(f"Project '{effective_settings.PROJECT_ID}', state in {effective_settings.STATE_PATH}")
    print("Type 'help' for a list of commands.")

    project = console.get_project()
    project.start_reaper()
    try:
        while True:
            try:
                # The input prompt must be outside the lock to not block background threads
                command_line_str = input("> ")
                with CONSOLE_LOCK:
                    command_line = shlex.split(command_line_str)
                    if not command_line:
                        continue
                    command, args = command_line[0].lower(), command_line[1:]
                    log.debug(f"Received command: {command}, args: {args}")
                    if console.execute_command(command, args):
                        break
            except ValueError as e:
                log.error(f"Cannot parse command line: {e}")
            except (KeyboardInterrupt, EOFError):
                log.warning("Exiting console.")
                break
            except Exception as e:
                log.error(f"An unexpected error occurred in the console: {e}", exc_info=True)
    finally:
        project.stop_reaper()
    return 0


if __name__ == "__main__":
    status = main()
    print("Exiting console application. See you next time!")
    sys.exit(status)
