"""
Entry point for a supervisor process.

Launched by the `process` component type as
`python -m yardmaster.local.script_entry.supervisor <runtime-dir> <program> [args...]`,
and installed as the `yardmaster-supervisor` command.
"""
import sys
import setproctitle
from yardmaster import settings
from yardmaster.local.supervisor import main


def run() -> None:
    setproctitle.setproctitle(settings.SUPERVISOR_PROCESS_TITLE)
    sys.exit(main())


if __name__ == "__main__":
    run()
