import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from yardmaster.errors import YardmasterError
from yardmaster.local.config import effective_settings
from yardmaster.local.project import Project
from yardmaster.local.runtime import ProjectConfig
from yardmaster.local.state import JSONStateStore
from yardmaster.local.console.handler import (
    follow_component_logs,
    print_components,
    print_help,
    set_config,
    show_config,
    toggle_verbose_logging,
)

log = logging.getLogger(__name__)

_project: Optional[Project] = None


def get_project() -> Project:
    """Returns the console's Project, building it from the settings on first use."""
    global _project
    if _project is None:
        config = ProjectConfig.from_settings(effective_settings)
        _project = Project(
            effective_settings.PROJECT_ID,
            JSONStateStore(config.state_path),
            config,
            reaper_interval=effective_settings.REAPER_INTERVAL_SECONDS,
        )
    return _project


def set_project(project: Optional[Project]) -> None:
    """Replaces the console's Project, e.g. with one backed by a test store."""
    global _project
    _project = project


def _usage(text: str) -> None:
    print(f"Usage: {text}")


#* --- Commands ---
def handle_create(args: List[str]) -> None:
    if len(args) < 3:
        return _usage("create NAME TYPE SPEC_JSON")
    name, type, spec = args[0], args[1], " ".join(args[2:])
    id = get_project().create_component(name, type, spec)
    print(f"Created {name} ({id}).")


def handle_update(args: List[str]) -> None:
    if len(args) < 2:
        return _usage("update NAME SPEC_JSON")
    get_project().update_component(args[0], " ".join(args[1:]))
    print(f"Updated {args[0]}.")


def handle_refresh(args: List[str]) -> None:
    if args:
        for name in args:
            get_project().refresh_component(name)
    else:
        get_project().refresh()
    print("Refreshed.")


def handle_rename(args: List[str]) -> None:
    if len(args) != 2:
        return _usage("rename NAME NEW_NAME")
    get_project().rename_component(args[0], args[1])
    print(f"Renamed {args[0]} to {args[1]}.")


def handle_dispose(args: List[str]) -> None:
    if len(args) != 1:
        return _usage("dispose NAME")
    get_project().dispose_component(args[0])
    print(f"Disposed {args[0]}.")


def handle_delete(args: List[str]) -> None:
    if len(args) != 1:
        return _usage("delete NAME")
    get_project().delete_component(args[0])
    print(f"Deleted {args[0]}.")


def handle_delete_all(args: List[str]) -> None:
    get_project().delete()
    print("Deleted all components.")


def handle_apply(args: List[str]) -> None:
    if len(args) != 1:
        return _usage("apply MANIFEST.json")
    path = Path(args[0])
    try:
        manifest = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        log.error(f"Cannot read manifest '{path}': {e}")
        return
    summary = get_project().apply(manifest)
    for action, names in summary.items():
        if names:
            print(f"  {action}: {', '.join(names)}")


def handle_describe(args: List[str]) -> None:
    print_components(get_project().describe_components(args or None))


def handle_reap(args: List[str]) -> None:
    removed = get_project().reap()
    print(f"Removed {removed} disposed component(s).")


def handle_logs(args: List[str]) -> None:
    if len(args) != 1:
        return _usage("logs NAME")
    project = get_project()
    records = [record for record in project.describe_components([args[0]]) if record.is_live]
    if not records:
        print(f"No component named '{args[0]}'.")
        return
    if records[0].type != "process":
        print(f"'{args[0]}' is a {records[0].type} component; only process output can be followed.")
        return
    follow_component_logs(records[0], project.config.run_dir(records[0].id))


def handle_config(args: List[str]) -> None:
    sub_command = args[0].lower() if args else "show"
    if sub_command == "show":
        show_config()
    elif sub_command == "set" and len(args) >= 3:
        set_config(args[1], " ".join(args[2:]))
    else:
        _usage("config [show | set KEY VALUE]")


def _command_map(args: List[str]) -> Dict[str, Callable[[], Any]]:
    return {
        "create": lambda: handle_create(args),
        "update": lambda: handle_update(args),
        "refresh": lambda: handle_refresh(args),
        "rename": lambda: handle_rename(args),
        "dispose": lambda: handle_dispose(args),
        "delete": lambda: handle_delete(args),
        "delete-all": lambda: handle_delete_all(args),
        "apply": lambda: handle_apply(args),
        "describe": lambda: handle_describe(args),
        "reap": lambda: handle_reap(args),
        "logs": lambda: handle_logs(args),
        "config": lambda: handle_config(args),
        "verbose": toggle_verbose_logging,
        "help": print_help,
        "exit": lambda: True,
    }


def execute_command(command: str, args: List[str]) -> bool:
    """
    Runs one console command.

    Errors from the orchestrator are logged rather than raised.

    :return: True if the console should exit.
    """
    command_map = _command_map(args)
    if command not in command_map:
        log.info(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return False

    try:
        return command_map[command]() is True
    except YardmasterError as e:
        log.error(f"{command} failed: {e}")
        return False


def run_command(command: str, args: List[str]) -> int:
    """
    Runs one command for the non-interactive mode.

    :return: The exit status, 1 if the command is unknown or failed.
    """
    command_map = _command_map(args)
    if command not in command_map:
        log.error(f"Unknown command: '{command}'. Type 'help' for a list of commands.")
        return 1

    try:
        command_map[command]()
    except YardmasterError as e:
        log.error(f"{command} failed: {e}")
        return 1
    return 0
