import sys
from pathlib import Path
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class ProjectConfig:
    """
    Directories and tunables handed to a Project and to every lifecycle
    variant it resolves.

    Nothing below the console reads the process working directory or the
    settings module directly; it all arrives through one of these.
    """
    project_dir: Path
    var_dir: Path
    max_line_length: int = 8 * 1024
    spawn_timeout: float = 10
    shutdown_timeout: float = 10
    python_executable: str = sys.executable
    supervisor_module: str = "yardmaster.local.script_entry.supervisor"
    docker_executable: str = "docker"
    docker_timeout: float = 120

    @property
    def proc_dir(self) -> Path:
        """Root of the per-component runtime directories of process components."""
        return self.var_dir / "proc"

    @property
    def state_path(self) -> Path:
        return self.var_dir / "state.json"

    def run_dir(self, component_id: str) -> Path:
        return self.proc_dir / component_id

    @classmethod
    def from_settings(cls, settings: Optional[Any] = None, project_dir: Optional[Path] = None) -> "ProjectConfig":
        """
        Builds a config from the merged settings.

        :param settings: A MergedSettings-like object; defaults to the shared instance.
        :param project_dir: Overrides PROJECT_DIR from the settings.
        """
        if settings is None:
            from yardmaster.local.config import effective_settings as settings

        return cls(
            project_dir=Path(project_dir or settings.PROJECT_DIR),
            var_dir=Path(settings.VAR_DIR),
            max_line_length=settings.MAX_LINE_LENGTH,
            spawn_timeout=settings.SUPERVISOR_SPAWN_TIMEOUT,
            shutdown_timeout=settings.GRACEFUL_SHUTDOWN_TIMEOUT,
            python_executable=settings.PYTHON_EXECUTABLE,
            supervisor_module=settings.SUPERVISOR_MODULE,
            docker_executable=settings.DOCKER_EXECUTABLE,
            docker_timeout=settings.DOCKER_COMMAND_TIMEOUT,
        )
