import json
import logging
import subprocess
from typing import Any, Dict, List, Optional

from yardmaster.errors import LifecycleError

log = logging.getLogger(__name__)


class DockerCLIClient:
    """
    Container engine client that drives the `docker` command line.

    Every method maps onto a single docker command; a non-zero exit or a
    timeout raises LifecycleError carrying docker's stderr.
    """

    def __init__(self, executable: str = "docker", timeout: float = 120) -> None:
        """
        :param executable: The docker binary to run.
        :param timeout: Seconds a single docker command may take.
        """
        self.executable = executable
        self.timeout = timeout

    def _run_docker(self, args: List[str], check: bool = True) -> subprocess.CompletedProcess:
        cmd = [self.executable, *args]
        log.debug(f"Running docker command: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise LifecycleError(f"docker {args[0]} timed out after {self.timeout}s") from e
        except OSError as e:
            raise LifecycleError(f"running {self.executable}: {e}") from e

        if check and result.returncode != 0:
            raise LifecycleError(
                f"docker {args[0]} failed (exit {result.returncode}): {result.stderr.strip()}"
            )
        return result

    #* --- Images ---
    def pull(self, image: str) -> str:
        """Pulls an image and returns its id."""
        self._run_docker(["pull", "--quiet", image])
        result = self._run_docker(["image", "inspect", "--format", "{{.Id}}", image])
        return result.stdout.strip()

    #* --- Containers ---
    def create(
        self,
        name: str,
        image: str,
        command: List[str],
        environment: Dict[str, str],
        ports: List[str],
        volumes: List[str],
    ) -> str:
        """Creates (but does not start) a container and returns its id."""
        args = ["create", "--name", name]
        for key, value in sorted(environment.items()):
            args += ["--env", f"{key}={value}"]
        for port in ports:
            args += ["--publish", port]
        for volume in volumes:
            args += ["--volume", volume]
        args += [image, *command]
        return self._run_docker(args).stdout.strip()

    def start(self, container_id: str) -> None:
        self._run_docker(["start", container_id])

    def inspect(self, container_id: str) -> Optional[Dict[str, Any]]:
        """Returns docker's description of a container, or None if it does not exist."""
        result = self._run_docker(["container", "inspect", container_id], check=False)
        if result.returncode != 0:
            if "no such" in result.stderr.lower():
                return None
            raise LifecycleError(f"docker inspect failed (exit {result.returncode}): {result.stderr.strip()}")
        try:
            described = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise LifecycleError(f"docker inspect returned malformed output: {e}") from e
        return described[0] if described else None

    def stop(self, container_id: str, timeout: float = 10) -> None:
        self._run_docker(["stop", "--time", str(int(timeout)), container_id])

    def remove(self, container_id: str) -> None:
        """Force-removes a container; a missing container is not an error."""
        result = self._run_docker(["rm", "--force", container_id], check=False)
        if result.returncode != 0 and "no such" not in result.stderr.lower():
            raise LifecycleError(f"docker rm failed (exit {result.returncode}): {result.stderr.strip()}")
