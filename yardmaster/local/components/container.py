"""
The `container` component type, backed by a container engine client.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from yardmaster.errors import LifecycleError
from yardmaster.local.components.base import Lifecycle, Payload
from yardmaster.local.components.docker_client import DockerCLIClient
from yardmaster.local.runtime import ProjectConfig

log = logging.getLogger(__name__)


@dataclass
class ContainerSpec(Payload):
    image: str
    command: List[str] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)
    # docker --publish values, e.g. "8080:80"
    ports: List[str] = field(default_factory=list)
    # docker --volume values, e.g. "/data:/var/lib/data"
    volumes: List[str] = field(default_factory=list)

    def digest(self) -> str:
        return hashlib.sha256(self.to_json().encode()).hexdigest()


@dataclass
class ContainerState(Payload):
    image_id: str
    container_id: str
    running: bool = False
    spec_digest: str = ""


class ContainerLifecycle(Lifecycle):
    type_name = "container"
    spec_class = ContainerSpec
    state_class = ContainerState

    def __init__(self, config: ProjectConfig, client: Optional[Any] = None) -> None:
        """
        :param client: A container engine client; defaults to a DockerCLIClient
            built from the config.
        """
        super().__init__(config)
        if client is None:
            client = DockerCLIClient(config.docker_executable, config.docker_timeout)
        self.client = client

    @staticmethod
    def container_name(id: str) -> str:
        return f"yardmaster-{id}"

    #* --- Hooks ---
    def _initialize(self, id: str, spec: ContainerSpec) -> ContainerState:
        if not spec.image:
            raise LifecycleError(f"container component {id} has no image")

        image_id = self.client.pull(spec.image)
        container_id = self.client.create(
            self.container_name(id), spec.image, spec.command, spec.environment, spec.ports, spec.volumes,
        )
        self.client.start(container_id)
        log.info(f"Container component {id} started container {container_id[:12]} from '{spec.image}'.")
        return ContainerState(
            image_id=image_id,
            container_id=container_id,
            running=self._is_running(container_id),
            spec_digest=spec.digest(),
        )

    def _update(self, id: str, state: Optional[ContainerState], spec: ContainerSpec) -> ContainerState:
        if state is not None and state.spec_digest == spec.digest():
            return self._refresh(id, state)
        # Containers are immutable; a changed spec means a new container.
        if state is not None:
            self._remove(id, state)
        return self._initialize(id, spec)

    def _refresh(self, id: str, state: Optional[ContainerState]) -> ContainerState:
        if state is None:
            raise LifecycleError(f"container component {id} was never initialized")
        described = self.client.inspect(state.container_id)
        if described is None:
            raise LifecycleError(f"container {state.container_id[:12]} of component {id} no longer exists")
        return ContainerState(
            image_id=described.get("Image", state.image_id),
            container_id=state.container_id,
            running=bool(described.get("State", {}).get("Running")),
            spec_digest=state.spec_digest,
        )

    def _dispose(self, id: str, state: Optional[ContainerState]) -> None:
        if state is None:
            return
        self._remove(id, state)

    #* --- Helpers ---
    def _is_running(self, container_id: str) -> bool:
        described = self.client.inspect(container_id)
        return bool(described and described.get("State", {}).get("Running"))

    def _remove(self, id: str, state: ContainerState) -> None:
        if self._is_running(state.container_id):
            self.client.stop(state.container_id, self.config.shutdown_timeout)
        self.client.remove(state.container_id)
        log.info(f"Container component {id} removed container {state.container_id[:12]}.")
