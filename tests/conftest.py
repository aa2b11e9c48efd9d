"""
Shared pytest fixtures for the Yardmaster tests.

Provides:
- Temporary project/var directories and a ProjectConfig pointing at them
- A JSONStateStore on a temporary state file
- A deterministic clock
- A fake lifecycle variant whose failures are injected through its spec
- A fake container engine client
"""

import os
import tempfile
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Keep the settings module away from the real home directory.
os.environ.setdefault("YARDMASTER_HOME", tempfile.mkdtemp(prefix="yardmaster-test-"))

from yardmaster.errors import LifecycleError
from yardmaster.local.components.base import Lifecycle, Payload
from yardmaster.local.project import Project
from yardmaster.local.runtime import ProjectConfig
from yardmaster.local.state import JSONStateStore

REPO_ROOT = Path(__file__).resolve().parent.parent


# =============================================================================
# Directories, config, store, clock
# =============================================================================


@pytest.fixture
def config(tmp_path: Path) -> ProjectConfig:
    project_dir = tmp_path / "project"
    project_dir.mkdir()
    return ProjectConfig(
        project_dir=project_dir,
        var_dir=tmp_path / "var",
        spawn_timeout=15,
        shutdown_timeout=5,
    )


@pytest.fixture
def store(config: ProjectConfig) -> JSONStateStore:
    return JSONStateStore(config.state_path)


class TickingClock:
    """Returns a new, strictly increasing timestamp on every call."""

    def __init__(self) -> None:
        self.ticks = 0
        self.lock = threading.Lock()

    def __call__(self) -> str:
        with self.lock:
            self.ticks += 1
            return f"2024-01-01T00:00:{self.ticks:02d}+00:00"


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def supervisor_env() -> Dict[str, str]:
    """Environment that lets a spawned interpreter import this checkout."""
    return {"PYTHONPATH": str(REPO_ROOT)}


# =============================================================================
# Fake lifecycle variant
# =============================================================================


@dataclass
class FakeSpec(Payload):
    value: str = ""
    # Events ("initialize", "update", "refresh", "dispose") that should fail.
    fail: List[str] = field(default_factory=list)


@dataclass
class FakeState(Payload):
    value: str = ""
    fail: List[str] = field(default_factory=list)
    generation: int = 0


class FakeLifecycle(Lifecycle):
    """A lifecycle without side effects. Every call is appended to `calls`."""
    type_name = "fake"
    spec_class = FakeSpec
    state_class = FakeState

    def __init__(self, config: ProjectConfig, calls: List[tuple]) -> None:
        super().__init__(config)
        self.calls = calls

    def _check(self, event: str, fail: List[str]) -> None:
        if event in fail:
            raise LifecycleError(f"injected {event} failure")

    def _initialize(self, id: str, spec: FakeSpec) -> FakeState:
        self.calls.append(("initialize", id))
        self._check("initialize", spec.fail)
        return FakeState(spec.value, spec.fail, 1)

    def _update(self, id: str, state: Optional[FakeState], spec: FakeSpec) -> FakeState:
        self.calls.append(("update", id))
        self._check("update", spec.fail)
        return FakeState(spec.value, spec.fail, (state.generation if state else 0) + 1)

    def _refresh(self, id: str, state: Optional[FakeState]) -> FakeState:
        self.calls.append(("refresh", id))
        self._check("refresh", state.fail if state else [])
        return state

    def _dispose(self, id: str, state: Optional[FakeState]) -> None:
        self.calls.append(("dispose", id))
        self._check("dispose", state.fail if state else [])


class OtherFakeLifecycle(FakeLifecycle):
    type_name = "other"


@pytest.fixture
def lifecycle_calls() -> List[tuple]:
    return []


@pytest.fixture
def registry(lifecycle_calls: List[tuple]) -> Dict[str, Any]:
    return {
        "fake": lambda config: FakeLifecycle(config, lifecycle_calls),
        "other": lambda config: OtherFakeLifecycle(config, lifecycle_calls),
    }


@pytest.fixture
def project(store: JSONStateStore, config: ProjectConfig, clock: TickingClock, registry: Dict[str, Any]):
    project = Project("test", store, config, clock=clock, lifecycles=registry, reaper_interval=0.05)
    yield project
    project.stop_reaper()


# =============================================================================
# Fake container engine
# =============================================================================


class FakeContainerClient:
    """In-memory stand-in for DockerCLIClient."""

    def __init__(self) -> None:
        self.containers: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.counter = 0

    def pull(self, image: str) -> str:
        self.calls.append(("pull", image))
        return f"sha256:{image}"

    def create(self, name, image, command, environment, ports, volumes) -> str:
        self.calls.append(("create", name, image))
        self.counter += 1
        container_id = f"c{self.counter:063d}"
        self.containers[container_id] = {"Name": name, "Image": f"sha256:{image}", "State": {"Running": False}}
        return container_id

    def start(self, container_id: str) -> None:
        self.calls.append(("start", container_id))
        self.containers[container_id]["State"]["Running"] = True

    def inspect(self, container_id: str) -> Optional[Dict[str, Any]]:
        return self.containers.get(container_id)

    def stop(self, container_id: str, timeout: float = 10) -> None:
        self.calls.append(("stop", container_id))
        self.containers[container_id]["State"]["Running"] = False

    def remove(self, container_id: str) -> None:
        self.calls.append(("remove", container_id))
        self.containers.pop(container_id, None)


@pytest.fixture
def container_client() -> FakeContainerClient:
    return FakeContainerClient()
