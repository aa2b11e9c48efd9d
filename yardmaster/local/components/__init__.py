"""
Lifecycle variants, one per component type, and the table that resolves a
type name to its variant.
"""

from typing import Callable, Dict, Optional

from yardmaster.errors import UnsupportedTypeError
from yardmaster.local.components.base import Lifecycle, Payload
from yardmaster.local.components.container import ContainerLifecycle, ContainerSpec, ContainerState
from yardmaster.local.components.docker_client import DockerCLIClient
from yardmaster.local.components.invalid import InvalidLifecycle
from yardmaster.local.components.process import ProcessLifecycle, ProcessSpec, ProcessState
from yardmaster.local.runtime import ProjectConfig

LifecycleFactory = Callable[[ProjectConfig], Lifecycle]

# New component types extend this table, never the call sites.
LIFECYCLES: Dict[str, LifecycleFactory] = {
    "process": ProcessLifecycle,
    "container": ContainerLifecycle,
}


def resolve_lifecycle(
    type: str,
    config: ProjectConfig,
    registry: Optional[Dict[str, LifecycleFactory]] = None,
) -> Lifecycle:
    """
    Builds the lifecycle variant for a component type.

    Unknown types resolve to an InvalidLifecycle instead of failing here, so
    the "unsupported type" error comes out of whichever event is attempted.

    :param type: The component's type string.
    :param config: Passed to the variant's constructor.
    :param registry: Alternative type table, mostly for tests.
    """
    factories = LIFECYCLES if registry is None else registry
    factory = factories.get(type)
    if factory is None:
        return InvalidLifecycle(UnsupportedTypeError(f"unsupported component type: {type!r}"), config)
    return factory(config)


__all__ = [
    "LIFECYCLES",
    "resolve_lifecycle",
    "Lifecycle",
    "Payload",
    "InvalidLifecycle",
    "ProcessLifecycle",
    "ProcessSpec",
    "ProcessState",
    "ContainerLifecycle",
    "ContainerSpec",
    "ContainerState",
    "DockerCLIClient",
]
