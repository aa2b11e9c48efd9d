"""
Exception hierarchy shared by the orchestrator, the state store and the
lifecycle variants.

Every error raised across a package boundary derives from YardmasterError so
callers (the console, tests, an RPC layer) can catch the whole family at once.
"""

from typing import List, Optional


class YardmasterError(Exception):
    """Base class for all Yardmaster errors."""


class InvalidInputError(YardmasterError):
    """Bad caller input, detected before any side effect."""


class NotFoundError(YardmasterError):
    """A name or id does not resolve to a live component."""


class DuplicateNameError(YardmasterError):
    """Another live component of the project already uses the name."""


class UnsupportedTypeError(YardmasterError):
    """The component type has no lifecycle implementation."""


class StoreError(YardmasterError):
    """The persistence layer failed."""


class LifecycleError(YardmasterError):
    """A lifecycle variant's side effect failed."""


class SupervisorError(LifecycleError):
    """Spawning or talking to a process supervisor failed."""


class ProcessGoneError(LifecycleError):
    """The supervised child of a process component is no longer running."""


class BulkOperationError(YardmasterError):
    """
    Raised by whole-project operations (delete, refresh, apply).

    :param failures: (component name, exception) pairs, in the order they occurred.
    """

    def __init__(self, operation: str, failures: List[tuple]) -> None:
        self.operation = operation
        self.failures = list(failures)
        details = "; ".join(f"{name}: {err}" for name, err in self.failures)
        super().__init__(f"{operation} {details}")

    @property
    def component(self) -> Optional[str]:
        """Name of the first component that failed."""
        return self.failures[0][0] if self.failures else None

    @property
    def components(self) -> List[str]:
        return [name for name, _ in self.failures]
