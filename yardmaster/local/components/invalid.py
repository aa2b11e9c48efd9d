from typing import Optional

from yardmaster.local.components.base import Lifecycle
from yardmaster.local.runtime import ProjectConfig


class InvalidLifecycle(Lifecycle):
    """
    Stands in for component types that cannot be handled.

    Every event fails with the error given at construction, unchanged, so an
    unknown type reports the same message whichever event resolved it.
    """
    type_name = "invalid"

    def __init__(self, err: Exception, config: Optional[ProjectConfig] = None) -> None:
        super().__init__(config)
        self.err = err

    def initialize(self, id: str, spec: str) -> str:
        raise self.err

    def update(self, id: str, old_state: str, new_spec: str) -> str:
        raise self.err

    def refresh(self, id: str, state: str) -> str:
        raise self.err

    def dispose(self, id: str, state: str) -> None:
        raise self.err
