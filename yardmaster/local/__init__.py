"""
Local package for Yardmaster.

Holds everything that runs on this machine: the orchestrator (`project`),
the lifecycle variants (`components`), the state store (`state`), the
process supervisor (`supervisor`) and the management console (`console`).
"""

from .config import effective_settings
from .runtime import ProjectConfig

__all__ = ["effective_settings", "ProjectConfig"]
