"""
The state package.

Durable storage of component records. `StateStore` is the interface the
orchestrator consumes; `JSONStateStore` keeps everything in one JSON file.
"""

from .store import ComponentRecord, StateStore
from .statefile import JSONStateStore

__all__ = ["ComponentRecord", "StateStore", "JSONStateStore"]
