"""
The orchestrator: the Project control plane and its helpers.
"""
from .project import Project, encode_spec, same_spec
from .identity import gensym, is_valid_name, now_string
from .locks import KeyedLock
from .reaper import Reaper

__all__ = [
    'Project', 'encode_spec', 'same_spec',
    'gensym', 'is_valid_name', 'now_string',
    'KeyedLock', 'Reaper',
]
