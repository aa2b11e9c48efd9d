"""
Yardmaster: a local workload orchestrator.

Components (native processes and containers) are declared per project and
driven through a uniform lifecycle, with state kept in a JSON state file.
"""

__version__ = "0.1.0"
