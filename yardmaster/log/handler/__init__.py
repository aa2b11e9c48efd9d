"""
Logging handlers that ship records to backends other than the console.
"""

from .loki import LokiHandler

__all__ = ["LokiHandler"]
