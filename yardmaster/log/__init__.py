"""
Logging setup for Yardmaster: console output plus optional Grafana Loki shipping.
"""

from .setup import setup_logging, MainFormatter

__all__ = ["setup_logging", "MainFormatter"]
