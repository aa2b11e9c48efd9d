"""
The Process Supervisor.

A standalone program that runs one child process, reports its pid, forwards
signals to it, proxies its output into named pipes and exits with its code.
"""
from .supervisor import Supervisor, main
from .proxy import LogProxy, ensure_fifo
from .signals import SignalForwarder

__all__ = ['Supervisor', 'main', 'LogProxy', 'ensure_fifo', 'SignalForwarder']
