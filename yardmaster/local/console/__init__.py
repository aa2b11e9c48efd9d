"""
This module initializes the console package, exposing command execution
(interactive and one-shot), verbose logging toggling and the help text.
"""

from .process import execute_command, get_project, run_command, set_project
from .handler import toggle_verbose_logging, print_help

__all__ = ["execute_command", "run_command", "get_project", "set_project", "toggle_verbose_logging", "print_help"]
