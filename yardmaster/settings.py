"""
This module contains almost all the configuration settings for Yardmaster.
It defines paths, orchestrator and supervisor settings, and logging configuration.
It is used throughout the application to ensure consistent settings and paths.
"""

import os
import sys
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv(override=True)

#* --- Core Paths ---
HOME_DIR = pathlib.Path(os.getenv("YARDMASTER_HOME", pathlib.Path.home() / ".yardmaster")).expanduser()
VAR_DIR = HOME_DIR / "var"
STATE_PATH = VAR_DIR / "state.json"
PROC_DIR = VAR_DIR / "proc"
OVERRIDES_JSON_PATH = VAR_DIR / "overrides.json"

# Directory that relative process directories are resolved against.
PROJECT_DIR = pathlib.Path(os.getenv("YARDMASTER_PROJECT_DIR", HOME_DIR)).expanduser()
PROJECT_ID = os.getenv("YARDMASTER_PROJECT_ID", "default")

#* --- Executables ---
# The supervisor runs under the same interpreter as the orchestrator.
PYTHON_EXECUTABLE = os.getenv("PYTHON_EXECUTABLE", sys.executable)
DOCKER_EXECUTABLE = os.getenv("DOCKER_EXECUTABLE", "docker")
SUPERVISOR_MODULE = "yardmaster.local.script_entry.supervisor"
SUPERVISOR_PROCESS_TITLE = "Yardmaster - Supervisor"

#* --- Supervisor Settings ---
MAX_LINE_LENGTH = int(os.getenv("YARDMASTER_MAX_LINE_LENGTH", 8 * 1024))  # bytes per log record, excluding the terminator
SUPERVISOR_FAILURE_EXIT_CODE = 1
SUPERVISOR_DRAIN_TIMEOUT = 5        # seconds to flush logs after the child exits
SUPERVISOR_SPAWN_TIMEOUT = 10       # seconds to wait for the pid handshake
GRACEFUL_SHUTDOWN_TIMEOUT = 10      # seconds before force-killing

#* --- Orchestrator Settings ---
REAPER_INTERVAL_SECONDS = 2
DOCKER_COMMAND_TIMEOUT = 120

#* --- Logging ---
LOG_LEVEL = os.getenv("YARDMASTER_LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = False

# Grafana Loki (for observability)
LOKI_ENABLED = os.getenv("LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("LOKI_ORG_ID", "fake")
LOG_BUFFER_SIZE = 200
LOG_BUFFER_FLUSH_INTERVAL = 10

#* --- MODIFIABLE SETTINGS (Changeable at runtime via overrides.json) ---
MODIFIABLE_SETTINGS = {
    # Supervisor
    "MAX_LINE_LENGTH", "SUPERVISOR_DRAIN_TIMEOUT", "SUPERVISOR_SPAWN_TIMEOUT",
    "GRACEFUL_SHUTDOWN_TIMEOUT",
    # Orchestrator
    "REAPER_INTERVAL_SECONDS", "DOCKER_COMMAND_TIMEOUT",
    # Logging
    "LOG_BUFFER_SIZE", "LOG_BUFFER_FLUSH_INTERVAL",
}
