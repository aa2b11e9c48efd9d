import sys
import logging
from typing import TextIO, Union

from yardmaster import settings
from yardmaster.log.handler import LokiHandler

LOG_FORMAT = '%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s'


class MainFormatter(logging.Formatter):
    """
    Formats regular records with timestamp, level and logger name.

    Records from `proc.*` loggers carry a line of program output and are
    passed through unchanged.
    """

    def __init__(self) -> None:
        super().__init__(LOG_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def setup_logging(console_level: Union[int, str] = logging.INFO, stream: TextIO = sys.stdout) -> None:
    """
    Configures the root logger, replacing any handlers installed earlier.

    :param console_level: Level for console output, as a number or a name like "DEBUG".
    :param stream: Where console output goes. The supervisor passes stderr,
        because its stdout is reserved for the pid handshake.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Clear any existing handlers to prevent re-adding them on re-runs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    #* --- Console Handler ---
    console_handler = logging.StreamHandler(stream)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    #* --- Loki Handler (conditional) ---
    if settings.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(
                url=settings.LOKI_URL,
                org_id=settings.LOKI_ORG_ID,
                batch_size=settings.LOG_BUFFER_SIZE,
                flush_interval=settings.LOG_BUFFER_FLUSH_INTERVAL,
            )
            loki_handler.setLevel(logging.INFO)
            loki_handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root_logger.addHandler(loki_handler)
            root_logger.info(f"Grafana Loki logging handler initialized for {settings.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
