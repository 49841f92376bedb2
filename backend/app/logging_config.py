import logging
import os
import sys
from datetime import datetime

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class ISO8601Formatter(logging.Formatter):
    def formatTime(self, record, datefmt=None):
        dt: datetime = datetime.fromtimestamp(record.created)
        return dt.isoformat(timespec="seconds")


def setup_logging(log_level: str | None = None):
    level_name = (log_level or os.environ.get("PINMUX_LOG_LEVEL", "INFO")).upper()
    formatter = ISO8601Formatter(fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s")

    root_logger = logging.getLogger()
    root_logger.setLevel(LOG_LEVEL_MAP.get(level_name, logging.INFO))

    if not root_logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)
