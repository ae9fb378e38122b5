"""Logging configuration for Spendtree.

Everything goes to a dated log file. The console doubles as the CLI's
output channel, so INFO lines are printed bare and only warnings and errors
carry their level.
"""

import logging
from datetime import date
from config import Config

LOGGER_NAME = "spendtree"


class ConsoleFormatter(logging.Formatter):
    """Plain messages for INFO and below, "LEVEL - message" above."""

    def __init__(self):
        super().__init__("%(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno <= logging.INFO:
            return record.getMessage()
        return super().format(record)


def setup_logging(config: Config) -> logging.Logger:
    """Set up application logging with file and console handlers.

    Args:
        config: Application configuration containing log settings.

    Returns:
        Configured logger instance.
    """
    config.log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(config.log_level)

    # setup_logging may run more than once per process
    logger.handlers.clear()

    # spendtree-{date}.log, one file per day
    log_filename = f"{LOGGER_NAME}-{date.today().isoformat()}.log"
    file_handler = logging.FileHandler(config.log_dir / log_filename)
    file_handler.setLevel(config.log_level)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(config.log_level)
    console_handler.setFormatter(ConsoleFormatter())

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the application logger.

    Returns:
        The spendtree logger instance.
    """
    return logging.getLogger(LOGGER_NAME)
