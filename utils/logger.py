import logging
import os
from logging.handlers import RotatingFileHandler

import colorlog

LOGGER_NAME = "spotmerge"
SUCCESS = 25

logging.addLevelName(SUCCESS, "SUCCESS")

_logger = logging.getLogger(LOGGER_NAME)


def setup_logging() -> None:
    """Configure console (coloured) and optional rotating-file logging."""
    log_level = os.getenv("SPOTMERGE_LOG_LEVEL", "INFO").upper()
    log_file = os.getenv("SPOTMERGE_LOG_FILE")
    max_bytes = int(os.getenv("SPOTMERGE_LOG_FILE_MAX_BYTES", "10485760"))  # 10 MB
    backup_count = int(os.getenv("SPOTMERGE_LOG_FILE_BACKUP_COUNT", "5"))

    root = logging.getLogger()
    root.setLevel(log_level)

    if root.hasHandlers():
        return

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "bold_blue",
                "INFO": "reset",
                "SUCCESS": "bold_green",
                "WARNING": "bold_yellow",
                "ERROR": "bold_red",
                "CRITICAL": "bold_purple",
            },
        )
    )
    root.addHandler(console_handler)

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s - (%(filename)s:%(lineno)d)")
        )
        root.addHandler(file_handler)


def log_info(message: str) -> None:
    _logger.info(message)


def log_success(message: str) -> None:
    _logger.log(SUCCESS, message)


def log_warning(message: str) -> None:
    _logger.warning(message)


def log_error(message: str) -> None:
    _logger.error(message)
