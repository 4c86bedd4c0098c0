import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config.settings import Settings

LOG_FILE_MAX_BYTES_DEFAULT = 10 * 1024 * 1024  # 10 MB
LOG_FILE_BACKUP_COUNT_DEFAULT = 5
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s.%(funcName)s:%(lineno)d] - %(message)s"


def setup_logging(
    logger_name: str,
    log_level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    log_file_max_bytes: int = LOG_FILE_MAX_BYTES_DEFAULT,
    log_file_backup_count: int = LOG_FILE_BACKUP_COUNT_DEFAULT,
    console_output: bool = True,
    file_output: bool = True,
) -> logging.Logger:
    """
    Configures and returns a logger instance.

    Args:
        logger_name: The name for the logger, usually the application name.
        log_level: The minimum log level to capture.
        log_dir: The directory to store log files. Defaults to Settings.LOGS_DIR.
        log_file_max_bytes: Maximum size of a log file before rotation.
        log_file_backup_count: Number of backup log files to keep.
        console_output: Whether to output logs to stdout.
        file_output: Whether to write a rotating log file.

    Returns:
        A configured logger instance. Calling again with the same name only
        updates the level.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT)

    if console_output:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if file_output:
        log_dir = Settings.get_logs_dir(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        sanitized_logger_name = "".join(c if c.isalnum() or c in ("_", "-") else "_" for c in logger_name)
        file_handler = RotatingFileHandler(
            log_dir / f"{sanitized_logger_name}.log",
            maxBytes=log_file_max_bytes,
            backupCount=log_file_backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger
