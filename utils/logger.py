# utils/logger.py
import os
import logging
from typing import Dict, Iterable, Optional, Union


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# chatty third-party loggers pulled in by the S3 upload
NOISY_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def setup_logger(
    logger_name: str,
    log_file: Optional[str] = None,
    level: Union[int, str] = logging.INFO,
    log_dir: str = "logs",
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> logging.Logger:
    """
    Set up and return a logger with file and console handlers.

    Child loggers ("<logger_name>.<module>") propagate to the handlers set
    up here, so configuring the package logger once covers every module.

    Args:
        logger_name: Name of the logger
        log_file: Optional specific log filename (default: {logger_name}.log)
        level: Logging level, as a number or a name such as "DEBUG" (default: INFO)
        log_dir: Directory for log files (default: logs)
        quiet: Loggers capped at WARNING regardless of level

    Returns:
        Configured logger instance
    """
    os.makedirs(log_dir, exist_ok=True)

    if log_file is None:
        log_file = f"{logger_name.lower().replace(' ', '_').replace('.', '_')}.log"
    log_path = os.path.join(log_dir, log_file)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    # drop handlers left by an earlier setup
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = logging.FileHandler(log_path)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger.info(f"Log file is being saved to: {os.path.abspath(log_path)}")

    return logger


def log_layer_stats(logger: logging.Logger, stats: Dict[str, Dict[str, int]]) -> None:
    """Log one line per extent with its record count."""
    for layer, extents in stats.items():
        if not extents:
            logger.info(f"{layer}: no extents")
        for extent, count in extents.items():
            logger.info(f"{layer}.{extent}: {count} records")
