import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


# Global set to track configured loggers and prevent duplicate handlers
_configured_loggers = set()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[int] = None,
    console: bool = True
):
    """
    Setup a logger with rotating file handler and console handler.

    Args:
        name: Logger name (will write to logs/<name>.log by default)
        log_file: Optional custom log file path
        level: Logging level (defaults to config.settings.LOG_LEVEL)
        console: Whether to add console handler

    Returns:
        Configured logger instance
    """
    from config.settings import LOG_LEVEL

    if level is None:
        level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)
    elif isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if name in _configured_loggers:
        return logger

    # Own handlers below, root would print everything twice
    logger.propagate = False

    if log_file is None:
        logs_dir = Path("logs")
        logs_dir.mkdir(exist_ok=True)
        log_file = logs_dir / f"{name}.log"
    else:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        str(log_file),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    file_handler.setLevel(level)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

    _configured_loggers.add(name)

    return logger
