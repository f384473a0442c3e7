"""
Logging configuration for the Cognito session service
"""
import logging
import sys
from typing import Optional
from .config import get_config

config = get_config()

# botocore logs full request bodies (passwords, tokens) at DEBUG
QUIET_LOGGERS = ("boto3", "botocore", "urllib3")


def _resolve_level() -> int:
    """LOG_LEVEL wins over DEBUG; unknown names fall back to INFO"""
    if config.LOG_LEVEL:
        level = logging.getLevelName(config.LOG_LEVEL.upper())
        return level if isinstance(level, int) else logging.INFO
    return logging.DEBUG if config.DEBUG else logging.INFO


def setup_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Setup logger with appropriate configuration

    Args:
        name: Logger name (defaults to __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name or __name__)

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    log_level = _resolve_level()
    logger.setLevel(log_level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    formatter = logging.Formatter(
        fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def quiet_aws_loggers() -> None:
    """Keep AWS SDK loggers at WARNING whatever the service log level"""
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


logger = setup_logger('cognito_session')
quiet_aws_loggers()
