"""Structured logging infrastructure with verbosity levels and secret redaction."""

import copy
import logging
import logging.handlers
from typing import Any, Dict, Optional

import colorlog

LOGGER_NAME = 'anthill_migrator'

SENSITIVE_FIELDS = {'password', 'keystore_password', 'token', 'secret'}

REDACTED = "***REDACTED***"


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with configurable verbosity levels.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit log level string; overrides verbosity

    Returns:
        Configured project logger

    Raises:
        ValueError: If level is not a known log level
    """
    if level:
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        level_upper = level.upper()
        if level_upper not in allowed_levels:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(allowed_levels)}"
            )
        log_level = getattr(logging, level_upper)
    elif verbosity >= 2:
        log_level = logging.DEBUG
    elif verbosity >= 1:
        log_level = logging.INFO
    else:
        log_level = logging.WARNING

    if log_format is None:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    if date_format is None:
        date_format = '%Y-%m-%d %H:%M:%S'

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {e}")
        else:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")
    else:
        logger.info(f"Console logging only. Level: {logging.getLevelName(log_level)}")

    return logger


def log_section(title: str) -> None:
    """
    Log a decorative section header.

    Args:
        title: Section title to display
    """
    logger = logging.getLogger(LOGGER_NAME)

    separator = "=" * 60
    logger.info("")
    logger.info(separator)
    logger.info(f"  {title.upper()}")
    logger.info(separator)
    logger.info("")


def log_config(config: Dict[str, Any]) -> None:
    """
    Log sanitized configuration for debugging.

    Args:
        config: Configuration dictionary to log
    """
    logger = logging.getLogger(LOGGER_NAME)

    sanitized = sanitize_config(config)

    log_section("Configuration")

    anthill = sanitized.get('anthill', {})
    logger.info(f"Anthill Server: {anthill.get('scheme', 'https')}://"
                f"{anthill.get('host', 'Not Set')}:{anthill.get('port', 'Not Set')}")
    logger.info(f"Username: {anthill.get('username', 'Not Set')}")
    if anthill.get('password'):
        logger.info(f"Password: {anthill['password']}")
    if anthill.get('keystore_path'):
        logger.info(f"Keystore: {anthill['keystore_path']}")
    if anthill.get('keystore_password'):
        logger.info(f"Keystore Password: {anthill['keystore_password']}")

    logger.info("")

    migration = sanitized.get('migration', {})
    logger.info(f"Workflow ID: {migration.get('workflow_id', 'Not Set')}")
    logger.info(f"Skipped Step Kinds: {migration.get('skip_kinds') or 'None'}")
    logger.info(f"Report Path: {migration.get('report_path', 'Not Set')}")


def sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a copy of the configuration with secrets masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    def mask_sensitive(data: Any) -> Any:
        if isinstance(data, dict):
            masked = {}
            for key, value in data.items():
                is_sensitive = any(sensitive in str(key).lower() for sensitive in SENSITIVE_FIELDS)
                if is_sensitive and isinstance(value, str) and value:
                    masked[key] = REDACTED
                else:
                    masked[key] = mask_sensitive(value)
            return masked
        elif isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        return data

    return mask_sensitive(copy.deepcopy(config))


__all__ = [
    'LOGGER_NAME',
    'setup_logging',
    'log_section',
    'log_config',
    'sanitize_config'
]
