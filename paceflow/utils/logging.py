"""
Logging configuration and utilities for PaceFlow.

This module provides structured logging configuration with support for
console and JSON output, and a structlog layer used by the service and
dispatcher modules.
"""

import json
import logging
import logging.config
import sys
from datetime import datetime
from typing import Optional

import structlog
from structlog.typing import FilteringBoundLogger

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename',
    'module', 'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
}

_configured = False


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for log shipping.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class KeyValueFormatter(logging.Formatter):
    """
    Plain formatter that appends the structured fields of a record as
    ``key=value`` pairs.
    """

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = [
            f"{key}={value}" for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS
        ]
        if extras:
            line = f"{line} " + " ".join(extras)
        return line


class ColoredFormatter(KeyValueFormatter):
    """
    Colored formatter for console output.
    """

    COLORS = {
        'DEBUG': '\033[36m',    # Cyan
        'INFO': '\033[32m',     # Green
        'WARNING': '\033[33m',  # Yellow
        'ERROR': '\033[31m',    # Red
        'CRITICAL': '\033[35m', # Magenta
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.COLORS.get(record.levelname, '')
        # Work on a copy so other handlers see the plain level name
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(
    level: str = "INFO",
    format_type: str = "console",
    log_file: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Setup logging configuration for PaceFlow.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Output format ('console', 'json')
        log_file: Optional log file path
        force: Re-apply configuration even if already configured
    """
    global _configured
    if _configured and not force:
        return

    log_level = getattr(logging, level.upper(), logging.INFO)

    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'console': {
                'class': 'paceflow.utils.logging.ColoredFormatter',
                'format': '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S',
            },
            'json': {
                'class': 'paceflow.utils.logging.JSONFormatter',
            },
            'file': {
                'class': 'paceflow.utils.logging.KeyValueFormatter',
                'format': '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                'datefmt': '%Y-%m-%d %H:%M:%S',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': log_level,
                'formatter': format_type,
                'stream': sys.stderr,
            },
        },
        'loggers': {
            'paceflow': {
                'level': log_level,
                'handlers': ['console'],
                'propagate': False,
            },
            'fitparse': {
                'level': 'WARNING',
                'handlers': ['console'],
                'propagate': False,
            },
        },
        'root': {
            'level': 'WARNING',
            'handlers': ['console'],
        },
    }

    if log_file:
        config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': log_level,
            'formatter': 'file',
            'filename': log_file,
            'maxBytes': 10_000_000,  # 10MB
            'backupCount': 5,
        }
        for logger_config in config['loggers'].values():
            logger_config['handlers'].append('file')
        config['root']['handlers'].append('file')

    logging.config.dictConfig(config)
    setup_structlog(level, format_type)
    _configured = True


def setup_structlog(level: str = "INFO", format_type: str = "console") -> None:
    """
    Route structlog events through the stdlib ``paceflow`` loggers.

    The event becomes the record message and its key-value pairs become
    record attributes, so the stdlib formatters alone decide the layout:
    ``key=value`` suffixes on the console, top-level fields in JSON.

    Args:
        level: Logging level
        format_type: Unused, kept so callers configure both layers alike
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str, **context) -> FilteringBoundLogger:
    """
    Get a structured logger, optionally bound to context.

    Args:
        name: Logger name, usually ``__name__``
        **context: Key-value pairs bound to every event

    Returns:
        Structured logger
    """
    logger = structlog.get_logger(name)
    if context:
        logger = logger.bind(**context)
    return logger
