"""
PaceFlow Utils Package
"""
from .logging import (
    JSONFormatter,
    KeyValueFormatter,
    ColoredFormatter,
    setup_logging,
    setup_structlog,
    get_logger,
)

__all__ = [
    'JSONFormatter',
    'KeyValueFormatter',
    'ColoredFormatter',
    'setup_logging',
    'setup_structlog',
    'get_logger',
]
