#!/usr/bin/env python3
"""
PaceFlow - Activity file normalization, analytics and re-encoding
Decodes FIT, GPX and TCX recordings into one canonical model, derives summary
metrics, and encodes edited, combined or split activities back into files.
"""

# Setup logging first
from .config import get_settings
from .utils import setup_logging

_settings = get_settings()
setup_logging(_settings.log_level, _settings.log_format, _settings.log_file)

# Canonical model
from .models import (
    ActivityFile, Session, Lap, Record, Creator, Summary,
    EncodeSpecifications, Marker, ToolMode, FileType,
    DecodeResult, EncodeResult,
)

# Service boundary
from .services import ActivityService, ActivityEditor

# Dispatcher
from .dispatch import ServiceDispatcher, ServiceResponse, DispatcherState

# Errors
from .exceptions import (
    PaceflowError, ValidationError, DecodeError, EncodeError,
    EncodeSpecificationError, ServiceUnavailableError, ProtocolError,
)

__version__ = "0.1.0"

__all__ = [
    # Models
    'ActivityFile', 'Session', 'Lap', 'Record', 'Creator', 'Summary',
    'EncodeSpecifications', 'Marker', 'ToolMode', 'FileType',
    'DecodeResult', 'EncodeResult',

    # Services
    'ActivityService', 'ActivityEditor',

    # Dispatcher
    'ServiceDispatcher', 'ServiceResponse', 'DispatcherState',

    # Errors
    'PaceflowError', 'ValidationError', 'DecodeError', 'EncodeError',
    'EncodeSpecificationError', 'ServiceUnavailableError', 'ProtocolError',
]
