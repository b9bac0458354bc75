"""
PaceFlow data models
"""

from .activity import (
    WorkoutType,
    Creator,
    FileId,
    ActivityInfo,
    FitField,
    FitMessage,
    Record,
    Lap,
    Session,
    ActivityFile,
    Summary,
    parse_activity,
    parse_activities,
)
from .catalog import Manufacturer, Product, Sport
from .spec import ToolMode, FileType, Marker, EncodeSpecifications
from .results import (
    DecodeResult,
    EncodedFile,
    EncodeResult,
    ManufacturerListResult,
    SportListResult,
)

__all__ = [
    'WorkoutType',
    'Creator',
    'FileId',
    'ActivityInfo',
    'FitField',
    'FitMessage',
    'Record',
    'Lap',
    'Session',
    'ActivityFile',
    'Summary',
    'parse_activity',
    'parse_activities',
    'Manufacturer',
    'Product',
    'Sport',
    'ToolMode',
    'FileType',
    'Marker',
    'EncodeSpecifications',
    'DecodeResult',
    'EncodedFile',
    'EncodeResult',
    'ManufacturerListResult',
    'SportListResult',
]
