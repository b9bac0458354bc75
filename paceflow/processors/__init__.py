#!/usr/bin/env python3
"""
Processors module - Format codecs and record preprocessing
"""
from typing import Dict, Type

from ..exceptions import UnsupportedFileTypeError
from ..models.spec import FileType
from .fit import FitCodec
from .gpx import GpxCodec
from .interface import FormatCodec, detect_file_type, records_by_lap, widen_session_window
from .preprocessor import Preprocessor
from .tcx import TcxCodec

CODECS: Dict[FileType, Type[FormatCodec]] = {
    FileType.FIT: FitCodec,
    FileType.GPX: GpxCodec,
    FileType.TCX: TcxCodec,
}


def get_codec(file_type: FileType) -> FormatCodec:
    """Instantiate the codec for a file type."""
    try:
        return CODECS[FileType(file_type)]()
    except (KeyError, ValueError):
        raise UnsupportedFileTypeError(
            f"file type {file_type!r} is not supported", {'file_type': file_type}
        ) from None


__all__ = [
    # Interface
    'FormatCodec', 'detect_file_type', 'records_by_lap', 'widen_session_window',

    # Codecs
    'FitCodec', 'GpxCodec', 'TcxCodec', 'CODECS', 'get_codec',

    # Preprocessing
    'Preprocessor',
]
