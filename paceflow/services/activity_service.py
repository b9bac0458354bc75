#!/usr/bin/env python3
"""
Activity Service - decode, encode and catalog listing behind one interface

Every operation returns a result model; failures are reported in ``err``
and never raised, so timing data stays available to the caller. Timings are
milliseconds.
"""

import time
from typing import Any, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..analytics.summarizer import complete_session
from ..config import Settings, get_settings
from ..const import UNKNOWN
from ..exceptions import PaceflowError, UnsupportedFileTypeError, ValidationError
from ..models import catalog
from ..models.activity import ActivityFile, parse_activities
from ..models.results import (
    DecodeResult,
    EncodedFile,
    EncodeResult,
    ManufacturerListResult,
    SportListResult,
)
from ..models.spec import EncodeSpecifications, FileType
from ..processors import Preprocessor, detect_file_type, get_codec
from ..utils import get_logger
from .editor import ActivityEditor

logger = get_logger(__name__)


def _millis(since: float) -> float:
    return (time.perf_counter() - since) * 1000


class ActivityService:
    """Codec service boundary: bytes in, canonical activities out, and back"""

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize the activity service

        Args:
            settings: Settings to use, the process-wide settings by default
        """
        self.settings = settings or get_settings()
        self.preprocessor = Preprocessor(**self.settings.preprocessor_options())
        self.editor = ActivityEditor(file_prefix=self.settings.file_prefix)

    def decode(self, *inputs: bytes) -> DecodeResult:
        """
        Decode one or more files.

        Inputs are decoded independently; the first failing input aborts the
        call with ``err`` set to "[<index>]: <message>". Activities are
        sorted by creation time, then by their first sample.
        """
        begin = time.perf_counter()
        if not inputs:
            return DecodeResult(err="no input is given", total_elapsed=_millis(begin))

        activities: List[ActivityFile] = []
        for index, data in enumerate(inputs):
            try:
                activities.extend(self.decode_file(data))
            except PaceflowError as e:
                logger.warning("decode failed", index=index, error=e.message)
                return DecodeResult(err=f"[{index}]: {e.message}", total_elapsed=_millis(begin))
            except Exception as e:
                logger.exception("unexpected decode failure", index=index)
                return DecodeResult(err=f"[{index}]: {e}", total_elapsed=_millis(begin))

        activities.sort(key=lambda activity: activity.sort_key())
        decode_took = _millis(begin)
        logger.info("decoded", files=len(inputs), activities=len(activities), took_ms=round(decode_took, 2))

        return DecodeResult(
            activities=activities,
            decode_took=decode_took,
            total_elapsed=_millis(begin),
        )

    def decode_file(self, data: bytes) -> List[ActivityFile]:
        """
        Decode a single file and derive its missing metrics.

        Raises:
            UnsupportedFileTypeError: format not recognized
            DecodeError: malformed file
        """
        if not isinstance(data, (bytes, bytearray)):
            raise UnsupportedFileTypeError(f"input must be bytes, got {type(data).__name__}")

        file_type = detect_file_type(bytes(data))
        if file_type == FileType.UNSUPPORTED:
            raise UnsupportedFileTypeError("file format is not supported")

        activities = get_codec(file_type).decode(bytes(data))
        for activity in activities:
            self._finish(activity)
        return activities

    def _finish(self, activity: ActivityFile) -> None:
        creator = activity.creator
        if creator.name == UNKNOWN:
            name = catalog.creator_name(creator.manufacturer_id, creator.product)
            if name != UNKNOWN:
                creator = creator.model_copy(update={'name': name})
                activity.creator = creator

        for session in activity.sessions:
            session.records = self.preprocessor.run(session.sport, session.records)
            complete_session(session)
            session.time_created = creator.time_created
            session.creator_name = creator.name

    def encode(
        self,
        activities: Sequence[Union[ActivityFile, Any]],
        spec: Union[EncodeSpecifications, Any],
    ) -> EncodeResult:
        """
        Apply the spec to the activities and encode them into files.

        Activities and spec may be given as models or raw dictionaries; raw
        input is validated first.
        """
        begin = time.perf_counter()
        try:
            activities = parse_activities(list(activities or []))
            spec = self._parse_spec(spec)
        except PaceflowError as e:
            logger.warning("encode input rejected", error=e.message)
            return EncodeResult(err=e.message, total_elapsed=_millis(begin))
        deserialize_input_took = _millis(begin)

        encode_begin = time.perf_counter()
        try:
            edited = self.editor.apply(activities, spec)
            codec = get_codec(spec.target_file_type)
            contents = codec.encode(edited)
        except PaceflowError as e:
            logger.warning("encode failed", error=e.message, mode=spec.tool_mode.label)
            return EncodeResult(
                err=e.message,
                deserialize_input_took=deserialize_input_took,
                total_elapsed=_millis(begin),
            )
        except Exception as e:
            logger.exception("unexpected encode failure", mode=spec.tool_mode.label)
            return EncodeResult(
                err=f"encode: {e}",
                deserialize_input_took=deserialize_input_took,
                total_elapsed=_millis(begin),
            )

        names = self.editor.file_names(spec, len(contents), int(time.time()))
        files = [
            EncodedFile(name=name, type=spec.target_file_type, content=content)
            for name, content in zip(names, contents)
        ]
        encode_took = _millis(encode_begin)
        logger.info(
            "encoded",
            files=len(files),
            mode=spec.tool_mode.label,
            file_type=spec.target_file_type.extension,
            took_ms=round(encode_took, 2),
        )

        return EncodeResult(
            files=files,
            deserialize_input_took=deserialize_input_took,
            encode_took=encode_took,
            total_elapsed=_millis(begin),
        )

    def _parse_spec(self, spec: Any) -> EncodeSpecifications:
        if isinstance(spec, EncodeSpecifications):
            return spec
        try:
            return EncodeSpecifications.model_validate(spec or {})
        except PydanticValidationError as e:
            raise ValidationError(
                f"invalid encode specifications: {e.error_count()} validation error(s)",
                {'errors': e.errors(include_url=False, include_context=False)},
            ) from e

    def list_manufacturers(self) -> ManufacturerListResult:
        """Catalog manufacturers with their products, sorted by name."""
        return ManufacturerListResult(manufacturers=catalog.list_manufacturers())

    def list_sports(self) -> SportListResult:
        """Catalog sports, sorted by name."""
        return SportListResult(sports=catalog.list_sports())
