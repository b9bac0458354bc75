#!/usr/bin/env python3
"""
Results returned by the activity service.

Failures travel in ``err`` so that timing data stays available; callers must
ignore the timing fields when ``err`` is set. Timings are milliseconds.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .activity import ActivityFile
from .catalog import Manufacturer, Sport
from .spec import FileType


class ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    err: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.err is None


class DecodeResult(ResultModel):
    activities: List[ActivityFile] = Field(default_factory=list)
    decode_took: float = 0.0
    serialization_took: float = 0.0
    total_elapsed: float = 0.0


class EncodedFile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    type: FileType
    content: bytes = Field(alias="bytes", repr=False)

    @property
    def size(self) -> int:
        return len(self.content)


class EncodeResult(ResultModel):
    files: List[EncodedFile] = Field(default_factory=list)
    deserialize_input_took: float = 0.0
    encode_took: float = 0.0
    serialization_took: float = 0.0
    total_elapsed: float = 0.0


class ManufacturerListResult(ResultModel):
    manufacturers: List[Manufacturer] = Field(default_factory=list)


class SportListResult(ResultModel):
    sports: List[Sport] = Field(default_factory=list)
