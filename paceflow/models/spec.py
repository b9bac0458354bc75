#!/usr/bin/env python3
"""
Edit directives supplied by the caller before encoding.
"""

from enum import IntEnum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from ..const import UNKNOWN


class ToolMode(IntEnum):
    """How input activities map onto output files"""

    UNKNOWN = 0
    EDIT = 1
    COMBINE = 2
    SPLIT_PER_SESSION = 3

    @property
    def label(self) -> str:
        return {
            ToolMode.EDIT: "edit",
            ToolMode.COMBINE: "combine",
            ToolMode.SPLIT_PER_SESSION: "split",
        }.get(self, "unknown")

    @classmethod
    def from_label(cls, label: str) -> "ToolMode":
        for mode in cls:
            if mode.label == label.lower():
                return mode
        return cls.UNKNOWN


class FileType(IntEnum):
    UNSUPPORTED = 0
    FIT = 1
    GPX = 2
    TCX = 3

    @property
    def extension(self) -> str:
        return self.name.lower() if self != FileType.UNSUPPORTED else "unsupported"

    @classmethod
    def from_extension(cls, value: str) -> "FileType":
        text = value.lower().lstrip(".")
        for file_type in (cls.FIT, cls.GPX, cls.TCX):
            if file_type.extension == text:
                return file_type
        return cls.UNSUPPORTED


class SpecModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Marker(SpecModel):
    """Half-open record index range [start_n, end_n) over one session"""

    start_n: int = Field(..., ge=0)
    end_n: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_order(self) -> "Marker":
        if self.end_n < self.start_n:
            raise ValueError(f"marker end ({self.end_n}) is before its start ({self.start_n})")
        return self

    @classmethod
    def whole(cls, size: int) -> "Marker":
        return cls(start_n=0, end_n=size)

    def covers(self, size: int) -> bool:
        """Whether the marker keeps all of a session of the given size."""
        return self.start_n == 0 and self.end_n >= size

    def contains(self, index: int) -> bool:
        return self.start_n <= index < self.end_n


class EncodeSpecifications(SpecModel):
    """
    Caller-supplied edit directive bundle.

    ``sports`` holds one label per session across all input activities
    (``None`` keeps the session's sport); EDIT and COMBINE also accept a
    single label applied to every session. Marker lists, when non-empty,
    hold exactly one marker per session.
    """

    tool_mode: ToolMode = ToolMode.EDIT
    target_file_type: FileType = FileType.FIT
    manufacturer_id: Optional[int] = Field(default=None, ge=0)
    product_id: Optional[int] = Field(default=None, ge=0)
    device_name: str = UNKNOWN
    sports: List[Optional[str]] = Field(default_factory=list)
    trim_markers: List[Marker] = Field(default_factory=list)
    conceal_markers: List[Marker] = Field(default_factory=list)
    remove_fields: List[str] = Field(default_factory=list)

    @field_validator("device_name", mode="before")
    @classmethod
    def _default_device_name(cls, v):
        if v is None or not str(v).strip():
            return UNKNOWN
        return v

    @field_validator("sports", mode="before")
    @classmethod
    def _blank_sport_keeps(cls, v):
        if v is None:
            return []
        return [s if s is None or str(s).strip() else None for s in v]

    @classmethod
    def identity(
        cls,
        activities: list,
        file_type: Union[FileType, int] = FileType.FIT,
        tool_mode: ToolMode = ToolMode.EDIT,
    ) -> "EncodeSpecifications":
        """
        Spec that re-encodes activities without edits, keeping the first
        file's creator identity.
        """
        creator = activities[0].creator if activities else None
        return cls(
            tool_mode=tool_mode,
            target_file_type=FileType(file_type),
            manufacturer_id=creator.manufacturer_id if creator else None,
            product_id=creator.product if creator else None,
            device_name=creator.name if creator else UNKNOWN,
            sports=[None for activity in activities for _ in activity.sessions],
        )
