#!/usr/bin/env python3
"""
Worker message protocol

Requests and responses travel over a multiprocessing pipe as plain Python
dictionaries (camelCase keys) and are validated on receipt. Every request
carries a unique id which its response echoes; ``shutdown`` gets no response.
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..models.results import (
    DecodeResult,
    EncodeResult,
    ManufacturerListResult,
    ResultModel,
    SportListResult,
)


class MessageType(str, Enum):
    IS_READY = "isReady"
    DECODE = "decode"
    ENCODE = "encode"
    MANUFACTURER_LIST = "manufacturerList"
    SPORT_LIST = "sportList"
    SHUTDOWN = "shutdown"


class ProtocolModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="python")


class ReadyResult(ResultModel):
    """Acknowledgement of an isReady request"""

    ready: bool = True


class DecodeInput(ProtocolModel):
    inputs: List[bytes] = Field(default_factory=list)


class EncodeInput(ProtocolModel):
    # Validated by the service so that bad activities come back as ``err``
    activities: List[Any] = Field(default_factory=list)
    spec: Dict[str, Any] = Field(default_factory=dict)


class Request(ProtocolModel):
    id: str
    type: MessageType
    input: Optional[Any] = None


class Response(ProtocolModel):
    """
    Worker reply. ``error`` is set when the worker could not process the
    request at all; codec failures are reported in ``result['err']``.
    """

    id: str
    type: Optional[MessageType] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


RESULT_MODELS: Dict[MessageType, Type[ResultModel]] = {
    MessageType.IS_READY: ReadyResult,
    MessageType.DECODE: DecodeResult,
    MessageType.ENCODE: EncodeResult,
    MessageType.MANUFACTURER_LIST: ManufacturerListResult,
    MessageType.SPORT_LIST: SportListResult,
}
