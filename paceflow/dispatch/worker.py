#!/usr/bin/env python3
"""
Codec worker - serves ActivityService requests over one end of a pipe

The worker is the single execution context of the codec: it handles one
request at a time, in arrival order, until it receives ``shutdown`` or the
other end of the pipe goes away.
"""

import logging
import time
from multiprocessing.connection import Connection
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, get_settings
from ..services.activity_service import ActivityService
from ..utils import setup_logging
from .protocol import DecodeInput, EncodeInput, MessageType, ReadyResult, Request, Response

logger = logging.getLogger(__name__)


def handle(service: ActivityService, request: Request) -> Response:
    """Execute one request and wrap its result."""
    if request.type == MessageType.IS_READY:
        result = ReadyResult()
    elif request.type == MessageType.DECODE:
        result = service.decode(*DecodeInput.model_validate(request.input or {}).inputs)
    elif request.type == MessageType.ENCODE:
        payload = EncodeInput.model_validate(request.input or {})
        result = service.encode(payload.activities, payload.spec)
    elif request.type == MessageType.MANUFACTURER_LIST:
        result = service.list_manufacturers()
    elif request.type == MessageType.SPORT_LIST:
        result = service.list_sports()
    else:
        return Response(id=request.id, type=request.type, error=f"unexpected request type {request.type.value}")

    begin = time.perf_counter()
    wire = result.model_dump(by_alias=True)
    if 'serializationTook' in wire:
        took = (time.perf_counter() - begin) * 1000
        wire['serializationTook'] = took
        wire['totalElapsed'] = wire.get('totalElapsed', 0.0) + took
    return Response(id=request.id, type=request.type, result=wire)


def _request_id(message: Any) -> str:
    if isinstance(message, dict) and message.get('id') is not None:
        return str(message['id'])
    return ''


def serve(conn: Connection, service: Optional[ActivityService] = None) -> None:
    """
    Serve requests until shutdown.

    Args:
        conn: Worker end of the pipe
        service: Service to run requests on, built from settings if omitted
    """
    service = service or ActivityService()
    logger.debug("Codec worker started")
    try:
        while True:
            try:
                message = conn.recv()
            except EOFError:
                logger.debug("Dispatcher end of the pipe closed")
                break

            try:
                request = Request.model_validate(message)
            except PydanticValidationError as e:
                logger.warning(f"Rejected malformed request: {e.error_count()} error(s)")
                conn.send(Response(id=_request_id(message), error=f"malformed request: {e}").to_wire())
                continue

            if request.type == MessageType.SHUTDOWN:
                logger.debug("Codec worker shutting down")
                break

            try:
                response = handle(service, request)
            except PydanticValidationError as e:
                response = Response(id=request.id, type=request.type, error=f"invalid {request.type.value} input: {e}")
            conn.send(response.to_wire())
    finally:
        conn.close()


def run_worker(conn: Connection, settings: Optional[Settings] = None) -> None:
    """Process entry point: configure logging from settings, then serve."""
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.log_file)
    serve(conn, ActivityService(settings))
