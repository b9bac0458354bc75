#!/usr/bin/env python3
"""
Service Dispatcher - asyncio front end of the codec worker

The dispatcher owns the worker for its whole life:

    UNINITIALIZED -> INITIALIZING -> READY -> SHUTTING_DOWN -> TERMINATED

Initialization is lazy and runs once as its own task; every caller awaits
it shielded, so a caller that gives up does not stop the start. Requests are queued FIFO, tagged with a uuid4 id, and a
single pump sends them one at a time, matching each response by id. Pipe
I/O runs in a dedicated single-thread executor so the event loop never
blocks. There is no restart path after shutdown.
"""

import asyncio
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..config import Settings, get_settings
from ..exceptions import DispatcherError, ProtocolError, protocol_error, service_unavailable
from ..models.activity import ActivityFile
from ..models.results import ResultModel
from ..models.spec import EncodeSpecifications
from ..utils import get_logger
from .protocol import RESULT_MODELS, MessageType, Request, Response
from .transport import Transport, create_transport

logger = get_logger(__name__)


class DispatcherState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    SHUTTING_DOWN = "shutting_down"
    TERMINATED = "terminated"


@dataclass
class ServiceResponse:
    """A worker result plus the wall-clock time the caller waited for it (ms)"""
    request_id: str
    type: MessageType
    result: ResultModel
    elapsed: float

    @property
    def ok(self) -> bool:
        return self.result.ok


@dataclass
class _Pending:
    request: Request
    future: asyncio.Future
    begin: float


class ServiceDispatcher:
    """Single-flight, FIFO request dispatcher over one codec worker"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport_factory: Optional[Callable[[], Transport]] = None,
    ):
        """
        Args:
            settings: Settings to use, the process-wide settings by default
            transport_factory: Builds the worker transport; by default the one
                selected by ``PACEFLOW_WORKER_MODE``
        """
        self.settings = settings or get_settings()
        self._transport_factory = transport_factory or (lambda: create_transport(self.settings))
        self._transport: Optional[Transport] = None
        self._state = DispatcherState.UNINITIALIZED
        self._init_task: Optional[asyncio.Future] = None
        self._shutdown_future: Optional[asyncio.Future] = None
        self._queue: Optional[asyncio.Queue] = None
        self._pump_task: Optional[asyncio.Task] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="paceflow-pipe")

    @property
    def state(self) -> DispatcherState:
        return self._state

    async def __aenter__(self) -> "ServiceDispatcher":
        await self.is_ready()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # Public API

    async def is_ready(self) -> bool:
        """Start the worker if needed and wait until it acknowledged readiness."""
        await self._ensure_ready()
        return True

    async def decode(self, *inputs: bytes) -> ServiceResponse:
        return await self._request(MessageType.DECODE, {'inputs': [bytes(data) for data in inputs]})

    async def encode(
        self,
        activities: Sequence[Union[ActivityFile, Dict[str, Any]]],
        spec: Union[EncodeSpecifications, Dict[str, Any]],
    ) -> ServiceResponse:
        payload = {
            'activities': [
                activity.to_wire() if isinstance(activity, ActivityFile) else activity
                for activity in activities
            ],
            'spec': spec.model_dump(by_alias=True) if isinstance(spec, EncodeSpecifications) else spec,
        }
        return await self._request(MessageType.ENCODE, payload)

    async def list_manufacturers(self) -> ServiceResponse:
        return await self._request(MessageType.MANUFACTURER_LIST)

    async def list_sports(self) -> ServiceResponse:
        return await self._request(MessageType.SPORT_LIST)

    async def shutdown(self) -> None:
        """
        Stop accepting requests, drain the queue in order, stop the worker.
        Concurrent callers wait for the same shutdown.
        """
        if self._state == DispatcherState.TERMINATED:
            return
        if self._shutdown_future is not None:
            await asyncio.shield(self._shutdown_future)
            return

        loop = asyncio.get_running_loop()
        self._shutdown_future = loop.create_future()
        try:
            await self._shutdown()
        finally:
            self._state = DispatcherState.TERMINATED
            self._executor.shutdown(wait=False)
            self._shutdown_future.set_result(None)
            logger.info("dispatcher terminated")

    # Lifecycle

    async def _ensure_ready(self) -> None:
        if self._state in (DispatcherState.SHUTTING_DOWN, DispatcherState.TERMINATED):
            raise service_unavailable("activity service is shut down", state=self._state.value)
        if self._state == DispatcherState.READY:
            return
        if self._init_task is None:
            self._state = DispatcherState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._start())
            # Mark retrieved; waiting callers re-raise it through the shield
            self._init_task.add_done_callback(lambda task: task.cancelled() or task.exception())
        # A cancelled caller must not cancel the start other callers share
        await asyncio.shield(self._init_task)

    async def _start(self) -> None:
        begin = time.perf_counter()
        try:
            await self._initialize()
        except Exception as e:
            error = e if isinstance(e, DispatcherError) else service_unavailable(
                f"codec worker failed to start: {e}"
            )
            logger.error("dispatcher initialization failed", error=str(error))
            if self._pump_task is not None and not self._pump_task.done():
                self._pump_task.cancel()
            await self._terminate()
            if error is e:
                raise
            raise error from e

        self._state = DispatcherState.READY
        logger.info("dispatcher ready", took_ms=round((time.perf_counter() - begin) * 1000, 2))

    async def _initialize(self) -> None:
        loop = asyncio.get_running_loop()
        self._transport = self._transport_factory()
        await loop.run_in_executor(self._executor, self._transport.start)
        self._queue = asyncio.Queue()
        self._pump_task = asyncio.create_task(self._pump(), name="paceflow-dispatcher-pump")
        await self._submit(MessageType.IS_READY, None, time.perf_counter())

    async def _shutdown(self) -> None:
        if self._state == DispatcherState.INITIALIZING:
            try:
                await asyncio.shield(self._init_task)
            except DispatcherError:
                return
        if self._state != DispatcherState.READY:
            return

        self._state = DispatcherState.SHUTTING_DOWN
        logger.info("dispatcher shutting down", queued=self._queue.qsize())
        # Already-queued requests drain first
        self._queue.put_nowait(None)
        await self._pump_task
        await self._teardown(send_shutdown=True)

    async def _terminate(self) -> None:
        """Give up on the worker: fail whatever is queued and release it."""
        self._state = DispatcherState.TERMINATED
        if self._queue is not None:
            self._fail_queued()
        await self._teardown()
        self._executor.shutdown(wait=False)

    async def _teardown(self, send_shutdown: bool = False) -> None:
        if self._transport is None:
            return
        loop = asyncio.get_running_loop()
        transport, self._transport = self._transport, None
        if send_shutdown and transport.alive:
            shutdown = Request(id=str(uuid.uuid4()), type=MessageType.SHUTDOWN)
            try:
                await loop.run_in_executor(self._executor, transport.send, shutdown.to_wire())
            except (OSError, EOFError) as e:
                logger.warning("could not deliver shutdown to codec worker", error=str(e))
        await loop.run_in_executor(self._executor, transport.close, self.settings.shutdown_timeout)

    # Requests

    async def _request(self, message_type: MessageType, payload: Any = None) -> ServiceResponse:
        begin = time.perf_counter()
        await self._ensure_ready()
        return await self._submit(message_type, payload, begin)

    async def _submit(self, message_type: MessageType, payload: Any, begin: float) -> ServiceResponse:
        if self._state in (DispatcherState.SHUTTING_DOWN, DispatcherState.TERMINATED):
            raise service_unavailable("activity service is shut down", state=self._state.value)

        request = Request(id=str(uuid.uuid4()), type=message_type, input=payload)
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Pending(request=request, future=future, begin=begin))
        return await future

    async def _pump(self) -> None:
        pending: Optional[_Pending] = None
        try:
            while True:
                pending = await self._queue.get()
                if pending is None:
                    break
                if not await self._serve(pending):
                    return
                pending = None
        except Exception as e:
            logger.exception("dispatcher pump failed", error=str(e))
            if pending is not None:
                self._resolve(pending, exception=protocol_error(
                    f"dispatcher failed: {e}", request_id=pending.request.id,
                ))
            await self._terminate()

    async def _serve(self, pending: _Pending) -> bool:
        """Send one request and settle its caller. False once the worker is unusable."""
        if pending.future.done():
            # Caller gave up before the request was sent
            return True

        loop = asyncio.get_running_loop()
        request = pending.request
        log = logger.bind(request_id=request.id, request_type=request.type.value)
        try:
            await loop.run_in_executor(self._executor, self._transport.send, request.to_wire())
        except (EOFError, OSError) as e:
            return await self._connection_lost(pending, log, e)
        except Exception as e:
            # Nothing reached the pipe; only this request fails
            log.error("request could not be sent", error=str(e))
            self._resolve(pending, exception=protocol_error(
                f"request could not be sent: {e}", request_id=request.id, request_type=request.type.value,
            ))
            return True

        try:
            message = await loop.run_in_executor(self._executor, self._transport.recv)
        except (EOFError, OSError) as e:
            return await self._connection_lost(pending, log, e)

        try:
            result = self._correlate(request, message)
        except ProtocolError as e:
            log.error("protocol fault", error=e.message)
            self._resolve(pending, exception=e)
            if e.details.get('fatal'):
                await self._terminate()
                return False
            return True

        elapsed = (time.perf_counter() - pending.begin) * 1000
        log.debug("request completed", elapsed_ms=round(elapsed, 2), err=result.err)
        self._resolve(pending, value=ServiceResponse(
            request_id=request.id, type=request.type, result=result, elapsed=elapsed,
        ))
        return True

    async def _connection_lost(self, pending: _Pending, log: Any, error: Exception) -> bool:
        request = pending.request
        log.error("codec worker connection lost", error=str(error))
        self._resolve(pending, exception=protocol_error(
            "codec worker connection lost", request_id=request.id, request_type=request.type.value,
        ))
        await self._terminate()
        return False

    def _correlate(self, request: Request, message: Any) -> ResultModel:
        """
        Validate a worker reply against the request it answers.

        Raises:
            ProtocolError: malformed, mis-correlated or rejected response;
                ``details['fatal']`` marks faults that desynchronize the pipe
        """
        try:
            response = Response.model_validate(message)
        except PydanticValidationError as e:
            raise protocol_error("malformed response from codec worker", fatal=True,
                                 errors=e.errors(include_url=False, include_context=False)) from e

        if response.id != request.id:
            raise protocol_error(
                f"response id {response.id!r} does not match request id {request.id!r}",
                fatal=True, request_id=request.id, response_id=response.id,
            )
        if response.error is not None:
            raise protocol_error(f"codec worker rejected request: {response.error}", request_id=request.id)
        if response.result is None:
            raise protocol_error("response carries no result", request_id=request.id)

        try:
            return RESULT_MODELS[request.type].model_validate(response.result)
        except PydanticValidationError as e:
            raise protocol_error(
                f"malformed {request.type.value} result",
                request_id=request.id, errors=e.errors(include_url=False, include_context=False),
            ) from e

    def _resolve(self, pending: _Pending, value: Any = None, exception: Optional[Exception] = None) -> None:
        if pending.future.done():
            return
        if exception is not None:
            pending.future.set_exception(exception)
        else:
            pending.future.set_result(value)

    def _fail_queued(self) -> None:
        drained: List[_Pending] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not None:
                drained.append(item)
        for pending in drained:
            self._resolve(pending, exception=service_unavailable(
                "codec worker is gone", request_id=pending.request.id,
            ))
