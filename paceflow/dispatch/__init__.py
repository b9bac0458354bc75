#!/usr/bin/env python3
"""
Dispatch - asyncio service dispatcher and the codec worker it owns
"""

from .dispatcher import DispatcherState, ServiceDispatcher, ServiceResponse
from .protocol import MessageType, ReadyResult, Request, Response, RESULT_MODELS
from .transport import ProcessTransport, ThreadTransport, Transport, create_transport
from .worker import handle, run_worker, serve

__all__ = [
    # Dispatcher
    'ServiceDispatcher', 'ServiceResponse', 'DispatcherState',

    # Protocol
    'MessageType', 'Request', 'Response', 'ReadyResult', 'RESULT_MODELS',

    # Worker and transports
    'Transport', 'ProcessTransport', 'ThreadTransport', 'create_transport',
    'handle', 'serve', 'run_worker',
]
