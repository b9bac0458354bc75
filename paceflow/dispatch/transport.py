#!/usr/bin/env python3
"""
Worker transports - own the codec worker and the dispatcher end of its pipe

``ProcessTransport`` runs the worker in a separate process (spawn by
default); ``ThreadTransport`` runs it in a daemon thread of the current
process, for embedding and tests. Both expose blocking ``send``/``recv``;
the dispatcher calls them from its own executor thread.
"""

import multiprocessing
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..config import Settings, get_settings
from ..exceptions import ConfigurationError
from ..services.activity_service import ActivityService
from ..utils import get_logger
from .worker import run_worker, serve

logger = get_logger(__name__)


class Transport(ABC):
    """Worker lifecycle plus the dispatcher end of the pipe"""

    def __init__(self):
        self.conn = None

    @abstractmethod
    def start(self) -> None:
        pass

    @property
    @abstractmethod
    def alive(self) -> bool:
        pass

    @abstractmethod
    def _join(self, timeout: float) -> None:
        pass

    def send(self, message: Any) -> None:
        self.conn.send(message)

    def recv(self) -> Any:
        """
        Block until the worker replies.

        Raises:
            EOFError: the worker end of the pipe is closed
        """
        return self.conn.recv()

    def close(self, timeout: float = 5.0) -> None:
        """Wait for the worker to exit and release the pipe."""
        self._join(timeout)
        if self.conn is not None:
            self.conn.close()


class ProcessTransport(Transport):
    """Codec worker in a child process"""

    def __init__(self, start_method: str = "spawn", settings: Optional[Settings] = None):
        """
        Args:
            start_method: multiprocessing start method
            settings: Handed to the worker; it reads its own from the environment otherwise
        """
        super().__init__()
        try:
            context = multiprocessing.get_context(start_method)
        except ValueError as e:
            raise ConfigurationError(f"unknown start method '{start_method}'") from e

        self.conn, self._child_conn = context.Pipe()
        self.process = context.Process(
            target=run_worker,
            args=(self._child_conn, settings),
            name="paceflow-codec",
            daemon=True,
        )

    def start(self) -> None:
        self.process.start()
        # The child owns its end now; closing ours lets recv() see EOF when it dies
        self._child_conn.close()
        logger.info("codec worker process started", pid=self.process.pid)

    @property
    def alive(self) -> bool:
        return self.process.is_alive()

    def _join(self, timeout: float) -> None:
        if self.process.pid is None:
            return
        self.process.join(timeout)
        if self.process.is_alive():
            logger.warning("codec worker did not exit in time, terminating", pid=self.process.pid)
            self.process.terminate()
            self.process.join()


class ThreadTransport(Transport):
    """Codec worker in a daemon thread of this process"""

    def __init__(self, service: Optional[ActivityService] = None):
        super().__init__()
        self.conn, self._child_conn = multiprocessing.Pipe()
        self.thread = threading.Thread(
            target=serve,
            args=(self._child_conn, service),
            name="paceflow-codec",
            daemon=True,
        )

    def start(self) -> None:
        self.thread.start()
        logger.info("codec worker thread started")

    @property
    def alive(self) -> bool:
        return self.thread.is_alive()

    def _join(self, timeout: float) -> None:
        if self.thread.ident is None:
            return
        self.thread.join(timeout)
        if self.thread.is_alive():
            logger.warning("codec worker thread did not exit in time")


def create_transport(settings: Optional[Settings] = None) -> Transport:
    """Build the transport selected by ``PACEFLOW_WORKER_MODE``."""
    settings = settings or get_settings()
    if settings.worker_mode == "thread":
        return ThreadTransport(ActivityService(settings))
    return ProcessTransport(settings.start_method, settings)
