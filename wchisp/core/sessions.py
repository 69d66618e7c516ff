"""Handle-based tracking of open device sessions."""

from __future__ import annotations

import itertools
import logging
import threading

from wchisp.core.errors import SessionError
from wchisp.core.flashing import Flasher
from wchisp.core.registry import ChipRegistry
from wchisp.core.settings import ProtocolSettings
from wchisp.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class SessionManager:
    """Maps opaque integer handles to connected flashers.

    The lock only guards the mapping. Identification and transport teardown
    happen outside it, so a slow device never blocks other sessions.
    """

    def __init__(self, registry: ChipRegistry, settings: ProtocolSettings | None = None) -> None:
        self.registry = registry
        self.settings = settings or ProtocolSettings()
        self._sessions: dict[int, Flasher] = {}
        self._handles = itertools.count(1)
        self._lock = threading.Lock()

    def open(self, transport: Transport) -> int:
        try:
            flasher = Flasher.connect(transport, self.registry, self.settings)
        except Exception:
            transport.close()
            raise

        with self._lock:
            handle = next(self._handles)
            self._sessions[handle] = flasher
        LOGGER.info("Device opened with handle %d: %s", handle, flasher.chip)
        return handle

    def get(self, handle: int) -> Flasher:
        with self._lock:
            flasher = self._sessions.get(handle)
        if flasher is None:
            raise SessionError(f"Invalid device handle: {handle}")
        return flasher

    def close(self, handle: int) -> None:
        with self._lock:
            flasher = self._sessions.pop(handle, None)
        if flasher is None:
            raise SessionError(f"Invalid device handle: {handle}")
        flasher.close()
        LOGGER.info("Device handle %d closed", handle)

    def close_all(self) -> None:
        with self._lock:
            handles = list(self._sessions)
        for handle in handles:
            self.close(handle)

    def handles(self) -> tuple[int, ...]:
        with self._lock:
            return tuple(self._sessions)
