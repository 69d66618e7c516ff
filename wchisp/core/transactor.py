"""Single request/response round trips over a transport."""

from __future__ import annotations

import logging
import time

from wchisp.core import codec
from wchisp.core.errors import IncompleteSendError, KindMismatchError, NoResponseError
from wchisp.core.model import Command, Response
from wchisp.core.settings import ProtocolSettings
from wchisp.transports.base import Transport

LOGGER = logging.getLogger(__name__)


class Transactor:
    """Sends one command and returns its validated response.

    Never retries and never pipelines: the caller owns retry policy and must
    not share the transport with another transactor.
    """

    def __init__(self, transport: Transport, settings: ProtocolSettings | None = None) -> None:
        self.transport = transport
        self.settings = settings or ProtocolSettings()

    def transfer(self, command: Command, timeout_s: float | None = None) -> Response:
        if timeout_s is None:
            timeout_s = self.settings.default_timeout_s

        frame = codec.encode(command)
        LOGGER.debug("=> %s %s", command.kind.name, frame.hex())
        sent = self.transport.send(frame)
        if sent != len(frame):
            raise IncompleteSendError(
                f"{command.kind.name}: sent {sent}/{len(frame)} bytes"
            )

        # Give the bootloader a moment to start processing before polling.
        if self.settings.post_send_grace_s > 0:
            time.sleep(self.settings.post_send_grace_s)

        raw = self.transport.receive(timeout_s)
        if not raw:
            raise NoResponseError(
                f"{command.kind.name}: no response within {timeout_s * 1000:.0f} ms"
            )
        LOGGER.debug("<= %s", bytes(raw).hex())

        response = codec.decode(bytes(raw))
        if response.kind != command.kind:
            raise KindMismatchError(
                f"Sent {command.kind.name} but device answered {response.kind.name}"
            )
        return response
