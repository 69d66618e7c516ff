"""UART transport implementation using pyserial.

Over a serial line each ISP frame is wrapped::

    host -> device: 57 AB <frame> <sum(frame) & 0xFF>
    device -> host: 55 AA <frame> <sum(frame) & 0xFF>
"""

from __future__ import annotations

import logging
import time
from typing import Any

from wchisp.core.errors import (
    ProtocolDecodeError,
    TransportConnectError,
    TransportSendError,
    TransportTimeoutError,
)

LOGGER = logging.getLogger(__name__)

REQUEST_PREFIX = b"\x57\xab"
RESPONSE_PREFIX = b"\x55\xaa"
DEFAULT_BAUDRATE = 115200
_RESPONSE_HEADER_LEN = 4


def _checksum(frame: bytes) -> int:
    return sum(frame) & 0xFF


class SerialTransport:
    def __init__(self, port: Any) -> None:
        self.port = port

    @classmethod
    def open(cls, port: str, baudrate: int = DEFAULT_BAUDRATE) -> SerialTransport:
        try:
            import serial  # type: ignore
        except Exception as exc:  # pragma: no cover - import failure path
            raise TransportConnectError(
                "Serial transport requires 'pyserial'. Install dependency and retry."
            ) from exc

        try:
            handle = serial.Serial(port=port, baudrate=baudrate, timeout=1.0, write_timeout=1.0)
        except serial.SerialException as exc:
            raise TransportConnectError(f"Cannot open port {port}: {exc}") from exc

        handle.reset_input_buffer()
        handle.reset_output_buffer()
        LOGGER.debug("Opened %s at %d bps", port, baudrate)
        return cls(handle)

    def send(self, data: bytes) -> int:
        wrapped = REQUEST_PREFIX + data + bytes([_checksum(data)])
        try:
            written = self.port.write(wrapped)
        except Exception as exc:
            raise TransportSendError(f"Serial write failed: {exc}") from exc
        if written is None:
            raise TransportTimeoutError("Serial write timed out")
        return max(0, int(written) - len(REQUEST_PREFIX) - 1)

    def _read_exact(self, size: int, deadline: float) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self.port.timeout = remaining
            chunk = self.port.read(size - len(buf))
            if not chunk:
                break
            buf.extend(chunk)
        return bytes(buf)

    def receive(self, timeout_s: float) -> bytes:
        deadline = time.monotonic() + timeout_s
        try:
            prefix = self._read_exact(len(RESPONSE_PREFIX), deadline)
            if not prefix:
                return b""
            if prefix != RESPONSE_PREFIX:
                raise ProtocolDecodeError(f"Unexpected serial frame prefix {prefix.hex()}")

            header = self._read_exact(_RESPONSE_HEADER_LEN, deadline)
            if len(header) < _RESPONSE_HEADER_LEN:
                raise TransportTimeoutError("Serial response header timed out")
            rest = self._read_exact(header[1] + 1, deadline)
        except (ProtocolDecodeError, TransportTimeoutError):
            raise
        except Exception as exc:
            raise TransportSendError(f"Serial read failed: {exc}") from exc

        if len(rest) < header[1] + 1:
            raise TransportTimeoutError("Serial response payload timed out")

        frame = header + rest[:-1]
        if _checksum(frame) != rest[-1]:
            raise ProtocolDecodeError(
                f"Serial checksum mismatch: expected 0x{_checksum(frame):02x}, got 0x{rest[-1]:02x}"
            )
        return frame

    def close(self) -> None:
        self.port.close()
