"""Domain-specific errors for wchisp."""

from __future__ import annotations

from typing import Any


class WchIspError(Exception):
    """Base error for wchisp.

    `state` names the flashing state that was being entered when the error
    occurred and `address` the flash offset in progress, when known.
    """

    def __init__(self, message: str, *, state: Any = None, address: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.state = state
        self.address = address

    def __str__(self) -> str:
        parts: list[str] = []
        if self.state is not None:
            parts.append(f"[{getattr(self.state, 'value', self.state)}]")
        parts.append(self.message)
        if self.address is not None:
            parts.append(f"(address 0x{self.address:08x})")
        return " ".join(parts)


class TransportError(WchIspError):
    """Base transport error. Always recoverable by retrying the whole operation."""


class TransportConnectError(TransportError):
    """Raised when a transport cannot be opened."""


class TransportSendError(TransportError):
    """Raised when sending a frame fails."""


class IncompleteSendError(TransportSendError):
    """Raised when the transport accepted fewer bytes than the frame holds."""


class TransportTimeoutError(TransportError):
    """Raised when a transport operation times out."""


class NoResponseError(TransportTimeoutError):
    """Raised when nothing was received within the timeout."""


class ProtocolDecodeError(WchIspError):
    """Raised when a response frame is malformed."""


class UnknownKindError(ProtocolDecodeError):
    """Raised when a response frame carries an unrecognized command kind."""


class TruncatedFrameError(ProtocolDecodeError):
    """Raised when a response frame is shorter than its header declares."""


class KindMismatchError(WchIspError):
    """Raised when a response does not correspond to the issued command."""


class DeviceRejectedError(WchIspError):
    """Raised when the device reports a non-zero status."""

    def __init__(self, message: str, *, status: int, state: Any = None, address: int | None = None) -> None:
        super().__init__(message, state=state, address=address)
        self.status = status


class VerificationMismatchError(WchIspError):
    """Raised when flash content diverges from the expected image."""


class UnsupportedFeatureError(WchIspError):
    """Raised when an operation is invalid for the identified chip."""


class ChipDefinitionError(WchIspError):
    """Raised when chip definition data cannot be read or fails validation."""


class FirmwareError(WchIspError):
    """Raised when a firmware image cannot be loaded."""


class SettingsError(WchIspError):
    """Raised when the settings file does not conform to schema."""


class SessionError(WchIspError):
    """Raised when a session handle does not resolve to an open device."""
