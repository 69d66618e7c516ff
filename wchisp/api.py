"""Stable public API for building tooling on top of wchisp.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from pathlib import Path

from wchisp.core.errors import (
    ChipDefinitionError,
    DeviceRejectedError,
    FirmwareError,
    IncompleteSendError,
    KindMismatchError,
    NoResponseError,
    ProtocolDecodeError,
    SessionError,
    SettingsError,
    TransportConnectError,
    TransportError,
    TransportSendError,
    TransportTimeoutError,
    TruncatedFrameError,
    UnknownKindError,
    UnsupportedFeatureError,
    VerificationMismatchError,
    WchIspError,
)
from wchisp.core.firmware import load_firmware
from wchisp.core.flashing import ProgressCallback
from wchisp.core.model import ChipDescriptor, ChipFamily, ChipInfo, FlashState, RegisterValue
from wchisp.core.registry import ChipRegistry
from wchisp.core.service import FlasherService, FlashResult
from wchisp.core.settings import ProtocolSettings
from wchisp.transports.base import Transport, is_supported_device
from wchisp.transports.serial_port import DEFAULT_BAUDRATE

__all__ = [
    "WchIspError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportTimeoutError",
    "IncompleteSendError",
    "NoResponseError",
    "ProtocolDecodeError",
    "UnknownKindError",
    "TruncatedFrameError",
    "KindMismatchError",
    "DeviceRejectedError",
    "VerificationMismatchError",
    "UnsupportedFeatureError",
    "ChipDefinitionError",
    "FirmwareError",
    "SettingsError",
    "SessionError",
    "ChipDescriptor",
    "ChipFamily",
    "ChipInfo",
    "FlashState",
    "RegisterValue",
    "ChipRegistry",
    "FlashResult",
    "ProtocolSettings",
    "Transport",
    "is_supported_device",
    "Client",
]


class Client:
    """Public client for interacting with wchisp core capabilities.

    A `Client` wraps the chip registry, the session manager and the flashing
    sequence behind a stable API intended for third-party tools
    (GUI/TUI/services/scripts). Devices are addressed by the integer handle
    returned from `open`.
    """

    def __init__(
        self,
        *,
        registry: ChipRegistry | None = None,
        settings: ProtocolSettings | None = None,
    ) -> None:
        self._service = FlasherService(registry=registry, settings=settings)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    def list_chips(self) -> list[ChipDescriptor]:
        return self._service.list_chips()

    def open(self, port: str | None = None, baudrate: int = DEFAULT_BAUDRATE) -> int:
        return self._service.open(port, baudrate)

    def open_transport(self, transport: Transport) -> int:
        return self._service.sessions.open(transport)

    def close(self, handle: int) -> None:
        self._service.close(handle)

    def chip_info(self, handle: int) -> ChipInfo:
        return self._service.info(handle)

    def flash(
        self,
        handle: int,
        firmware: bytes | Path,
        *,
        verify: bool = True,
        reset: bool = True,
        progress: ProgressCallback | None = None,
    ) -> FlashResult:
        if isinstance(firmware, Path):
            firmware = load_firmware(firmware)
        return self._service.flash(handle, firmware, verify=verify, reset=reset, progress=progress)

    def verify(self, handle: int, firmware: bytes | Path) -> None:
        if isinstance(firmware, Path):
            firmware = load_firmware(firmware)
        self._service.verify(handle, firmware)

    def erase(self, handle: int) -> ChipDescriptor:
        return self._service.erase(handle)

    def erase_eeprom(self, handle: int) -> ChipDescriptor:
        return self._service.erase_eeprom(handle)

    def reset(self, handle: int) -> None:
        self._service.reset(handle)
