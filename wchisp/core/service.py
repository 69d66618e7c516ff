"""Service layer used by the CLI and the public API."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from wchisp.core.flashing import Flasher, ProgressCallback
from wchisp.core.model import ChipDescriptor, ChipInfo
from wchisp.core.registry import ChipRegistry
from wchisp.core.sessions import SessionManager
from wchisp.core.settings import ProtocolSettings, load_settings
from wchisp.transports.base import Transport
from wchisp.transports.serial_port import DEFAULT_BAUDRATE, SerialTransport
from wchisp.transports.usb import USBTransport


@dataclass(frozen=True)
class FlashResult:
    chip: ChipDescriptor
    size: int
    verified: bool
    reset: bool


class FlasherService:
    def __init__(
        self,
        *,
        registry: ChipRegistry | None = None,
        settings: ProtocolSettings | None = None,
        sessions: SessionManager | None = None,
        usb_opener: Callable[[], Transport] | None = None,
        serial_opener: Callable[[str, int], Transport] | None = None,
    ) -> None:
        self.registry = registry or ChipRegistry.load()
        self.settings = settings or load_settings()
        self.sessions = sessions or SessionManager(self.registry, self.settings)
        self.load_warnings = self.registry.warnings
        self._usb_opener = usb_opener or USBTransport.open
        self._serial_opener = serial_opener or SerialTransport.open

    def list_chips(self) -> list[ChipDescriptor]:
        return self.registry.chips()

    def open(self, port: str | None = None, baudrate: int = DEFAULT_BAUDRATE) -> int:
        if port:
            transport = self._serial_opener(port, baudrate)
        else:
            transport = self._usb_opener()
        return self.sessions.open(transport)

    def close(self, handle: int) -> None:
        self.sessions.close(handle)

    def flasher(self, handle: int) -> Flasher:
        return self.sessions.get(handle)

    def info(self, handle: int) -> ChipInfo:
        return self.sessions.get(handle).chip_info()

    def flash(
        self,
        handle: int,
        firmware: bytes,
        *,
        verify: bool = True,
        reset: bool = True,
        progress: ProgressCallback | None = None,
    ) -> FlashResult:
        flasher = self.sessions.get(handle)
        flasher.flash(firmware, progress)
        if verify:
            flasher.verify(firmware, progress)
        if reset:
            flasher.reset()
        return FlashResult(chip=flasher.chip, size=len(firmware), verified=verify, reset=reset)

    def verify(self, handle: int, firmware: bytes, progress: ProgressCallback | None = None) -> None:
        flasher = self.sessions.get(handle)
        flasher.setup_key()
        flasher.verify(firmware, progress)

    def erase(self, handle: int) -> ChipDescriptor:
        flasher = self.sessions.get(handle)
        if flasher.session is not None and flasher.session.flash_protected:
            flasher.unprotect()
        flasher.erase_all()
        return flasher.chip

    def erase_eeprom(self, handle: int) -> ChipDescriptor:
        flasher = self.sessions.get(handle)
        flasher.erase_eeprom()
        return flasher.chip

    def reset(self, handle: int) -> None:
        self.sessions.get(handle).reset()
