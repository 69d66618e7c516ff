"""Core data models used across the codec, registry, flasher, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum


class ChipFamily(str, Enum):
    CH32V = "CH32V"
    CH32V003 = "CH32V003"
    CH32F = "CH32F"
    CH32X035 = "CH32X035"
    CH549 = "CH549"
    CH552 = "CH552"
    CH559 = "CH559"
    CH573 = "CH573"
    CH579 = "CH579"
    CH582 = "CH582"
    CH592 = "CH592"
    UNKNOWN = "Unknown"


class CommandKind(IntEnum):
    IDENTIFY = 0xA1
    END_ISP = 0xA2
    SET_KEY = 0xA3
    ERASE = 0xA4
    PROGRAM = 0xA5
    VERIFY = 0xA6
    READ_CONFIG = 0xA7
    WRITE_CONFIG = 0xA8
    DATA_ERASE = 0xA9
    DATA_PROGRAM = 0xAA
    DATA_READ = 0xAB


class FlashState(str, Enum):
    IDENTIFIED = "identified"
    CONFIG_READ = "config-read"
    UNPROTECTED = "unprotected"
    ERASED = "erased"
    KEY_READY = "key-ready"
    PROGRAMMED = "programmed"
    VERIFIED = "verified"
    RESET = "reset"


@dataclass(frozen=True)
class ConfigField:
    name: str
    bit_range: tuple[int, int]

    def extract(self, value: int) -> int:
        high, low = self.bit_range
        width = high - low + 1
        return (value >> low) & ((1 << width) - 1)


@dataclass(frozen=True)
class ConfigRegister:
    name: str
    offset: int
    reset: int | None = None
    fields: tuple[ConfigField, ...] = ()


@dataclass(frozen=True)
class ChipDescriptor:
    name: str
    chip_id: int
    device_type: int
    flash_size: int
    eeprom_size: int
    family: ChipFamily
    support_flash_protect: bool = True
    support_encryption: bool = True
    min_erase_sectors: int = 1
    sector_size: int = 1024
    uid_size: int = 8
    config_registers: tuple[ConfigRegister, ...] = ()

    @property
    def key(self) -> tuple[int, int]:
        return (self.chip_id, self.device_type)

    @property
    def is_unknown(self) -> bool:
        return self.family is ChipFamily.UNKNOWN

    def supports_flash_protect(self) -> bool:
        return self.support_flash_protect

    def supports_encryption(self) -> bool:
        return self.support_encryption

    def __str__(self) -> str:
        return f"{self.name}[0x{(self.chip_id << 8) | self.device_type:04X}]"


@dataclass(frozen=True)
class Command:
    kind: CommandKind
    payload: bytes = b""


@dataclass(frozen=True)
class Response:
    kind: CommandKind
    status: int
    payload: bytes = b""

    @property
    def is_ok(self) -> bool:
        return self.status == 0x00


@dataclass
class FlashSession:
    chip: ChipDescriptor
    uid: bytes = b""
    bootloader_version: bytes = bytes(4)
    flash_protected: bool = False
    state: FlashState = FlashState.IDENTIFIED


@dataclass(frozen=True)
class RegisterValue:
    name: str
    value: int
    fields: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class ChipInfo:
    chip: ChipDescriptor
    uid_hex: str
    bootloader_version: str
    flash_protected: bool | None
    registers: tuple[RegisterValue, ...] = ()
