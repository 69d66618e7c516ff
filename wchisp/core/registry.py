"""Chip registry keyed by (chip_id, device_type)."""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from wchisp.core.chip_loader import ChipKey, load_chips
from wchisp.core.model import ChipDescriptor, ChipFamily

UNKNOWN_FLASH_SIZE = 64 * 1024


def unknown_chip(chip_id: int, device_type: int) -> ChipDescriptor:
    """Conservative stand-in for a chip missing from the database.

    Flash protection is reported unsupported so config registers of an
    unrecognized part are never rewritten.
    """
    return ChipDescriptor(
        name=f"Unknown[0x{chip_id:02X}{device_type:02X}]",
        chip_id=chip_id,
        device_type=device_type,
        flash_size=UNKNOWN_FLASH_SIZE,
        eeprom_size=0,
        family=ChipFamily.UNKNOWN,
        support_flash_protect=False,
        support_encryption=False,
        min_erase_sectors=1,
        sector_size=1024,
        uid_size=8,
        config_registers=(),
    )


class ChipRegistry:
    """Read-only lookup table. Safe to share between sessions."""

    def __init__(self, chips: Mapping[ChipKey, ChipDescriptor], warnings: tuple[str, ...] = ()) -> None:
        self._chips = MappingProxyType(dict(chips))
        self.warnings = warnings

    @classmethod
    def load(cls) -> ChipRegistry:
        loaded = load_chips()
        return cls(loaded.chips, loaded.warnings)

    def lookup(self, chip_id: int, device_type: int) -> ChipDescriptor:
        chip = self._chips.get((chip_id, device_type))
        if chip is None:
            return unknown_chip(chip_id, device_type)
        return chip

    def is_supported(self, chip_id: int, device_type: int) -> bool:
        return (chip_id, device_type) in self._chips

    def chips(self) -> list[ChipDescriptor]:
        return sorted(self._chips.values(), key=lambda c: c.name)

    def __len__(self) -> int:
        return len(self._chips)
