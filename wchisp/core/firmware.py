"""Firmware image loading."""

from __future__ import annotations

import logging
from pathlib import Path

from intelhex import HexReaderError, IntelHex

from wchisp.core.errors import FirmwareError

LOGGER = logging.getLogger(__name__)

_HEX_SUFFIXES = {".hex", ".ihex", ".ihx"}
_ELF_MAGIC = b"\x7fELF"


def load_firmware(path: Path) -> bytes:
    """Read a raw binary or Intel HEX image.

    HEX images are returned as one contiguous block starting at their lowest
    address; gaps are filled with 0xFF.
    """
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise FirmwareError(f"Could not read firmware {path}: {exc}") from exc

    if raw.startswith(_ELF_MAGIC):
        raise FirmwareError(f"{path} is an ELF file; convert it to .bin or .hex first")

    if path.suffix.lower() in _HEX_SUFFIXES:
        image = _load_hex(path)
    else:
        image = raw

    if not image:
        raise FirmwareError(f"Firmware {path} is empty")
    LOGGER.debug("Loaded %d bytes from %s", len(image), path)
    return image


def _load_hex(path: Path) -> bytes:
    ih = IntelHex()
    try:
        ih.loadhex(str(path))
    except (HexReaderError, ValueError) as exc:
        raise FirmwareError(f"Invalid Intel HEX in {path}: {exc}") from exc
    if ih.minaddr() is None:
        return b""
    ih.padding = 0xFF
    return ih.tobinstr()
