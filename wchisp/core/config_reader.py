"""Chip identification and configuration register access."""

from __future__ import annotations

import logging
import struct

from wchisp.core import codec
from wchisp.core.errors import DeviceRejectedError, ProtocolDecodeError
from wchisp.core.model import ChipDescriptor, FlashSession, RegisterValue, Response
from wchisp.core.registry import ChipRegistry
from wchisp.core.transactor import Transactor

LOGGER = logging.getLogger(__name__)

# Layout of a ReadConfig(CFG_MASK_ALL) payload.
_REGISTERS_OFFSET = 2
_BTVER_OFFSET = 14
_UID_OFFSET = 18
_RDPR_UNPROTECTED = 0xA5


class ConfigReader:
    def __init__(self, transactor: Transactor, registry: ChipRegistry) -> None:
        self.transactor = transactor
        self.registry = registry

    def identify(self) -> tuple[int, int]:
        resp = self.transactor.transfer(codec.identify(0, 0))
        if not resp.is_ok:
            raise DeviceRejectedError(
                f"Identify rejected: status=0x{resp.status:02x}", status=resp.status
            )
        if len(resp.payload) < 2:
            raise ProtocolDecodeError(
                f"Identify response carries {len(resp.payload)} payload bytes; need 2"
            )
        return resp.payload[0], resp.payload[1]

    def identify_chip(self) -> ChipDescriptor:
        chip_id, device_type = self.identify()
        chip = self.registry.lookup(chip_id, device_type)
        if chip.is_unknown:
            LOGGER.warning("Chip 0x%02x/0x%02x is not in the chip database; using defaults", chip_id, device_type)
        else:
            LOGGER.info("Identified chip: %s", chip)
        return chip

    def read_config(self, mask: int = codec.CFG_MASK_ALL) -> Response:
        return self.transactor.transfer(codec.read_config(mask))

    def apply_config(self, session: FlashSession, resp: Response) -> None:
        """Update session state from a full config read. Non-success is tolerated."""
        if not resp.is_ok:
            LOGGER.warning("Failed to read chip configuration: status=0x%02x", resp.status)
            return

        data = resp.payload
        if len(data) < _UID_OFFSET:
            LOGGER.debug("Config payload too short to decode (%d bytes)", len(data))
            return

        session.bootloader_version = bytes(data[_BTVER_OFFSET:_UID_OFFSET])
        if session.chip.supports_flash_protect() and len(data) >= 3:
            session.flash_protected = data[2] != _RDPR_UNPROTECTED
        if len(data) > _UID_OFFSET:
            session.uid = bytes(data[_UID_OFFSET:])

        LOGGER.debug(
            "Config read: BTVER=%s, UID=%s, protected=%s",
            format_version(session.bootloader_version),
            format_uid(session.uid),
            session.flash_protected,
        )

    def unprotect(self, session: FlashSession) -> None:
        LOGGER.info("Unprotecting code flash")
        mask = codec.CFG_MASK_RDPR_USER_DATA_WPR

        resp = self.read_config(mask)
        if not resp.is_ok:
            raise DeviceRejectedError(
                f"Failed to read config for unprotect: status=0x{resp.status:02x}", status=resp.status
            )
        if len(resp.payload) < _BTVER_OFFSET:
            raise ProtocolDecodeError(
                f"Config response carries {len(resp.payload)} bytes; need {_BTVER_OFFSET}"
            )

        config = bytearray(resp.payload[_REGISTERS_OFFSET:_BTVER_OFFSET])
        config[0] = 0xA5
        config[1] = 0x5A
        config[8:12] = b"\xff\xff\xff\xff"

        resp = self.transactor.transfer(codec.write_config(mask, bytes(config)))
        if not resp.is_ok:
            raise DeviceRejectedError(
                f"Failed to unprotect flash: status=0x{resp.status:02x}", status=resp.status
            )

        session.flash_protected = False
        LOGGER.info("Code flash unprotected")


def decode_registers(chip: ChipDescriptor, resp: Response) -> tuple[RegisterValue, ...]:
    raw = resp.payload[_REGISTERS_OFFSET:] if resp.is_ok else b""
    values: list[RegisterValue] = []
    for reg in chip.config_registers:
        if reg.offset + 4 > len(raw):
            continue
        (value,) = struct.unpack_from("<I", raw, reg.offset)
        values.append(
            RegisterValue(
                name=reg.name,
                value=value,
                fields={f.name: f.extract(value) for f in reg.fields},
            )
        )
    return tuple(values)


def format_uid(uid: bytes) -> str:
    return "-".join(f"{b:02X}" for b in uid)


def format_version(version: bytes) -> str:
    return ".".join(f"{b:02x}" for b in version)
