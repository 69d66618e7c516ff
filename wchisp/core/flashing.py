"""ISP flashing sequence.

A flash runs linearly through::

    identified -> config-read -> [unprotected] -> erased -> key-ready
        -> programmed -> verified -> reset

Each step is one method. A failure raises a `WchIspError` tagged with the
state being entered (and the chunk address while programming or verifying).
There is no resume: after a failed flash the device may be erased but only
partially programmed, so the caller must start again from erase.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from wchisp.core import codec
from wchisp.core.config_reader import ConfigReader, decode_registers, format_uid, format_version
from wchisp.core.errors import (
    DeviceRejectedError,
    SessionError,
    UnsupportedFeatureError,
    VerificationMismatchError,
    WchIspError,
)
from wchisp.core.model import ChipDescriptor, ChipInfo, FlashSession, FlashState, Response
from wchisp.core.registry import ChipRegistry
from wchisp.core.settings import ProtocolSettings
from wchisp.core.transactor import Transactor
from wchisp.transports.base import Transport

LOGGER = logging.getLogger(__name__)

XOR_KEY_LEN = 8
EEPROM_SECTOR_SIZE = 1024

ProgressCallback = Callable[[int, int], None]


def sectors_needed(firmware_len: int, sector_size: int, min_sectors: int) -> int:
    return max(min_sectors, -(-firmware_len // sector_size))


def derive_xor_key(uid: bytes, chip_id: int) -> bytes:
    checksum = sum(uid) & 0xFF
    key = bytearray([checksum] * XOR_KEY_LEN)
    key[-1] = (key[-1] + chip_id) & 0xFF
    return bytes(key)


def key_checksum(key: bytes) -> int:
    return sum(key) & 0xFF


class Flasher:
    """Owns one device session and its transport for the session's lifetime."""

    def __init__(
        self,
        transactor: Transactor,
        registry: ChipRegistry,
        settings: ProtocolSettings | None = None,
    ) -> None:
        self.transactor = transactor
        self.registry = registry
        self.settings = settings or transactor.settings
        self.reader = ConfigReader(transactor, registry)
        self.session: FlashSession | None = None
        self._config: Response | None = None

    @classmethod
    def connect(
        cls,
        transport: Transport,
        registry: ChipRegistry,
        settings: ProtocolSettings | None = None,
    ) -> Flasher:
        flasher = cls(Transactor(transport, settings), registry, settings)
        flasher.identify()
        flasher.read_config()
        return flasher

    @property
    def chip(self) -> ChipDescriptor:
        return self._require_session().chip

    @property
    def state(self) -> FlashState | None:
        return self.session.state if self.session else None

    def _require_session(self) -> FlashSession:
        if self.session is None:
            raise SessionError("Device has not been identified")
        return self.session

    @contextmanager
    def _tagged(self, state: FlashState) -> Iterator[None]:
        try:
            yield
        except WchIspError as exc:
            if exc.state is None:
                exc.state = state
            raise

    @contextmanager
    def _stage(self, state: FlashState) -> Iterator[None]:
        with self._tagged(state):
            yield
        if self.session is not None:
            self.session.state = state

    @contextmanager
    def _at_address(self, address: int) -> Iterator[None]:
        try:
            yield
        except WchIspError as exc:
            if exc.address is None:
                exc.address = address
            raise

    def identify(self) -> ChipDescriptor:
        with self._stage(FlashState.IDENTIFIED):
            chip = self.reader.identify_chip()
            self.session = FlashSession(chip=chip)
            self._config = None
        return chip

    def read_config(self) -> None:
        session = self._require_session()
        with self._stage(FlashState.CONFIG_READ):
            resp = self.reader.read_config(codec.CFG_MASK_ALL)
            self.reader.apply_config(session, resp)
            self._config = resp

    def unprotect(self) -> None:
        session = self._require_session()
        with self._stage(FlashState.UNPROTECTED):
            self.reader.unprotect(session)

    def flash(self, firmware: bytes, progress: ProgressCallback | None = None) -> None:
        session = self._require_session()
        LOGGER.info("Starting firmware flash, size: %d bytes", len(firmware))

        if session.flash_protected:
            self.unprotect()

        chip = session.chip
        self.erase(sectors_needed(len(firmware), chip.sector_size, chip.min_erase_sectors))
        self.setup_key()
        self.program(firmware, progress)
        LOGGER.info("Firmware flash completed successfully")

    def erase(self, sectors: int) -> None:
        self._require_session()
        with self._stage(FlashState.ERASED):
            LOGGER.info("Erasing %d flash sectors", sectors)
            resp = self.transactor.transfer(codec.erase(sectors), self.settings.erase_timeout_s)
            if not resp.is_ok:
                raise DeviceRejectedError(
                    f"Flash erase failed: status=0x{resp.status:02x}", status=resp.status
                )

    def erase_all(self) -> None:
        chip = self.chip
        self.erase(sectors_needed(chip.flash_size, chip.sector_size, chip.min_erase_sectors))

    def xor_key(self) -> bytes:
        session = self._require_session()
        return derive_xor_key(session.uid, session.chip.chip_id)

    def setup_key(self) -> None:
        self._require_session()
        with self._stage(FlashState.KEY_READY):
            seed = bytes(self.settings.key_seed_len)
            resp = self.transactor.transfer(codec.set_key(seed))
            if not resp.is_ok:
                raise DeviceRejectedError(
                    f"ISP key setup failed: status=0x{resp.status:02x}", status=resp.status
                )

            expected = key_checksum(self.xor_key())
            got = resp.payload[0] if resp.payload else None
            if got != expected:
                shown = "none" if got is None else f"0x{got:02x}"
                message = f"ISP key checksum mismatch: expected 0x{expected:02x}, got {shown}"
                if self.settings.strict_key_checksum:
                    raise DeviceRejectedError(message, status=resp.status)
                LOGGER.warning(message)

    def program(self, data: bytes, progress: ProgressCallback | None = None) -> None:
        self._require_session()
        with self._stage(FlashState.PROGRAMMED):
            LOGGER.info("Programming flash...")
            key = self.xor_key()
            total = len(data)
            for offset, chunk in codec.iter_chunks(data, self.settings.chunk_size):
                with self._at_address(offset):
                    padding = random.getrandbits(8)
                    cmd = codec.program(offset, padding, codec.xor_chunk(chunk, key))
                    resp = self.transactor.transfer(cmd, self.settings.chunk_timeout_s)
                    if not resp.is_ok:
                        raise DeviceRejectedError(
                            f"Programming failed: status=0x{resp.status:02x}", status=resp.status
                        )
                if progress:
                    progress(offset + len(chunk), total)

            with self._at_address(total):
                resp = self.transactor.transfer(codec.program(total, 0, b""))
                if not resp.is_ok:
                    raise DeviceRejectedError(
                        f"Failed to complete programming sequence: status=0x{resp.status:02x}",
                        status=resp.status,
                    )
            LOGGER.info("Flash programming completed: %d bytes written", total)

    def verify(self, expected: bytes, progress: ProgressCallback | None = None) -> None:
        self._require_session()
        with self._stage(FlashState.VERIFIED):
            LOGGER.info("Verifying firmware...")
            key = self.xor_key()
            total = len(expected)
            for offset, chunk in codec.iter_chunks(expected, self.settings.chunk_size):
                with self._at_address(offset):
                    padding = random.getrandbits(8)
                    cmd = codec.verify(offset, padding, codec.xor_chunk(chunk, key))
                    resp = self.transactor.transfer(cmd, self.settings.chunk_timeout_s)
                    if not resp.is_ok:
                        raise DeviceRejectedError(
                            f"Verification failed: status=0x{resp.status:02x}", status=resp.status
                        )
                    if not resp.payload or resp.payload[0] != 0x00:
                        raise VerificationMismatchError("Verification mismatch")
                if progress:
                    progress(offset + len(chunk), total)
            LOGGER.info("Firmware verification completed successfully")

    def reset(self) -> None:
        self._require_session()
        with self._stage(FlashState.RESET):
            LOGGER.info("Resetting chip...")
            resp = self.transactor.transfer(codec.end_isp(1))
            # The device may already be dropping off the bus.
            if not resp.is_ok:
                LOGGER.warning("Reset command returned status: 0x%02x", resp.status)

    def erase_eeprom(self) -> None:
        """Erase data flash. Failures are tagged `erased`; session state is left alone."""
        chip = self.chip
        with self._tagged(FlashState.ERASED):
            if chip.eeprom_size == 0:
                raise UnsupportedFeatureError(f"{chip} has no EEPROM")
            sectors = max(1, chip.eeprom_size // EEPROM_SECTOR_SIZE)
            LOGGER.info("Erasing %d EEPROM sectors", sectors)
            resp = self.transactor.transfer(codec.data_erase(sectors), self.settings.data_erase_timeout_s)
            if not resp.is_ok:
                raise DeviceRejectedError(
                    f"EEPROM erase failed: status=0x{resp.status:02x}", status=resp.status
                )

    def chip_info(self) -> ChipInfo:
        session = self._require_session()
        registers = decode_registers(session.chip, self._config) if self._config else ()
        return ChipInfo(
            chip=session.chip,
            uid_hex=format_uid(session.uid),
            bootloader_version=format_version(session.bootloader_version),
            flash_protected=session.flash_protected if session.chip.supports_flash_protect() else None,
            registers=registers,
        )

    def close(self) -> None:
        LOGGER.info("Closing flashing interface")
        self.transactor.transport.close()
