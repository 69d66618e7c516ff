from __future__ import annotations

from pathlib import Path

import pytest
from intelhex import IntelHex

from wchisp.core.errors import FirmwareError
from wchisp.core.firmware import load_firmware


def test_raw_binary(tmp_path: Path) -> None:
    path = tmp_path / "app.bin"
    path.write_bytes(bytes(range(64)))
    assert load_firmware(path) == bytes(range(64))


def test_intel_hex_fills_gaps(tmp_path: Path) -> None:
    ih = IntelHex()
    ih.puts(0x0000, b"\x01\x02")
    ih.puts(0x0006, b"\x03")
    path = tmp_path / "app.hex"
    ih.write_hex_file(str(path))

    assert load_firmware(path) == b"\x01\x02\xff\xff\xff\xff\x03"


def test_intel_hex_suffix_is_case_insensitive(tmp_path: Path) -> None:
    ih = IntelHex()
    ih.puts(0x0000, b"\xaa\xbb")
    path = tmp_path / "APP.HEX"
    ih.write_hex_file(str(path))
    assert load_firmware(path) == b"\xaa\xbb"


def test_invalid_hex(tmp_path: Path) -> None:
    path = tmp_path / "broken.hex"
    path.write_text("not a hex record\n", encoding="utf-8")
    with pytest.raises(FirmwareError, match="Invalid Intel HEX"):
        load_firmware(path)


def test_elf_rejected(tmp_path: Path) -> None:
    path = tmp_path / "app.elf"
    path.write_bytes(b"\x7fELF" + bytes(60))
    with pytest.raises(FirmwareError, match="ELF"):
        load_firmware(path)


def test_empty_image_rejected(tmp_path: Path) -> None:
    path = tmp_path / "empty.bin"
    path.write_bytes(b"")
    with pytest.raises(FirmwareError, match="empty"):
        load_firmware(path)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FirmwareError, match="Could not read"):
        load_firmware(tmp_path / "nope.bin")
