from __future__ import annotations

import errno
from pathlib import Path

import pytest
import usb.core
import usb.util
from fake_device import FakeDevice
from typer.testing import CliRunner

from wchisp import cli
from wchisp.core.errors import TransportConnectError, TransportSendError
from wchisp.core.model import CommandKind
from wchisp.core.registry import ChipRegistry
from wchisp.core.service import FlasherService
from wchisp.core.settings import ProtocolSettings
from wchisp.transports.usb import ENDPOINT_IN, ENDPOINT_OUT, USBTransport


class FakeUSBDevice:
    idVendor = 0x1A86
    idProduct = 0x55E0

    def __init__(self, reads: list[bytes | Exception] | None = None) -> None:
        self.reads = list(reads or [])
        self.writes: list[tuple[int, bytes]] = []
        self.read_calls: list[tuple[int, int, int]] = []
        self.configured = False

    def set_configuration(self) -> None:
        self.configured = True

    def write(self, endpoint: int, data: bytes) -> int:
        self.writes.append((endpoint, data))
        return len(data)

    def read(self, endpoint: int, size: int, timeout: int) -> bytes:
        self.read_calls.append((endpoint, size, timeout))
        item = self.reads.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def test_open_claims_first_supported_device(monkeypatch: pytest.MonkeyPatch) -> None:
    device = FakeUSBDevice()
    searched: list[tuple[int, int]] = []
    claimed: list[int] = []

    def find(idVendor: int, idProduct: int) -> FakeUSBDevice | None:
        searched.append((idVendor, idProduct))
        return device if idVendor == 0x1A86 else None

    monkeypatch.setattr(usb.core, "find", find)
    monkeypatch.setattr(usb.util, "claim_interface", lambda dev, interface: claimed.append(interface))

    transport = USBTransport.open()

    assert transport.device is device
    assert device.configured
    assert claimed == [0]
    assert searched[0] == (0x1A86, 0x55E0)


def test_open_without_device(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(usb.core, "find", lambda idVendor, idProduct: None)
    with pytest.raises(TransportConnectError, match="No WCH ISP device found"):
        USBTransport.open()


def test_send_uses_bulk_out_endpoint() -> None:
    device = FakeUSBDevice()
    assert USBTransport(device).send(b"\xa2\x01\x00\x01") == 4
    assert device.writes == [(ENDPOINT_OUT, b"\xa2\x01\x00\x01")]


def test_receive_reads_bulk_in_endpoint() -> None:
    device = FakeUSBDevice([b"\xa2\x00\x00\x00"])
    assert USBTransport(device).receive(0.3) == b"\xa2\x00\x00\x00"
    assert device.read_calls == [(ENDPOINT_IN, 64, 300)]


def test_receive_timeout_is_empty() -> None:
    device = FakeUSBDevice([usb.core.USBTimeoutError("timed out")])
    assert USBTransport(device).receive(1.0) == b""


def test_receive_error() -> None:
    device = FakeUSBDevice([usb.core.USBError("pipe error")])
    with pytest.raises(TransportSendError):
        USBTransport(device).receive(1.0)


def test_close_releases_device(monkeypatch: pytest.MonkeyPatch) -> None:
    disposed: list[object] = []
    monkeypatch.setattr(usb.util, "dispose_resources", disposed.append)
    device = FakeUSBDevice()

    USBTransport(device).close()

    assert disposed == [device]


def _disconnected(device: object) -> None:
    raise usb.core.USBError("No such device (it may have been disconnected)", errno=errno.ENODEV)


def test_close_after_device_left_the_bus(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(usb.util, "dispose_resources", _disconnected)
    USBTransport(FakeUSBDevice()).close()


class BootloaderOverUSB:
    """pyusb-shaped device forwarding bulk transfers to a FakeDevice."""

    idVendor = 0x4348
    idProduct = 0x55E0

    def __init__(self, bootloader: FakeDevice) -> None:
        self.bootloader = bootloader

    def write(self, endpoint: int, data: bytes) -> int:
        return self.bootloader.send(bytes(data))

    def read(self, endpoint: int, size: int, timeout: int) -> bytes:
        return self.bootloader.receive(timeout / 1000)


def test_cli_flash_succeeds_when_device_resets_off_the_bus(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    bootloader = FakeDevice(0x70, 0x17)
    monkeypatch.setattr(usb.util, "dispose_resources", _disconnected)
    monkeypatch.setattr(
        cli,
        "FlasherService",
        lambda: FlasherService(
            registry=ChipRegistry.load(),
            settings=ProtocolSettings(post_send_grace_s=0),
            usb_opener=lambda: USBTransport(BootloaderOverUSB(bootloader)),
        ),
    )
    firmware = tmp_path / "fw.bin"
    firmware.write_bytes(bytes(range(100)))

    result = CliRunner().invoke(cli.app, ["flash", str(firmware)])

    assert result.exit_code == 0, result.output
    assert "Verify OK" in result.stdout
    assert bootloader.kinds()[-1] == CommandKind.END_ISP
