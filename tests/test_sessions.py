from __future__ import annotations

import pytest
from fake_device import FakeDevice

from wchisp.core.errors import DeviceRejectedError, SessionError
from wchisp.core.model import CommandKind, Response
from wchisp.core.registry import ChipRegistry
from wchisp.core.sessions import SessionManager
from wchisp.core.settings import ProtocolSettings


@pytest.fixture()
def manager() -> SessionManager:
    return SessionManager(ChipRegistry.load(), ProtocolSettings(post_send_grace_s=0))


def test_open_returns_distinct_handles(manager: SessionManager) -> None:
    first = manager.open(FakeDevice(0x70, 0x17))
    second = manager.open(FakeDevice(0x30, 0x19))

    assert first != second
    assert manager.get(first).chip.name == "CH32V307"
    assert manager.get(second).chip.name == "CH32V203"
    assert manager.handles() == (first, second)


def test_close_releases_transport(manager: SessionManager) -> None:
    device = FakeDevice()
    handle = manager.open(device)

    manager.close(handle)

    assert device.closed
    with pytest.raises(SessionError):
        manager.get(handle)
    with pytest.raises(SessionError):
        manager.close(handle)


def test_handles_are_not_reused(manager: SessionManager) -> None:
    handle = manager.open(FakeDevice())
    manager.close(handle)
    assert manager.open(FakeDevice()) != handle


def test_failed_identify_closes_transport(manager: SessionManager) -> None:
    device = FakeDevice()
    device.queue(CommandKind.IDENTIFY, Response(CommandKind.IDENTIFY, 0x01))

    with pytest.raises(DeviceRejectedError):
        manager.open(device)
    assert device.closed
    assert manager.handles() == ()


def test_close_all(manager: SessionManager) -> None:
    devices = [FakeDevice(), FakeDevice(0x82, 0x82)]
    for device in devices:
        manager.open(device)

    manager.close_all()

    assert manager.handles() == ()
    assert all(device.closed for device in devices)


def test_unknown_handle(manager: SessionManager) -> None:
    with pytest.raises(SessionError, match="Invalid device handle: 42"):
        manager.get(42)
