"""Transport interfaces."""

from __future__ import annotations

from typing import Protocol

SUPPORTED_USB_IDS = frozenset({(0x4348, 0x55E0), (0x1A86, 0x55E0)})


class Transport(Protocol):
    def send(self, data: bytes) -> int:
        """Write one frame and return the number of bytes accepted."""

    def receive(self, timeout_s: float) -> bytes:
        """Read one response frame; empty bytes means nothing arrived in time."""

    def close(self) -> None:
        """Release the underlying device."""


def is_supported_device(vendor_id: int, product_id: int) -> bool:
    return (vendor_id, product_id) in SUPPORTED_USB_IDS
