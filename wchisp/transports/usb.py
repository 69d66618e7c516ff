"""USB bulk transport implementation using pyusb."""

from __future__ import annotations

import logging
from typing import Any

from wchisp.core.errors import TransportConnectError, TransportSendError, TransportTimeoutError
from wchisp.transports.base import SUPPORTED_USB_IDS

LOGGER = logging.getLogger(__name__)

ENDPOINT_OUT = 0x02
ENDPOINT_IN = 0x82
MAX_PACKET_SIZE = 64


class USBTransport:
    def __init__(self, device: Any) -> None:
        self.device = device

    @classmethod
    def open(cls) -> USBTransport:
        """Open the first connected bootloader with a supported VID/PID."""
        try:
            import usb.core  # type: ignore
            import usb.util  # type: ignore
        except Exception as exc:  # pragma: no cover - import failure path
            raise TransportConnectError(
                "USB transport requires 'pyusb'. Install dependency and retry."
            ) from exc

        device = None
        try:
            for vendor_id, product_id in sorted(SUPPORTED_USB_IDS):
                device = usb.core.find(idVendor=vendor_id, idProduct=product_id)
                if device is not None:
                    break
        except usb.core.NoBackendError as exc:
            raise TransportConnectError(f"No libusb backend available: {exc}") from exc

        if device is None:
            raise TransportConnectError(
                "No WCH ISP device found. Hold BOOT while plugging the board in and retry."
            )

        try:
            device.set_configuration()
            usb.util.claim_interface(device, 0)
        except usb.core.USBError as exc:
            raise TransportConnectError(
                f"Could not claim USB device {device.idVendor:04x}:{device.idProduct:04x}: {exc}"
            ) from exc

        LOGGER.debug("Opened USB device %04x:%04x", device.idVendor, device.idProduct)
        return cls(device)

    def send(self, data: bytes) -> int:
        import usb.core  # type: ignore

        try:
            return int(self.device.write(ENDPOINT_OUT, data))
        except usb.core.USBTimeoutError as exc:
            raise TransportTimeoutError("USB bulk write timed out") from exc
        except usb.core.USBError as exc:
            raise TransportSendError(f"USB bulk write failed: {exc}") from exc

    def receive(self, timeout_s: float) -> bytes:
        import usb.core  # type: ignore

        try:
            data = self.device.read(ENDPOINT_IN, MAX_PACKET_SIZE, timeout=int(timeout_s * 1000))
        except usb.core.USBTimeoutError:
            return b""
        except usb.core.USBError as exc:
            raise TransportSendError(f"USB bulk read failed: {exc}") from exc
        return bytes(data)

    def close(self) -> None:
        import usb.core  # type: ignore
        import usb.util  # type: ignore

        try:
            usb.util.dispose_resources(self.device)
        except usb.core.USBError as exc:
            # Expected after EndISP(reset=1): the bootloader has left the bus.
            LOGGER.debug("USB device already gone on close: %s", exc)
