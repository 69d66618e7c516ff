"""Wire codec for the WCH ISP command/response frames.

Command frame::

    [kind:1][payload_len:1][0x00][payload...]

Response frame::

    [kind:1][payload_len:1][status:1][reserved:1][payload...]

Numeric payload fields are little-endian.
"""

from __future__ import annotations

import struct
from collections.abc import Iterator, Sequence

from wchisp.core.errors import TruncatedFrameError, UnknownKindError
from wchisp.core.model import Command, CommandKind, Response

CFG_MASK_RDPR_USER_DATA_WPR = 0x07
CFG_MASK_BTVER = 0x08
CFG_MASK_UID = 0x10
CFG_MASK_ALL = 0x1F

RESPONSE_HEADER_LEN = 4
_MAX_PAYLOAD_BYTES = 0xFF
_KINDS = {kind.value: kind for kind in CommandKind}


def identify(chip_id: int = 0, device_type: int = 0) -> Command:
    return Command(CommandKind.IDENTIFY, bytes([chip_id, device_type, 0, 0, 0, 0]))


def set_key(seed: bytes) -> Command:
    return Command(CommandKind.SET_KEY, bytes(seed))


def erase(sectors: int) -> Command:
    return Command(CommandKind.ERASE, struct.pack("<I", sectors))


def program(address: int, padding: int, data: bytes) -> Command:
    return Command(CommandKind.PROGRAM, _addressed(address, padding, data))


def verify(address: int, padding: int, data: bytes) -> Command:
    return Command(CommandKind.VERIFY, _addressed(address, padding, data))


def read_config(mask: int) -> Command:
    return Command(CommandKind.READ_CONFIG, struct.pack("<I", mask))


def write_config(mask: int, data: bytes) -> Command:
    return Command(CommandKind.WRITE_CONFIG, struct.pack("<I", mask) + bytes(data))


def end_isp(reset: int) -> Command:
    return Command(CommandKind.END_ISP, bytes([reset]))


def data_erase(sectors: int) -> Command:
    return Command(CommandKind.DATA_ERASE, struct.pack("<H", sectors))


def data_program(address: int, padding: int, data: bytes) -> Command:
    return Command(CommandKind.DATA_PROGRAM, _addressed(address, padding, data))


def data_read(address: int, length: int) -> Command:
    return Command(CommandKind.DATA_READ, struct.pack("<IH", address, length))


def _addressed(address: int, padding: int, data: bytes) -> bytes:
    return struct.pack("<IB", address, padding) + bytes(data)


def encode(command: Command) -> bytes:
    """Serialize a command into its wire frame."""
    if len(command.payload) > _MAX_PAYLOAD_BYTES:
        raise ValueError(
            f"{command.kind.name} payload is {len(command.payload)} bytes; "
            f"max {_MAX_PAYLOAD_BYTES}"
        )
    return bytes([command.kind.value, len(command.payload), 0x00]) + command.payload


def encode_response(response: Response) -> bytes:
    """Serialize a response the way a device sends it. Used by device fakes."""
    if len(response.payload) > _MAX_PAYLOAD_BYTES:
        raise ValueError(f"Response payload is {len(response.payload)} bytes; max {_MAX_PAYLOAD_BYTES}")
    header = bytes([response.kind.value, len(response.payload), response.status, 0x00])
    return header + response.payload


def decode(raw: bytes) -> Response:
    """Parse a response frame.

    Bytes past the declared payload length are ignored.
    """
    if len(raw) < RESPONSE_HEADER_LEN:
        raise TruncatedFrameError(f"Response too short: {len(raw)} bytes")

    kind = _KINDS.get(raw[0])
    if kind is None:
        raise UnknownKindError(f"Unknown command kind 0x{raw[0]:02x}")

    payload_len = raw[1]
    end = RESPONSE_HEADER_LEN + payload_len
    if len(raw) < end:
        raise TruncatedFrameError(
            f"Incomplete response payload: declared {payload_len} bytes, "
            f"got {len(raw) - RESPONSE_HEADER_LEN}"
        )

    return Response(kind=kind, status=raw[2], payload=bytes(raw[RESPONSE_HEADER_LEN:end]))


def xor_chunk(chunk: bytes, key: Sequence[int]) -> bytes:
    return bytes(byte ^ key[i % len(key)] for i, byte in enumerate(chunk))


def iter_chunks(data: bytes, size: int) -> Iterator[tuple[int, bytes]]:
    for offset in range(0, len(data), size):
        yield offset, data[offset : offset + size]
