from __future__ import annotations

from wchisp.core import codec
from wchisp.core.flashing import derive_xor_key, key_checksum
from wchisp.core.model import Command, CommandKind, Response

DEFAULT_UID = bytes([0xCD, 0xAB, 0x12, 0x34, 0x56, 0x78, 0x9A, 0xBC])
DEFAULT_BTVER = bytes([0x00, 0x02, 0x09, 0x00])


class FakeDevice:
    """In-memory bootloader answering each frame with a canned response.

    `queue()` pushes one-shot responses for a command kind ahead of the
    defaults.
    """

    def __init__(
        self,
        chip_id: int = 0x70,
        device_type: int = 0x17,
        *,
        protected: bool = False,
        uid: bytes = DEFAULT_UID,
        btver: bytes = DEFAULT_BTVER,
    ) -> None:
        self.chip_id = chip_id
        self.device_type = device_type
        self.uid = uid
        self.btver = btver
        self.registers = bytearray(
            bytes([0xFF if protected else 0xA5, 0x5A if not protected else 0x00, 0x00, 0xFF])
            + bytes([0x00, 0xFF, 0x00, 0xFF])
            + bytes([0x00, 0x00, 0x00, 0x00])
        )
        self.sent: list[Command] = []
        self.timeouts: list[float] = []
        self.closed = False
        self._queued: dict[CommandKind, list[Response | bytes]] = {}
        self._pending = b""

    def queue(self, kind: CommandKind, *responses: Response | bytes) -> None:
        self._queued.setdefault(kind, []).extend(responses)

    def commands(self, kind: CommandKind) -> list[Command]:
        return [cmd for cmd in self.sent if cmd.kind == kind]

    def kinds(self) -> list[CommandKind]:
        return [cmd.kind for cmd in self.sent]

    def send(self, data: bytes) -> int:
        kind = CommandKind(data[0])
        cmd = Command(kind, bytes(data[3 : 3 + data[1]]))
        self.sent.append(cmd)
        reply = self._respond(cmd)
        self._pending = reply if isinstance(reply, bytes) else codec.encode_response(reply)
        return len(data)

    def receive(self, timeout_s: float) -> bytes:
        self.timeouts.append(timeout_s)
        out, self._pending = self._pending, b""
        return out

    def close(self) -> None:
        self.closed = True

    def _respond(self, cmd: Command) -> Response | bytes:
        queued = self._queued.get(cmd.kind)
        if queued:
            return queued.pop(0)

        if cmd.kind == CommandKind.IDENTIFY:
            return Response(cmd.kind, 0x00, bytes([self.chip_id, self.device_type]))
        if cmd.kind == CommandKind.READ_CONFIG:
            payload = b"\x1f\x00" + bytes(self.registers) + self.btver + self.uid
            return Response(cmd.kind, 0x00, payload)
        if cmd.kind == CommandKind.WRITE_CONFIG:
            self.registers[:] = cmd.payload[4:16]
            return Response(cmd.kind, 0x00, b"\x00\x00")
        if cmd.kind == CommandKind.SET_KEY:
            checksum = key_checksum(derive_xor_key(self.uid, self.chip_id))
            return Response(cmd.kind, 0x00, bytes([checksum, 0x00]))
        if cmd.kind == CommandKind.VERIFY:
            return Response(cmd.kind, 0x00, b"\x00\x00")
        return Response(cmd.kind, 0x00, b"\x00\x00")
