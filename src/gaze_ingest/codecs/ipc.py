"""
Binary codec for the local eye-tracking toolkit IPC protocol.

Every record is little-endian and packed, starting with an 8 byte header:

    offset  size  field
    0       4     message type (u32, see `MessageType`)
    4       4     payload length in bytes (i32)

Payloads:

    handshake request (6 bytes)
    0       2     ipc version (u16)
    2       4     process id (u32)

    handshake result (1 byte)
    0       1     result code (u8, see `HandshakeResult`)

    gaze data result (26 bytes), left eye then right eye, 13 bytes each
    0       1     direction valid (bool)
    1       4     direction x (f32)
    5       4     direction y (f32)
    9       4     direction z (f32)
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Final

from ..errors import MalformedMessage
from ..models import RawEyeSample

IPC_VERSION: Final[int] = 1


class MessageType(IntEnum):
    UNKNOWN = 0
    CLIENT_PING = 1
    SERVER_PONG = 2
    CLIENT_REQUEST_HANDSHAKE = 3
    SERVER_HANDSHAKE_RESULT = 4
    CLIENT_REQUEST_GAZE_DATA = 5
    SERVER_GAZE_DATA_RESULT = 6


class HandshakeResult(IntEnum):
    FAILED = 0
    SUCCESS = 1
    OUTDATED = 2


# < = little endian, no padding
# I = u32 message type, i = i32 payload length
HEADER: Final[struct.Struct] = struct.Struct("<Ii")
HANDSHAKE_REQUEST: Final[struct.Struct] = struct.Struct("<HI")
HANDSHAKE_RESULT: Final[struct.Struct] = struct.Struct("<B")
# ? = bool validity, fff = direction
EYE_RESULT: Final[struct.Struct] = struct.Struct("<?fff")

HANDSHAKE_RESPONSE_SIZE: Final[int] = HEADER.size + HANDSHAKE_RESULT.size
GAZE_RESPONSE_SIZE: Final[int] = HEADER.size + 2 * EYE_RESULT.size


@dataclass(slots=True, frozen=True)
class Header:
    type: int
    length: int


@dataclass(slots=True, frozen=True)
class GazeDataResult:
    left: RawEyeSample
    right: RawEyeSample

    @property
    def both_valid(self) -> bool:
        return self.left.valid and self.right.valid


def encode_header(message_type: MessageType, length: int = 0) -> bytes:
    return HEADER.pack(int(message_type), length)


def decode_header(buffer: bytes) -> Header:
    if len(buffer) < HEADER.size:
        raise MalformedMessage(f"Header needs {HEADER.size} bytes, got {len(buffer)}.")
    message_type, length = HEADER.unpack_from(buffer)
    return Header(type=message_type, length=length)


def encode_handshake_request(process_id: int, ipc_version: int = IPC_VERSION) -> bytes:
    """Builds the full handshake request record (header + payload)."""
    payload = HANDSHAKE_REQUEST.pack(ipc_version, process_id & 0xFFFFFFFF)
    return encode_header(MessageType.CLIENT_REQUEST_HANDSHAKE, len(payload)) + payload


def encode_gaze_request() -> bytes:
    return encode_header(MessageType.CLIENT_REQUEST_GAZE_DATA, 0)


def decode_handshake_response(buffer: bytes) -> HandshakeResult:
    """
    Parses a handshake response record.

    Raises MalformedMessage on short input, an unexpected message type, or an
    unknown result code.
    """
    if len(buffer) < HANDSHAKE_RESPONSE_SIZE:
        raise MalformedMessage(
            f"Handshake response needs {HANDSHAKE_RESPONSE_SIZE} bytes, got {len(buffer)}."
        )

    header = decode_header(buffer)
    if header.type != MessageType.SERVER_HANDSHAKE_RESULT:
        raise MalformedMessage(f"Unexpected message type {header.type} in handshake response.")

    (result,) = HANDSHAKE_RESULT.unpack_from(buffer, HEADER.size)
    try:
        return HandshakeResult(result)
    except ValueError:
        raise MalformedMessage(f"Unknown handshake result code {result}.") from None


def decode_gaze_response(buffer: bytes) -> GazeDataResult:
    if len(buffer) < GAZE_RESPONSE_SIZE:
        raise MalformedMessage(
            f"Gaze response needs {GAZE_RESPONSE_SIZE} bytes, got {len(buffer)}."
        )

    header = decode_header(buffer)
    if header.type != MessageType.SERVER_GAZE_DATA_RESULT:
        raise MalformedMessage(f"Unexpected message type {header.type} in gaze response.")

    eyes = []
    for offset in (HEADER.size, HEADER.size + EYE_RESULT.size):
        valid, x, y, z = EYE_RESULT.unpack_from(buffer, offset)
        eyes.append(RawEyeSample(valid=valid, direction=(x, y, z)))

    return GazeDataResult(left=eyes[0], right=eyes[1])


def encode_handshake_response(result: HandshakeResult) -> bytes:
    """Server side of the handshake. Used by test doubles of the toolkit."""
    payload = HANDSHAKE_RESULT.pack(int(result))
    return encode_header(MessageType.SERVER_HANDSHAKE_RESULT, len(payload)) + payload


def encode_gaze_response(left: RawEyeSample, right: RawEyeSample) -> bytes:
    """Server side of a gaze data result. Used by test doubles of the toolkit."""
    payload = b"".join(
        EYE_RESULT.pack(eye.valid, *(eye.direction or (0.0, 0.0, 0.0)))
        for eye in (left, right)
    )
    return encode_header(MessageType.SERVER_GAZE_DATA_RESULT, len(payload)) + payload
